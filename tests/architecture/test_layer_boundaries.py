"""
Package layering contract.

recon_kernel is the bottom layer; recon_ingestion and recon_engines sit on
it side by side; recon_config bridges policy into the engines; recon_services
is the only package allowed to touch everything.

1. No package imports a package above it.
2. The engines, ingestion adapters and kernel domain types stay free of
   ORM / database imports.

These tests read source code via AST.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(
                        f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'"
                    )
    return found


# ---------------------------------------------------------------------------
# Test: no upward dependencies
# ---------------------------------------------------------------------------

class TestNoUpwardDependencies:

    def test_kernel_depends_on_nothing_above(self):
        violations = _violations("recon_kernel", (
            "recon_ingestion", "recon_engines", "recon_config", "recon_services",
        ))
        assert not violations, (
            "recon_kernel must not import higher layers:\n" + "\n".join(violations)
        )

    def test_engines_depend_only_on_kernel(self):
        violations = _violations("recon_engines", (
            "recon_ingestion", "recon_config", "recon_services",
        ))
        assert not violations, (
            "recon_engines must only import recon_kernel:\n" + "\n".join(violations)
        )

    def test_ingestion_depends_only_on_kernel(self):
        violations = _violations("recon_ingestion", (
            "recon_engines", "recon_config", "recon_services",
        ))
        assert not violations, (
            "recon_ingestion must only import recon_kernel:\n" + "\n".join(violations)
        )

    def test_config_never_imports_services(self):
        violations = _violations("recon_config", ("recon_services", "recon_ingestion"))
        assert not violations, (
            "recon_config must not import services or ingestion:\n"
            + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: pure layers stay free of the database
# ---------------------------------------------------------------------------

class TestPureLayers:

    FORBIDDEN_MODULES = ("sqlalchemy", "sqlite3", "recon_kernel.db", "recon_kernel.models")

    def test_engines_have_no_orm_imports(self):
        violations = _violations("recon_engines", self.FORBIDDEN_MODULES)
        assert not violations, "\n".join(violations)

    def test_ingestion_has_no_orm_imports(self):
        violations = _violations("recon_ingestion", self.FORBIDDEN_MODULES)
        assert not violations, "\n".join(violations)

    def test_domain_has_no_orm_imports(self):
        violations = _violations("recon_kernel/domain", self.FORBIDDEN_MODULES)
        assert not violations, "\n".join(violations)
