"""
Reconciliation Kernel

Shared foundation for the statement-of-account reconciliation system:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with request-scoped context
- Canonical domain types consumed by the matching engine
- Deterministic clock and hashing utilities
- SQLAlchemy persistence for matches, discrepancies and acknowledgements
"""

__version__ = "0.1.0"
