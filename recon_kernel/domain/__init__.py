"""Pure domain types for the reconciliation kernel (zero I/O)."""
