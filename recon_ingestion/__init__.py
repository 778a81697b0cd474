"""
recon_ingestion -- Canonical shape adapters for reconciliation inputs.

Translates storage records (ledger invoices and statement lines, under
whatever column names and legacy aliases they carry) into the canonical
frozen types the engines consume. Validation happens here exactly once.

Architecture:
    recon_ingestion/ is a top-level package. It imports recon_kernel only;
    recon_engines never imports from ingestion and never reads raw records.
"""
