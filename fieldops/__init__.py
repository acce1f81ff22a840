"""Field operations billing console: invoices, QC, settlement and AI audits."""

__version__ = "1.0.0"
