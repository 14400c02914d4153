"""Ledger Importer: bank export ingestion and recurring payment detection."""

__version__ = "0.1.0"
