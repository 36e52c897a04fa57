"""Outreach Ledger - webhook ingestion and campaign analytics."""

__version__ = "0.1.0"
