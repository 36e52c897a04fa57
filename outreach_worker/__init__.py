"""Outreach Ledger maintenance worker."""
