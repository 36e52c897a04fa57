"""Domain layer for Outreach Ledger."""
