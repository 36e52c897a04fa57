"""Infrastructure components for Outreach Ledger."""
