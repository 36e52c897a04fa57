"""Celery tasks for the Outreach Ledger worker."""
