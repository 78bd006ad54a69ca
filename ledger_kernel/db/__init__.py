"""Database infrastructure for the ledger kernel."""
