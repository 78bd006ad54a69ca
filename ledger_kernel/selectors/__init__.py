"""Read-only query selectors for the ledger kernel."""
