"""Pure domain values for the ledger kernel: money, clock, organization context."""
