"""Write-side services of the ledger kernel. Services flush; callers commit."""
