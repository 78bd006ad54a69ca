"""Business modules built on the ledger kernel: documents, AR, AP, reporting."""
