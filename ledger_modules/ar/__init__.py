"""Accounts receivable: customer invoices and payments received."""

from ledger_modules.ar.service import ARService

__all__ = ["ARService"]
