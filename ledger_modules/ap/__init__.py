"""Accounts payable: vendor bills, payments made and direct expenses."""

from ledger_modules.ap.service import APService

__all__ = ["APService"]
