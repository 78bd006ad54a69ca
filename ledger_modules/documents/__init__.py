"""Invoices, bills and payments: lifecycle, persistence and read paths."""
