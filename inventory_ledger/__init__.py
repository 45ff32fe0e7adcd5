"""Inventory ledger service."""
