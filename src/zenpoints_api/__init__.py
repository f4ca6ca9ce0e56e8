"""Zen points memory game and loyalty ledger service."""
