"""Reward ledger records and the token ledger interface consumed by the engine."""
