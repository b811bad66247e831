"""Rewards runtime: accrual, exclusion, scheduling, breakage, distribution, claims."""
