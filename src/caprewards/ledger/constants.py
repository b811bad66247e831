# src/caprewards/ledger/constants.py
from __future__ import annotations

"""Fixed-point and accounting constants.

Conventions:
- Token amounts are integer base units (18 decimals).
- Prices, collateral ratios and the reward index are WAD fixed point (1e18 == 1.0).
- Time is integer unix seconds.
"""

TOKEN_DECIMALS: int = 18
TOKEN: int = 10**TOKEN_DECIMALS

# 1.0 in fixed point
WAD: int = 10**18

# Price parity for the depeg guard (1 CAP == 1 unit of coupon value)
PAR_PRICE: int = WAD

# Basis points denominator for the distribution skim
BPS: int = 10_000
MAX_SKIM_BPS: int = 5_000

SECONDS_PER_DAY: int = 86_400

# Role names
ROLE_ADMIN: str = "admin"
ROLE_DISTRIBUTOR: str = "distributor"
ROLES = (ROLE_ADMIN, ROLE_DISTRIBUTOR)

# Default account ids used when a deployment does not configure its own
TREASURY_ACCOUNT_ID: str = "TREASURY"
BREAKAGE_SINK_ACCOUNT_ID: str = "BREAKAGE_SINK"
