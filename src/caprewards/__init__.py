"""caprewards: epoch rewards distribution engine for a CAP-denominated token.

Package map:
  - ledger: constants, record types, token ledger interface
  - runtime: accrual, exclusion, scheduling, breakage, distribution, claims
  - api: FastAPI surface over a single in-process engine
"""

__version__ = "0.1.0"
