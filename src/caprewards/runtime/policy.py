# src/caprewards/runtime/policy.py
from __future__ import annotations

"""Price / collateral policy collaborator.

The band-and-cap policy engine, the price oracle and the reserve attestation
live outside this package. The engine consumes them only through PolicyManager.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from caprewards.ledger.constants import BPS, MAX_SKIM_BPS, WAD


class PolicyManager(ABC):
    @abstractmethod
    def refresh_band(self) -> None:
        """Recompute the current price band before a distribution reads it."""

    @abstractmethod
    def get_cap_price(self) -> int:
        """Reward-token price in coupon value units, WAD fixed point."""

    @abstractmethod
    def get_distribution_skim_bps(self) -> int:
        """Share of each distribution routed to the treasury, in basis points."""

    @abstractmethod
    def get_collateral_ratio(self) -> Optional[int]:
        """Collateral ratio (reserves / supply), WAD fixed point. None if not wired."""

    @abstractmethod
    def is_attestation_stale(self, now: int) -> bool:
        """True when the reserve attestation backing the collateral ratio is too old."""


class StaticPolicy(PolicyManager):
    """Settable policy used by simulations, the bundled API runtime and tests.

    Attestation staleness is derived from `attested_at` and `max_attestation_age`
    (seconds); an age of 0 disables the staleness check.
    """

    def __init__(
        self,
        *,
        price: int = WAD,
        skim_bps: int = 0,
        collateral_ratio: Optional[int] = None,
        attested_at: int = 0,
        max_attestation_age: int = 0,
    ) -> None:
        self.price = int(price)
        self.skim_bps = int(skim_bps)
        self.collateral_ratio = collateral_ratio
        self.attested_at = int(attested_at)
        self.max_attestation_age = int(max_attestation_age)
        self.band_refreshes = 0

    def refresh_band(self) -> None:
        self.band_refreshes += 1

    def get_cap_price(self) -> int:
        return int(self.price)

    def get_distribution_skim_bps(self) -> int:
        return max(0, min(int(self.skim_bps), MAX_SKIM_BPS, BPS))

    def get_collateral_ratio(self) -> Optional[int]:
        return None if self.collateral_ratio is None else int(self.collateral_ratio)

    def attest(self, *, collateral_ratio: int, at: int) -> None:
        self.collateral_ratio = int(collateral_ratio)
        self.attested_at = int(at)

    def is_attestation_stale(self, now: int) -> bool:
        if self.max_attestation_age <= 0:
            return False
        return int(now) - int(self.attested_at) > int(self.max_attestation_age)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": int(self.price),
            "skim_bps": int(self.skim_bps),
            "collateral_ratio": self.get_collateral_ratio(),
            "attested_at": int(self.attested_at),
            "max_attestation_age": int(self.max_attestation_age),
        }

    def restore(self, d: Dict[str, Any]) -> None:
        """Reset the settable fields to a to_dict() snapshot."""
        other = StaticPolicy.from_dict(d)
        self.price = other.price
        self.skim_bps = other.skim_bps
        self.collateral_ratio = other.collateral_ratio
        self.attested_at = other.attested_at
        self.max_attestation_age = other.max_attestation_age

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "StaticPolicy":
        cr = d.get("collateral_ratio")
        return cls(
            price=int(d.get("price", WAD)),
            skim_bps=int(d.get("skim_bps", 0)),
            collateral_ratio=None if cr is None else int(cr),
            attested_at=int(d.get("attested_at", 0)),
            max_attestation_age=int(d.get("max_attestation_age", 0)),
        )
