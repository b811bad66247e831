# src/caprewards/ledger/token_ledger.py
from __future__ import annotations

"""Token ledger interface consumed by the rewards engine.

The ledger owns balances and supply. The engine never stores balances on its
own authority: it mirrors them through the balance hook, which every ledger
implementation MUST call *before* applying a change:

    listener.on_balance_change(sender, receiver, amount)

sender is None for a mint, receiver is None for a burn.
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from caprewards.runtime.errors import InsufficientBalance


class BalanceListener(ABC):
    @abstractmethod
    def on_balance_change(self, sender: Optional[str], receiver: Optional[str], amount: int) -> None:
        """Settle and account for a balance change that is about to be applied."""


def _as_account(v: Any) -> str:
    s = str(v).strip() if isinstance(v, str) else ""
    if not s:
        raise ValueError("account id must be a non-empty string")
    return s


def _as_amount(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValueError(f"amount must be int, got {type(v).__name__}")
    if v < 0:
        raise ValueError(f"amount must be >= 0, got {v}")
    return int(v)


class TokenLedger(ABC):
    def __init__(self) -> None:
        self._listener: Optional[BalanceListener] = None

    def attach(self, listener: BalanceListener) -> None:
        self._listener = listener

    def _notify(self, sender: Optional[str], receiver: Optional[str], amount: int) -> None:
        if self._listener is not None:
            self._listener.on_balance_change(sender, receiver, amount)

    @abstractmethod
    def balance_of(self, account: str) -> int: ...

    @abstractmethod
    def total_supply(self) -> int: ...

    @abstractmethod
    def mint(self, account: str, amount: int) -> None: ...

    @abstractmethod
    def burn(self, account: str, amount: int) -> None: ...

    @abstractmethod
    def transfer(self, sender: str, receiver: str, amount: int) -> None: ...

    def snapshot(self) -> Any:
        """Opaque state for restore(); None when the ledger cannot roll back."""
        return None

    def restore(self, snap: Any) -> None:
        return None


class InMemoryTokenLedger(TokenLedger):
    """Dict-backed ledger used by the bundled runtime, simulations and tests."""

    def __init__(self) -> None:
        super().__init__()
        self._balances: Dict[str, int] = {}
        self._supply = 0

    def balance_of(self, account: str) -> int:
        return int(self._balances.get(account, 0))

    def total_supply(self) -> int:
        return int(self._supply)

    def balances(self) -> Dict[str, int]:
        return {k: v for k, v in self._balances.items() if v}

    def mint(self, account: str, amount: int) -> None:
        to = _as_account(account)
        amt = _as_amount(amount)
        if amt == 0:
            return
        self._notify(None, to, amt)
        self._balances[to] = self.balance_of(to) + amt
        self._supply += amt

    def burn(self, account: str, amount: int) -> None:
        frm = _as_account(account)
        amt = _as_amount(amount)
        if amt == 0:
            return
        bal = self.balance_of(frm)
        if bal < amt:
            raise InsufficientBalance(frm, bal, amt)
        self._notify(frm, None, amt)
        self._balances[frm] = bal - amt
        self._supply -= amt

    def transfer(self, sender: str, receiver: str, amount: int) -> None:
        frm = _as_account(sender)
        to = _as_account(receiver)
        amt = _as_amount(amount)
        if amt == 0:
            return
        bal = self.balance_of(frm)
        if bal < amt:
            raise InsufficientBalance(frm, bal, amt)
        self._notify(frm, to, amt)
        self._balances[frm] = bal - amt
        self._balances[to] = self.balance_of(to) + amt

    def snapshot(self) -> Any:
        return (copy.copy(self._balances), int(self._supply))

    def restore(self, snap: Any) -> None:
        if snap is None:
            return
        balances, supply = snap
        self._balances = dict(balances)
        self._supply = int(supply)

    def to_dict(self) -> Dict[str, Any]:
        return {"balances": dict(sorted(self.balances().items())), "total_supply": int(self._supply)}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "InMemoryTokenLedger":
        led = cls()
        led._balances = {str(k): int(v) for k, v in (d.get("balances") or {}).items()}
        led._supply = int(d.get("total_supply", sum(led._balances.values())))
        return led
