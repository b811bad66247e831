# src/caprewards/runtime/journal.py
from __future__ import annotations

"""Undo journal for atomic engine calls.

Every entrypoint either commits fully or leaves no trace. Small state (global
record, epochs, guards, roles, wiring) is copied on entry; account records are
copied lazily the first time a call touches them, so a call costs O(touched
accounts) rather than O(all accounts).
"""

import copy
from typing import Any, Dict, Optional

from caprewards.ledger.types import Account, RewardsState


class StateJournal:
    def __init__(self, state: RewardsState, ledger_snapshot: Any = None) -> None:
        self._state = state
        self._global = copy.deepcopy(state.global_state)
        self._epochs = copy.deepcopy(state.epochs)
        self._reports = dict(state.reports)
        self._guards = copy.deepcopy(state.guards)
        self._roles = copy.deepcopy(state.roles)
        self._treasury = state.treasury
        self._sink = state.breakage_sink
        self._accounts: Dict[str, Optional[Account]] = {}
        self.ledger_snapshot = ledger_snapshot

    def touch(self, account_id: str) -> None:
        if account_id in self._accounts:
            return
        acct = self._state.accounts.get(account_id)
        self._accounts[account_id] = copy.deepcopy(acct) if acct is not None else None

    def rollback(self) -> None:
        st = self._state
        st.global_state = self._global
        st.epochs[:] = self._epochs
        st.reports.clear()
        st.reports.update(self._reports)
        st.guards = self._guards
        st.roles.clear()
        st.roles.update(self._roles)
        st.treasury = self._treasury
        st.breakage_sink = self._sink
        for account_id, before in self._accounts.items():
            if before is None:
                st.accounts.pop(account_id, None)
            else:
                st.accounts[account_id] = before
