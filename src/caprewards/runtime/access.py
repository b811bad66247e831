# src/caprewards/runtime/access.py
from __future__ import annotations

from typing import Dict, List

from caprewards.ledger.constants import ROLE_ADMIN, ROLES
from caprewards.runtime.errors import InvalidConfig, MissingRole


def _norm(v: object) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


class AccessControl:
    """Role table over RewardsState.roles ({role: [account, ...]}).

    Admin implies every role.
    """

    def __init__(self, roles: Dict[str, List[str]]) -> None:
        self._roles = roles

    def has_role(self, caller: str, role: str) -> bool:
        c = _norm(caller)
        if not c:
            return False
        if c in self._roles.get(ROLE_ADMIN, []):
            return True
        return c in self._roles.get(role, [])

    def require(self, caller: str, role: str) -> None:
        if not self.has_role(caller, role):
            raise MissingRole(_norm(caller), role)

    def grant(self, role: str, account: str) -> bool:
        if role not in ROLES:
            raise InvalidConfig("unknown_role", {"role": role})
        a = _norm(account)
        if not a:
            raise InvalidConfig("empty_account", {"role": role})
        members = self._roles.setdefault(role, [])
        if a in members:
            return False
        members.append(a)
        return True

    def revoke(self, role: str, account: str) -> bool:
        a = _norm(account)
        members = self._roles.get(role, [])
        if a not in members:
            return False
        if role == ROLE_ADMIN and len(members) == 1:
            raise InvalidConfig("cannot_revoke_last_admin", {"account": a})
        members.remove(a)
        return True
