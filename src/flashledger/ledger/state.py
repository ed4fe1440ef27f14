from __future__ import annotations

from dataclasses import dataclass, field
import copy
from typing import Any, Dict, List, Optional

from flashledger.ledger.address import normalize_address
from flashledger.ledger.constants import DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_SYMBOL, TOKEN_DECIMALS
from flashledger.ledger.tranches import Tranche, active_amount, expired_amount, load_tranches


Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class TokenView:
    """
    Immutable read-only view over the token ledger.

    Balance queries take an optional `now`; when omitted the view uses the
    time recorded in the snapshot (state["time"]). Nothing here mutates or
    caches: active/expired splits are recomputed from stored expiries.
    """

    accounts: Dict[str, Any] = field(default_factory=dict)
    allowances: Dict[str, Any] = field(default_factory=dict)
    token: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    nonces: Dict[str, Any] = field(default_factory=dict)
    time: int = 0

    @classmethod
    def from_ledger(cls, state: Dict[str, Any]) -> "TokenView":
        return cls(
            accounts=copy.deepcopy(state.get("accounts", {})) if isinstance(state.get("accounts"), dict) else {},
            allowances=copy.deepcopy(state.get("allowances", {})) if isinstance(state.get("allowances"), dict) else {},
            token=copy.deepcopy(state.get("token", {})) if isinstance(state.get("token"), dict) else {},
            params=copy.deepcopy(state.get("params", {})) if isinstance(state.get("params"), dict) else {},
            nonces=dict(state.get("nonces") or {}) if isinstance(state.get("nonces"), dict) else {},
            time=int(state.get("time", 0) or 0),
        )

    def _now(self, now: Optional[int]) -> int:
        return int(self.time) if now is None else int(now)

    def get_account(self, account_id: str) -> Dict[str, Any]:
        acct = self.accounts.get(normalize_address(account_id))
        return acct if isinstance(acct, dict) else {}

    def balance_of(self, account_id: str) -> int:
        try:
            return int(self.get_account(account_id).get("balance", 0))
        except Exception:
            return 0

    def flash_balances_of(self, account_id: str) -> List[Tranche]:
        return load_tranches(self.get_account(account_id))

    def active_balance_of(self, account_id: str, now: Optional[int] = None) -> int:
        return active_amount(self.flash_balances_of(account_id), self._now(now))

    def expired_balance_of(self, account_id: str, now: Optional[int] = None) -> int:
        return expired_amount(self.flash_balances_of(account_id), self._now(now))

    def accounts_with_expired(self, now: Optional[int] = None) -> List[str]:
        t = self._now(now)
        out: List[str] = []
        for addr in sorted(self.accounts.keys()):
            if expired_amount(load_tranches(self.accounts.get(addr)), t) > 0:
                out.append(addr)
        return out

    def nonce_of(self, account_id: str) -> int:
        """Last nonce applied for `account_id`; 0 before its first signed call."""
        v = self.nonces.get(normalize_address(account_id), 0)
        return v if isinstance(v, int) and not isinstance(v, bool) else 0

    def allowance(self, owner: str, spender: str) -> int:
        row = self.allowances.get(normalize_address(owner))
        if not isinstance(row, dict):
            return 0
        try:
            return int(row.get(normalize_address(spender), 0))
        except Exception:
            return 0

    @property
    def total_supply(self) -> int:
        return int(self.token.get("total_supply", 0) or 0)

    @property
    def owner(self) -> str:
        v = self.params.get("owner")
        return str(v).strip() if v is not None else ""

    @property
    def metadata_uri(self) -> str:
        return str(self.token.get("metadata_uri") or "")

    def token_info(self) -> Json:
        return {
            "name": str(self.token.get("name") or DEFAULT_TOKEN_NAME),
            "symbol": str(self.token.get("symbol") or DEFAULT_TOKEN_SYMBOL),
            "decimals": int(self.token.get("decimals", TOKEN_DECIMALS)),
            "total_supply": self.total_supply,
            "owner": self.owner,
            "metadata_uri": self.metadata_uri,
        }
