"""Key/value store contract backing the StarJar ledgers."""

from __future__ import annotations

import copy
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, TypeVar

from .config import API_KEY_KEY, BANK_RATES_KEY, INVESTMENTS_KEY, KIDS_KEY, LOGS_KEY
from .models import ActivityLog, Child, Investment
from .ops import StructuredLogger
from .points import to_rate

R = TypeVar("R")

_MISSING = object()


class KeyValueStore:
    """Persisted collections addressed by key, with all-or-nothing transactions.

    Subclasses provide ``_load`` and ``_commit``. Writes made inside
    :meth:`transaction` are staged and only handed to ``_commit`` when the
    outermost transaction exits cleanly; an exception discards all of them.
    Writes outside a transaction commit immediately.
    """

    def __init__(self, *, logger: StructuredLogger | None = None) -> None:
        self.logger = logger or StructuredLogger()
        self._staged: Dict[str, Any] = {}
        self._depth = 0

    # Backend hooks ---------------------------------------------------------
    def _load(self, key: str) -> Any:
        raise NotImplementedError

    def _commit(self, changes: Mapping[str, Any]) -> None:
        raise NotImplementedError

    # Raw access ------------------------------------------------------------
    def read(self, key: str) -> Any:
        value = self._staged.get(key, _MISSING) if self._depth else _MISSING
        if value is _MISSING:
            value = self._load(key)
        return copy.deepcopy(value)

    def write(self, key: str, value: Any) -> None:
        """Store ``value`` (``None`` removes the key)."""

        if self._depth:
            self._staged[key] = copy.deepcopy(value)
        else:
            self._commit({key: copy.deepcopy(value)})

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def transaction(self) -> Iterator["KeyValueStore"]:
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                discarded = sorted(self._staged)
                self._staged.clear()
                if discarded:
                    self.logger.log("store_rollback", keys=discarded)
            raise
        self._depth -= 1
        if self._depth == 0:
            changes, self._staged = self._staged, {}
            if changes:
                self._commit(changes)

    # Typed collections -----------------------------------------------------
    def _decode_list(self, key: str, factory: Callable[[Mapping[str, Any]], R]) -> List[R]:
        raw = self.read(key)
        if raw is None:
            return []
        try:
            return [factory(item) for item in raw]
        except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
            self.logger.log("store_decode_failed", key=key, error=str(exc))
            return []

    def get_children(self) -> List[Child]:
        return self._decode_list(KIDS_KEY, Child.from_dict)

    def save_children(self, children: Sequence[Child]) -> None:
        self.write(KIDS_KEY, [child.to_dict() for child in children])

    def get_logs(self) -> List[ActivityLog]:
        return self._decode_list(LOGS_KEY, ActivityLog.from_dict)

    def save_logs(self, logs: Sequence[ActivityLog]) -> None:
        self.write(LOGS_KEY, [log.to_dict() for log in logs])

    def get_investments(self) -> List[Investment]:
        return self._decode_list(INVESTMENTS_KEY, Investment.from_dict)

    def save_investments(self, investments: Sequence[Investment]) -> None:
        self.write(INVESTMENTS_KEY, [investment.to_dict() for investment in investments])

    def get_bank_rates(self) -> Dict[str, Decimal]:
        raw = self.read(BANK_RATES_KEY)
        if not isinstance(raw, dict):
            return {}
        rates: Dict[str, Decimal] = {}
        for bank_id, value in raw.items():
            try:
                rates[str(bank_id)] = to_rate(value)
            except (TypeError, ValueError, ArithmeticError):
                self.logger.log("store_decode_failed", key=BANK_RATES_KEY, bank=bank_id)
        return rates

    def save_bank_rates(self, rates: Mapping[str, Decimal]) -> None:
        self.write(BANK_RATES_KEY, {bank_id: float(rate) for bank_id, rate in rates.items()})

    def get_api_key(self) -> Optional[str]:
        value = self.read(API_KEY_KEY)
        return value if isinstance(value, str) and value else None

    def save_api_key(self, api_key: str | None) -> None:
        self.write(API_KEY_KEY, api_key or None)


class InMemoryStore(KeyValueStore):
    """Dictionary backed store used by tests and throwaway sessions."""

    def __init__(
        self,
        initial: Optional[Mapping[str, Any]] = None,
        *,
        logger: StructuredLogger | None = None,
    ) -> None:
        super().__init__(logger=logger)
        self._data: Dict[str, Any] = copy.deepcopy(dict(initial or {}))

    def _load(self, key: str) -> Any:
        return self._data.get(key)

    def _commit(self, changes: Mapping[str, Any]) -> None:
        for key, value in changes.items():
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)


__all__ = ["InMemoryStore", "KeyValueStore"]
