"""Bank directory: static fixed deposit quotes with persisted live-rate overrides."""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Optional, Protocol, Tuple

from .exceptions import RateProviderError
from .models import Bank, RateQuote
from .ops import StructuredLogger
from .points import to_rate
from .store import KeyValueStore

DEFAULT_BANKS: Tuple[Bank, ...] = (
    Bank(
        id="mbank",
        name="Maybank",
        description="Malaysia's largest bank",
        rate=Decimal("2.50"),
        color="bg-yellow-500",
    ),
    Bank(id="cbank", name="CIMB Bank", description="Forward banking", rate=Decimal("2.35"), color="bg-red-600"),
    Bank(
        id="ubank",
        name="Public Bank",
        description="Steady and reliable",
        rate=Decimal("2.45"),
        color="bg-rose-700",
    ),
)


class RateProvider(Protocol):
    def fetch_rates(self) -> Optional[RateQuote]:
        ...


class BankDirectory:
    """Serve the known banks with whatever rate is current right now."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        defaults: Tuple[Bank, ...] = DEFAULT_BANKS,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._store = store
        self._defaults = defaults
        self._logger = logger or store.logger

    def get_banks(self) -> Tuple[Bank, ...]:
        overrides = self._store.get_bank_rates()
        return tuple(
            bank.with_rate(overrides[bank.id]) if bank.id in overrides else bank
            for bank in self._defaults
        )

    def get_bank(self, bank_id: str) -> Optional[Bank]:
        for bank in self.get_banks():
            if bank.id == bank_id:
                return bank
        return None

    def update_rates(self, rates: Mapping[str, object]) -> dict[str, Decimal]:
        """Persist overrides for known banks and return the ones applied."""

        known = {bank.id for bank in self._defaults}
        applied: dict[str, Decimal] = {}
        for bank_id, value in rates.items():
            if bank_id not in known:
                continue
            try:
                rate = to_rate(value)  # type: ignore[arg-type]
            except (TypeError, ValueError, ArithmeticError):
                self._logger.log("bank_rate_ignored", bank=bank_id, value=str(value))
                continue
            if rate < 0:
                self._logger.log("bank_rate_ignored", bank=bank_id, value=str(value))
                continue
            applied[bank_id] = rate
        if applied:
            overrides = self._store.get_bank_rates()
            overrides.update(applied)
            self._store.save_bank_rates(overrides)
            self._logger.log("bank_rates_updated", rates={key: float(rate) for key, rate in applied.items()})
        return applied

    def reset_rates(self) -> None:
        self._store.save_bank_rates({})

    def refresh(self, provider: RateProvider) -> Optional[RateQuote]:
        """Pull live rates from ``provider``; current rates stay in place when it has nothing."""

        try:
            quote = provider.fetch_rates()
        except RateProviderError as exc:
            self._logger.log("bank_rates_unavailable", error=str(exc))
            return None
        if quote is None or not quote.rates:
            self._logger.log("bank_rates_unavailable", error="no rates returned")
            return None
        self.update_rates(quote.rates)
        return quote


__all__ = ["BankDirectory", "DEFAULT_BANKS", "RateProvider"]
