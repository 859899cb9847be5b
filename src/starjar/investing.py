"""Fixed deposit investments backed by debit/credit entries in the activity ledger."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from .banks import BankDirectory
from .config import DAYS_PER_MONTH
from .ledger import ActivityLedger, new_id
from .models import (
    ActivityCategory,
    ActivityLog,
    Bank,
    Investment,
    InvestmentStatus,
    Outcome,
    as_naive_utc,
    utcnow,
)
from .ops import StructuredLogger
from .points import require_positive, simple_interest, to_points
from .store import KeyValueStore


def term_length(months: int) -> timedelta:
    return timedelta(days=months * DAYS_PER_MONTH)


class InvestmentLedger:
    """Open, withdraw and mature fixed deposits for children.

    Opening a deposit debits the principal from the child's balance through a
    ``-principal`` log entry. Early withdrawal credits the principal back and
    forfeits the projected return; maturity credits principal plus return in a
    single entry. Each command writes the investment, the log and the balance
    in one store transaction.
    """

    def __init__(
        self,
        store: KeyValueStore,
        activity: ActivityLedger,
        banks: BankDirectory,
        *,
        logger: StructuredLogger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._activity = activity
        self._banks = banks
        self._logger = logger or store.logger
        self._clock = clock

    # Queries ---------------------------------------------------------------
    def investments(
        self,
        child_id: str | None = None,
        *,
        status: InvestmentStatus | None = None,
    ) -> Tuple[Investment, ...]:
        result = []
        for investment in self._store.get_investments():
            if child_id is not None and investment.child_id != child_id:
                continue
            if status is not None and investment.status is not status:
                continue
            result.append(investment)
        return tuple(result)

    def get(self, investment_id: str) -> Optional[Investment]:
        for investment in self._store.get_investments():
            if investment.id == investment_id:
                return investment
        return None

    def locked_points(self, child_id: str) -> int:
        """Return the principal currently held in a child's active deposits."""

        return sum(
            investment.principal
            for investment in self.investments(child_id, status=InvestmentStatus.ACTIVE)
        )

    def quote(self, bank_id: str, amount: int, months: int) -> Optional[int]:
        """Preview the projected return at the bank's current rate."""

        bank = self._banks.get_bank(bank_id)
        if bank is None or amount <= 0 or months <= 0:
            return None
        return simple_interest(amount, bank.rate, months)

    # Commands --------------------------------------------------------------
    def create_investment(
        self,
        child_id: str,
        bank_id: str,
        amount: int,
        months: int,
        *,
        at: Optional[datetime] = None,
    ) -> Outcome[Investment]:
        bank = self._banks.get_bank(bank_id)
        if bank is None:
            return self._refuse(Outcome.not_found(f"Bank '{bank_id}' does not exist."), child=child_id)
        try:
            amount = require_positive(to_points(amount))
        except (TypeError, ValueError, ArithmeticError):
            return self._refuse(Outcome.rejected("Amount must be a positive whole number."), child=child_id)
        if months <= 0:
            return self._refuse(Outcome.rejected("Duration must be at least one month."), child=child_id)

        start = as_naive_utc(at or self._clock())
        with self._store.transaction():
            child = next((c for c in self._store.get_children() if c.id == child_id), None)
            if child is None:
                return self._refuse(Outcome.not_found(f"Child '{child_id}' does not exist."), child=child_id)
            if amount > child.total_points:
                return self._refuse(
                    Outcome.rejected(f"Amount {amount} exceeds balance {child.total_points}."),
                    child=child_id,
                )
            investment = Investment(
                id=new_id(),
                child_id=child_id,
                bank_id=bank.id,
                principal=amount,
                rate=bank.rate,
                duration_months=months,
                start_date=start,
                maturity_date=start + term_length(months),
                projected_return=simple_interest(amount, bank.rate, months),
            )
            investments = self._store.get_investments()
            investments.append(investment)
            self._store.save_investments(investments)
            self._post(child_id, f"Fixed deposit: {bank.name} ({months} mo)", -amount, start)
        self._logger.log(
            "investment_created",
            child=child_id,
            investment=investment.id,
            bank=bank.id,
            principal=amount,
            rate=float(investment.rate),
            projected_return=investment.projected_return,
        )
        return Outcome.success(investment)

    def withdraw_investment(
        self,
        investment_id: str,
        *,
        at: Optional[datetime] = None,
    ) -> Outcome[Investment]:
        moment = as_naive_utc(at or self._clock())
        with self._store.transaction():
            investments = self._store.get_investments()
            investment = next((item for item in investments if item.id == investment_id), None)
            if investment is None:
                return self._refuse(
                    Outcome.not_found(f"Investment '{investment_id}' does not exist."),
                    investment=investment_id,
                )
            if investment.status.is_terminal:
                return self._refuse(
                    Outcome.rejected(f"Investment is already {investment.status.value}."),
                    investment=investment_id,
                )
            if investment.is_mature(moment):
                return self._refuse(
                    Outcome.rejected("Deposit has matured; reconcile to collect principal and interest."),
                    investment=investment_id,
                )
            if not any(child.id == investment.child_id for child in self._store.get_children()):
                return self._refuse(
                    Outcome.not_found(f"Child '{investment.child_id}' does not exist."),
                    investment=investment_id,
                )
            investment.status = InvestmentStatus.EARLY_WITHDRAWN
            self._store.save_investments(investments)
            self._post(
                investment.child_id,
                f"Early withdrawal: {self._bank_name(investment.bank_id)}",
                investment.principal,
                moment,
            )
        self._logger.log(
            "investment_withdrawn",
            child=investment.child_id,
            investment=investment.id,
            credited=investment.principal,
            forfeited=investment.projected_return,
        )
        return Outcome.success(investment)

    def check_matured_investments(self, *, at: Optional[datetime] = None) -> Tuple[Investment, ...]:
        """Complete every active deposit whose maturity date has passed.

        Returns the deposits completed by this call; a deposit already marked
        ``completed`` is never credited twice.
        """

        moment = as_naive_utc(at or self._clock())
        matured: List[Investment] = []
        orphaned: List[Investment] = []
        with self._store.transaction():
            child_ids = {child.id for child in self._store.get_children()}
            investments = self._store.get_investments()
            for investment in investments:
                if investment.status is not InvestmentStatus.ACTIVE or not investment.is_mature(moment):
                    continue
                if investment.child_id not in child_ids:
                    orphaned.append(investment)
                    continue
                investment.status = InvestmentStatus.COMPLETED
                self._post(
                    investment.child_id,
                    f"Fixed deposit matured: {self._bank_name(investment.bank_id)}"
                    f" (+{investment.projected_return} interest)",
                    investment.payout_amount,
                    moment,
                )
                matured.append(investment)
            if matured:
                self._store.save_investments(investments)
        for investment in matured:
            self._logger.log(
                "investment_matured",
                child=investment.child_id,
                investment=investment.id,
                credited=investment.payout_amount,
            )
        for investment in orphaned:
            self._logger.log("investment_orphaned", child=investment.child_id, investment=investment.id)
        return tuple(matured)

    # Helpers ---------------------------------------------------------------
    def _post(self, child_id: str, description: str, points: int, at: datetime) -> ActivityLog:
        outcome = self._activity.record(
            child_id,
            description,
            points,
            ActivityCategory.INVESTMENT,
            at=at,
        )
        if not outcome.ok or outcome.value is None:
            raise RuntimeError(f"Investment entry for '{child_id}' was not recorded: {outcome.reason}")
        return outcome.value

    def _bank_name(self, bank_id: str) -> str:
        bank: Optional[Bank] = self._banks.get_bank(bank_id)
        return bank.name if bank else bank_id

    def _refuse(self, outcome: Outcome[Investment], **fields: object) -> Outcome[Investment]:
        self._logger.log("investment_refused", status=outcome.status.value, reason=outcome.reason, **fields)
        return outcome


__all__ = ["InvestmentLedger", "term_length"]
