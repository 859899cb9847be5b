"""Domain models used by the StarJar package."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Generic, Mapping, Optional, Tuple, TypeVar

from .points import to_points, to_rate

EPOCH = datetime(1970, 1, 1)
_MILLISECOND = timedelta(milliseconds=1)

T = TypeVar("T")


def utcnow() -> datetime:
    """Return the current naive UTC time truncated to whole milliseconds."""

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def as_naive_utc(moment: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""

    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def to_millis(moment: datetime) -> int:
    return (as_naive_utc(moment) - EPOCH) // _MILLISECOND


def from_millis(value: int | float) -> datetime:
    return EPOCH + timedelta(milliseconds=int(value))


class ActivityCategory(str, Enum):
    """Categories a log entry can be filed under."""

    CHORE = "chore"
    BEHAVIOR = "behavior"
    REDEMPTION = "redemption"
    INVESTMENT = "investment"
    OTHER = "other"


class InvestmentStatus(str, Enum):
    """Lifecycle for fixed deposit investments."""

    ACTIVE = "active"
    COMPLETED = "completed"
    EARLY_WITHDRAWN = "early_withdrawn"

    @property
    def is_terminal(self) -> bool:
        return self is not InvestmentStatus.ACTIVE


class OutcomeStatus(str, Enum):
    """Result of a ledger command."""

    OK = "ok"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class Outcome(Generic[T]):
    """Explicit result of a ledger command so callers can tell a no-op from success."""

    status: OutcomeStatus
    value: Optional[T] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(OutcomeStatus.OK, value)

    @classmethod
    def not_found(cls, reason: str) -> "Outcome[T]":
        return cls(OutcomeStatus.NOT_FOUND, None, reason)

    @classmethod
    def rejected(cls, reason: str) -> "Outcome[T]":
        return cls(OutcomeStatus.REJECTED, None, reason)


@dataclass(slots=True)
class Child:
    """A child profile with its cached point balance."""

    id: str
    name: str
    avatar_url: str = ""
    total_points: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_points", to_points(self.total_points))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "avatarUrl": self.avatar_url,
            "totalPoints": self.total_points,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Child":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            avatar_url=str(data.get("avatarUrl") or ""),
            total_points=data.get("totalPoints", 0),
        )


@dataclass(slots=True)
class ActivityLog:
    """Represents a single signed entry in a child's points ledger."""

    id: str
    child_id: str
    description: str
    points: int
    category: ActivityCategory = ActivityCategory.OTHER
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "points", to_points(self.points))
        object.__setattr__(self, "category", ActivityCategory(self.category))
        object.__setattr__(self, "timestamp", as_naive_utc(self.timestamp))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "childId": self.child_id,
            "description": self.description,
            "points": self.points,
            "timestamp": to_millis(self.timestamp),
            "category": self.category.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActivityLog":
        return cls(
            id=str(data["id"]),
            child_id=str(data["childId"]),
            description=str(data.get("description", "")),
            points=data["points"],
            category=ActivityCategory(data.get("category", ActivityCategory.OTHER.value)),
            timestamp=from_millis(data["timestamp"]),
        )


@dataclass(slots=True)
class Investment:
    """A fixed deposit that locks principal until its maturity date."""

    id: str
    child_id: str
    bank_id: str
    principal: int
    rate: Decimal
    duration_months: int
    start_date: datetime
    maturity_date: datetime
    projected_return: int
    status: InvestmentStatus = InvestmentStatus.ACTIVE

    def __post_init__(self) -> None:
        object.__setattr__(self, "principal", to_points(self.principal))
        object.__setattr__(self, "projected_return", to_points(self.projected_return))
        object.__setattr__(self, "rate", to_rate(self.rate))
        object.__setattr__(self, "status", InvestmentStatus(self.status))
        object.__setattr__(self, "start_date", as_naive_utc(self.start_date))
        object.__setattr__(self, "maturity_date", as_naive_utc(self.maturity_date))
        if self.duration_months <= 0:
            raise ValueError("duration_months must be positive")

    @property
    def payout_amount(self) -> int:
        """Return the amount credited when the deposit reaches maturity."""

        return self.principal + self.projected_return

    def is_mature(self, at: datetime) -> bool:
        return as_naive_utc(at) >= self.maturity_date

    def progress_percent(self, at: datetime) -> float:
        """Return how much of the term has elapsed at ``at``, capped at 100."""

        total = max(_MILLISECOND, self.maturity_date - self.start_date)
        elapsed = max(timedelta(0), as_naive_utc(at) - self.start_date)
        return min(100.0, elapsed / total * 100)

    def days_remaining(self, at: datetime) -> int:
        return max(0, math.ceil((self.maturity_date - as_naive_utc(at)) / timedelta(days=1)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "childId": self.child_id,
            "bankId": self.bank_id,
            "principal": self.principal,
            "rate": float(self.rate),
            "durationMonths": self.duration_months,
            "startDate": to_millis(self.start_date),
            "maturityDate": to_millis(self.maturity_date),
            "projectedReturn": self.projected_return,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Investment":
        return cls(
            id=str(data["id"]),
            child_id=str(data["childId"]),
            bank_id=str(data["bankId"]),
            principal=data["principal"],
            rate=data["rate"],
            duration_months=int(data["durationMonths"]),
            start_date=from_millis(data["startDate"]),
            maturity_date=from_millis(data["maturityDate"]),
            projected_return=data["projectedReturn"],
            status=InvestmentStatus(data["status"]),
        )


@dataclass(frozen=True, slots=True)
class Bank:
    """A fixed deposit rate quote source."""

    id: str
    name: str
    description: str
    rate: Decimal
    color: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "rate", to_rate(self.rate))

    def with_rate(self, rate: Decimal) -> "Bank":
        return replace(self, rate=rate)


@dataclass(frozen=True, slots=True)
class ActivitySuggestion:
    """Normalised activity proposal returned by the AI collaborator."""

    description: str
    points: int
    category: ActivityCategory

    def for_mode(self, mode: str) -> "ActivitySuggestion":
        """Return a copy whose polarity matches an ``earn`` or ``redeem`` form."""

        if mode not in {"earn", "redeem"}:
            raise ValueError("mode must be 'earn' or 'redeem'")
        magnitude = abs(self.points)
        points = -magnitude if mode == "redeem" else magnitude
        return replace(self, points=points)


@dataclass(frozen=True, slots=True)
class RateSource:
    title: str
    uri: str


@dataclass(frozen=True, slots=True)
class RateQuote:
    """Live bank rates plus the web sources they were grounded on."""

    rates: Mapping[str, Decimal]
    sources: Tuple[RateSource, ...] = ()
