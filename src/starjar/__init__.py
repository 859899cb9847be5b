"""StarJar package for tracking children's reward points and fixed deposits."""

from .ai import GeminiClient
from .banks import DEFAULT_BANKS, BankDirectory
from .exceptions import (
    ChildNotFoundError,
    ImportRejectedError,
    RateProviderError,
    StarJarError,
    StoreError,
)
from .investing import InvestmentLedger
from .ledger import ActivityLedger
from .models import (
    ActivityCategory,
    ActivityLog,
    ActivitySuggestion,
    Bank,
    Child,
    Investment,
    InvestmentStatus,
    Outcome,
    OutcomeStatus,
    RateQuote,
    RateSource,
)
from .ops import BackupManager, StructuredLogger
from .persistence import SqlModelStore
from .service import StarJar
from .store import InMemoryStore, KeyValueStore

__all__ = [
    "ActivityCategory",
    "ActivityLedger",
    "ActivityLog",
    "ActivitySuggestion",
    "BackupManager",
    "Bank",
    "BankDirectory",
    "Child",
    "ChildNotFoundError",
    "DEFAULT_BANKS",
    "GeminiClient",
    "ImportRejectedError",
    "InMemoryStore",
    "Investment",
    "InvestmentLedger",
    "InvestmentStatus",
    "KeyValueStore",
    "Outcome",
    "OutcomeStatus",
    "RateProviderError",
    "RateQuote",
    "RateSource",
    "SqlModelStore",
    "StarJar",
    "StarJarError",
    "StoreError",
    "StructuredLogger",
]
