import json
from datetime import date
from decimal import Decimal
from urllib.error import URLError

from starjar.ai import GeminiClient, clean_json
from starjar.banks import BankDirectory
from starjar.exceptions import RateProviderError
from starjar.models import ActivityCategory, RateQuote
from starjar.ops import StructuredLogger
from starjar.store import InMemoryStore


def gemini_reply(text: str, *, chunks: list | None = None) -> bytes:
    candidate: dict = {"content": {"parts": [{"text": text}]}}
    if chunks is not None:
        candidate["groundingMetadata"] = {"groundingChunks": chunks}
    return json.dumps({"candidates": [candidate]}).encode("utf-8")


class FakeTransport:
    def __init__(self, reply: bytes | Exception) -> None:
        self.reply = reply
        self.requests: list = []

    def __call__(self, request, timeout):
        self.requests.append((request, timeout))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


def test_clean_json_strips_code_fences() -> None:
    assert clean_json('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert clean_json('```\n{"a": 1}```') == '{"a": 1}'
    assert clean_json('{"a": 1}') == '{"a": 1}'


def test_suggest_activity_parses_model_output() -> None:
    transport = FakeTransport(
        gemini_reply('```json\n{"description": "Washed Dishes", "points": 15, "category": "chore"}\n```')
    )
    client = GeminiClient("key", model="test-model", transport=transport, timeout=5)

    suggestion = client.suggest_activity("did the dishes after dinner")

    assert suggestion.description == "Washed Dishes"
    assert suggestion.points == 15
    assert suggestion.category is ActivityCategory.CHORE
    request, timeout = transport.requests[0]
    assert timeout == 5
    assert request.full_url.endswith("/test-model:generateContent")
    assert request.get_header("X-goog-api-key") == "key"
    body = json.loads(request.data)
    assert "did the dishes" in body["contents"][0]["parts"][0]["text"]
    assert body["generationConfig"]["responseMimeType"] == "application/json"


def test_suggestion_with_unknown_category_falls_back_to_other() -> None:
    transport = FakeTransport(gemini_reply('{"description": "Toy", "points": -20, "category": "shopping"}'))

    suggestion = GeminiClient("key", transport=transport).suggest_activity("bought a toy")

    assert suggestion.category is ActivityCategory.OTHER
    assert suggestion.for_mode("earn").points == 20
    assert suggestion.for_mode("redeem").points == -20


def test_suggestion_failures_return_none() -> None:
    logger = StructuredLogger(path=None)
    offline = GeminiClient("key", transport=FakeTransport(URLError("offline")), logger=logger)
    garbage = GeminiClient("key", transport=FakeTransport(gemini_reply("not json")), logger=logger)
    empty = GeminiClient("key", transport=FakeTransport(b'{"candidates": []}'), logger=logger)

    assert offline.suggest_activity("chores") is None
    assert garbage.suggest_activity("chores") is None
    assert empty.suggest_activity("chores") is None
    assert GeminiClient("key", transport=FakeTransport(URLError("x"))).suggest_activity("   ") is None
    assert len(logger.events("ai_request_failed")) == 1
    assert len(logger.events("ai_suggestion_failed")) == 2


def test_fetch_rates_returns_rates_and_unique_sources() -> None:
    chunks = [
        {"web": {"title": "Maybank FD", "uri": "https://example.com/mbb"}},
        {"web": {"title": "Maybank FD again", "uri": "https://example.com/mbb"}},
        {"web": {"title": "CIMB", "uri": "https://example.com/cimb"}},
        {"retrievedContext": {}},
    ]
    transport = FakeTransport(gemini_reply('{"mbank": 3.65, "cbank": 3.5, "ubank": "3.4", "other": 9}', chunks=chunks))

    quote = GeminiClient("key", transport=transport).fetch_rates(today=date(2025, 1, 15))

    assert quote.rates == {"mbank": Decimal("3.65"), "cbank": Decimal("3.50"), "ubank": Decimal("3.40")}
    assert [source.uri for source in quote.sources] == ["https://example.com/mbb", "https://example.com/cimb"]
    body = json.loads(transport.requests[0][0].data)
    assert body["tools"] == [{"google_search": {}}]
    assert "January 15, 2025" in body["contents"][0]["parts"][0]["text"]


def test_fetch_rates_without_known_banks_returns_none() -> None:
    transport = FakeTransport(gemini_reply('{"somebank": 4.0}'))

    assert GeminiClient("key", transport=transport).fetch_rates() is None


class StaticProvider:
    def __init__(self, quote):
        self.quote = quote

    def fetch_rates(self):
        if isinstance(self.quote, Exception):
            raise self.quote
        return self.quote


def test_bank_directory_applies_overrides_in_default_order() -> None:
    store = InMemoryStore()
    banks = BankDirectory(store)

    quote = banks.refresh(StaticProvider(RateQuote(rates={"ubank": Decimal("3.10"), "zbank": Decimal("9")})))

    assert quote is not None
    assert [bank.id for bank in banks.get_banks()] == ["mbank", "cbank", "ubank"]
    assert banks.get_bank("ubank").rate == Decimal("3.10")
    assert banks.get_bank("mbank").rate == Decimal("2.50")
    assert banks.get_bank("zbank") is None


def test_bank_directory_keeps_rates_when_provider_fails() -> None:
    store = InMemoryStore()
    banks = BankDirectory(store)
    banks.update_rates({"cbank": 3.2, "mbank": "abc", "ubank": -1})

    assert banks.refresh(StaticProvider(None)) is None
    assert banks.refresh(StaticProvider(RateProviderError("quota"))) is None
    assert banks.get_bank("cbank").rate == Decimal("3.20")
    assert banks.get_bank("mbank").rate == Decimal("2.50")
    assert banks.get_bank("ubank").rate == Decimal("2.45")

    banks.reset_rates()
    assert banks.get_bank("cbank").rate == Decimal("2.35")
