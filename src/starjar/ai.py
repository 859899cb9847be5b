"""Gemini backed helpers: activity suggestions and live fixed deposit rates."""

from __future__ import annotations

import json
import re
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request as URLRequest, urlopen

from .config import GEMINI_ENDPOINT, GEMINI_MODEL, GEMINI_TIMEOUT_SECONDS
from .models import ActivityCategory, ActivitySuggestion, RateQuote, RateSource
from .ops import StructuredLogger
from .points import to_rate

Transport = Callable[[URLRequest, float], bytes]

SUGGESTION_CATEGORIES = ("chore", "behavior", "redemption", "other")
RATE_BANK_IDS = ("mbank", "cbank", "ubank")

_FENCE_START = re.compile(r"^```(?:json)?\s*")
_FENCE_END = re.compile(r"\s*```$")

SUGGESTION_PROMPT = """Suggest a standardized activity name, point value, and category for a child's activity described as: "{text}".
If it sounds like a chore or good behavior, points should be positive (1-100).
If it sounds like a redemption (buying a toy, screen time), points should be negative.
Be fair and consistent."""

RATES_PROMPT = """Perform a Google Search to find the highest available 12-month Fixed Deposit (FD) interest rates for Maybank, CIMB Bank, and Public Bank in Malaysia as of today, {today}.
Look specifically for promotional rates, campaign special rates, or e-FD offers, as these are higher than standard board rates.
If a promotional rate is available for a 12-month tenure (or close to it), use that rate. If no promotion is found, fall back to the board rate.
Return only a JSON object where keys are the IDs 'mbank' (Maybank), 'cbank' (CIMB) and 'ubank' (Public Bank) and values are the rates as numbers (e.g. 3.65)."""

SUGGESTION_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "description": {"type": "STRING", "description": "A clean, short title for the activity (e.g. 'Washed Dishes')"},
        "points": {"type": "INTEGER", "description": "The suggested point value (positive or negative)"},
        "category": {"type": "STRING", "enum": list(SUGGESTION_CATEGORIES)},
    },
    "required": ["description", "points", "category"],
}


def clean_json(text: str) -> str:
    """Strip markdown code fences the model sometimes wraps JSON in."""

    return _FENCE_END.sub("", _FENCE_START.sub("", text.strip())).strip()


def _default_transport(request: URLRequest, timeout: float) -> bytes:
    with urlopen(request, timeout=timeout) as resp:
        return resp.read()


class GeminiClient:
    """Minimal client for the Gemini ``generateContent`` REST endpoint.

    Every public call returns ``None`` when the service fails or answers with
    something unusable, so callers fall back to "no suggestion" or the
    current bank rates. There is no retry.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = GEMINI_MODEL,
        endpoint: str = GEMINI_ENDPOINT,
        timeout: float = GEMINI_TIMEOUT_SECONDS,
        transport: Transport | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self.model = model
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._transport = transport or _default_transport
        self._logger = logger or StructuredLogger()

    def suggest_activity(self, text: str) -> Optional[ActivitySuggestion]:
        cleaned = (text or "").strip()
        if not cleaned:
            return None
        response = self._generate(
            SUGGESTION_PROMPT.format(text=cleaned),
            generation_config={"responseMimeType": "application/json", "responseSchema": SUGGESTION_SCHEMA},
        )
        if response is None:
            return None
        try:
            data = json.loads(clean_json(_response_text(response)))
            category = str(data.get("category", "other")).lower()
            if category not in SUGGESTION_CATEGORIES:
                category = ActivityCategory.OTHER.value
            return ActivitySuggestion(
                description=str(data["description"]).strip(),
                points=int(data["points"]),
                category=ActivityCategory(category),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            self._logger.log("ai_suggestion_failed", error=str(exc))
            return None

    def fetch_rates(self, *, today: Optional[date] = None) -> Optional[RateQuote]:
        """Ask Gemini (with Google Search grounding) for live 12-month FD rates."""

        moment = today or date.today()
        response = self._generate(
            RATES_PROMPT.format(today=f"{moment:%B} {moment.day}, {moment.year}"),
            tools=[{"google_search": {}}],
        )
        if response is None:
            return None
        try:
            data = json.loads(clean_json(_response_text(response)))
            rates = {bank_id: to_rate(data[bank_id]) for bank_id in RATE_BANK_IDS if bank_id in data}
        except (ValueError, KeyError, TypeError, AttributeError, ArithmeticError) as exc:
            self._logger.log("ai_rates_failed", error=str(exc))
            return None
        if not rates:
            self._logger.log("ai_rates_failed", error="no known bank rates in response")
            return None
        return RateQuote(rates=rates, sources=_grounding_sources(response))

    def _generate(
        self,
        prompt: str,
        *,
        generation_config: Optional[Mapping[str, Any]] = None,
        tools: Optional[List[Mapping[str, Any]]] = None,
    ) -> Optional[Dict[str, Any]]:
        body: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if generation_config:
            body["generationConfig"] = dict(generation_config)
        if tools:
            body["tools"] = list(tools)
        url = f"{self._endpoint}/{quote(self.model, safe='')}:generateContent"
        request = URLRequest(
            url,
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json", "x-goog-api-key": self._api_key},
            method="POST",
        )
        try:
            payload = self._transport(request, self._timeout)
            data = json.loads(payload.decode("utf-8"))
        except (URLError, HTTPError, TimeoutError, ValueError, UnicodeDecodeError) as exc:
            self._logger.log("ai_request_failed", model=self.model, error=str(exc))
            return None
        if not isinstance(data, dict):
            self._logger.log("ai_request_failed", model=self.model, error="unexpected response body")
            return None
        return data


def _response_text(response: Mapping[str, Any]) -> str:
    candidates = response.get("candidates") or []
    if not candidates:
        raise ValueError("response has no candidates")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
    if not text:
        raise ValueError("response has no text")
    return text


def _grounding_sources(response: Mapping[str, Any]) -> tuple[RateSource, ...]:
    candidates = response.get("candidates") or []
    if not candidates:
        return ()
    chunks = (candidates[0].get("groundingMetadata") or {}).get("groundingChunks") or []
    seen: Dict[str, RateSource] = {}
    for chunk in chunks:
        web = chunk.get("web") if isinstance(chunk, dict) else None
        if not web or not web.get("uri"):
            continue
        seen[web["uri"]] = RateSource(title=str(web.get("title") or web["uri"]), uri=str(web["uri"]))
    return tuple(seen.values())


__all__ = ["GeminiClient", "clean_json"]
