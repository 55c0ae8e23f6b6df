"""
LLM Gateway — the single choke point for language-model calls.

Public API
----------
LLMGateway(...)                                  explicit construction, injected where needed
LLMGateway.call_model(messages, model, temperature, max_tokens) -> LLMResponse
parse_json_content(text)                         -> dict    (UpstreamParseError on failure)
build_gateway(settings)                          -> LLMGateway
get_llm_gateway(request)                         FastAPI dependency (app.state.llm_gateway)

Mock mode returns canned responses chosen by substring-matching the last
outgoing message, so the whole journal flow runs without network access.
Callers end their structured prompts with one of the *_MARKER strings
below; the default canned table is keyed on them.
"""
from __future__ import annotations

import json
import logging
import re
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from fastapi import Request
from openai import OpenAI, OpenAIError

from app.core.config import Settings
from app.core.errors import UpstreamCallError, UpstreamParseError

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]  # {"role": "system" | "user" | "assistant", "content": str}


# ---------------------------------------------------------------------------
# Prompt markers (last line of each structured request)
# ---------------------------------------------------------------------------

CONTENT_ANALYSIS_MARKER = "Return the content analysis JSON object."
CONTEXT_ANALYSIS_MARKER = "Return the context analysis JSON object."
NARRATIVE_SUMMARY_MARKER = "Please summarize the given messages into a cohesive journal entry."
PERIOD_SUMMARY_MARKER = "Return the period summary JSON object."


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class LLMResponse:
    content: str
    token_usage: Optional[TokenUsage] = None


# ---------------------------------------------------------------------------
# Canned responses for mock mode
# ---------------------------------------------------------------------------

DEFAULT_MOCK_RESPONSES: list[tuple[str, str]] = [
    (
        CONTENT_ANALYSIS_MARKER,
        json.dumps({
            "title": "Reflective Journal Session",
            "synopsis": "A thoughtful look back at the day and how it felt.",
            "suggestedTags": ["reflection", "daily life"],
            "suggestedTodos": [],
            "suggestedAttributes": [],
        }),
    ),
    (
        CONTEXT_ANALYSIS_MARKER,
        json.dumps({
            "toneTags": ["calm"],
            "suggestedStatTags": {},
            "suggestedFamilyTags": {},
        }),
    ),
    (
        NARRATIVE_SUMMARY_MARKER,
        "Today I took some time to write down what happened and how I felt about it.",
    ),
    (
        PERIOD_SUMMARY_MARKER,
        json.dumps({
            "summary": "This period was steady, with small wins and time to reflect.",
            "tags": ["reflection", "routine"],
            "attributes": [],
        }),
    ),
]

DEFAULT_MOCK_FALLBACK = (
    "That sounds really meaningful. Can you tell me more about what that was like for you?"
)

MOCK_CALL_HISTORY = 50


# ---------------------------------------------------------------------------
# JSON parsing contract
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"^```(?:json|JSON)?\s*|\s*```$")


def parse_json_content(text: str) -> dict[str, Any]:
    """
    Parse a model reply that is supposed to be a JSON object.

    Tolerates markdown code fences and prose around the object. Anything
    else raises UpstreamParseError; no fallback content is substituted.
    """
    cleaned = _FENCE_RE.sub("", (text or "").strip()).strip()
    candidates = [cleaned]
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        candidates.append(cleaned[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise UpstreamParseError("Model response was not a valid JSON object.", snippet=text)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class LLMGateway:
    """Wraps the provider client; one instance per application."""

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        mock: bool = False,
        mock_responses: Optional[Sequence[tuple[str, str]]] = None,
        mock_fallback: str = DEFAULT_MOCK_FALLBACK,
    ) -> None:
        if client is None and not mock:
            raise ValueError("LLMGateway needs a provider client unless running in mock mode")
        self.client = client
        self.model = model
        self.temperature = temperature
        self.mock = mock
        self.mock_responses = list(mock_responses if mock_responses is not None else DEFAULT_MOCK_RESPONSES)
        self.mock_fallback = mock_fallback
        # Most recent outgoing message lists, recorded in mock mode for inspection.
        self.calls: deque[list[ChatMessage]] = deque(maxlen=MOCK_CALL_HISTORY)

    def call_model(
        self,
        messages: Sequence[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        if self.mock:
            return self._mock_call(messages)

        model_name = model or self.model
        started = time.monotonic()
        # TODO: retry with backoff on RateLimitError / APITimeoutError
        try:
            response = self.client.chat.completions.create(
                model=model_name,
                messages=list(messages),
                temperature=self.temperature if temperature is None else temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            logger.error("Model call failed (model=%s): %s", model_name, exc)
            raise UpstreamCallError(f"Language model call failed: {exc}") from exc

        content = (response.choices[0].message.content or "") if response.choices else ""
        usage = None
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        logger.info(
            "Model call ok (model=%s, %.0fms, tokens=%s)",
            model_name,
            (time.monotonic() - started) * 1000,
            usage.total_tokens if usage else "?",
        )
        return LLMResponse(content=content, token_usage=usage)

    def _mock_call(self, messages: Sequence[ChatMessage]) -> LLMResponse:
        self.calls.append([dict(m) for m in messages])
        last = messages[-1]["content"] if messages else ""
        content = self.mock_fallback
        for needle, canned in self.mock_responses:
            if needle in last:
                content = canned
                break
        logger.debug("Mock model call answered (%d chars)", len(content))
        return LLMResponse(
            content=content,
            token_usage=TokenUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150),
        )


def build_gateway(settings: Settings) -> LLMGateway:
    if settings.llm_mock_enabled:
        logger.warning("LLM gateway running in mock mode; no provider calls will be made")
        return LLMGateway(model=settings.LLM_MODEL, temperature=settings.LLM_TEMPERATURE, mock=True)
    client = OpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.LLM_TIMEOUT_SECONDS)
    logger.info("LLM gateway initialized with model %s", settings.LLM_MODEL)
    return LLMGateway(client=client, model=settings.LLM_MODEL, temperature=settings.LLM_TEMPERATURE)


def get_llm_gateway(request: Request) -> LLMGateway:
    return request.app.state.llm_gateway
