"""
Privacy policy scoring through an OpenAI-compatible chat-completions service.

The model answers with a JSON document, sometimes wrapped in prose or code
fences. The document is located, parsed and checked against the rubric before
anything downstream trusts it.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

import httpx
import openai

from .config import Credential, Settings
from .errors import (
    AnalysisParseError,
    ConfigurationError,
    PipelineTimeout,
    ScoringServiceError,
    UpstreamRateLimited,
)
from .key_health import KeyHealthCache
from .rubric import CATEGORY_KEYS, MAX_SCORE, MIN_SCORE, REQUIRED_KEYS, build_messages

logger = logging.getLogger(__name__)

TEMPERATURE = 0.3
MAX_TOKENS = 2000
REQUEST_TIMEOUT_S = 45.0

CompletionFn = Callable[[Credential, list[dict[str, str]]], Awaitable[str]]


class CredentialRejected(Exception):
    """The service refused this credential (bad key, no credits)."""


# --- structured extraction ---------------------------------------------------


def _balanced_object_end(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def extract_json_object(text: str | None) -> dict[str, Any]:
    """Return the first balanced ``{...}`` region of ``text`` that parses as a JSON object."""
    if not text or not text.strip():
        raise AnalysisParseError("The scoring service returned an empty response.")

    start = text.find("{")
    while start != -1:
        end = _balanced_object_end(text, start)
        if end is None:
            break
        try:
            value = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)

    raise AnalysisParseError("No JSON object found in the scoring service response.")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_analysis(analysis: dict[str, Any]) -> dict[str, Any]:
    missing = [k for k in REQUIRED_KEYS if k not in analysis]
    if missing:
        raise AnalysisParseError(details={"missing_keys": missing})

    categories = analysis.get("categories")
    if not isinstance(categories, dict):
        raise AnalysisParseError(details={"invalid": "categories must be an object"})

    problems: list[str] = []
    for key in CATEGORY_KEYS:
        entry = categories.get(key)
        if not isinstance(entry, dict):
            problems.append(f"{key}: missing")
            continue
        score = entry.get("score")
        if not _is_number(score):
            problems.append(f"{key}: score is not a number")
        elif not MIN_SCORE <= score <= MAX_SCORE:
            problems.append(f"{key}: score {score} outside {MIN_SCORE}-{MAX_SCORE}")
        if not isinstance(entry.get("reasoning"), str):
            problems.append(f"{key}: reasoning is not a string")
    if problems:
        raise AnalysisParseError(details={"invalid_categories": problems})

    return analysis


# --- service call --------------------------------------------------------------


class OpenRouterCompletion:
    """Chat completion via the ``openai`` SDK pointed at OpenRouter.

    Translates SDK errors into the pipeline's taxonomy.
    """

    def __init__(self, settings: Settings, *, http_client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._http_client = http_client
        self._clients: dict[str, openai.AsyncOpenAI] = {}

    def _client_for(self, credential: Credential) -> openai.AsyncOpenAI:
        client = self._clients.get(credential.name)
        if client is None:
            client = openai.AsyncOpenAI(
                api_key=credential.key,
                base_url=self._settings.openrouter_base_url,
                timeout=REQUEST_TIMEOUT_S,
                max_retries=0,
                default_headers={
                    "HTTP-Referer": self._settings.site_url,
                    "X-Title": self._settings.site_name,
                },
                http_client=self._http_client,
            )
            self._clients[credential.name] = client
        return client

    async def __call__(self, credential: Credential, messages: list[dict[str, str]]) -> str:
        try:
            completion = await self._client_for(credential).chat.completions.create(
                model=self._settings.model,
                messages=messages,
                temperature=TEMPERATURE,
                max_tokens=MAX_TOKENS,
            )
        except openai.RateLimitError as e:
            raise UpstreamRateLimited(details=str(e))
        except openai.APITimeoutError as e:
            raise PipelineTimeout("The analysis service timed out. Please try again later.", details=str(e))
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise CredentialRejected(str(e))
        except openai.APIStatusError as e:
            if e.status_code == 402:
                raise CredentialRejected(str(e))
            raise ScoringServiceError(details=f"HTTP {e.status_code}")
        except openai.APIError as e:
            raise ScoringServiceError(details=str(e))

        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""


# --- scorer --------------------------------------------------------------------


class PolicyScorer:
    """Idle -> Prompting -> AwaitingResponse -> Parsing -> Validated.

    A rate-limited or rejected credential is marked failed and the next one is
    tried. An unparseable answer is retried ``max_parse_retries`` times.
    """

    def __init__(self, keys: KeyHealthCache, complete: CompletionFn, *, max_parse_retries: int = 1):
        self._keys = keys
        self._complete = complete
        self.max_parse_retries = max_parse_retries

    async def _first_credential(self) -> Credential:
        if not self._keys.credentials:
            raise ConfigurationError("No scoring service key configured.")
        credential = await self._keys.select()
        if credential is None:
            raise UpstreamRateLimited("All scoring service keys are exhausted or unavailable. Please try again later.")
        return credential

    async def score(self, policy_text: str) -> dict[str, Any]:
        messages = build_messages(policy_text)
        credential = await self._first_credential()
        tried: set[str] = set()
        parse_failures = 0

        while True:
            logger.info("Scoring policy (%d chars) with credential %s", len(policy_text), credential.name)
            try:
                raw = await self._complete(credential, messages)
            except (UpstreamRateLimited, CredentialRejected) as e:
                reason = "rate limited" if isinstance(e, UpstreamRateLimited) else "rejected"
                self._keys.mark_failed(credential.name, reason)
                tried.add(credential.name)
                next_credential = await self._keys.select(exclude=tried)
                if next_credential is None:
                    if isinstance(e, CredentialRejected):
                        raise ConfigurationError("No working scoring service key is configured.")
                    raise UpstreamRateLimited(details={"credentials_tried": sorted(tried)})
                logger.info("Credential %s %s, rotating to %s", credential.name, reason, next_credential.name)
                credential = next_credential
                continue

            try:
                return validate_analysis(extract_json_object(raw))
            except AnalysisParseError as e:
                parse_failures += 1
                logger.warning(
                    "Unusable scoring response (attempt %d, credential %s): %s %s",
                    parse_failures, credential.name, e.message, e.details or "",
                )
                if parse_failures > self.max_parse_retries:
                    raise
