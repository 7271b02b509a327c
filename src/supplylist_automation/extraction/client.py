"""Send one prepared image to a multimodal model and classify what comes back.

Transports only move bytes; they raise TransportError for anything network shaped
(connection refused, timeout, HTTP error status). ExtractionClient owns the retry
policy and turns replies into an ExtractionOutcome without ever raising for content.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx
import requests
from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, OpenAI

from ..config import DEFAULT_EXTRACTION_TIMEOUT, DEFAULT_OPENAI_MODEL, DEFAULT_OPENROUTER_MODEL
from ..domain.models import ExtractionResult
from ..logging import get_logger
from .interpreter import ReplyParseError, build_result, interpret_reply
from .preprocess import PreparedImage, prepare_payload
from .prompt import NOT_A_SUPPLY_LIST_ERROR, SYSTEM_PROMPT, build_instruction

LOG = get_logger("extraction")

STATUS_OK = "ok"
STATUS_NOT_SUPPLY_LIST = "not_supply_list"
STATUS_NO_ITEMS = "no_items"
STATUS_PARSE_ERROR = "parse_error"
STATUS_TRANSPORT_ERROR = "transport_error"
FAILURE_STATUSES = (STATUS_PARSE_ERROR, STATUS_TRANSPORT_ERROR)

FAILURE_MESSAGE = "Failed to process your list. Please try again."
NO_ITEMS_MESSAGE = "No supply items were found in the image."

# One extra attempt on transport failure; parse failures are never retried.
TRANSPORT_RETRIES = 1


class TransportError(Exception):
    """The AI service could not be reached, timed out, or answered with an HTTP error."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ExtractionOutcome:
    status: str
    result: Optional[ExtractionResult] = None
    message: Optional[str] = None
    raw_reply: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status in FAILURE_STATUSES

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def classify_result(result: ExtractionResult, *, raw_reply: Optional[str] = None) -> ExtractionOutcome:
    """Map a validated result to ok / not_supply_list / no_items."""
    if result.error:
        LOG.info(f"Extractor reported not a supply list: {result.error!r}")
        return ExtractionOutcome(STATUS_NOT_SUPPLY_LIST, result=result, message=result.error, raw_reply=raw_reply)
    count = result.item_count()
    if count == 0:
        LOG.info(f"Extractor returned {len(result.grade_lists)} grade list(s) but no supply items")
        return ExtractionOutcome(STATUS_NO_ITEMS, result=result, message=NO_ITEMS_MESSAGE, raw_reply=raw_reply)
    LOG.info(f"Extracted {count} item(s) across {len(result.grade_lists)} grade list(s)")
    return ExtractionOutcome(STATUS_OK, result=result, raw_reply=raw_reply)


def interpret(reply: Optional[str]) -> ExtractionOutcome:
    """Interpret a raw model reply; parse problems become a parse_error outcome."""
    try:
        payload = interpret_reply(reply)
    except ReplyParseError as e:
        LOG.error(f"{e}; first 500 chars: {(reply or '')[:500]!r}")
        return ExtractionOutcome(STATUS_PARSE_ERROR, message=FAILURE_MESSAGE, raw_reply=reply)
    return classify_result(build_result(payload, raw_text=reply), raw_reply=reply)


def _user_content(image: PreparedImage) -> List[Dict[str, Any]]:
    return [
        {"type": "text", "text": build_instruction()},
        {"type": "image_url", "image_url": {"url": image.data_url}},
    ]


class OpenAIVisionTransport:
    """Chat Completions vision call through the openai SDK with explicit httpx timeouts."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_OPENAI_MODEL,
        *,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_EXTRACTION_TIMEOUT,
        max_tokens: int = 4000,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._http = httpx.Client(timeout=httpx.Timeout(connect=10.0, read=float(timeout), write=30.0, pool=10.0))
        self._client = OpenAI(api_key=api_key, base_url=base_url, http_client=self._http, max_retries=0)
        self._timeout = float(timeout)

    def complete(self, image: PreparedImage) -> str:
        t0 = time.perf_counter()
        LOG.info(f"Calling OpenAI Chat Completions (vision) model='{self.model}' payload={image.optimized_bytes} bytes")
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": _user_content(image)},
                ],
                max_tokens=self.max_tokens,
                timeout=self._timeout,
            )
        except (APIConnectionError, APITimeoutError) as e:
            LOG.error(f"Network/timeout while calling OpenAI: {e}")
            raise TransportError(f"OpenAI unreachable: {e}") from e
        except APIStatusError as e:
            body = getattr(getattr(e, "response", None), "text", None)
            LOG.error(f"OpenAI API returned {getattr(e, 'status_code', '?')}. Body preview: {(body[:300] if body else None)!r}")
            raise TransportError(f"OpenAI returned HTTP {getattr(e, 'status_code', '?')}", status_code=getattr(e, "status_code", None)) from e
        except APIError as e:
            LOG.error(f"OpenAI client error: {e!r}")
            raise TransportError(f"OpenAI call failed: {e}") from e

        choice = completion.choices[0] if getattr(completion, "choices", None) else None
        text = choice.message.content if choice and getattr(choice, "message", None) else None
        usage = getattr(completion, "usage", None)
        usage_dict = {k: getattr(usage, k, None) if usage else None for k in ("prompt_tokens", "completion_tokens", "total_tokens")}
        LOG.info(f"Chat completion finished in {time.perf_counter() - t0:.2f}s id={getattr(completion, 'id', None)} usage={usage_dict}")
        return text or ""

    def close(self) -> None:
        self._http.close()


class OpenRouterTransport:
    """Same request shape, posted to OpenRouter with requests."""

    ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_OPENROUTER_MODEL,
        *,
        timeout: float = DEFAULT_EXTRACTION_TIMEOUT,
        max_tokens: int = 4000,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = float(timeout)
        self.max_tokens = max_tokens
        self.session = session or requests.Session()

    def complete(self, image: PreparedImage) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": _user_content(image)},
            ],
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        LOG.info(f"Calling OpenRouter model='{self.model}' payload={image.optimized_bytes} bytes")
        try:
            resp = self.session.post(self.ENDPOINT, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            LOG.error(f"OpenRouter request failed: {e}")
            raise TransportError(f"OpenRouter unreachable: {e}") from e

        if resp.status_code >= 400:
            LOG.error(f"OpenRouter HTTP {resp.status_code}: {resp.text[:500]}")
            raise TransportError(f"OpenRouter returned HTTP {resp.status_code}", status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError as e:
            raise TransportError(f"OpenRouter returned a non-JSON body: {e}") from e
        choices = (body.get("choices") or []) if isinstance(body, dict) else []
        if not choices:
            LOG.error(f"OpenRouter returned no choices: {str(body)[:300]}")
            raise TransportError("OpenRouter returned no choices")
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    def close(self) -> None:
        self.session.close()


class ExtractionClient:
    """Run one image through a transport and interpret the reply.

    `extract` accepts either a PreparedImage or a raw base64 / data URL string; raw
    strings are pre-processed first.
    """

    def __init__(self, transport, *, optimize_images: bool = True) -> None:
        self.transport = transport
        self.optimize_images = optimize_images

    def extract(self, payload: Union[str, PreparedImage]) -> ExtractionOutcome:
        image = payload if isinstance(payload, PreparedImage) else prepare_payload(payload, optimize=self.optimize_images)
        if not image.data:
            LOG.error("Empty image payload; nothing to send")
            return ExtractionOutcome(STATUS_TRANSPORT_ERROR, message=FAILURE_MESSAGE)

        last_error: Optional[TransportError] = None
        for attempt in range(1 + TRANSPORT_RETRIES):
            try:
                reply = self.transport.complete(image)
            except TransportError as e:
                last_error = e
                LOG.warning(f"Extraction attempt {attempt + 1}/{1 + TRANSPORT_RETRIES} failed: {e}")
                continue
            return interpret(reply)

        LOG.error(f"Extraction failed after {1 + TRANSPORT_RETRIES} attempt(s): {last_error}")
        return ExtractionOutcome(STATUS_TRANSPORT_ERROR, message=FAILURE_MESSAGE)

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if callable(close):
            close()


__all__ = [
    "STATUS_OK",
    "STATUS_NOT_SUPPLY_LIST",
    "STATUS_NO_ITEMS",
    "STATUS_PARSE_ERROR",
    "STATUS_TRANSPORT_ERROR",
    "FAILURE_MESSAGE",
    "NO_ITEMS_MESSAGE",
    "NOT_A_SUPPLY_LIST_ERROR",
    "TransportError",
    "ExtractionOutcome",
    "ExtractionClient",
    "OpenAIVisionTransport",
    "OpenRouterTransport",
    "classify_result",
    "interpret",
]
