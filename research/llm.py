"""
Language-model access for result parsing and image comparison.

Uses httpx to call the Anthropic Messages REST API directly.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from observability.metrics import (
    llm_api_duration_seconds,
    llm_api_errors_total,
    llm_tokens_used_total,
)
from research.config import ResearchSettings
from research.exceptions import LLMError, LLMNotConfiguredError, LLMResponseError, redact_secrets

logger = logging.getLogger(__name__)


@dataclass
class LLMCompletion:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMClient(Protocol):
    """Text and vision completion service."""

    def is_configured(self) -> bool:
        ...

    async def complete(self, prompt: str, max_tokens: int = 4096) -> LLMCompletion:
        ...

    async def complete_with_images(
        self, prompt: str, image_urls: Sequence[str], max_tokens: int = 500
    ) -> LLMCompletion:
        ...


def _strip_fences(text: str) -> str:
    cleaned = re.sub(r"```(?:json)?\s*\n?", "", text)
    return re.sub(r"\n?```", "", cleaned)


def extract_json(text: str) -> dict:
    """Extract JSON object from LLM response, handling markdown fences and prose."""
    cleaned = _strip_fences(text)
    first_brace = cleaned.find("{")
    last_brace = cleaned.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        cleaned = cleaned[first_brace : last_brace + 1]
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        raise LLMResponseError(f"Response did not contain valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise LLMResponseError("Response JSON was not an object")
    return data


def extract_json_array(text: str) -> list:
    """Extract JSON array from LLM response."""
    cleaned = _strip_fences(text)
    first_bracket = cleaned.find("[")
    last_bracket = cleaned.rfind("]")
    if first_bracket != -1 and last_bracket > first_bracket:
        cleaned = cleaned[first_bracket : last_bracket + 1]
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        raise LLMResponseError(f"Response did not contain a valid JSON array: {e}") from e
    if not isinstance(data, list):
        raise LLMResponseError("Response JSON was not an array")
    return data


class AnthropicClient:
    """Minimal Messages API client; every failure surfaces as ``LLMError``."""

    provider = "anthropic"

    def __init__(
        self,
        settings: ResearchSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.anthropic_api_key
        self.base_url = settings.anthropic_base_url.rstrip("/")
        self.model = settings.anthropic_model
        self.version = settings.anthropic_version
        self.timeout = settings.llm_timeout_seconds
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: str, max_tokens: int = 4096) -> LLMCompletion:
        return await self._create([{"type": "text", "text": prompt}], max_tokens)

    async def complete_with_images(
        self, prompt: str, image_urls: Sequence[str], max_tokens: int = 500
    ) -> LLMCompletion:
        content: List[Dict[str, Any]] = [
            {"type": "image", "source": {"type": "url", "url": url}} for url in image_urls
        ]
        content.append({"type": "text", "text": prompt})
        return await self._create(content, max_tokens)

    async def _create(self, content: List[Dict[str, Any]], max_tokens: int) -> LLMCompletion:
        if not self.api_key:
            raise LLMNotConfiguredError("No Anthropic API key configured (ANTHROPIC_API_KEY)")

        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.version,
            "content-type": "application/json",
        }
        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": content}],
        }

        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}/v1/messages", headers=headers, json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            llm_api_errors_total.labels(provider=self.provider, error_type=str(e.response.status_code)).inc()
            raise LLMError(f"Anthropic API returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            llm_api_errors_total.labels(provider=self.provider, error_type="transport").inc()
            raise LLMError(redact_secrets(f"Anthropic request failed: {type(e).__name__}: {e}")) from e
        except ValueError as e:
            llm_api_errors_total.labels(provider=self.provider, error_type="malformed").inc()
            raise LLMResponseError("Anthropic returned a non-JSON body") from e
        finally:
            llm_api_duration_seconds.labels(provider=self.provider, model=self.model).observe(
                time.monotonic() - started
            )

        blocks = data.get("content") if isinstance(data, dict) else None
        if not blocks:
            raise LLMResponseError("Anthropic returned no content blocks")
        text = "".join(
            block.get("text", "") for block in blocks if isinstance(block, dict) and block.get("type") == "text"
        )
        if not text:
            raise LLMResponseError("Anthropic returned no text content")

        usage = data.get("usage") or {}
        completion = LLMCompletion(
            text=text,
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
        )
        llm_tokens_used_total.labels(provider=self.provider, model=self.model, token_type="input").inc(
            completion.input_tokens
        )
        llm_tokens_used_total.labels(provider=self.provider, model=self.model, token_type="output").inc(
            completion.output_tokens
        )
        return completion
