"""Provider contract and error taxonomy for embedding/generation services."""

import json
import re
from abc import ABC, abstractmethod
from typing import Any

from ..models import ParseFailure, Parsed, ParseResult


class ProviderError(Exception):
    """Base class for anything that goes wrong talking to the provider."""


class TransientProviderError(ProviderError):
    """Rate limit, overload or internal error. Safe to retry."""


class QuotaExhaustedError(TransientProviderError):
    """Rate limit / quota signal."""


class PermanentProviderError(ProviderError):
    """Bad request, not found, auth or schema problems. Never retried."""


class CircuitOpenError(ProviderError):
    """The run's circuit breaker is open; no call was attempted."""


class Provider(ABC):
    """Narrow async interface over an embedding + generation service."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""

    @abstractmethod
    async def generate(self, prompt: str, system: str | None = None, **options: Any) -> str:
        """Free-form text generation."""

    @abstractmethod
    async def generate_structured(self, prompt: str, schema: dict[str, Any]) -> ParseResult:
        """Generation constrained to a JSON object matching `schema`."""


def parse_json_response(text: str) -> ParseResult:
    """Extract a JSON object from model output, handling markdown code blocks."""
    text = (text or "").strip()
    if not text:
        return ParseFailure(raw=text, reason="empty response")

    # Try direct parse first
    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return Parsed(data)
    except json.JSONDecodeError:
        pass

    # Try extracting from ```json ... ``` or ``` ... ```
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", text, re.DOTALL)
    if match:
        try:
            data = json.loads(match.group(1).strip())
            if isinstance(data, dict):
                return Parsed(data)
        except json.JSONDecodeError:
            pass

    # Try finding first { ... } block
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        try:
            data = json.loads(match.group(0))
            if isinstance(data, dict):
                return Parsed(data)
        except json.JSONDecodeError:
            pass

    return ParseFailure(raw=text, reason="no JSON object found")
