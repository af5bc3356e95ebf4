"""Anthropic-backed provider: Claude for generation, sentence-transformers for embeddings."""

import asyncio
import logging
from typing import Any

import anthropic

from ..models import Parsed, ParseResult
from .base import (
    PermanentProviderError,
    Provider,
    QuotaExhaustedError,
    TransientProviderError,
    parse_json_response,
)

logger = logging.getLogger(__name__)

STRUCTURED_TOOL_NAME = "submit_result"


def classify_error(exc: anthropic.AnthropicError) -> Exception:
    """Map an anthropic SDK exception onto the provider error taxonomy.

    Anything not recognised as retryable, malformed responses included, is permanent.
    """
    if isinstance(exc, anthropic.RateLimitError):
        return QuotaExhaustedError(str(exc))
    if isinstance(exc, (anthropic.APIConnectionError, anthropic.InternalServerError)):
        return TransientProviderError(str(exc))
    if isinstance(exc, anthropic.APIStatusError):
        if exc.status_code >= 500:
            return TransientProviderError(str(exc))
    return PermanentProviderError(str(exc))


class ClaudeProvider(Provider):
    """Generation through the Messages API; embeddings from a local model."""

    def __init__(self, config: dict[str, Any]):
        api_key = config.get("claude_api_key")
        if not api_key:
            raise ValueError("Claude API key required. Set ANTHROPIC_API_KEY or claude_api_key in config.")

        self.client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        self.model = config.get("claude_model", "claude-sonnet-4-20250514")
        self.max_tokens = config.get("provider", {}).get("max_tokens", 1024)
        self.embedding_model_name = config.get("embedding_model", "sentence-transformers/all-mpnet-base-v2")
        self._embedding_model = None

    @property
    def embedding_model(self):
        """Lazy-load the embedding model."""
        if self._embedding_model is None:
            from sentence_transformers import SentenceTransformer
            try:
                self._embedding_model = SentenceTransformer(self.embedding_model_name)
            except OSError as e:
                raise PermanentProviderError(f"Cannot load embedding model {self.embedding_model_name}: {e}") from e
        return self._embedding_model

    async def embed(self, text: str) -> list[float]:
        model = self.embedding_model
        try:
            vector = await asyncio.to_thread(model.encode, text)
        except Exception as e:
            raise PermanentProviderError(f"Embedding failed: {e}") from e
        return vector.tolist()

    async def _create(self, **kwargs):
        try:
            return await self.client.messages.create(
                model=self.model,
                max_tokens=kwargs.pop("max_tokens", self.max_tokens),
                **kwargs,
            )
        except anthropic.AnthropicError as e:
            raise classify_error(e) from e

    async def generate(self, prompt: str, system: str | None = None, **options: Any) -> str:
        kwargs: dict[str, Any] = {"messages": [{"role": "user", "content": prompt}], **options}
        if system:
            kwargs["system"] = system
        response = await self._create(**kwargs)
        return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")

    async def generate_structured(self, prompt: str, schema: dict[str, Any]) -> ParseResult:
        """Force a tool call whose input is the structured result; fall back to parsing text."""
        tool = {
            "name": STRUCTURED_TOOL_NAME,
            "description": "Submit the structured result.",
            "input_schema": schema,
        }
        response = await self._create(
            messages=[{"role": "user", "content": prompt}],
            temperature=0.1,
            tools=[tool],
            tool_choice={"type": "tool", "name": STRUCTURED_TOOL_NAME},
        )

        for block in response.content:
            if block.type == "tool_use" and isinstance(block.input, dict):
                return Parsed(block.input)

        logger.warning("No tool_use block in structured response, falling back to text")
        text = "".join(getattr(block, "text", "") for block in response.content)
        return parse_json_response(text)
