"""Batched entity embedding through the provider, with offline fallback vectors."""

import asyncio
import logging
from typing import Any, Callable

import numpy as np

from ..models import Entity
from ..provider.base import Provider, ProviderError
from ..provider.heuristics import noise_vector, zero_vector
from ..provider.session import RunContext, call_with_retry

logger = logging.getLogger(__name__)


def embedding_text(entity: Entity) -> str:
    """Text sent for embedding: classification tags followed by the content."""
    return f"Type: {entity.entity_type}\nLabel: {entity.entity_label}\nContent: {entity.content}"


class Embedder:
    """Embeds entities in small staggered batches.

    Entities whose call fails get a zero vector; once the breaker is open
    the rest get low-amplitude noise vectors without touching the network.
    """

    def __init__(self, provider: Provider | None, ctx: RunContext, config: dict[str, Any]):
        self.provider = provider
        self.ctx = ctx
        p = config.get("provider", {})
        self.batch_size = max(1, p.get("embed_batch_size", 3))
        self.stagger = p.get("embed_stagger", 0.3)
        self.batch_delay = p.get("embed_batch_delay", 0.5)
        self.dim = p.get("embedding_dim", 768)
        self.max_chars = 2048
        self.rng = np.random.default_rng(config.get("clustering", {}).get("seed", 42))
        self._observed_dim: int | None = None

    async def embed_text(self, text: str) -> list[float] | None:
        """Embed arbitrary text. Returns None if the provider can't be used."""
        if self.provider is None or self.ctx.is_open:
            return None
        try:
            vector = await call_with_retry(self.ctx, lambda: self.provider.embed(text[:self.max_chars]))
        except ProviderError as e:
            logger.debug(f"Embedding failed: {e}")
            return None
        if not vector:
            return None
        self._observed_dim = self._observed_dim or len(vector)
        return list(vector)

    async def _embed_one(self, entity: Entity, position: int) -> bool:
        if position and self.stagger:
            await self.ctx.sleep(position * self.stagger)
        vector = await self.embed_text(embedding_text(entity))
        if vector is None:
            entity.embedding = zero_vector(self.dim)
            return False
        entity.embedding = vector
        return True

    async def embed_all(
        self,
        entities: list[Entity],
        on_progress: Callable[[int, int], None] | None = None,
    ) -> list[Entity]:
        """Fill `embedding` on every entity. Never raises on provider trouble."""
        total = len(entities)
        fallback: list[Entity] = []
        for start in range(0, total, self.batch_size):
            batch = entities[start:start + self.batch_size]

            if self.provider is None or self.ctx.is_open:
                for entity in batch:
                    entity.embedding = noise_vector(self.dim, self.rng)
                    fallback.append(entity)
            else:
                ok = await asyncio.gather(*(self._embed_one(e, i) for i, e in enumerate(batch)))
                fallback.extend(e for e, success in zip(batch, ok) if not success)
                if start + self.batch_size < total and self.batch_delay:
                    await self.ctx.sleep(self.batch_delay)

            if on_progress:
                on_progress(min(start + self.batch_size, total), total)

        # Fallback vectors must share the dimensionality of real ones.
        if self._observed_dim and self._observed_dim != self.dim:
            for entity in fallback:
                if any(entity.embedding):
                    entity.embedding = noise_vector(self._observed_dim, self.rng)
                else:
                    entity.embedding = zero_vector(self._observed_dim)

        if fallback:
            logger.info(f"{len(fallback)}/{total} embedding(s) used fallback vectors")
        return entities

    @property
    def dimension(self) -> int:
        return self._observed_dim or self.dim
