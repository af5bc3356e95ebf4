"""Provider-backed classification of entities, with a regex fallback."""

import asyncio
import logging
from typing import Any, Callable

from ..models import Entity, Parsed, normalize_keywords
from ..provider.base import Provider, ProviderError
from ..provider.heuristics import classify_hierarchy, extract_keywords
from ..provider.session import RunContext, call_with_retry
from .prompts import CLASSIFY_PROMPT, CLASSIFY_SCHEMA

logger = logging.getLogger(__name__)


class Enricher:
    """Fills in whichever of entity_type, entity_label and keywords are missing.

    Entities are sent in small batches with a stagger inside each batch and
    a pause between batches, to stay under the provider's quota.
    """

    def __init__(self, provider: Provider | None, ctx: RunContext, config: dict[str, Any]):
        self.provider = provider
        self.ctx = ctx
        p = config.get("provider", {})
        self.batch_size = max(1, p.get("enrich_batch_size", 2))
        self.stagger = p.get("enrich_stagger", 0.5)
        self.batch_delay = p.get("enrich_batch_delay", 1.0)
        self.max_chars = 1000

    @staticmethod
    def apply_heuristics(entity: Entity) -> Entity:
        """Fill missing fields from the regex classifier. Supplied type and label are kept."""
        entity_type, label = classify_hierarchy(entity.content)
        entity.entity_type = entity.entity_type or entity_type
        entity.entity_label = entity.entity_label or label
        if not entity.keywords:
            entity.keywords = extract_keywords(entity.content)
        return entity

    async def enrich_entity(self, entity: Entity) -> Entity:
        """Classify one entity; any provider failure falls back to heuristics."""
        if self.provider is None or self.ctx.is_open or len(entity.content.strip()) < 5:
            return self.apply_heuristics(entity)

        prompt = CLASSIFY_PROMPT.format(content=entity.content[:self.max_chars])
        try:
            result = await call_with_retry(
                self.ctx, lambda: self.provider.generate_structured(prompt, CLASSIFY_SCHEMA)
            )
        except ProviderError as e:
            logger.debug(f"Enrichment of {entity.id} fell back to heuristics: {e}")
            return self.apply_heuristics(entity)

        if not isinstance(result, Parsed):
            logger.warning(f"Unparseable classification for {entity.id} ({result.reason}); using heuristics")
            return self.apply_heuristics(entity)

        data = result.data
        entity.entity_type = entity.entity_type or str(data.get("entity_type") or "TEXT")
        entity.entity_label = entity.entity_label or str(data.get("entity_label") or entity.id)
        keywords = data.get("keywords") or []
        if not isinstance(keywords, list):
            keywords = [keywords]
        entity.keywords = normalize_keywords(entity.keywords + [str(k) for k in keywords])
        return entity

    async def _staggered(self, entity: Entity, position: int) -> Entity:
        if position and self.stagger:
            await self.ctx.sleep(position * self.stagger)
        return await self.enrich_entity(entity)

    async def enrich_all(
        self,
        entities: list[Entity],
        on_progress: Callable[[int, int], None] | None = None,
    ) -> list[Entity]:
        """Enrich every entity in order. Never raises on provider trouble."""
        total = len(entities)
        done = 0
        for start in range(0, total, self.batch_size):
            batch = entities[start:start + self.batch_size]

            if self.provider is None or self.ctx.is_open:
                for entity in batch:
                    self.apply_heuristics(entity)
            else:
                await asyncio.gather(*(self._staggered(e, i) for i, e in enumerate(batch)))
                if start + self.batch_size < total and self.batch_delay:
                    await self.ctx.sleep(self.batch_delay)

            done += len(batch)
            if on_progress:
                on_progress(done, total)

        if self.ctx.is_open:
            logger.info("Enrichment finished in offline mode (heuristic classification)")
        return entities
