"""End-to-end build: enrich -> embed -> refine -> cluster -> graph."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from .clustering.cluster import select_clusters
from .embeddings.embedder import Embedder
from .enrichment.enricher import Enricher
from .graph.builder import build_graph
from .models import ClusterAssignment, Entity, EpochMetrics, EpochResult, GraphData, RefinementParams
from .provider.base import Provider
from .provider.session import RunContext
from .refinement.triplet import refine_embeddings

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    entities: list[Entity]
    assignment: ClusterAssignment
    graph: GraphData
    epochs: list[EpochMetrics] = field(default_factory=list)


def make_provider(config: dict[str, Any], offline: bool = False) -> Provider | None:
    """The configured provider, or None when running offline or without a key."""
    if offline:
        return None
    if not config.get("claude_api_key"):
        logger.warning("No Claude API key configured; running with offline heuristics")
        return None
    from .provider.claude import ClaudeProvider
    return ClaudeProvider(config)


async def build(
    entities: list[Entity],
    provider: Provider | None,
    ctx: RunContext,
    config: dict[str, Any],
    params: RefinementParams | None = None,
    on_epoch: Callable[[EpochResult], None] | None = None,
    on_progress: Callable[[str, int, int], None] | None = None,
) -> BuildResult:
    """Run the whole build over entities in ingestion order.

    Entities that already carry a type and keywords skip enrichment; entities
    that already carry an embedding skip embedding.
    """
    params = params or RefinementParams.from_config(config)

    def progress(stage: str):
        if on_progress is None:
            return None
        return lambda done, total: on_progress(stage, done, total)

    to_enrich = [e for e in entities if not e.entity_type or not e.keywords]
    if to_enrich:
        await Enricher(provider, ctx, config).enrich_all(to_enrich, progress("enrich"))

    to_embed = [e for e in entities if not e.embedding]
    if to_embed:
        await Embedder(provider, ctx, config).embed_all(to_embed, progress("embed"))

    epochs: list[EpochMetrics] = []

    def record(result: EpochResult) -> None:
        epochs.append(result.metrics)
        if on_epoch:
            on_epoch(result)

    refined = refine_embeddings(entities, params, on_epoch=record)
    for entity in entities:
        entity.embedding = refined[entity.id]

    assignment = select_clusters([e.id for e in entities], [e.embedding for e in entities], config)
    graph = build_graph(entities, assignment, config)
    return BuildResult(entities=entities, assignment=assignment, graph=graph, epochs=epochs)
