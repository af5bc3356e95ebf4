"""Five-stage retrieval: hypothesize, retrieve, correct, expand, generate.

Stages run strictly in order. Failures in the first four only thin out the
data handed to later stages; the query always reaches generation.
"""

import logging
from typing import Any

from ..embeddings.embedder import Embedder
from ..graph.builder import edge_key
from ..enrichment.prompts import (
    ANSWER_PROMPT,
    ANSWER_SYSTEM,
    HYDE_PROMPT,
    RELEVANCE_PROMPT,
    RELEVANCE_SCHEMA,
)
from ..models import (
    ContextItem,
    GraphData,
    Parsed,
    QueryResult,
    TraceEntry,
    TraceStatus,
)
from ..provider.base import Provider, ProviderError
from ..provider.session import RunContext, call_with_retry
from .graph import adjacency
from .memory import ConversationMemory
from .search import VectorIndex

logger = logging.getLogger(__name__)


class RetrievalOrchestrator:
    """Answers queries over a built graph and its refined embeddings."""

    def __init__(
        self,
        provider: Provider | None,
        ctx: RunContext,
        index: VectorIndex,
        graph: GraphData,
        config: dict[str, Any],
        memory: ConversationMemory | None = None,
    ):
        self.provider = provider
        self.ctx = ctx
        self.index = index
        self.graph = graph
        self.memory = memory if memory is not None else ConversationMemory()
        self.embedder = Embedder(provider, ctx, config)

        r = config.get("retrieval", {})
        self.top_n = r.get("top_n", 6)
        self.history_window = r.get("history_window", 4)
        self.relevance_threshold = r.get("relevance_threshold", 0.6)
        self.judge_chars = r.get("judge_context_chars", 500)

        self._adjacency = adjacency(graph)
        self._nodes = {n.id: n for n in graph.nodes}
        self._weights = {(e.source, e.target): e.weight for e in graph.edges}
        self.trace: list[TraceEntry] = []

    @property
    def _offline(self) -> bool:
        return self.provider is None or self.ctx.is_open

    def _log(self, step: str, description: str, status: TraceStatus = TraceStatus.SUCCESS, data: Any = None) -> None:
        logger.debug(f"[{step}] {status.value}: {description}")
        self.trace.append(TraceEntry(step=step, description=description, status=status, data=data))

    # --- 1. HyDE ----------------------------------------------------------

    async def hypothesize(self, query: str) -> str:
        if self._offline:
            self._log("hyde", "Provider offline; probing with the raw query", TraceStatus.WARNING)
            return query
        try:
            text = await call_with_retry(
                self.ctx, lambda: self.provider.generate(HYDE_PROMPT.format(query=query))
            )
        except ProviderError as e:
            self._log("hyde", f"Hypothetical answer failed ({e}); probing with the raw query", TraceStatus.WARNING)
            return query
        text = text.strip()
        if not text:
            self._log("hyde", "Empty hypothetical answer; probing with the raw query", TraceStatus.WARNING)
            return query
        self._log("hyde", "Generated hypothetical answer", data=text)
        return text

    # --- 2. Retrieve ------------------------------------------------------

    async def retrieve(self, query: str, hypothetical: str) -> list[ContextItem]:
        probe = query if hypothetical == query else f"{query}\n{hypothetical}"
        vector = await self.embedder.embed_text(probe)

        hits = None
        if vector is not None:
            try:
                hits = self.index.search(vector, self.top_n)
            except ValueError as e:
                logger.warning(f"Vector search unavailable: {e}")

        if hits is None:
            hits = self.index.keyword_search(probe, self.top_n)
            status, how = TraceStatus.WARNING, "keyword fallback"
        else:
            status, how = TraceStatus.SUCCESS, "cosine similarity"

        items = [ContextItem(entity_id=e.id, content=e.content, score=s, origin="retrieval") for e, s in hits]
        if not items:
            status = TraceStatus.WARNING
        self._log(
            "retrieve",
            f"Retrieved {len(items)} candidate(s) by {how}",
            status,
            data=[(i.entity_id, round(i.score, 4)) for i in items],
        )
        return items

    # --- 3. Correct -------------------------------------------------------

    async def judge(self, query: str, content: str) -> tuple[bool, float]:
        """Relevance verdict for one candidate. Any failure counts as relevant."""
        if self._offline:
            return True, 0.5
        prompt = RELEVANCE_PROMPT.format(query=query, context=content[:self.judge_chars])
        try:
            result = await call_with_retry(
                self.ctx, lambda: self.provider.generate_structured(prompt, RELEVANCE_SCHEMA)
            )
        except ProviderError as e:
            logger.debug(f"Relevance judge failed, keeping candidate: {e}")
            return True, 0.5
        if not isinstance(result, Parsed):
            logger.debug(f"Unparseable relevance verdict, keeping candidate: {result.reason}")
            return True, 0.5

        try:
            score = float(result.data.get("score", 0.0))
        except (TypeError, ValueError):
            score = 0.0
        relevant = result.data.get("relevant") is True or score > self.relevance_threshold
        return relevant, score

    async def correct(self, query: str, candidates: list[ContextItem]) -> list[ContextItem]:
        if not candidates:
            self._log("crag", "No candidates to evaluate", TraceStatus.WARNING)
            return []

        kept = []
        verdicts = []
        for item in candidates:
            relevant, score = await self.judge(query, item.content)
            verdicts.append((item.entity_id, relevant, round(score, 3)))
            if relevant:
                kept.append(item)

        if not kept:
            self._log("crag", f"All {len(candidates)} candidate(s) judged irrelevant", TraceStatus.ERROR, data=verdicts)
        else:
            self._log("crag", f"Kept {len(kept)}/{len(candidates)} candidate(s)", data=verdicts)
        return kept

    # --- 4. Expand --------------------------------------------------------

    def expand(self, items: list[ContextItem]) -> list[ContextItem]:
        """Add 1-hop graph neighbors of every kept candidate, deduplicated by content."""
        context = list(items)
        seen_ids = {i.entity_id for i in items}
        seen_content = {i.content for i in items}
        added = 0

        for item in items:
            if item.entity_id not in self._nodes:
                continue
            for neighbor_id in self._adjacency.get(item.entity_id, []):
                if neighbor_id in seen_ids:
                    continue
                node = self._nodes.get(neighbor_id)
                seen_ids.add(neighbor_id)
                if node is None or node.content in seen_content:
                    continue
                seen_content.add(node.content)
                context.append(ContextItem(
                    entity_id=neighbor_id,
                    content=node.content,
                    score=self._weights.get(edge_key(item.entity_id, neighbor_id), 0.0),
                    origin="graph",
                ))
                added += 1

        self._log("graph_expand", f"Added {added} neighbor(s) from the graph", data=[i.entity_id for i in context])
        return context

    # --- 5. Generate ------------------------------------------------------

    @staticmethod
    def extractive_answer(context: list[ContextItem]) -> str:
        """Offline answer: the top context passages, cited by id."""
        if not context:
            return "No verifiable evidence was found in the indexed documents."
        lines = [f"{i}. {item.content[:300]} [{item.entity_id}]" for i, item in enumerate(context[:3], start=1)]
        return "\n".join(lines)

    async def generate(self, query: str, context: list[ContextItem]) -> str:
        history = self.memory.format_history(self.history_window)
        context_text = "\n\n---\n\n".join(f"[{i}] {c.content}" for i, c in enumerate(context, start=1))

        if self._offline:
            answer = self.extractive_answer(context)
            self._log("generate", "Provider offline; answered extractively from context", TraceStatus.WARNING)
        else:
            prompt = ANSWER_PROMPT.format(context=context_text, history=history, query=query)
            try:
                answer = await call_with_retry(
                    self.ctx, lambda: self.provider.generate(prompt, system=ANSWER_SYSTEM)
                )
                self._log("generate", f"Answered with {len(context)} context item(s)")
            except ProviderError as e:
                answer = self.extractive_answer(context)
                self._log("generate", f"Generation failed ({e}); answered extractively", TraceStatus.ERROR)

        self.memory.add("user", query)
        self.memory.add("assistant", answer)
        return answer

    async def answer(self, query: str) -> QueryResult:
        """Run all five stages for one query."""
        self.trace = []
        hypothetical = await self.hypothesize(query)
        candidates = await self.retrieve(query, hypothetical)
        kept = await self.correct(query, candidates)
        context = self.expand(kept)
        answer = await self.generate(query, context)
        return QueryResult(answer=answer, context=context, trace=self.trace, hypothetical=hypothetical)
