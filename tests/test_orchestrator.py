"""Tests for the five-stage retrieval orchestrator and conversation memory."""

import pytest

from kgraph.config import DEFAULT_CONFIG
from kgraph.models import EdgeType, Entity, GraphData, GraphEdge, GraphNode, ParseFailure, Parsed, TraceStatus
from kgraph.provider.base import PermanentProviderError, TransientProviderError
from kgraph.query.memory import ConversationMemory
from kgraph.query.orchestrator import RetrievalOrchestrator
from kgraph.query.search import VectorIndex

from conftest import FakeProvider

STEPS = ["hyde", "retrieve", "crag", "graph_expand", "generate"]


def _corpus():
    entities = [
        Entity(id="a", content="Income tax is due every April.", order=0,
               embedding=[1.0, 0.0, 0.0], keywords=["income", "tax"]),
        Entity(id="b", content="Late payments accrue interest.", order=1,
               embedding=[0.9, 0.1, 0.0], keywords=["payments", "interest"]),
        Entity(id="c", content="Courts hear appeals on Mondays.", order=2,
               embedding=[0.0, 1.0, 0.0], keywords=["courts", "appeals"]),
        Entity(id="d", content="Income tax is due every April.", order=3,
               embedding=[0.0, 0.0, 1.0], keywords=["duplicate"]),
    ]
    nodes = [GraphNode(id=e.id, label=e.id, group=0, content=e.content) for e in entities]
    edges = [
        GraphEdge(source="a", target="c", weight=0.7, confidence=0.8, type=EdgeType.SEMANTIC),
        GraphEdge(source="b", target="d", weight=0.4, confidence=0.6, type=EdgeType.CO_OCCURRENCE),
    ]
    return entities, GraphData(nodes=nodes, edges=edges)


def _orchestrator(provider, ctx, top_n=2, memory=None):
    entities, graph = _corpus()
    config = {**DEFAULT_CONFIG, "retrieval": {**DEFAULT_CONFIG["retrieval"], "top_n": top_n}}
    return RetrievalOrchestrator(provider, ctx, VectorIndex(entities), graph, config, memory=memory)


def _generate(prompts):
    def hook(prompt, system):
        prompts.append(prompt)
        return "final answer" if system else "An ideal passage about income tax deadlines."
    return hook


def _status(result, step):
    return next(t.status for t in result.trace if t.step == step)


@pytest.mark.asyncio
async def test_full_pipeline(run_ctx):
    prompts = []
    provider = FakeProvider(
        embed=lambda text: [1.0, 0.0, 0.0],
        generate=_generate(prompts),
        structured=lambda p, s: Parsed({"score": 0.9, "relevant": True}),
    )
    orch = _orchestrator(provider, run_ctx)
    result = await orch.answer("When is income tax due?")

    assert [t.step for t in result.trace] == STEPS
    assert all(t.status is TraceStatus.SUCCESS for t in result.trace)
    assert result.answer == "final answer"
    assert result.hypothetical.startswith("An ideal passage")
    assert [c.entity_id for c in result.context if c.origin == "retrieval"] == ["a", "b"]
    assert len(orch.memory) == 2


@pytest.mark.asyncio
async def test_crag_rejects_everything_but_generation_still_runs(run_ctx):
    prompts = []
    provider = FakeProvider(
        embed=lambda text: [1.0, 0.0, 0.0],
        generate=_generate(prompts),
        structured=lambda p, s: Parsed({"score": 0.1, "relevant": False}),
    )
    orch = _orchestrator(provider, run_ctx)
    result = await orch.answer("When is income tax due?")

    assert [t.step for t in result.trace] == STEPS
    assert _status(result, "crag") is TraceStatus.ERROR
    assert _status(result, "hyde") is TraceStatus.SUCCESS
    assert _status(result, "retrieve") is TraceStatus.SUCCESS
    assert result.context == []
    assert result.answer == "final answer"
    assert "CONTEXT:\n\n" in prompts[-1]
    assert [t.role for t in orch.memory.turns] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_score_above_threshold_counts_as_relevant(run_ctx):
    provider = FakeProvider(
        embed=lambda text: [1.0, 0.0, 0.0],
        structured=lambda p, s: Parsed({"score": 0.7, "relevant": False}),
    )
    result = await _orchestrator(provider, run_ctx).answer("tax?")
    assert _status(result, "crag") is TraceStatus.SUCCESS
    assert {"a", "b"} <= {c.entity_id for c in result.context}


@pytest.mark.asyncio
async def test_judge_failures_fail_open(run_ctx):
    def judge(prompt, schema):
        raise PermanentProviderError("schema rejected")

    provider = FakeProvider(embed=lambda text: [1.0, 0.0, 0.0], structured=judge)
    result = await _orchestrator(provider, run_ctx).answer("tax?")
    assert _status(result, "crag") is TraceStatus.SUCCESS
    assert {"a", "b"} <= {c.entity_id for c in result.context}


@pytest.mark.asyncio
async def test_unparseable_verdict_keeps_candidate(run_ctx):
    provider = FakeProvider(
        embed=lambda text: [1.0, 0.0, 0.0],
        structured=lambda p, s: ParseFailure(raw="maybe", reason="no JSON object found"),
    )
    orch = _orchestrator(provider, run_ctx)
    assert await orch.judge("tax?", "anything") == (True, 0.5)


@pytest.mark.asyncio
async def test_graph_expansion_adds_neighbors_and_dedupes_content(run_ctx):
    provider = FakeProvider(
        embed=lambda text: [1.0, 0.0, 0.0],
        structured=lambda p, s: Parsed({"score": 1.0, "relevant": True}),
    )
    result = await _orchestrator(provider, run_ctx).answer("tax?")

    graph_items = [c for c in result.context if c.origin == "graph"]
    # c is a neighbour of a; d is a neighbour of b but repeats a's text
    assert [c.entity_id for c in graph_items] == ["c"]
    assert graph_items[0].score == pytest.approx(0.7)
    assert len({c.content for c in result.context}) == len(result.context)


@pytest.mark.asyncio
async def test_hyde_failure_falls_back_to_raw_query(run_ctx):
    def generate(prompt, system):
        if system is None:
            raise PermanentProviderError("bad request")
        return "final answer"

    provider = FakeProvider(embed=lambda text: [1.0, 0.0, 0.0], generate=generate)
    result = await _orchestrator(provider, run_ctx).answer("tax?")

    assert result.hypothetical == "tax?"
    assert _status(result, "hyde") is TraceStatus.WARNING
    assert result.answer == "final answer"


@pytest.mark.asyncio
async def test_tripped_breaker_degrades_every_stage(run_ctx):
    def generate(prompt, system):
        raise TransientProviderError("overloaded")

    provider = FakeProvider(generate=generate)
    result = await _orchestrator(provider, run_ctx).answer("When is income tax due?")

    assert run_ctx.is_open
    assert provider.calls.count("generate") == run_ctx.max_retries
    assert "embed" not in provider.calls
    assert _status(result, "retrieve") is TraceStatus.WARNING
    assert _status(result, "generate") is TraceStatus.WARNING
    assert "[a]" in result.answer


@pytest.mark.asyncio
async def test_generation_failure_answers_extractively(run_ctx):
    def generate(prompt, system):
        if system:
            raise PermanentProviderError("too long")
        return "passage"

    provider = FakeProvider(embed=lambda text: [1.0, 0.0, 0.0], generate=generate)
    orch = _orchestrator(provider, run_ctx)
    result = await orch.answer("tax?")

    assert _status(result, "generate") is TraceStatus.ERROR
    assert "[a]" in result.answer
    assert len(orch.memory) == 2


@pytest.mark.asyncio
async def test_offline_orchestrator(run_ctx):
    result = await _orchestrator(None, run_ctx).answer("When is income tax due?")
    assert [t.step for t in result.trace] == STEPS
    assert _status(result, "hyde") is TraceStatus.WARNING
    assert result.context[0].entity_id == "a"


@pytest.mark.asyncio
async def test_history_reaches_prompt_and_trace_resets(run_ctx):
    prompts = []
    provider = FakeProvider(embed=lambda text: [1.0, 0.0, 0.0], generate=_generate(prompts))
    orch = _orchestrator(provider, run_ctx)
    await orch.answer("first question")
    second = await orch.answer("second question")

    assert "user: first question" in prompts[-1]
    assert len(second.trace) == len(STEPS)
    assert len(orch.memory) == 4


def test_extractive_answer_without_context():
    assert "No verifiable evidence" in RetrievalOrchestrator.extractive_answer([])


def test_vector_index():
    entities, _ = _corpus()
    index = VectorIndex(entities)
    hits = index.search([0.0, 1.0, 0.0], n_results=1)
    assert hits[0][0].id == "c"
    with pytest.raises(ValueError):
        index.search([1.0, 0.0], n_results=1)


def test_keyword_search():
    entities, _ = _corpus()
    hits = VectorIndex(entities).keyword_search("appeals in courts", n_results=3)
    assert hits[0][0].id == "c"
    assert VectorIndex(entities).keyword_search("the and", n_results=3) == []


def test_conversation_memory_window():
    memory = ConversationMemory()
    for i in range(5):
        memory.add("user", f"q{i}")
    assert [t.content for t in memory.window(2)] == ["q3", "q4"]
    assert memory.window(0) == []
    assert memory.format_history(1) == "user: q4"
    assert memory.turns[0].timestamp.tzinfo is not None
