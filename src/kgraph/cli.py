"""CLI entry point for kgraph."""

import asyncio
import logging
from collections import Counter
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import load_config

console = Console()


@click.group()
@click.option("--config", "-c", "config_path", default=None, help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """kgraph - Refine, cluster and graph document fragments, then ask questions."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _get_config(ctx) -> dict:
    return load_config(ctx.obj.get("config_path"))


def _run_build(config: dict, path: Path, offline: bool, epochs: int | None, strategy: str | None):
    """Ingest and build the graph. Returns (build result, provider, run context)."""
    from rich.progress import Progress

    from .ingest.processor import process_path
    from .models import RefinementParams
    from .pipeline import build, make_provider
    from .provider.session import RunContext

    entities = process_path(path, config)
    if not entities:
        return None, None, None
    console.print(f"[blue]Loaded {len(entities)} fragment(s) from {path}[/]")

    overrides = {}
    if epochs is not None:
        overrides["epochs"] = epochs
    if strategy:
        overrides["mining_strategy"] = strategy
    params = RefinementParams.from_config(config, **overrides)

    provider = make_provider(config, offline=offline)
    run_ctx = RunContext.from_config(config)
    if offline:
        run_ctx.trip()

    with Progress(console=console, transient=True) as progress:
        tasks = {}

        def on_progress(stage, done, total):
            if stage not in tasks:
                tasks[stage] = progress.add_task(f"{stage.capitalize()}...", total=total)
            progress.update(tasks[stage], completed=done)

        result = asyncio.run(build(entities, provider, run_ctx, config, params=params, on_progress=on_progress))

    return result, provider, run_ctx


def _print_build(result) -> None:
    from .clustering.profiles import analyze_cluster_profiles, find_similar_clusters

    if result.epochs:
        table = Table(title="Refinement")
        table.add_column("Epoch", justify="right")
        table.add_column("Train loss", justify="right", style="green")
        table.add_column("Val loss", justify="right", style="yellow")
        table.add_column("Triplets (train/val)", justify="right")
        for m in result.epochs:
            table.add_row(str(m.epoch), f"{m.train_loss:.4f}", f"{m.val_loss:.4f}", f"{m.train_triplets}/{m.val_triplets}")
        console.print(table)

    profiles = analyze_cluster_profiles(result.graph.nodes)
    table = Table(title=f"Clusters (k={result.assignment.k})")
    table.add_column("Cluster", justify="right", style="cyan")
    table.add_column("Nodes", justify="right")
    table.add_column("Main topics")
    table.add_column("Similar to", style="dim")
    for p in profiles:
        similar = find_similar_clusters(p.cluster_id, profiles)[:2]
        table.add_row(
            "noise" if p.cluster_id < 0 else str(p.cluster_id),
            str(p.node_count),
            ", ".join(p.main_topics),
            ", ".join(f"{s.similar_cluster_id} ({s.score:.2f})" for s in similar),
        )
    console.print(table)

    m = result.graph.metrics
    console.print("\n[bold]Graph Metrics[/]")
    console.print(f"  Nodes: {m.node_count}  Edges: {m.edge_count}")
    by_type = Counter(e.type.label for e in result.graph.edges)
    if by_type:
        console.print("  By type: " + ", ".join(f"{label} {count}" for label, count in sorted(by_type.items())))
    console.print(f"  Density: {m.density:.4f}  Average degree: {m.average_degree:.3f}")
    console.print(f"  Modularity: {m.modularity:.4f}  Silhouette: {m.silhouette:.4f}")
    console.print(f"  Connected components: {m.connected_components}")
    console.print(f"  Quality score: {m.quality_score}/100")


@cli.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option("--offline", is_flag=True, help="Skip the provider and use local heuristics")
@click.option("--epochs", type=int, default=None, help="Override refinement epochs")
@click.option("--strategy", type=click.Choice(["hard", "semi-hard", "random"]), default=None, help="Negative mining strategy")
@click.pass_context
def build(ctx, path, offline, epochs, strategy):
    """Ingest fragments and build the refined knowledge graph."""
    config = _get_config(ctx)
    result, _, run_ctx = _run_build(config, path, offline, epochs, strategy)
    if result is None:
        console.print("[yellow]No fragments found.[/]")
        return
    if run_ctx.is_open and not offline:
        console.print("[yellow]Provider quota exhausted during the run; results use offline heuristics.[/]")
    _print_build(result)
    console.print("[bold green]✓ Graph built[/]")


@cli.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.argument("question")
@click.option("--offline", is_flag=True, help="Skip the provider and use local heuristics")
@click.option("--trace/--no-trace", default=True, help="Show the retrieval trace")
@click.pass_context
def ask(ctx, path, question, offline, trace):
    """Build the graph from PATH, then answer QUESTION over it."""
    from rich.markdown import Markdown
    from rich.panel import Panel

    from .query.orchestrator import RetrievalOrchestrator
    from .query.search import VectorIndex

    config = _get_config(ctx)
    result, provider, run_ctx = _run_build(config, path, offline, None, None)
    if result is None:
        console.print("[yellow]No fragments found.[/]")
        return

    orchestrator = RetrievalOrchestrator(provider, run_ctx, VectorIndex(result.entities), result.graph, config)
    answer = asyncio.run(orchestrator.answer(question))

    if trace:
        colors = {"success": "green", "warning": "yellow", "error": "red"}
        table = Table(title="Retrieval Trace")
        table.add_column("Step", style="cyan")
        table.add_column("Status")
        table.add_column("Description")
        for entry in answer.trace:
            color = colors[entry.status.value]
            table.add_row(entry.step, f"[{color}]{entry.status.value}[/]", entry.description)
        console.print(table)

    console.print(Panel(Markdown(answer.answer), title="Answer", border_style="green"))

    if answer.context:
        console.print("\n[bold]Sources:[/]")
        for item in answer.context:
            console.print(f"  • {item.entity_id} [dim]({item.origin}, {item.score:.3f})[/]")


@cli.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.argument("node_id")
@click.option("--depth", "-d", default=1, help="Number of hops to walk")
@click.option("--offline", is_flag=True, help="Skip the provider and use local heuristics")
@click.pass_context
def related(ctx, path, node_id, depth, offline):
    """Show fragments linked to NODE_ID in the graph built from PATH."""
    from .query.graph import find_related

    config = _get_config(ctx)
    result, _, _ = _run_build(config, path, offline, None, None)
    if result is None:
        console.print("[yellow]No fragments found.[/]")
        return

    graph = result.graph
    if graph.node(node_id) is None:
        console.print(f"[red]Unknown fragment id: {node_id}[/]")
        raise SystemExit(1)

    found = find_related(graph, node_id, depth=depth)
    if not found["total"]:
        console.print(f"[yellow]No fragments linked to {node_id}.[/]")
        return

    table = Table(title=f"Related to {node_id}")
    table.add_column("Hop", justify="right", style="dim", width=3)
    table.add_column("Id", style="cyan")
    table.add_column("Label")
    table.add_column("Preview", max_width=60)
    for level, ids in found["related"].items():
        for rid in ids:
            node = graph.node(rid)
            table.add_row(str(level), rid, node.label, node.content[:80].replace("\n", " "))
    console.print(table)


if __name__ == "__main__":
    cli()
