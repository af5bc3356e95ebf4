"""Turn files into ordered Entity records."""

import json
import logging
from pathlib import Path
from typing import Any

from ..models import Entity
from .chunker import split_fragments
from .parsers import PARSERS

logger = logging.getLogger(__name__)


def process_file(file_path: Path, config: dict[str, Any]) -> list[dict[str, Any]] | None:
    """Parse one file into fragment records.

    Args:
        file_path: Path to the file to process.
        config: Application configuration dict.

    Returns:
        List of {id, content, ...} records, or None if the file type is unsupported.
        Fragments of a markdown file take its frontmatter title as their label
        and its tags as keywords.
    """
    parser_cls = PARSERS.get(file_path.suffix.lower())
    if parser_cls is None:
        return None

    result = parser_cls().parse(file_path)
    source = str(file_path)

    if "records" in result:
        return [dict(r, source=r.get("source", source)) for r in result["records"]]

    chunk_cfg = config.get("chunking", {})
    fragments = split_fragments(
        result["content"],
        min_chars=chunk_cfg.get("min_chars", 20),
        dense_window_chars=chunk_cfg.get("dense_window_chars", 1000),
    )
    shared: dict[str, Any] = {"source": source}
    metadata = result.get("metadata", {})
    if metadata.get("title"):
        shared["entity_label"] = str(metadata["title"])
    tags = metadata.get("tags")
    if isinstance(tags, list):
        shared["keywords"] = [str(t) for t in tags]

    return [
        {"id": f"{file_path.stem}-{i}", "content": text, **shared}
        for i, text in enumerate(fragments)
    ]


def entities_from_records(records: list[dict[str, Any]]) -> list[Entity]:
    """Build entities in record order; the position becomes `Entity.order`.

    Accepts both camelCase (entityType) and snake_case (entity_type) keys.
    """
    entities = []
    seen: set[str] = set()
    for order, r in enumerate(records):
        if "content" not in r:
            raise ValueError(f"Record {order} has no content")
        eid = str(r.get("id") or f"fragment-{order}")
        if eid in seen:
            raise ValueError(f"Duplicate record id: {eid}")
        seen.add(eid)
        entities.append(Entity(
            id=eid,
            content=str(r["content"]),
            order=order,
            entity_type=r.get("entityType") or r.get("entity_type") or "",
            entity_label=r.get("entityLabel") or r.get("entity_label") or "",
            keywords=list(r.get("keywords") or []),
            source=r.get("source", ""),
        ))
    return entities


def process_path(path: Path, config: dict[str, Any]) -> list[Entity]:
    """Process a file or every supported file under a directory, in sorted order."""
    if path.is_file():
        files = [path]
    elif path.is_dir():
        files = [p for p in sorted(path.rglob("*")) if p.is_file() and not p.name.startswith(".")]
    else:
        raise FileNotFoundError(f"Path not found: {path}")

    records: list[dict[str, Any]] = []
    for file_path in files:
        try:
            file_records = process_file(file_path, config)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed JSON file {file_path}: {e}")
            continue
        if file_records is None:
            logger.debug(f"Skipping unsupported file {file_path}")
            continue
        records.extend(file_records)

    return entities_from_records(records)
