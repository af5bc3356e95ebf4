"""Configuration management for kgraph."""

import copy
import os
from pathlib import Path
from typing import Any

import yaml


DEFAULT_CONFIG = {
    "claude_model": "claude-sonnet-4-20250514",
    "embedding_model": "sentence-transformers/all-mpnet-base-v2",
    "refinement": {
        "margin": 0.2,
        "learning_rate": 0.01,
        "epochs": 10,
        "mining_strategy": "semi-hard",
        "train_fraction": 0.8,
        "seed": 42,
        "positive_window": 2,
        "negative_gap": 10,
        "beta1": 0.9,
        "beta2": 0.999,
        "epsilon": 1e-8,
        "weight_decay": 0.01,
    },
    "clustering": {
        "max_k": 6,
        "max_iter": 20,
        "silhouette_sample": 200,
        "seed": 42,
        "noise_eps": None,
        "noise_min_samples": 2,
    },
    "graph": {
        "stopword_ratio": 0.6,
        "semantic_threshold": 0.35,
        "semantic_weight_damping": 0.8,
        "overlap_weight": 0.6,
        "jaccard_weight": 0.4,
        "cooccurrence_confidence": {"same_type": 0.6, "other_type": 0.3},
        "cooccurrence_weight": {"same_type": 0.4, "other_type": 0.2},
        "reinforce_weight": 0.5,
        "reinforce_confidence": 0.2,
        "min_confidence": 0.3,
    },
    "retrieval": {
        "top_n": 6,
        "history_window": 4,
        "relevance_threshold": 0.6,
        "judge_context_chars": 500,
    },
    "provider": {
        "max_retries": 3,
        "initial_delay": 2.0,
        "max_delay": 30.0,
        "enrich_batch_size": 2,
        "enrich_stagger": 0.5,
        "enrich_batch_delay": 1.0,
        "embed_batch_size": 3,
        "embed_stagger": 0.3,
        "embed_batch_delay": 0.5,
        "embedding_dim": 768,
        "max_tokens": 1024,
    },
    "chunking": {"min_chars": 20, "dense_window_chars": 1000},
}


def _find_config_file() -> Path | None:
    """Look for config.yaml in standard locations."""
    candidates = [
        Path.cwd() / "config" / "config.yaml",
        Path.cwd() / "config.yaml",
        Path.home() / ".kgraph" / "config.yaml",
    ]
    for p in candidates:
        if p.exists():
            return p
    return None


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration, merging defaults with file and env vars."""
    cfg = copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path) if config_path else _find_config_file()
    if path and path.exists():
        with open(path) as f:
            file_cfg = yaml.safe_load(f) or {}
        _deep_merge(cfg, file_cfg)

    # Env overrides
    if api_key := os.environ.get("ANTHROPIC_API_KEY"):
        cfg["claude_api_key"] = api_key
    if model := os.environ.get("KGRAPH_CLAUDE_MODEL"):
        cfg["claude_model"] = model
    if model := os.environ.get("KGRAPH_EMBEDDING_MODEL"):
        cfg["embedding_model"] = model

    return cfg


def _deep_merge(base: dict, override: dict) -> None:
    """Merge override into base in-place."""
    for k, v in override.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
