"""Data models used throughout kgraph."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Mapping, Union

import numpy as np


NOISE = -1


def normalize_keyword(keyword: str) -> str:
    return " ".join(keyword.lower().split())


def normalize_keywords(keywords: list[str] | None) -> list[str]:
    """Lowercase, collapse whitespace and drop duplicates/empties, keeping first-seen order."""
    seen: dict[str, None] = {}
    for k in keywords or []:
        norm = normalize_keyword(str(k))
        if norm:
            seen.setdefault(norm, None)
    return list(seen)


@dataclass
class Entity:
    """A document fragment ("chunk") with its embedding and classification tags.

    `order` is the original ingestion position and stands in for temporal
    adjacency during refinement. When unset, refinement uses the list position.
    """
    id: str
    content: str
    order: int | None = None
    embedding: list[float] = field(default_factory=list)
    entity_type: str = ""
    entity_label: str = ""
    keywords: list[str] = field(default_factory=list)
    source: str = ""

    def __post_init__(self):
        self.keywords = normalize_keywords(self.keywords)

    @property
    def keyword_set(self) -> frozenset[str]:
        return frozenset(self.keywords)


@dataclass
class ClusterPoint:
    """2-D projected position of an entity, for visualization only."""
    id: str
    x: float
    y: float
    cluster_id: int


@dataclass
class ClusterAssignment:
    """Result of one clustering run."""
    labels: dict[str, int]
    centroids: list[list[float]]
    k: int
    silhouette: float = 0.0
    points: list[ClusterPoint] = field(default_factory=list)


@dataclass
class ClusterProfile:
    """Keyword profile of one cluster."""
    cluster_id: int
    node_count: int
    top_keywords: list[tuple[str, int]]
    main_topics: list[str]


@dataclass
class ClusterSimilarity:
    target_cluster_id: int
    similar_cluster_id: int
    score: float
    shared_keywords: list[str]


class EdgeType(IntEnum):
    """Edge kinds, ordered by promotion rank."""
    CO_OCCURRENCE = 0
    SEMANTIC = 1
    HIERARCHICAL = 2

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", "-")


@dataclass
class GraphNode:
    id: str
    label: str
    group: int
    content: str
    centrality: float = 0.0
    entity_type: str = ""
    keywords: list[str] = field(default_factory=list)


@dataclass
class GraphEdge:
    """Undirected edge; `source` < `target` always holds."""
    source: str
    target: str
    weight: float
    confidence: float
    type: EdgeType

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.target)


@dataclass
class GraphMetrics:
    node_count: int = 0
    edge_count: int = 0
    density: float = 0.0
    average_degree: float = 0.0
    modularity: float = 0.0
    silhouette: float = 0.0
    connected_components: int = 0
    quality_score: int = 0


@dataclass
class GraphData:
    nodes: list[GraphNode]
    edges: list[GraphEdge]
    metrics: GraphMetrics = field(default_factory=GraphMetrics)

    def node(self, node_id: str) -> GraphNode | None:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None


class MiningStrategy(str, Enum):
    HARD = "hard"
    SEMI_HARD = "semi-hard"
    RANDOM = "random"


@dataclass
class RefinementParams:
    """Hyperparameters for triplet-loss refinement."""
    margin: float = 0.2
    learning_rate: float = 0.01
    epochs: int = 10
    mining_strategy: MiningStrategy = MiningStrategy.SEMI_HARD
    train_fraction: float = 0.8
    seed: int = 42
    positive_window: int = 2
    negative_gap: int = 10
    beta1: float = 0.9
    beta2: float = 0.999
    epsilon: float = 1e-8
    weight_decay: float = 0.01

    def __post_init__(self):
        self.mining_strategy = MiningStrategy(self.mining_strategy)
        if self.margin < 0:
            raise ValueError(f"margin must be >= 0, got {self.margin}")
        if self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be > 0, got {self.learning_rate}")
        if self.epochs < 0:
            raise ValueError(f"epochs must be >= 0, got {self.epochs}")
        if not 0.0 < self.train_fraction <= 1.0:
            raise ValueError(f"train_fraction must be in (0, 1], got {self.train_fraction}")

    @classmethod
    def from_config(cls, config: dict[str, Any], **overrides) -> "RefinementParams":
        values = dict(config.get("refinement", {}))
        values.update(overrides)
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in values.items() if k in known})


@dataclass
class EpochMetrics:
    epoch: int
    train_loss: float
    val_loss: float
    train_triplets: int
    val_triplets: int
    learning_rate: float


@dataclass(frozen=True)
class EpochResult:
    """One epoch's metrics plus a read-only snapshot of every embedding."""
    metrics: EpochMetrics
    embeddings: Mapping[str, np.ndarray]


class TraceStatus(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class TraceEntry:
    step: str
    description: str
    status: TraceStatus = TraceStatus.SUCCESS
    data: Any = None


@dataclass
class ConversationTurn:
    role: str
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ContextItem:
    """A piece of context gathered for generation."""
    entity_id: str
    content: str
    score: float
    origin: str  # "retrieval" or "graph"


@dataclass
class QueryResult:
    answer: str
    context: list[ContextItem]
    trace: list[TraceEntry]
    hypothetical: str = ""


@dataclass(frozen=True)
class Parsed:
    """Structured provider output that decoded into a JSON object."""
    data: dict[str, Any]


@dataclass(frozen=True)
class ParseFailure:
    """Structured provider output that could not be decoded."""
    raw: str
    reason: str = ""


ParseResult = Union[Parsed, ParseFailure]
