"""Triplet-loss refinement of pre-computed embeddings.

A single-layer metric-learning pass: vectors are moved directly by AdamW
steps on the triplet margin loss, then re-normalized. Positives are mined
by triangulation (label, ingestion proximity, shared keywords) so that a
single noisy label cannot create a positive pair on its own.
"""

import logging
from types import MappingProxyType
from typing import Callable, Iterator, Mapping

import numpy as np

from ..models import Entity, EpochMetrics, EpochResult, MiningStrategy, RefinementParams
from ..vectors import as_matrix, euclidean, normalize, triplet_gradients, triplet_loss
from .optimizer import AdamW

logger = logging.getLogger(__name__)


class TripletRefiner:
    """Owns a private working copy of the embeddings and the optimizer state."""

    def __init__(self, entities: list[Entity], params: RefinementParams):
        self.params = params
        self.ids = [e.id for e in entities]
        self.order = [i if e.order is None else e.order for i, e in enumerate(entities)]
        self.types = [e.entity_type for e in entities]
        self.keywords = [e.keyword_set for e in entities]
        self.vectors = as_matrix([e.embedding for e in entities])
        self.rng = np.random.default_rng(params.seed)

        n = len(entities)
        dim = self.vectors.shape[1] if n else 0
        self.optimizer = AdamW(
            dim,
            beta1=params.beta1,
            beta2=params.beta2,
            epsilon=params.epsilon,
            weight_decay=params.weight_decay,
        )

        shuffled = self.rng.permutation(n).tolist()
        split = int(np.floor(n * params.train_fraction))
        self.train_indices: list[int] = shuffled[:split]
        self.val_indices: list[int] = shuffled[split:]

    # --- mining -----------------------------------------------------------

    def _signals(self, a: int, c: int) -> tuple[bool, bool, bool]:
        label = bool(self.types[a]) and self.types[a] == self.types[c]
        temporal = abs(self.order[a] - self.order[c]) <= self.params.positive_window
        lexical = bool(self.keywords[a] & self.keywords[c])
        return label, temporal, lexical

    def is_positive(self, a: int, c: int) -> bool:
        """Immediate neighbours always qualify; otherwise two of three signals must agree."""
        if abs(self.order[a] - self.order[c]) == 1:
            return True
        return sum(self._signals(a, c)) >= 2

    def is_negative(self, a: int, c: int) -> bool:
        return (
            self.types[a] != self.types[c]
            and abs(self.order[a] - self.order[c]) > self.params.negative_gap
        )

    def mine_triplet(self, anchor: int, partition: list[int]) -> tuple[int, int] | None:
        """Pick (positive, negative) for anchor from its own partition, or None."""
        candidates = [c for c in partition if c != anchor]
        if len(candidates) < 2:
            return None

        positives = [c for c in candidates if self.is_positive(anchor, c)]
        if not positives:
            return None
        positive = positives[int(self.rng.integers(len(positives)))]

        negatives = [c for c in candidates if c != positive and self.is_negative(anchor, c)]
        if not negatives:
            return None

        strategy = self.params.mining_strategy
        if strategy == MiningStrategy.RANDOM:
            return positive, negatives[int(self.rng.integers(len(negatives)))]

        a_vec = self.vectors[anchor]
        ranked = sorted(negatives, key=lambda c: euclidean(a_vec, self.vectors[c]))
        if strategy == MiningStrategy.HARD:
            return positive, ranked[0]

        d_ap = euclidean(a_vec, self.vectors[positive])
        for c in ranked:
            d_an = euclidean(a_vec, self.vectors[c])
            if d_ap < d_an < d_ap + self.params.margin:
                return positive, c
        return positive, ranked[0]

    # --- passes -----------------------------------------------------------

    def _update(self, anchor: int, positive: int, negative: int, lr: float) -> None:
        a, p, n = self.vectors[anchor], self.vectors[positive], self.vectors[negative]
        grads = triplet_gradients(a, p, n, eps=self.params.epsilon)
        for idx, grad in zip((anchor, positive, negative), grads):
            stepped = self.optimizer.step(self.ids[idx], self.vectors[idx], grad, lr)
            self.vectors[idx] = normalize(stepped)

    def run_pass(self, indices: list[int], lr: float, training: bool) -> tuple[float, int]:
        """One sweep over a partition. Returns (summed loss, active triplet count)."""
        partition = list(indices)
        total, active = 0.0, 0
        for anchor in indices:
            triplet = self.mine_triplet(anchor, partition)
            if triplet is None:
                continue
            positive, negative = triplet
            loss = triplet_loss(
                self.vectors[anchor], self.vectors[positive], self.vectors[negative], self.params.margin
            )
            if loss <= 0:
                continue
            total += loss
            active += 1
            if training:
                self._update(anchor, positive, negative, lr)
        return total, active

    def learning_rate(self, epoch: int) -> float:
        """Linear decay: full rate at epoch 1, base/epochs at the last epoch."""
        return self.params.learning_rate * (1.0 - (epoch - 1) / self.params.epochs)

    def snapshot(self) -> Mapping[str, np.ndarray]:
        out = {}
        for i, eid in enumerate(self.ids):
            vec = self.vectors[i].copy()
            vec.setflags(write=False)
            out[eid] = vec
        return MappingProxyType(out)

    def epochs(self) -> Iterator[EpochResult]:
        """Yield one EpochResult per configured epoch."""
        for epoch in range(1, self.params.epochs + 1):
            lr = self.learning_rate(epoch)
            train_order = self.rng.permutation(self.train_indices).tolist() if self.train_indices else []
            train_loss, train_count = self.run_pass(train_order, lr, training=True)
            val_loss, val_count = self.run_pass(self.val_indices, lr, training=False)

            metrics = EpochMetrics(
                epoch=epoch,
                train_loss=train_loss / train_count if train_count else 0.0,
                val_loss=val_loss / val_count if val_count else 0.0,
                train_triplets=train_count,
                val_triplets=val_count,
                learning_rate=lr,
            )
            logger.info(
                f"Epoch {epoch}/{self.params.epochs}: train_loss={metrics.train_loss:.4f} ({train_count} triplets) "
                f"val_loss={metrics.val_loss:.4f} ({val_count} triplets)"
            )
            yield EpochResult(metrics=metrics, embeddings=self.snapshot())


def refine_embeddings(
    entities: list[Entity],
    params: RefinementParams,
    on_epoch: Callable[[EpochResult], None] | None = None,
) -> dict[str, list[float]]:
    """Run every epoch and return the final embeddings keyed by entity id.

    With zero epochs (or no entities) the input embeddings come back unchanged.
    """
    final = {e.id: list(e.embedding) for e in entities}
    if not entities or params.epochs == 0:
        return final

    refiner = TripletRefiner(entities, params)
    for result in refiner.epochs():
        if on_epoch:
            on_epoch(result)
        final = {eid: vec.tolist() for eid, vec in result.embeddings.items()}
    return final
