"""Vector and keyword search over entities."""

import numpy as np

from ..models import Entity, normalize_keyword
from ..provider.heuristics import extract_keywords
from ..vectors import as_matrix, cosine_top_n


class VectorIndex:
    """In-memory cosine index over (refined) entity embeddings."""

    def __init__(self, entities: list[Entity]):
        self.entities = list(entities)
        self.matrix = as_matrix([e.embedding for e in self.entities])

    def search(self, query_vector: list[float], n_results: int = 6) -> list[tuple[Entity, float]]:
        """Top-N entities by cosine similarity, best first.

        Args:
            query_vector: Embedding of the probe text.
            n_results: Number of results to return.

        Returns:
            List of (entity, score) pairs.
        """
        if not self.entities:
            return []
        query = np.asarray(query_vector, dtype=float)
        if query.shape[0] != self.matrix.shape[1]:
            raise ValueError(
                f"Query has dimension {query.shape[0]}, index has {self.matrix.shape[1]}"
            )
        return [(self.entities[i], score) for i, score in cosine_top_n(query, self.matrix, n_results)]

    def keyword_search(self, text: str, n_results: int = 6) -> list[tuple[Entity, float]]:
        """Rank entities by the share of the text's terms found in their keywords or content.

        Used when no query embedding can be produced.
        """
        terms = {normalize_keyword(t) for t in extract_keywords(text, limit=10)}
        if not terms:
            return []
        scored = []
        for entity in self.entities:
            haystack = set(entity.keywords) | set(extract_keywords(entity.content, limit=50))
            hits = len(terms & haystack)
            if hits:
                scored.append((entity, hits / len(terms)))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:n_results]
