"""
Offline embedding provider for local development and tests.

Character-frequency vectors, L2 normalised. Deterministic, so identical text
always yields cosine similarity 1.0; semantic quality is poor.
"""

import math
from typing import List

from .errors import EmbeddingError


class HashingEmbed:
    """Deterministic bag-of-characters embedder with no network dependency."""

    def __init__(self, dimension: int = 384):
        if dimension <= 0:
            raise ValueError('dimension must be positive')
        self.dimension = dimension
        self.model_id = f'hashing-{dimension}'

    def embed_document(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingError('Refusing to embed empty text')

        vector = [0.0] * self.dimension
        for word in text.lower().split():
            for char in word:
                vector[ord(char) % self.dimension] += 1.0

        magnitude = math.sqrt(sum(v * v for v in vector))
        if magnitude == 0:
            return vector
        return [v / magnitude for v in vector]

    def embed_query(self, text: str) -> List[float]:
        return self.embed_document(text)

    def health_check(self) -> bool:
        return True
