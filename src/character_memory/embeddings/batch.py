"""
Batch embedding adapter.

Wraps a TextEmbedding provider and guarantees the shape the ingestion
pipeline relies on: exactly one vector per input text, in input order,
each of the configured dimension. Anything else is an EmbeddingFailure,
so a partially embedded episode is never handed to the store.
"""

import logging
from typing import List, Optional, Sequence

from character_memory.embeddings.protocol import TextEmbedding
from character_memory.errors import EmbeddingFailure

logger = logging.getLogger(__name__)


class BatchEmbedder:
    def __init__(self, embedding: TextEmbedding, dimension: Optional[int] = None, batch_size: int = 32):
        """
        Args:
            embedding: Underlying embedding provider
            dimension: Expected vector dimension (defaults to embedding.dimension)
            batch_size: Passed through to the provider's batch methods
        """
        self.embedding = embedding
        self.dimension = dimension if dimension is not None else embedding.dimension
        self.batch_size = batch_size

    def _check(self, vectors: Sequence[Sequence[float]], expected: int) -> List[List[float]]:
        if vectors is None or len(vectors) != expected:
            got = "no" if vectors is None else len(vectors)
            raise EmbeddingFailure(f"Embedding returned {got} vectors for {expected} texts")

        checked = []
        for position, vector in enumerate(vectors):
            if len(vector) != self.dimension:
                raise EmbeddingFailure(
                    f"Vector {position} has dimension {len(vector)}, expected {self.dimension}"
                )
            checked.append([float(value) for value in vector])
        return checked

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed fact texts for storage.

        Returns:
            One vector per text, same order as input ([] for empty input)

        Raises:
            EmbeddingFailure: On any provider error or malformed batch
        """
        if not texts:
            return []

        try:
            vectors = await self.embedding.embed_documents(list(texts), batch_size=self.batch_size)
        except Exception as e:
            logger.error(f"Embedding batch of {len(texts)} texts failed: {e}")
            raise EmbeddingFailure(f"Embedding batch of {len(texts)} texts failed: {e}") from e

        checked = self._check(vectors, len(texts))
        logger.debug(f"Embedded {len(checked)} texts with {self.embedding.model_name}")
        return checked

    async def embed_query(self, text: str) -> List[float]:
        """
        Embed a recall query.

        Raises:
            EmbeddingFailure: On any provider error or malformed vector
        """
        try:
            vector = await self.embedding.embed_query(text)
        except Exception as e:
            logger.error(f"Query embedding failed: {e}")
            raise EmbeddingFailure(f"Query embedding failed: {e}") from e

        return self._check([vector], 1)[0]
