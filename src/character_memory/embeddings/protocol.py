"""
Text embedding protocol for character-memory.

Provides a unified interface for embedding fact texts and recall queries
into dense vectors for filtered similarity search.
"""

from typing import List, Protocol

from typing_extensions import runtime_checkable


@runtime_checkable
class TextEmbedding(Protocol):
    """
    Protocol for text embedding providers.

    All implementations must:

    1. Return one vector per input text, in input order
    2. Produce vectors of exactly `dimension` elements
    3. Implement async methods (embedding calls are long-latency I/O)

    Example:
        >>> embedder = OpenAIEmbedding(dimensions=1024)
        >>> vector = await embedder.embed_document("Tsubasa runs the Blue Moon cafe")
        >>> len(vector) == embedder.dimension
        True
    """

    @property
    def dimension(self) -> int:
        """
        Vector dimension produced by this embedder.

        Used when creating an index - all vectors in an index must share it.
        """
        ...

    @property
    def model_name(self) -> str:
        """Identifier of the embedding model."""
        ...

    async def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for a fact to be stored.

        Raises:
            ValueError: If text is empty
        """
        ...

    async def embed_query(self, text: str) -> List[float]:
        """
        Generate embedding for a recall query.

        Raises:
            ValueError: If text is empty
        """
        ...

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        """
        Generate embeddings for many facts.

        Returns:
            List of embedding vectors (same order as input)
        """
        ...

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        """
        Generate embeddings for many queries.

        Returns:
            List of embedding vectors (same order as input)
        """
        ...
