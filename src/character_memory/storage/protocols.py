"""
Storage protocol for the vector index.

Implementations wrap a vector database (Qdrant, or an in-process store for
tests) behind a small async interface. All records of the index are keyed
by deterministic vector ids, so upserts are idempotent.
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence

from character_memory.models import MemorySearchResult
from character_memory.storage.filters import FilterExpr


class VectorIndexStore(Protocol):
    """
    Protocol for the vector index backing character memory.

    Implementations must raise StoreWriteFailure / StoreQueryFailure from
    character_memory.errors rather than backend-specific exceptions.
    """

    async def ensure_index(self, name: str, dimension: int, metric: str = "cosine") -> None:
        """
        Create the index if it does not exist yet.

        Safe to call before every ingestion; an existing index is left untouched.

        Args:
            name: Index name (see identity.get_index_name)
            dimension: Vector dimension of the embedding model
            metric: Similarity metric (only "cosine" is used by this package)
        """
        ...

    async def upsert(
        self,
        index_name: str,
        ids: Sequence[str],
        vectors: Sequence[Sequence[float]],
        metadata: Sequence[Dict[str, Any]],
    ) -> None:
        """
        Write records keyed by ids, overwriting any record sharing an id.

        Args:
            index_name: Target index
            ids: Vector ids, one per record
            vectors: Embeddings, same length and order as ids
            metadata: Payload dicts, same length and order as ids

        Raises:
            ValueError: If the three sequences differ in length
            StoreWriteFailure: With partial=True when only part of the batch
                was written
        """
        ...

    async def query(
        self,
        index_name: str,
        query_vector: Sequence[float],
        top_k: int,
        filter: Optional[FilterExpr] = None,
        include_vector: bool = False,
    ) -> List[MemorySearchResult]:
        """
        Similarity search, filter applied by the store before ranking.

        Returns:
            Up to top_k results ordered by descending cosine similarity

        Raises:
            StoreQueryFailure: If the query cannot be executed
        """
        ...

    async def scroll(
        self,
        index_name: str,
        filter: Optional[FilterExpr] = None,
        limit: int = 100,
    ) -> List[MemorySearchResult]:
        """
        List records matching a filter without ranking.

        Raises:
            StoreQueryFailure: If the listing cannot be executed
        """
        ...

    async def delete(self, index_name: str, filter: FilterExpr) -> Optional[int]:
        """
        Delete every record matching the filter.

        Returns:
            Number of deleted records when the backend can report it, else None

        Raises:
            StoreWriteFailure: If the delete fails
        """
        ...

    async def delete_index(self, name: str) -> None:
        """Drop an index and all of its records."""
        ...

    async def close(self) -> None:
        """Release any held connection."""
        ...
