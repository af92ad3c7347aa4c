"""
In-memory vector index implementation.

Provides a simple in-process store for vector embeddings and filtered
similarity search, suitable for testing and development. For production,
use the Qdrant implementation.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from character_memory.errors import StoreQueryFailure, StoreWriteFailure
from character_memory.models import MemorySearchResult, MemoryVectorMetadata
from character_memory.storage.filters import FilterExpr, matches

logger = logging.getLogger(__name__)


class InMemoryVectorIndex:
    """
    In-memory implementation of the VectorIndexStore protocol.

    Keeps one dict of id -> {vector, payload} per index and evaluates
    filter expressions locally. Data is lost on restart.
    """

    def __init__(self):
        self._indexes: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._dimensions: Dict[str, int] = {}

        logger.info("InMemoryVectorIndex initialized")

    async def __aenter__(self) -> "InMemoryVectorIndex":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def count(self, index_name: str) -> int:
        """Number of records in an index (0 if it does not exist)."""
        return len(self._indexes.get(index_name, {}))

    def ids(self, index_name: str) -> List[str]:
        return sorted(self._indexes.get(index_name, {}))

    async def ensure_index(self, name: str, dimension: int, metric: str = "cosine") -> None:
        if metric != "cosine":
            raise ValueError(f"Unsupported metric: {metric}")
        if name in self._indexes:
            return
        self._indexes[name] = {}
        self._dimensions[name] = dimension
        logger.info(f"Created index {name} (dimension={dimension})")

    async def upsert(
        self,
        index_name: str,
        ids: Sequence[str],
        vectors: Sequence[Sequence[float]],
        metadata: Sequence[Dict[str, Any]],
    ) -> None:
        if not (len(ids) == len(vectors) == len(metadata)):
            raise ValueError(
                f"ids/vectors/metadata length mismatch: {len(ids)}/{len(vectors)}/{len(metadata)}"
            )
        if index_name not in self._indexes:
            raise StoreWriteFailure(f"Index {index_name} does not exist")

        dimension = self._dimensions[index_name]
        for vector in vectors:
            if len(vector) != dimension:
                raise StoreWriteFailure(
                    f"Vector dimension {len(vector)} does not match index dimension {dimension}"
                )

        # Validated up front so the batch is written all-or-nothing
        records = self._indexes[index_name]
        for vector_id, vector, payload in zip(ids, vectors, metadata):
            records[vector_id] = {"vector": list(vector), "payload": {**payload, "vectorId": vector_id}}

        logger.debug(f"Upserted {len(ids)} records into {index_name}")

    def _cosine_similarity(self, vec1: Sequence[float], vec2: Sequence[float]) -> float:
        """Calculate cosine similarity between two vectors."""
        if len(vec1) != len(vec2):
            raise ValueError("Vectors must have the same length")

        dot_product = sum(a * b for a, b in zip(vec1, vec2))
        magnitude1 = sum(a * a for a in vec1) ** 0.5
        magnitude2 = sum(b * b for b in vec2) ** 0.5

        if magnitude1 == 0 or magnitude2 == 0:
            return 0.0

        return dot_product / (magnitude1 * magnitude2)

    def _records(self, index_name: str) -> Dict[str, Dict[str, Any]]:
        if index_name not in self._indexes:
            raise StoreQueryFailure(f"Index {index_name} does not exist")
        return self._indexes[index_name]

    async def query(
        self,
        index_name: str,
        query_vector: Sequence[float],
        top_k: int,
        filter: Optional[FilterExpr] = None,
        include_vector: bool = False,
    ) -> List[MemorySearchResult]:
        records = self._records(index_name)

        scored = []
        for vector_id, record in records.items():
            if filter is not None and not matches(filter, record["payload"]):
                continue
            try:
                score = self._cosine_similarity(query_vector, record["vector"])
            except ValueError as e:
                raise StoreQueryFailure(f"Query against {index_name} failed: {e}") from e
            scored.append((vector_id, record, score))

        scored.sort(key=lambda item: item[2], reverse=True)

        results = [
            MemorySearchResult(
                id=vector_id,
                score=score,
                metadata=MemoryVectorMetadata(**record["payload"]),
                vector=list(record["vector"]) if include_vector else None,
            )
            for vector_id, record, score in scored[:top_k]
        ]
        logger.debug(f"{len(results)} results found in {index_name}")
        return results

    async def scroll(
        self,
        index_name: str,
        filter: Optional[FilterExpr] = None,
        limit: int = 100,
    ) -> List[MemorySearchResult]:
        records = self._records(index_name)

        results = []
        for vector_id in sorted(records):
            payload = records[vector_id]["payload"]
            if filter is not None and not matches(filter, payload):
                continue
            results.append(
                MemorySearchResult(id=vector_id, metadata=MemoryVectorMetadata(**payload))
            )
            if len(results) >= limit:
                break
        return results

    async def delete(self, index_name: str, filter: FilterExpr) -> Optional[int]:
        records = self._indexes.get(index_name)
        if not records:
            return 0

        doomed = [
            vector_id for vector_id, record in records.items() if matches(filter, record["payload"])
        ]
        for vector_id in doomed:
            del records[vector_id]

        logger.info(f"Deleted {len(doomed)} records from {index_name}")
        return len(doomed)

    async def delete_index(self, name: str) -> None:
        self._indexes.pop(name, None)
        self._dimensions.pop(name, None)
        logger.info(f"Deleted index {name}")

    async def close(self) -> None:
        """Nothing to release; data stays until the process exits."""
