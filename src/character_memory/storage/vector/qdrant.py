import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchAny,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    Range,
    VectorParams,
)

from character_memory.errors import StoreQueryFailure, StoreWriteFailure
from character_memory.models import MemorySearchResult, MemoryVectorMetadata
from character_memory.storage.filters import And, Eq, FilterExpr, In, Lte, Not, Or

logger = logging.getLogger(__name__)

# Qdrant only accepts UUID or integer point ids; readable vector ids are
# mapped onto UUIDs deterministically so overwrite-by-id still holds.
VECTOR_ID_NAMESPACE = uuid.UUID("6f1c2e4a-8d3b-5a7e-9c1f-2b4d6e8a0c3e")

_DISTANCES = {"cosine": Distance.COSINE}

# Metadata fields referenced by retrieval and purge filters
_PAYLOAD_INDEXES = {
    "vectorId": PayloadSchemaType.KEYWORD,
    "episodeId": PayloadSchemaType.KEYWORD,
    "episodeNo": PayloadSchemaType.INTEGER,
    "version": PayloadSchemaType.INTEGER,
    "scope": PayloadSchemaType.KEYWORD,
    "characterId": PayloadSchemaType.KEYWORD,
    "factIndex": PayloadSchemaType.INTEGER,
}


def point_id_for(vector_id: str) -> str:
    """UUID point id used by Qdrant for a readable vector id."""
    return str(uuid.uuid5(VECTOR_ID_NAMESPACE, vector_id))


def _to_condition(expr: FilterExpr) -> Any:
    if isinstance(expr, Eq):
        return FieldCondition(key=expr.field, match=MatchValue(value=expr.value))
    if isinstance(expr, Lte):
        return FieldCondition(key=expr.field, range=Range(lte=expr.value))
    if isinstance(expr, In):
        return FieldCondition(key=expr.field, match=MatchAny(any=list(expr.values)))
    if isinstance(expr, And):
        return Filter(must=[_to_condition(clause) for clause in expr.clauses])
    if isinstance(expr, Or):
        return Filter(should=[_to_condition(clause) for clause in expr.clauses])
    if isinstance(expr, Not):
        return Filter(must_not=[_to_condition(expr.clause)])
    raise TypeError(f"Unsupported filter node: {expr!r}")


def to_qdrant_filter(expr: Optional[FilterExpr]) -> Optional[Filter]:
    """Translate a filter expression tree into a (nested) Qdrant Filter."""
    if expr is None:
        return None
    condition = _to_condition(expr)
    if isinstance(condition, Filter):
        return condition
    return Filter(must=[condition])


class QdrantVectorIndex:
    """
    VectorIndexStore backed by Qdrant.

    Each logical operation opens its own AsyncQdrantClient through session()
    and closes it on every exit path, so no connection outlives a batch.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        host: str = "localhost",
        port: int = 6333,
        api_key: Optional[str] = None,
        timeout: int = 30,
        upsert_batch_size: int = 256,
        client_factory: Optional[Callable[[], AsyncQdrantClient]] = None,
    ):
        """
        Initialize the Qdrant vector index.

        Args:
            url: Full Qdrant URL; takes precedence over host/port
            host: Qdrant host (default: localhost)
            port: Qdrant port (default: 6333)
            api_key: API key for Qdrant Cloud
            timeout: Request timeout in seconds
            upsert_batch_size: Points per upsert request
            client_factory: Override how clients are created (tests, shared pools)
        """
        if upsert_batch_size < 1:
            raise ValueError("upsert_batch_size must be >= 1")

        self.url = url
        self.host = host
        self.port = port
        self.upsert_batch_size = upsert_batch_size
        self._api_key = api_key
        self._timeout = timeout
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> AsyncQdrantClient:
        if self.url:
            return AsyncQdrantClient(url=self.url, api_key=self._api_key, timeout=self._timeout)
        return AsyncQdrantClient(
            host=self.host, port=self.port, api_key=self._api_key, timeout=self._timeout
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncQdrantClient]:
        client = self._client_factory()
        try:
            yield client
        finally:
            await client.close()

    async def __aenter__(self) -> "QdrantVectorIndex":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def ensure_index(self, name: str, dimension: int, metric: str = "cosine") -> None:
        if metric not in _DISTANCES:
            raise ValueError(f"Unsupported metric: {metric}")

        try:
            async with self.session() as client:
                if not await client.collection_exists(name):
                    try:
                        await client.create_collection(
                            collection_name=name,
                            vectors_config=VectorParams(
                                size=dimension, distance=_DISTANCES[metric]
                            ),
                        )
                        logger.info(
                            f"Created collection {name} (dimension={dimension}, metric={metric})"
                        )
                    except Exception:
                        # Another worker may have created it in the meantime
                        if not await client.collection_exists(name):
                            raise

                # Checked on every call so an interrupted creation is completed later
                info = await client.get_collection(collection_name=name)
                indexed = set(info.payload_schema or {})
                for field_name, schema in _PAYLOAD_INDEXES.items():
                    if field_name in indexed:
                        continue
                    await client.create_payload_index(
                        collection_name=name, field_name=field_name, field_schema=schema
                    )
                    logger.debug(f"Created payload index {name}.{field_name}")
        except Exception as e:
            logger.error(f"Failed to ensure collection {name}: {e}")
            raise StoreWriteFailure(f"Cannot ensure index {name}: {e}") from e

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

        points = [
            PointStruct(
                id=point_id_for(vector_id),
                vector=list(vector),
                payload={**payload, "vectorId": vector_id},
            )
            for vector_id, vector, payload in zip(ids, vectors, metadata)
        ]

        written: List[str] = []
        async with self.session() as client:
            for start in range(0, len(points), self.upsert_batch_size):
                chunk = points[start : start + self.upsert_batch_size]
                chunk_ids = list(ids[start : start + self.upsert_batch_size])
                try:
                    await client.upsert(collection_name=index_name, points=chunk, wait=True)
                except Exception as e:
                    partial = bool(written)
                    logger.error(
                        f"Upsert into {index_name} failed after {len(written)}/{len(ids)} points: {e}"
                    )
                    raise StoreWriteFailure(
                        f"Upsert into {index_name} failed"
                        f"{' partially' if partial else ''}: {e}",
                        partial=partial,
                        written_ids=written,
                    ) from e
                written.extend(chunk_ids)

        logger.debug(f"Upserted {len(written)} points into {index_name}")

    def _to_result(self, point: Any, score: float = 0.0, include_vector: bool = False):
        payload = dict(point.payload or {})
        vector = point.vector if include_vector and isinstance(point.vector, list) else None
        return MemorySearchResult(
            id=payload.get("vectorId", str(point.id)),
            score=score,
            metadata=MemoryVectorMetadata(**payload),
            vector=vector,
        )

    async def query(
        self,
        index_name: str,
        query_vector: Sequence[float],
        top_k: int,
        filter: Optional[FilterExpr] = None,
        include_vector: bool = False,
    ) -> List[MemorySearchResult]:
        qdrant_filter = to_qdrant_filter(filter)
        try:
            async with self.session() as client:
                response = await client.query_points(
                    collection_name=index_name,
                    query=list(query_vector),
                    limit=top_k,
                    query_filter=qdrant_filter,
                    with_payload=True,
                    with_vectors=include_vector,
                )
        except Exception as e:
            logger.error(f"Query against {index_name} failed: {e}")
            raise StoreQueryFailure(f"Query against {index_name} failed: {e}") from e

        results = [
            self._to_result(point, score=point.score, include_vector=include_vector)
            for point in response.points
        ]
        logger.debug(f"{len(results)} hits found in {index_name}")
        return results

    async def scroll(
        self,
        index_name: str,
        filter: Optional[FilterExpr] = None,
        limit: int = 100,
    ) -> List[MemorySearchResult]:
        try:
            async with self.session() as client:
                points, _next_offset = await client.scroll(
                    collection_name=index_name,
                    scroll_filter=to_qdrant_filter(filter),
                    limit=limit,
                    with_payload=True,
                    with_vectors=False,
                )
        except Exception as e:
            logger.error(f"Scroll over {index_name} failed: {e}")
            raise StoreQueryFailure(f"Scroll over {index_name} failed: {e}") from e

        return [self._to_result(point) for point in points]

    async def delete(self, index_name: str, filter: FilterExpr) -> Optional[int]:
        qdrant_filter = to_qdrant_filter(filter)
        try:
            async with self.session() as client:
                if not await client.collection_exists(index_name):
                    return 0
                counted = await client.count(
                    collection_name=index_name, count_filter=qdrant_filter, exact=True
                )
                if counted.count:
                    await client.delete(
                        collection_name=index_name,
                        points_selector=FilterSelector(filter=qdrant_filter),
                        wait=True,
                    )
        except Exception as e:
            logger.error(f"Delete from {index_name} failed: {e}")
            raise StoreWriteFailure(f"Delete from {index_name} failed: {e}") from e

        logger.info(f"Deleted {counted.count} points from {index_name}")
        return counted.count

    async def delete_index(self, name: str) -> None:
        try:
            async with self.session() as client:
                await client.delete_collection(collection_name=name)
        except Exception as e:
            logger.error(f"Failed to delete collection {name}: {e}")
            raise StoreWriteFailure(f"Cannot delete index {name}: {e}") from e
        logger.info(f"Deleted collection {name}")

    async def close(self) -> None:
        """Clients are closed per session; nothing is held between calls."""
