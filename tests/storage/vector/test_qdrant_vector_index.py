"""Tests for the Qdrant backend using a mocked async client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

pytest.importorskip("qdrant_client")

from qdrant_client.models import Filter  # noqa: E402

from character_memory.errors import StoreQueryFailure, StoreWriteFailure  # noqa: E402
from character_memory.storage.filters import And, Eq, In, Lte, Not, Or  # noqa: E402
from character_memory.storage.vector.qdrant import (  # noqa: E402
    _PAYLOAD_INDEXES,
    QdrantVectorIndex,
    point_id_for,
    to_qdrant_filter,
)


def _payload(vector_id, text="A fact."):
    return {
        "vectorId": vector_id,
        "episodeId": "episode-1",
        "episodeNo": 1,
        "version": 1,
        "scope": "world",
        "characterId": "world",
        "factIndex": 0,
        "text": text,
        "importance": 3,
    }


class FakeClientFactory:
    """Hands out the same AsyncMock client and counts sessions."""

    def __init__(self):
        self.client = AsyncMock()
        self.sessions = 0

    def __call__(self):
        self.sessions += 1
        return self.client


@pytest.fixture
def factory():
    return FakeClientFactory()


@pytest.fixture
def index(factory):
    return QdrantVectorIndex(upsert_batch_size=2, client_factory=factory)


def test_point_id_is_deterministic_uuid():
    first = point_id_for("vec:episode-1:v1:world:world:0")

    assert first == point_id_for("vec:episode-1:v1:world:world:0")
    assert first != point_id_for("vec:episode-1:v1:world:world:1")
    assert len(first) == 36


def test_filter_translation():
    qdrant_filter = to_qdrant_filter(
        And(
            Lte("episodeNo", 2),
            Or(Eq("scope", "world"), And(Eq("scope", "character"), Eq("characterId", "alice"))),
        )
    )

    assert isinstance(qdrant_filter, Filter)
    temporal, visibility = qdrant_filter.must
    assert temporal.key == "episodeNo"
    assert temporal.range.lte == 2
    assert visibility.should[0].match.value == "world"
    owner = visibility.should[1].must
    assert [condition.key for condition in owner] == ["scope", "characterId"]
    assert owner[1].match.value == "alice"


def test_filter_translation_wraps_leaf_and_not():
    assert to_qdrant_filter(None) is None
    assert to_qdrant_filter(Eq("episodeId", "episode-1")).must[0].key == "episodeId"
    negated = to_qdrant_filter(Not(Eq("version", 2)))
    assert negated.must_not[0].match.value == 2


def test_filter_translation_in_uses_match_any():
    qdrant_filter = to_qdrant_filter(
        And(Eq("episodeId", "episode-1"), Not(In("vectorId", ["vec:a", "vec:b"])))
    )

    episode, kept = qdrant_filter.must
    assert episode.match.value == "episode-1"
    excluded = kept.must_not[0]
    assert excluded.key == "vectorId"
    assert excluded.match.any == ["vec:a", "vec:b"]


def test_invalid_batch_size():
    with pytest.raises(ValueError):
        QdrantVectorIndex(upsert_batch_size=0)


@pytest.mark.asyncio
async def test_ensure_index_skips_existing_collection(index, factory):
    factory.client.collection_exists.return_value = True
    factory.client.get_collection.return_value = SimpleNamespace(
        payload_schema={field: object() for field in _PAYLOAD_INDEXES}
    )

    await index.ensure_index("character-memory", 8)

    factory.client.create_collection.assert_not_called()
    factory.client.create_payload_index.assert_not_called()
    factory.client.close.assert_awaited()


@pytest.mark.asyncio
async def test_ensure_index_creates_collection_and_payload_indexes(index, factory):
    factory.client.collection_exists.return_value = False
    factory.client.get_collection.return_value = SimpleNamespace(payload_schema={})

    await index.ensure_index("character-memory", 8)

    factory.client.create_collection.assert_awaited_once()
    fields = {call.kwargs["field_name"] for call in factory.client.create_payload_index.call_args_list}
    assert fields == set(_PAYLOAD_INDEXES)
    assert "vectorId" in fields


@pytest.mark.asyncio
async def test_ensure_index_completes_missing_payload_indexes(index, factory):
    factory.client.collection_exists.return_value = True
    factory.client.get_collection.return_value = SimpleNamespace(
        payload_schema={"episodeId": object(), "episodeNo": object()}
    )

    await index.ensure_index("character-memory", 8)

    factory.client.create_collection.assert_not_called()
    fields = {call.kwargs["field_name"] for call in factory.client.create_payload_index.call_args_list}
    assert fields == set(_PAYLOAD_INDEXES) - {"episodeId", "episodeNo"}


@pytest.mark.asyncio
async def test_ensure_index_failure_raises_store_write_failure(index, factory):
    factory.client.collection_exists.return_value = True
    factory.client.get_collection.side_effect = RuntimeError("unavailable")

    with pytest.raises(StoreWriteFailure):
        await index.ensure_index("character-memory", 8)


@pytest.mark.asyncio
async def test_upsert_chunks_and_maps_ids(index, factory):
    ids = ["vec:e:v1:world:world:0", "vec:e:v1:world:world:1", "vec:e:v1:world:world:2"]

    await index.upsert("character-memory", ids, [[0.1] * 8] * 3, [_payload(i) for i in ids])

    assert factory.client.upsert.await_count == 2
    first_chunk = factory.client.upsert.call_args_list[0].kwargs["points"]
    assert [point.id for point in first_chunk] == [point_id_for(i) for i in ids[:2]]
    assert first_chunk[0].payload["vectorId"] == ids[0]
    assert factory.sessions == 1


@pytest.mark.asyncio
async def test_upsert_partial_failure_reports_written_ids(index, factory):
    ids = ["vec:e:v1:world:world:0", "vec:e:v1:world:world:1", "vec:e:v1:world:world:2"]
    factory.client.upsert.side_effect = [None, RuntimeError("connection reset")]

    with pytest.raises(StoreWriteFailure) as exc_info:
        await index.upsert("character-memory", ids, [[0.1] * 8] * 3, [_payload(i) for i in ids])

    assert exc_info.value.partial is True
    assert exc_info.value.written_ids == ids[:2]
    factory.client.close.assert_awaited()


@pytest.mark.asyncio
async def test_upsert_failure_on_first_chunk_is_not_partial(index, factory):
    factory.client.upsert.side_effect = RuntimeError("down")

    with pytest.raises(StoreWriteFailure) as exc_info:
        await index.upsert("character-memory", ["a"], [[0.1] * 8], [_payload("a")])

    assert exc_info.value.partial is False
    assert exc_info.value.written_ids == []


@pytest.mark.asyncio
async def test_query_maps_points_back_to_vector_ids(index, factory):
    point = SimpleNamespace(id="uuid", score=0.9, payload=_payload("vec:e:v1:world:world:0"), vector=None)
    factory.client.query_points.return_value = SimpleNamespace(points=[point])

    results = await index.query("character-memory", [0.1] * 8, top_k=3, filter=Eq("scope", "world"))

    assert results[0].id == "vec:e:v1:world:world:0"
    assert results[0].score == 0.9
    assert results[0].metadata.text == "A fact."
    kwargs = factory.client.query_points.call_args.kwargs
    assert kwargs["limit"] == 3
    assert isinstance(kwargs["query_filter"], Filter)


@pytest.mark.asyncio
async def test_query_failure_raises_store_query_failure(index, factory):
    factory.client.query_points.side_effect = RuntimeError("timeout")

    with pytest.raises(StoreQueryFailure):
        await index.query("character-memory", [0.1] * 8, top_k=3)


@pytest.mark.asyncio
async def test_delete_counts_matching_points(index, factory):
    factory.client.collection_exists.return_value = True
    factory.client.count.return_value = SimpleNamespace(count=4)

    deleted = await index.delete("character-memory", Eq("episodeId", "episode-1"))

    assert deleted == 4
    factory.client.delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_delete_missing_collection(index, factory):
    factory.client.collection_exists.return_value = False

    assert await index.delete("character-memory", Eq("episodeId", "episode-1")) == 0
    factory.client.delete.assert_not_called()
