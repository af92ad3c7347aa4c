"""Tests for the episode ingestion pipeline."""

from unittest.mock import AsyncMock

import pytest

from character_memory.errors import EmbeddingFailure, ExtractionFailure, StoreWriteFailure
from character_memory.models import MemoryFact
from character_memory.pipeline import (
    IngestionPipeline,
    IngestionStage,
    episode_filter,
    stale_records_filter,
)
from character_memory.retrieval import MemoryRetriever
from character_memory.storage.filters import And, Eq, In, Not

INDEX = "character-memory"


@pytest.fixture
def facts():
    return [
        MemoryFact(text="Alice runs the Blue Moon cafe.", scope="world", importance=4),
        MemoryFact(text="Alice is afraid of storms.", scope="character", character_id="alice", importance=3),
        MemoryFact(text="Bob is a detective.", scope="character", character_id="bob", importance=5),
    ]


@pytest.fixture
def pipeline(make_extracter, facts, embedder, vector_index):
    return IngestionPipeline(make_extracter(facts), embedder, vector_index, index_name=INDEX)


@pytest.mark.asyncio
async def test_ingest_writes_one_record_per_fact(pipeline, vector_index):
    result = await pipeline.ingest("episode-1", 1, "Episode text.")

    assert result.stage == IngestionStage.DONE
    assert result.facts_count == 3
    assert result.world_facts_count == 1
    assert result.character_facts_count == 2
    assert result.vector_ids == [
        "vec:episode-1:v1:world:world:0",
        "vec:episode-1:v1:character:alice:1",
        "vec:episode-1:v1:character:bob:2",
    ]
    assert vector_index.ids(INDEX) == sorted(result.vector_ids)

    records = await vector_index.scroll(INDEX)
    world = next(r for r in records if r.id == "vec:episode-1:v1:world:world:0")
    assert world.metadata.character_id == "world"
    assert world.metadata.text == "Alice runs the Blue Moon cafe."


@pytest.mark.asyncio
async def test_reingest_same_version_is_idempotent(pipeline, vector_index):
    await pipeline.ingest("episode-1", 1, "Episode text.")
    second = await pipeline.ingest("episode-1", 1, "Episode text.")

    assert vector_index.count(INDEX) == 3
    assert second.purged_count == 0


@pytest.mark.asyncio
async def test_new_version_supersedes_old(make_extracter, facts, embedder, vector_index):
    first = IngestionPipeline(make_extracter(facts), embedder, vector_index, index_name=INDEX)
    await first.ingest("episode-1", 1, "Episode text.")

    second = IngestionPipeline(make_extracter(facts[:1]), embedder, vector_index, index_name=INDEX)
    result = await second.ingest("episode-1", 1, "Episode text.", version=2)

    assert result.purged_count == 3
    assert vector_index.ids(INDEX) == ["vec:episode-1:v2:world:world:0"]


@pytest.mark.asyncio
async def test_shorter_reextraction_removes_surplus_indices(
    make_extracter, facts, embedder, vector_index
):
    await IngestionPipeline(make_extracter(facts), embedder, vector_index, index_name=INDEX).ingest(
        "episode-1", 1, "Episode text."
    )

    shorter = IngestionPipeline(make_extracter(facts[:2]), embedder, vector_index, index_name=INDEX)
    result = await shorter.ingest("episode-1", 1, "Episode text.")

    assert result.purged_count == 1
    assert vector_index.count(INDEX) == 2


@pytest.mark.asyncio
async def test_purge_can_be_disabled(make_extracter, facts, embedder, vector_index):
    await IngestionPipeline(make_extracter(facts), embedder, vector_index, index_name=INDEX).ingest(
        "episode-1", 1, "Episode text."
    )

    keep = IngestionPipeline(
        make_extracter(facts), embedder, vector_index, index_name=INDEX, purge_stale=False
    )
    result = await keep.ingest("episode-1", 1, "Episode text.", version=2)

    assert result.purged_count == 0
    assert vector_index.count(INDEX) == 6


@pytest.mark.asyncio
async def test_other_episodes_untouched_by_purge(facts, pipeline, vector_index):
    await pipeline.ingest("episode-1", 1, "Episode text.")
    await pipeline.ingest("episode-2", 2, "Episode text.", version=2)

    assert vector_index.count(INDEX) == 6


@pytest.mark.asyncio
async def test_same_version_reclassification_purges_old_scope(
    make_extracter, embedder, vector_index
):
    shared = [
        MemoryFact(text="Alice is a spy.", scope="world", importance=5),
        MemoryFact(text="The cafe is open.", scope="world", importance=2),
    ]
    await IngestionPipeline(make_extracter(shared), embedder, vector_index, index_name=INDEX).ingest(
        "episode-1", 1, "Episode text."
    )

    private = [
        MemoryFact(text="Alice is a spy.", scope="character", character_id="alice", importance=5),
        MemoryFact(text="The cafe is open.", scope="world", importance=2),
    ]
    result = await IngestionPipeline(
        make_extracter(private), embedder, vector_index, index_name=INDEX
    ).ingest("episode-1", 1, "Episode text.")

    assert result.purged_count == 1
    assert sorted(vector_index.ids(INDEX)) == sorted(result.vector_ids)
    assert "vec:episode-1:v1:world:world:0" not in vector_index.ids(INDEX)

    retriever = MemoryRetriever(vector_index, embedder, INDEX)
    bob = await retriever.search("spy", "bob", current_episode_no=2, top_k=10)
    alice = await retriever.search("spy", "alice", current_episode_no=2, top_k=10)
    assert [hit.text for hit in bob] == ["The cafe is open."]
    assert "Alice is a spy." in [hit.text for hit in alice]


@pytest.mark.asyncio
async def test_owner_change_at_same_index_purges_old_owner(make_extracter, embedder, vector_index):
    await IngestionPipeline(
        make_extracter(
            [MemoryFact(text="The key is hidden.", scope="character", character_id="bob", importance=3)]
        ),
        embedder,
        vector_index,
        index_name=INDEX,
    ).ingest("episode-1", 1, "Episode text.")

    result = await IngestionPipeline(
        make_extracter(
            [MemoryFact(text="The key is hidden.", scope="character", character_id="alice", importance=3)]
        ),
        embedder,
        vector_index,
        index_name=INDEX,
    ).ingest("episode-1", 1, "Episode text.")

    assert result.purged_count == 1
    assert vector_index.ids(INDEX) == ["vec:episode-1:v1:character:alice:0"]


@pytest.mark.asyncio
async def test_empty_extraction_short_circuits(make_extracter, embedder, fake_embedding):
    store = AsyncMock()
    pipeline = IngestionPipeline(make_extracter([]), embedder, store, index_name=INDEX)

    result = await pipeline.ingest("episode-1", 1, "Nothing happens.")

    assert result.stage == IngestionStage.DONE
    assert result.facts_count == 0
    assert result.vector_ids == []
    assert fake_embedding.document_calls == []
    store.ensure_index.assert_not_called()
    store.upsert.assert_not_called()


@pytest.mark.asyncio
async def test_extraction_failure_tagged_with_stage(make_extracter, embedder, vector_index):
    extracter = make_extracter()
    extracter.extract = AsyncMock(side_effect=ExtractionFailure("bad json"))
    pipeline = IngestionPipeline(extracter, embedder, vector_index, index_name=INDEX)

    with pytest.raises(ExtractionFailure) as exc_info:
        await pipeline.ingest("episode-1", 1, "Episode text.")

    assert exc_info.value.stage == "extracting"
    assert vector_index.count(INDEX) == 0


@pytest.mark.asyncio
async def test_unexpected_extracter_error_wrapped(make_extracter, embedder, vector_index):
    extracter = make_extracter()
    extracter.extract = AsyncMock(side_effect=KeyError("oops"))
    pipeline = IngestionPipeline(extracter, embedder, vector_index, index_name=INDEX)

    with pytest.raises(ExtractionFailure) as exc_info:
        await pipeline.ingest("episode-1", 1, "Episode text.")

    assert exc_info.value.stage == "extracting"


@pytest.mark.asyncio
async def test_embedding_failure_writes_nothing(make_extracter, facts, embedder, fake_embedding):
    fake_embedding.embed_documents = AsyncMock(side_effect=RuntimeError("quota"))
    store = AsyncMock()
    pipeline = IngestionPipeline(make_extracter(facts), embedder, store, index_name=INDEX)

    with pytest.raises(EmbeddingFailure) as exc_info:
        await pipeline.ingest("episode-1", 1, "Episode text.")

    assert exc_info.value.stage == "embedding"
    store.upsert.assert_not_called()


@pytest.mark.asyncio
async def test_store_failure_tagged_with_stage(make_extracter, facts, embedder):
    store = AsyncMock()
    store.upsert.side_effect = StoreWriteFailure("down", partial=True, written_ids=["x"])
    pipeline = IngestionPipeline(make_extracter(facts), embedder, store, index_name=INDEX)

    with pytest.raises(StoreWriteFailure) as exc_info:
        await pipeline.ingest("episode-1", 1, "Episode text.")

    assert exc_info.value.stage == "upserting"
    assert exc_info.value.partial is True
    store.delete.assert_not_called()


@pytest.mark.asyncio
async def test_story_selects_index(pipeline, vector_index):
    result = await pipeline.ingest("episode-1", 1, "Episode text.", story_id="Blue Moon")

    assert result.index_name == "character-memory-blue-moon"
    assert vector_index.count("character-memory-blue-moon") == 3
    assert vector_index.count(INDEX) == 0


@pytest.mark.asyncio
async def test_delete_episode(pipeline, vector_index):
    await pipeline.ingest("episode-1", 1, "Episode text.")
    await pipeline.ingest("episode-2", 2, "Episode text.")

    deleted = await pipeline.delete_episode("episode-1")

    assert deleted == 3
    assert all(vector_id.startswith("vec:episode-2:") for vector_id in vector_index.ids(INDEX))


@pytest.mark.asyncio
async def test_delete_single_version(pipeline, vector_index):
    await pipeline.ingest("episode-1", 1, "Episode text.")

    assert await pipeline.delete_episode("episode-1", version=2) == 0
    assert await pipeline.delete_episode("episode-1", version=1) == 3


def test_episode_filters():
    assert episode_filter("episode-1") == And(Eq("episodeId", "episode-1"))
    assert episode_filter("episode-1", 2) == And(Eq("episodeId", "episode-1"), Eq("version", 2))
    assert stale_records_filter("episode-1", ["vec:a", "vec:b"]) == And(
        Eq("episodeId", "episode-1"),
        Not(In("vectorId", ["vec:a", "vec:b"])),
    )


@pytest.mark.asyncio
async def test_result_to_dict(pipeline):
    result = await pipeline.ingest("episode-1", 1, "Episode text.")

    data = result.to_dict()

    assert data["stage"] == "done"
    assert data["facts_count"] == 3
    assert data["index_name"] == INDEX
