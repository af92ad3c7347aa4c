"""
Episode ingestion pipeline.

Runs one episode version through extract -> embed -> upsert:

    EXTRACTING -> EMBEDDING -> UPSERTING -> DONE
    FAILED(stage) from any stage

An episode that yields no facts goes straight to DONE without touching the
embedding service or the store. Vector ids are derived from the fact
position, so running the same episode version twice overwrites in place.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Dict, List, Optional, Sequence, TypeVar

from character_memory.embeddings.batch import BatchEmbedder
from character_memory.errors import (
    CharacterMemoryError,
    EmbeddingFailure,
    ExtractionFailure,
    StoreWriteFailure,
)
from character_memory.extractors.base import EpisodeExtracter
from character_memory.identity import DEFAULT_INDEX_NAME, get_index_name
from character_memory.models import EpisodeDelta, MemoryVectorMetadata
from character_memory.storage.filters import And, Eq, FilterExpr, In, Not
from character_memory.storage.protocols import VectorIndexStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IngestionStage(str, Enum):
    EXTRACTING = "extracting"
    EMBEDDING = "embedding"
    UPSERTING = "upserting"
    DONE = "done"
    FAILED = "failed"


_STAGE_ERRORS = {
    IngestionStage.EXTRACTING: ExtractionFailure,
    IngestionStage.EMBEDDING: EmbeddingFailure,
    IngestionStage.UPSERTING: StoreWriteFailure,
}


@dataclass
class IngestionResult:
    """
    Outcome of ingesting one episode version.

    Attributes:
        episode_id: Episode that was ingested
        episode_no: Narrative position of the episode
        version: Extraction version
        index_name: Index the facts were written to
        facts_count: Number of extracted facts
        vector_ids: Ids written, in fact order
        world_facts_count: Facts visible to every character
        character_facts_count: Facts private to one character
        purged_count: Stale records removed after the upsert (None if unknown)
        stage: Final stage, always DONE for a returned result
    """

    episode_id: str
    episode_no: int
    version: int
    index_name: str
    facts_count: int = 0
    vector_ids: List[str] = field(default_factory=list)
    world_facts_count: int = 0
    character_facts_count: int = 0
    purged_count: Optional[int] = 0
    stage: IngestionStage = IngestionStage.DONE

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["stage"] = self.stage.value
        return data


def episode_filter(episode_id: str, version: Optional[int] = None) -> FilterExpr:
    """Every record of an episode, optionally restricted to one version."""
    if version is None:
        return And(Eq("episodeId", episode_id))
    return And(Eq("episodeId", episode_id), Eq("version", version))


def stale_records_filter(episode_id: str, vector_ids: Sequence[str]) -> FilterExpr:
    """
    Records of an episode not rewritten by the ingestion that wrote `vector_ids`.

    Covers other versions, fact indices past a shorter re-extraction, and
    records whose fact changed scope or owner at the same position (their
    id changed, so the old id was not overwritten).
    """
    return And(Eq("episodeId", episode_id), Not(In("vectorId", vector_ids)))


class IngestionPipeline:
    """Orchestrates extraction, embedding and upsert for one episode at a time."""

    def __init__(
        self,
        extracter: EpisodeExtracter,
        embedder: BatchEmbedder,
        store: VectorIndexStore,
        index_name: str = DEFAULT_INDEX_NAME,
        purge_stale: bool = True,
    ):
        """
        Args:
            extracter: Produces the EpisodeDelta from raw text
            embedder: Batch embedder for fact texts
            store: Vector index the facts are written to
            index_name: Base index name; stories get their own derived index
            purge_stale: Remove records of the same episode that the upsert did
                not rewrite (other versions, dropped or reclassified facts)
        """
        self.extracter = extracter
        self.embedder = embedder
        self.store = store
        self.index_name = index_name
        self.purge_stale = purge_stale

    def index_for(self, story_id: Optional[str] = None) -> str:
        return get_index_name(story_id, base=self.index_name)

    async def _run_stage(self, stage: IngestionStage, episode_id: str, step: Awaitable[T]) -> T:
        logger.debug(f"Episode {episode_id}: {stage.value}")
        try:
            return await step
        except CharacterMemoryError as e:
            e.stage = stage.value
            logger.error(f"Episode {episode_id} failed while {stage.value}: {e}")
            raise
        except Exception as e:
            logger.error(f"Episode {episode_id} failed while {stage.value}: {e}")
            raise _STAGE_ERRORS[stage](
                f"Episode {episode_id} failed while {stage.value}: {e}", stage=stage.value
            ) from e

    async def ingest(
        self,
        episode_id: str,
        episode_no: int,
        episode_text: str,
        version: int = 1,
        story_id: Optional[str] = None,
    ) -> IngestionResult:
        """
        Ingest one episode version.

        Args:
            episode_id: Stable external episode id
            episode_no: Narrative order of the episode (>= 1)
            episode_text: Raw episode text
            version: Extraction version (>= 1)
            story_id: Optional story; selects the index

        Returns:
            IngestionResult in stage DONE

        Raises:
            ExtractionFailure, EmbeddingFailure, StoreWriteFailure: with
                `stage` set to the stage that failed. Nothing is retried.
        """
        started = time.monotonic()
        index_name = self.index_for(story_id)

        delta: EpisodeDelta = await self._run_stage(
            IngestionStage.EXTRACTING,
            episode_id,
            self.extracter.extract(episode_text, episode_id, episode_no, version),
        )

        result = IngestionResult(
            episode_id=delta.episode_id,
            episode_no=delta.episode_no,
            version=delta.version,
            index_name=index_name,
            facts_count=len(delta.facts),
            world_facts_count=len(delta.world_facts),
            character_facts_count=len(delta.character_facts),
        )

        if not delta.facts:
            logger.info(f"Episode {episode_id} v{version} yielded no facts; nothing to store")
            return result

        vectors = await self._run_stage(
            IngestionStage.EMBEDDING,
            episode_id,
            self.embedder.embed_batch([fact.text for fact in delta.facts]),
        )

        metadata = [
            MemoryVectorMetadata.from_fact(delta, fact, index)
            for index, fact in enumerate(delta.facts)
        ]
        vector_ids = [item.vector_id for item in metadata]

        purged = await self._run_stage(
            IngestionStage.UPSERTING,
            episode_id,
            self._write(index_name, delta, vector_ids, vectors, metadata),
        )

        result.vector_ids = vector_ids
        result.purged_count = purged
        logger.info(
            f"Ingested episode {episode_id} v{delta.version} into {index_name}: "
            f"{result.facts_count} facts, {len(vector_ids)} vectors, "
            f"{result.purged_count} stale removed in {time.monotonic() - started:.2f}s"
        )
        return result

    async def _write(
        self,
        index_name: str,
        delta: EpisodeDelta,
        vector_ids: List[str],
        vectors: List[List[float]],
        metadata: List[MemoryVectorMetadata],
    ) -> Optional[int]:
        await self.store.ensure_index(index_name, self.embedder.dimension, "cosine")
        await self.store.upsert(
            index_name=index_name,
            ids=vector_ids,
            vectors=vectors,
            metadata=[item.to_payload() for item in metadata],
        )

        if self.purge_stale:
            # New records land before old ones are removed
            return await self.store.delete(
                index_name, stale_records_filter(delta.episode_id, vector_ids)
            )
        return 0

    async def delete_episode(
        self,
        episode_id: str,
        version: Optional[int] = None,
        story_id: Optional[str] = None,
    ) -> Optional[int]:
        """
        Remove an episode's records, all versions or a single one.

        Returns:
            Number of deleted records if the store reports it

        Raises:
            StoreWriteFailure: If the delete fails
        """
        index_name = self.index_for(story_id)
        deleted = await self.store.delete(index_name, episode_filter(episode_id, version))
        logger.info(
            f"Deleted episode {episode_id}"
            f"{f' v{version}' if version is not None else ''} from {index_name}: {deleted} records"
        )
        return deleted
