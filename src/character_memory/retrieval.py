"""
Retrieval filter engine.

A character speaking during episode N may only recall:

    episodeNo <= N - 1
    AND (scope == "world" OR (scope == "character" AND characterId == <self>))

The cutoff is N - 1 because facts from episode N describe events the
character is living through right now, not something already remembered.
For N <= 1 nothing is visible; the filter is None and no query is issued.
"""

import logging
from typing import List, Optional

from character_memory.embeddings.batch import BatchEmbedder
from character_memory.errors import StoreQueryFailure
from character_memory.models import MemorySearchResult
from character_memory.storage.filters import And, Eq, FilterExpr, Lte, Or
from character_memory.storage.protocols import VectorIndexStore

logger = logging.getLogger(__name__)


def build_visibility_filter(character_id: Optional[str], cutoff: int) -> Optional[FilterExpr]:
    """
    Filter for facts up to and including episode `cutoff`.

    Without a character id only the temporal clause applies, which is
    meant for debugging and administration, never for a character.
    Returns None when cutoff < 1 (nothing can match).
    """
    if cutoff < 1:
        return None

    temporal = Lte("episodeNo", cutoff)
    if character_id is None:
        return And(temporal)

    return And(
        temporal,
        Or(
            Eq("scope", "world"),
            And(Eq("scope", "character"), Eq("characterId", character_id)),
        ),
    )


def build_filter(character_id: str, current_episode_no: int) -> Optional[FilterExpr]:
    """
    Knowledge-isolation filter for a character during an episode.

    Args:
        character_id: The character doing the recalling
        current_episode_no: Episode the character is currently in

    Returns:
        The filter, or None when current_episode_no <= 1
    """
    if not character_id:
        raise ValueError("character_id is required")
    return build_visibility_filter(character_id, current_episode_no - 1)


class MemoryRetriever:
    """Runs filtered similarity queries against one index."""

    def __init__(self, store: VectorIndexStore, embedder: BatchEmbedder, index_name: str):
        self.store = store
        self.embedder = embedder
        self.index_name = index_name

    async def search(
        self,
        query: str,
        character_id: str,
        current_episode_no: int,
        top_k: int = 10,
    ) -> List[MemorySearchResult]:
        """
        Recall the facts most similar to `query` that the character may know.

        Raises:
            ValueError: If top_k is less than 1
            EmbeddingFailure: If the query cannot be embedded
            StoreQueryFailure: If the store query fails
        """
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1 (got {top_k})")

        memory_filter = build_filter(character_id, current_episode_no)
        if memory_filter is None:
            logger.debug(
                f"No memories before episode {current_episode_no} for {character_id}; skipping query"
            )
            return []

        query_vector = await self.embedder.embed_query(query)
        results = await self.store.query(
            index_name=self.index_name,
            query_vector=query_vector,
            top_k=top_k,
            filter=memory_filter,
            include_vector=False,
        )

        logger.info(
            f"{len(results)} memories recalled for {character_id} "
            f"at episode {current_episode_no} (top_k={top_k})"
        )
        return results

    async def list_memories(
        self,
        up_to_episode_no: int,
        character_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[MemorySearchResult]:
        """
        List stored facts up to and including an episode, unranked.

        Intended for inspection: the cutoff is inclusive and character_id
        may be omitted to see every scope.
        """
        memory_filter = build_visibility_filter(character_id, up_to_episode_no)
        if memory_filter is None:
            return []

        try:
            results = await self.store.scroll(self.index_name, filter=memory_filter, limit=limit)
        except StoreQueryFailure:
            logger.error(f"Listing memories up to episode {up_to_episode_no} failed")
            raise

        return sorted(
            results, key=lambda result: (result.metadata.episode_no, result.metadata.fact_index)
        )
