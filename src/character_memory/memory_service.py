import logging
from typing import Dict, Optional

from casual_llm import LLMProvider

from character_memory.agent import CharacterAgent
from character_memory.characters import DEFAULT_CHARACTERS, CharacterRegistry
from character_memory.config import MemorySettings
from character_memory.embeddings import BatchEmbedder, TextEmbedding
from character_memory.extractors import EpisodeExtracter, LLMEpisodeExtracter
from character_memory.identity import DEFAULT_INDEX_NAME, get_index_name
from character_memory.pipeline import IngestionPipeline, IngestionResult
from character_memory.retrieval import MemoryRetriever
from character_memory.storage import VectorIndexStore

logger = logging.getLogger(__name__)


class CharacterMemoryService:
    """
    Wires extraction, embedding, storage and retrieval together.

    Every collaborator is passed in explicitly; the service holds no
    process-wide state beyond what it was constructed with.
    """

    def __init__(
        self,
        store: VectorIndexStore,
        extracter: EpisodeExtracter,
        embedding: TextEmbedding,
        registry: CharacterRegistry = DEFAULT_CHARACTERS,
        index_name: str = DEFAULT_INDEX_NAME,
        default_top_k: int = 5,
        purge_stale: bool = True,
        embedding_dimension: Optional[int] = None,
    ):
        self.store = store
        self.registry = registry
        self.index_name = index_name
        self.default_top_k = default_top_k
        self.embedder = BatchEmbedder(embedding, dimension=embedding_dimension)
        self.pipeline = IngestionPipeline(
            extracter=extracter,
            embedder=self.embedder,
            store=store,
            index_name=index_name,
            purge_stale=purge_stale,
        )
        self._retrievers: Dict[str, MemoryRetriever] = {}

    @classmethod
    def from_settings(
        cls,
        settings: MemorySettings,
        llm_provider: LLMProvider,
        embedding: Optional[TextEmbedding] = None,
        registry: Optional[CharacterRegistry] = None,
    ) -> "CharacterMemoryService":
        """
        Build the production graph: Qdrant store, LLM extracter, OpenAI embeddings.

        Args:
            settings: Loaded settings (see config.load_settings)
            llm_provider: casual-llm provider used for extraction
            embedding: Embedding provider; OpenAI with the configured model
                and dimension when omitted
            registry: Character table; loaded from settings.characters_file,
                else the default characters
        """
        from character_memory.storage.vector.qdrant import QdrantVectorIndex

        if registry is None:
            registry = (
                CharacterRegistry.from_file(settings.characters_file)
                if settings.characters_file
                else DEFAULT_CHARACTERS
            )

        if embedding is None:
            from character_memory.embeddings.openai_embedding import OpenAIEmbedding

            embedding = OpenAIEmbedding(
                model=settings.embedding_model,
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                dimensions=settings.embedding_dimension,
            )

        store = QdrantVectorIndex(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            timeout=settings.qdrant_timeout,
            upsert_batch_size=settings.upsert_batch_size,
        )
        extracter = LLMEpisodeExtracter(
            llm_provider, registry, temperature=settings.extraction_temperature
        )

        logger.info(f"CharacterMemoryService configured with {len(registry)} characters")
        return cls(
            store=store,
            extracter=extracter,
            embedding=embedding,
            registry=registry,
            index_name=settings.index_name,
            default_top_k=settings.default_top_k,
            purge_stale=settings.purge_stale,
            embedding_dimension=settings.embedding_dimension,
        )

    async def ingest_episode(
        self,
        episode_id: str,
        episode_no: int,
        episode_text: str,
        version: int = 1,
        story_id: Optional[str] = None,
    ) -> IngestionResult:
        return await self.pipeline.ingest(episode_id, episode_no, episode_text, version, story_id)

    async def delete_episode(
        self, episode_id: str, version: Optional[int] = None, story_id: Optional[str] = None
    ) -> Optional[int]:
        return await self.pipeline.delete_episode(episode_id, version, story_id)

    def retriever(self, story_id: Optional[str] = None) -> MemoryRetriever:
        index_name = get_index_name(story_id, base=self.index_name)
        if index_name not in self._retrievers:
            self._retrievers[index_name] = MemoryRetriever(self.store, self.embedder, index_name)
        return self._retrievers[index_name]

    def agent(
        self,
        character_id: str,
        current_episode_no: int,
        story_id: Optional[str] = None,
        degrade_on_store_error: bool = False,
        include_scope: bool = False,
    ) -> CharacterAgent:
        """Character agent bound to a character and episode of a story."""
        return CharacterAgent(
            retriever=self.retriever(story_id),
            character_id=character_id,
            current_episode_no=current_episode_no,
            registry=self.registry,
            default_top_k=self.default_top_k,
            degrade_on_store_error=degrade_on_store_error,
            include_scope=include_scope,
        )

    async def close(self) -> None:
        await self.store.close()
