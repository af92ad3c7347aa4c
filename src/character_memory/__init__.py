"""
character-memory: episodic, access-scoped memory for role-played characters.

Core components:
- extractors: LLM extraction of world/character-scoped facts from episodes
- embeddings: Embedding protocol, batch adapter and providers
- storage: Vector index protocol, filter expressions, in-memory and Qdrant backends
- pipeline: Extract -> embed -> upsert ingestion of one episode
- retrieval: Temporal + visibility filter and filtered similarity search
- agent: Character-bound recall capability for conversational loops
- models / identity: Fact data model and deterministic vector ids
"""

__version__ = "0.1.0"

from character_memory.agent import CharacterAgent
from character_memory.characters import DEFAULT_CHARACTERS, CharacterInfo, CharacterRegistry
from character_memory.errors import (
    CharacterMemoryError,
    ConfigurationError,
    EmbeddingFailure,
    ExtractionFailure,
    InvalidIngestRequest,
    StoreQueryFailure,
    StoreWriteFailure,
    UnknownCharacterError,
)
from character_memory.identity import derive_vector_id, get_index_name, parse_vector_id
from character_memory.memory_service import CharacterMemoryService
from character_memory.models import (
    EpisodeDelta,
    MemoryFact,
    MemorySearchResult,
    MemoryVectorMetadata,
    MemoryVectorRecord,
    RecalledMemory,
    RecallResult,
)
from character_memory.pipeline import IngestionPipeline, IngestionResult, IngestionStage
from character_memory.retrieval import MemoryRetriever, build_filter

__all__ = [
    "__version__",
    # Models
    "MemoryFact",
    "EpisodeDelta",
    "MemoryVectorMetadata",
    "MemoryVectorRecord",
    "MemorySearchResult",
    "RecalledMemory",
    "RecallResult",
    # Characters
    "CharacterInfo",
    "CharacterRegistry",
    "DEFAULT_CHARACTERS",
    # Identity
    "derive_vector_id",
    "parse_vector_id",
    "get_index_name",
    # Errors
    "CharacterMemoryError",
    "ExtractionFailure",
    "EmbeddingFailure",
    "StoreWriteFailure",
    "StoreQueryFailure",
    "ConfigurationError",
    "UnknownCharacterError",
    "InvalidIngestRequest",
    # Components
    "IngestionPipeline",
    "IngestionResult",
    "IngestionStage",
    "MemoryRetriever",
    "build_filter",
    "CharacterAgent",
    "CharacterMemoryService",
]
