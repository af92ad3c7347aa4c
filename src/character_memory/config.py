"""
Settings for character-memory.

Read from CHARACTER_MEMORY_* environment variables (and a .env file when
present). The vector store location is required; load_settings() fails
fast with ConfigurationError before any work is accepted.
"""

import logging
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from character_memory.errors import ConfigurationError
from character_memory.identity import DEFAULT_INDEX_NAME

logger = logging.getLogger(__name__)


class MemorySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CHARACTER_MEMORY_", env_file=".env", extra="ignore"
    )

    # Vector store
    qdrant_url: Optional[str] = None
    qdrant_api_key: Optional[str] = None
    qdrant_timeout: int = 30
    index_name: str = DEFAULT_INDEX_NAME
    upsert_batch_size: int = Field(default=256, ge=1)

    # Embeddings
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = Field(default=1024, ge=1)
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None

    # Extraction / recall
    extraction_temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    default_top_k: int = Field(default=5, ge=1)
    purge_stale: bool = True
    characters_file: Optional[str] = None


def load_settings(**overrides) -> MemorySettings:
    """
    Load settings and check required values.

    Raises:
        ConfigurationError: If the store location is missing or a value is invalid
    """
    try:
        settings = MemorySettings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid character-memory settings: {e}") from e

    if not settings.qdrant_url:
        raise ConfigurationError(
            "CHARACTER_MEMORY_QDRANT_URL is required (vector store location)"
        )

    logger.info(f"Settings loaded: store={settings.qdrant_url}, index={settings.index_name}")
    return settings
