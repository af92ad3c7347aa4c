"""
Error taxonomy for character memory.

Every failure raised by the core is a CharacterMemoryError subclass so
callers (queue workers, HTTP handlers, agent loops) can tell the stages
apart and decide on their own retry policy. The core never retries.
"""

from typing import List, Optional


class CharacterMemoryError(Exception):
    """Base class for all character memory errors."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class ExtractionFailure(CharacterMemoryError):
    """LLM extraction errored or returned structurally invalid output."""


class EmbeddingFailure(CharacterMemoryError):
    """Embedding call errored or returned a mismatched batch."""


class StoreWriteFailure(CharacterMemoryError):
    """
    Upsert into the vector index failed.

    Attributes:
        partial: True when some records of the batch were written before
            the failure. Retrying the whole batch is safe either way since
            writes are keyed by deterministic vector ids.
        written_ids: Vector ids known to be written when partial is True
    """

    def __init__(
        self,
        message: str,
        partial: bool = False,
        written_ids: Optional[List[str]] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message, stage=stage)
        self.partial = partial
        self.written_ids = list(written_ids or [])


class StoreQueryFailure(CharacterMemoryError):
    """Similarity query or listing against the vector index failed."""


class ConfigurationError(CharacterMemoryError):
    """A required setting (e.g. the vector store location) is missing or invalid."""


class UnknownCharacterError(CharacterMemoryError, ValueError):
    """A character id is not part of the configured character table."""


class InvalidIngestRequest(CharacterMemoryError, ValueError):
    """An ingestion message could not be parsed or validated."""
