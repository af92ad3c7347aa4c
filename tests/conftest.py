"""Shared fixtures: deterministic fake collaborators and an in-memory index."""

from typing import List, Optional

import pytest

from character_memory.characters import CharacterInfo, CharacterRegistry
from character_memory.embeddings.batch import BatchEmbedder
from character_memory.models import EpisodeDelta, MemoryFact
from character_memory.storage.vector.memory import InMemoryVectorIndex

DIMENSION = 8


class FakeEmbedding:
    """Deterministic bag-of-characters embedding, never a zero vector."""

    def __init__(self, dimension: int = DIMENSION):
        self._dimension = dimension
        self.document_calls: List[List[str]] = []
        self.query_calls: List[str] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return "fake-embedding"

    def _vector(self, text: str) -> List[float]:
        vector = [1.0] * self._dimension
        for char in text.lower():
            vector[ord(char) % self._dimension] += 1.0
        return vector

    async def embed_document(self, text: str) -> List[float]:
        return self._vector(text)

    async def embed_query(self, text: str) -> List[float]:
        self.query_calls.append(text)
        return self._vector(text)

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        self.document_calls.append(list(texts))
        return [self._vector(text) for text in texts]

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return [self._vector(text) for text in texts]


class StaticExtracter:
    """Extracter returning a fixed fact list for every episode."""

    def __init__(self, facts: Optional[List[MemoryFact]] = None):
        self.facts = list(facts or [])
        self.calls = 0

    async def extract(
        self, episode_text: str, episode_id: str, episode_no: int, version: int = 1
    ) -> EpisodeDelta:
        self.calls += 1
        return EpisodeDelta(
            episode_id=episode_id, episode_no=episode_no, version=version, facts=self.facts
        )


@pytest.fixture
def registry():
    """Small character table used across tests."""
    return CharacterRegistry(
        [
            CharacterInfo(id="alice", name="Alice", description="Runs the cafe."),
            CharacterInfo(id="bob", name="Bob", description="A regular customer."),
        ]
    )


@pytest.fixture
def fake_embedding():
    return FakeEmbedding()


@pytest.fixture
def embedder(fake_embedding):
    return BatchEmbedder(fake_embedding)


@pytest.fixture
def vector_index():
    """Create a fresh in-memory vector index."""
    return InMemoryVectorIndex()


@pytest.fixture
def make_extracter():
    """Factory for StaticExtracter instances."""
    return StaticExtracter
