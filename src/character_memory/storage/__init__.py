"""
Vector index storage for character memory.

Provides the protocol definition, the filter expression tree handed to
backends, and the backend implementations. The Qdrant backend is only
exported when qdrant-client is installed.
"""

from character_memory.storage.filters import And, Eq, FilterExpr, In, Lte, Not, Or, matches
from character_memory.storage.protocols import VectorIndexStore
from character_memory.storage.vector.memory import InMemoryVectorIndex

__all__ = [
    "VectorIndexStore",
    "InMemoryVectorIndex",
    # Filters
    "FilterExpr",
    "And",
    "Or",
    "Not",
    "Eq",
    "Lte",
    "In",
    "matches",
]

try:
    from character_memory.storage.vector.qdrant import QdrantVectorIndex  # noqa: F401

    __all__.append("QdrantVectorIndex")
except ImportError:
    pass
