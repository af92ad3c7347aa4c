"""
Text embedding abstractions for character-memory.

Provides the embedding protocol, the batch adapter used by ingestion and
recall, and model-specific providers:
- OpenAIEmbedding: OpenAI API embeddings
- E5Embedding: local E5 models via sentence-transformers
"""

from character_memory.embeddings.batch import BatchEmbedder
from character_memory.embeddings.protocol import TextEmbedding

__all__ = [
    "TextEmbedding",
    "BatchEmbedder",
]

# Optional providers (import only if dependencies available)
try:
    from character_memory.embeddings.openai_embedding import OpenAIEmbedding  # noqa: F401

    __all__.append("OpenAIEmbedding")
except ImportError:
    pass

try:
    from character_memory.embeddings.e5_embedding import E5Embedding  # noqa: F401

    __all__.append("E5Embedding")
except ImportError:
    pass
