"""E5 embedding adapter for character-memory."""

import asyncio
import logging
from typing import List, Optional

logger = logging.getLogger(__name__)


class E5Embedding:
    """
    Local embeddings with the E5 model family (sentence-transformers).

    E5 models expect a "passage: " prefix on stored texts and a "query: "
    prefix on searches; the adapter adds them. Encoding is CPU/GPU bound,
    so it runs in a worker thread to keep the event loop free.

    intfloat/multilingual-e5-large (1024 dims) is the default since story
    text is not necessarily English and 1024 matches the default index.
    """

    def __init__(
        self,
        model_name: str = "intfloat/multilingual-e5-large",
        device: Optional[str] = None,
        normalize_embeddings: bool = True,
        cache_folder: Optional[str] = None,
    ):
        """
        Args:
            model_name: HuggingFace model identifier
            device: "cuda", "cpu", or None for auto
            normalize_embeddings: L2 normalize vectors (cosine similarity)
            cache_folder: Directory for model cache (None = default ~/.cache)
        """
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ImportError(
                "sentence-transformers is required for E5Embedding. "
                "Install with: pip install character-memory[embeddings-transformers]"
            ) from e

        self._model_name = model_name
        self._normalize = normalize_embeddings

        logger.info(f"Loading E5 model: {model_name}")
        self._model = SentenceTransformer(model_name, device=device, cache_folder=cache_folder)
        self._dimension = self._model.get_sentence_embedding_dimension()
        logger.info(f"Model loaded: {model_name} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name

    async def _encode(self, prefix: str, texts: List[str], batch_size: int) -> List[List[float]]:
        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty text")

        embeddings = await asyncio.to_thread(
            self._model.encode,
            [f"{prefix}{text}" for text in texts],
            normalize_embeddings=self._normalize,
            show_progress_bar=False,
            batch_size=batch_size,
        )
        return embeddings.tolist()

    async def embed_document(self, text: str) -> List[float]:
        return (await self._encode("passage: ", [text], 1))[0]

    async def embed_query(self, text: str) -> List[float]:
        return (await self._encode("query: ", [text], 1))[0]

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        if not texts:
            return []
        return await self._encode("passage: ", texts, batch_size)

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        if not texts:
            return []
        return await self._encode("query: ", texts, batch_size)
