"""OpenAI embedding adapter for character-memory."""

import logging
import os
from typing import List, Optional

logger = logging.getLogger(__name__)

_DEFAULT_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbedding:
    """
    Embedding adapter using OpenAI's embedding API.

    The text-embedding-3 models accept a `dimensions` argument, which lets
    the index keep a fixed 1024-dimension layout regardless of model. Also
    works with OpenAI-compatible endpoints through base_url.

    Example:
        >>> embedder = OpenAIEmbedding(dimensions=1024, api_key="sk-...")
        >>> vectors = await embedder.embed_documents(["Misaki is Nigo's sister"])
        >>> len(vectors[0])
        1024
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = 1024,
        timeout: float = 30.0,
        max_retries: int = 3,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            model: OpenAI model name (default: text-embedding-3-small)
            api_key: OpenAI API key (None = use OPENAI_API_KEY env var)
            base_url: Custom endpoint for OpenAI-compatible APIs
            dimensions: Output dimension (text-embedding-3 models only); None
                keeps the model default
            timeout: Request timeout in seconds
            max_retries: Client-level retries for transient HTTP errors
        """
        try:
            from openai import AsyncOpenAI
        except ImportError as e:
            raise ImportError(
                "openai is required for OpenAIEmbedding. "
                "Install with: pip install character-memory[embeddings-openai]"
            ) from e

        if dimensions is None and model not in _DEFAULT_DIMENSIONS:
            raise ValueError(f"Unknown model {model}: pass dimensions explicitly")

        self._model = model
        self._dimensions = dimensions
        self._dimension = dimensions if dimensions is not None else _DEFAULT_DIMENSIONS[model]

        self._client = AsyncOpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

        logger.info(f"OpenAI embedder initialized: {model} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        kwargs = {"model": self._model, "input": texts}
        if self._dimensions is not None:
            kwargs["dimensions"] = self._dimensions

        response = await self._client.embeddings.create(**kwargs)
        # The API reports each item's input position; don't rely on list order
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]

    async def embed_document(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        return (await self._embed([text]))[0]

    async def embed_query(self, text: str) -> List[float]:
        # OpenAI models make no document/query distinction
        return await self.embed_document(text)

    async def embed_documents(self, texts: List[str], batch_size: int = 256) -> List[List[float]]:
        """
        Embed many texts, batch_size texts per request.

        Raises:
            ValueError: If any text is empty
            openai.OpenAIError: If an API request fails
        """
        if not texts:
            return []

        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty texts in batch")

        vectors: List[List[float]] = []
        for start in range(0, len(texts), batch_size):
            vectors.extend(await self._embed(texts[start : start + batch_size]))
        return vectors

    async def embed_queries(self, texts: List[str], batch_size: int = 256) -> List[List[float]]:
        return await self.embed_documents(texts, batch_size=batch_size)
