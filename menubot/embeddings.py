"""OpenAI embeddings service."""

import numpy as np
from openai import AsyncOpenAI, OpenAIError

from .config import config
from .errors import EmbeddingFailure

logger = config.get_logger(__name__)


class EmbeddingService:
    """Handles OpenAI embeddings generation.

    Indexing and retrieval must share one instance (or at least one model) so
    that documents and queries live in the same embedding space.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        """Initialize the EmbeddingService with OpenAI API key and model.

        Args:
            api_key: OpenAI API key. If None,
                reads from OPENAI_API_KEY environment variable.
            model: Embedding model name. If None, uses config.EMBEDDING_MODEL.
        """
        api_key = api_key or config.get_openai_api_key()
        default_headers = config.get_api_headers()
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
            timeout=config.PROVIDER_TIMEOUT,
            max_retries=0,
        )
        self.model = model or config.EMBEDDING_MODEL

    async def get_embedding(self, text: str) -> np.ndarray:
        """Get embedding for a single text.

        Args:
            text: The input text to generate an embedding for.

        Returns:
            np.ndarray: The embedding vector for the input text.

        Raises:
            EmbeddingFailure: If the provider call fails or returns no vector.
        """
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=text,
            )
            embedding = np.array(response.data[0].embedding, dtype="float32")
        except (OpenAIError, IndexError) as exc:
            logger.exception("Error generating embedding")
            msg = f"Embedding provider failed: {exc}"
            raise EmbeddingFailure(msg) from exc
        else:
            return embedding

