"""Query-time retrieval of catalog documents."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

from .config import config
from .errors import SearchFailure

if TYPE_CHECKING:
    from .embeddings import EmbeddingService
    from .models import RetrievedChunk
    from .vector_store import VectorStore

logger = config.get_logger(__name__)

CONTEXT_SEPARATOR = "\n---\n"
NO_CONTEXT_MARKER = "No relevant context found."


class Retriever:
    """Embeds a query and asks the vector store for the closest documents."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        match_threshold: float | None = None,
        match_count: int | None = None,
    ) -> None:
        """Initialize the retriever.

        Args:
            embedding_service: Must be the service used at indexing time.
            vector_store: Store to search.
            match_threshold: Minimum cosine similarity. If None, uses
                config.MATCH_THRESHOLD.
            match_count: Maximum number of results. If None, uses
                config.MATCH_COUNT.
        """
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.match_threshold = (
            config.MATCH_THRESHOLD if match_threshold is None else match_threshold
        )
        self.match_count = config.MATCH_COUNT if match_count is None else match_count

    async def retrieve(self, query: str) -> list[RetrievedChunk]:
        """Return stored documents similar to ``query``, most similar first.

        Raises:
            EmbeddingFailure: If the query cannot be embedded.
            SearchFailure: If the vector store search fails.
        """  # noqa: DOC201
        query_embedding = await self.embedding_service.get_embedding(query)

        try:
            chunks = self.vector_store.match_documents(
                query_embedding,
                match_threshold=self.match_threshold,
                match_count=self.match_count,
            )
        except (sqlite3.Error, RuntimeError, ValueError) as exc:
            logger.exception("Similarity search failed")
            msg = f"Similarity search failed: {exc}"
            raise SearchFailure(msg) from exc

        logger.info(
            "Retrieved %d documents for query (threshold %.2f)",
            len(chunks),
            self.match_threshold,
        )
        for i, chunk in enumerate(chunks):
            logger.debug(
                "  Context %d: %s (score: %.4f)",
                i + 1,
                chunk.document.metadata.get("source"),
                chunk.similarity,
            )
        return chunks

    @staticmethod
    def build_context(chunks: list[RetrievedChunk]) -> str:
        """Join chunk contents in retrieval order.

        Returns:
            The context block, or a fixed marker when nothing matched.
        """
        if not chunks:
            return NO_CONTEXT_MARKER
        return CONTEXT_SEPARATOR.join(chunk.document.content for chunk in chunks)
