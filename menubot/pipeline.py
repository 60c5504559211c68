"""Main RAG pipeline wiring indexing, retrieval, generation and speech."""

from collections.abc import AsyncIterator
from pathlib import Path
from typing import cast

from .catalog import CatalogLoader
from .config import config
from .embeddings import EmbeddingService
from .generator import Generator
from .indexer import CatalogSource, Indexer
from .models import AudioClip, IndexResult, RetrievedChunk
from .retriever import Retriever
from .speech import SpeechService
from .vector_store import VectorBackend, get_vector_store

logger = config.get_logger(__name__)


class RAGPipeline:
    """Catalog -> Embed -> Store at index time; Embed -> Match -> Generate at query time."""

    def __init__(  # noqa: PLR0913,PLR0917
        self,
        openai_api_key: str | None = None,
        catalog_source: CatalogSource | None = None,
        sqlite_db_path: Path | None = None,
        vectors_dir: Path | None = None,
        vector_backend: str | None = None,
        faiss_index_path: Path | None = None,
        match_threshold: float | None = None,
        match_count: int | None = None,
    ) -> None:
        """Initialize RAG pipeline with configurable vector storage.

        Args:
            openai_api_key: OpenAI API key.
            catalog_source: Where catalog records come from. If None, reads
                the JSON file at config.CATALOG_PATH.
            sqlite_db_path: Path for SQLite database/metadata. If None, uses
                config.VECTOR_STORE_DB_PATH.
            vectors_dir: Directory for numpy vector files (SQLite backend).
                If None, uses config.VECTOR_STORE_DIR.
            vector_backend: Which vector store backend to use ("faiss" | "sqlite").
                Defaults to config.VECTOR_BACKEND.
            faiss_index_path: Path to FAISS index file. If None, uses
                config.FAISS_INDEX_PATH.
            match_threshold: Similarity threshold override.
            match_count: Result cap override.
        """
        backend_value = (
            vector_backend if vector_backend is not None else config.VECTOR_BACKEND
        )
        backend = cast("VectorBackend", backend_value.lower())

        self.embedding_service = EmbeddingService(api_key=openai_api_key)
        self.vector_store = get_vector_store(
            backend,
            db_path=sqlite_db_path,
            vectors_dir=vectors_dir,
            index_path=faiss_index_path,
        )
        self.vector_backend = getattr(self.vector_store, "backend", backend)
        logger.info("Using %s vector storage", self.vector_backend)

        self.vector_store.load()

        self.indexer = Indexer(
            source=catalog_source or CatalogLoader(),
            embedding_service=self.embedding_service,
            vector_store=self.vector_store,
        )
        self.retriever = Retriever(
            self.embedding_service,
            self.vector_store,
            match_threshold=match_threshold,
            match_count=match_count,
        )
        self.generator = Generator(api_key=openai_api_key)
        self.speech_service = SpeechService(api_key=openai_api_key)

    async def reindex(self) -> IndexResult:
        """Rebuild the knowledge base from the catalog."""  # noqa: DOC201
        return await self.indexer.reindex()

    async def query(self, question: str) -> list[RetrievedChunk]:
        """Retrieve the documents relevant to ``question``."""  # noqa: DOC201
        logger.info("Processing query: %s", question)
        return await self.retriever.retrieve(question)

    async def open_answer_stream(self, question: str) -> AsyncIterator[str]:
        """Run retrieval now and return the not-yet-started answer stream.

        Retrieval errors surface here, before any fragment is produced.

        Returns:
            Lazy fragment iterator for the grounded answer.
        """
        chunks = await self.query(question)
        context = self.retriever.build_context(chunks)
        return self.generator.generate(context, question)

    async def answer_stream(self, question: str) -> AsyncIterator[str]:
        """Yield the grounded answer fragment by fragment."""  # noqa: DOC402
        stream = await self.open_answer_stream(question)
        async for fragment in stream:
            yield fragment

    async def synthesize(self, text: str) -> AudioClip:
        """Synthesize speech for a final answer text."""  # noqa: DOC201
        return await self.speech_service.synthesize(text)
