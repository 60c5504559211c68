"""Indexing pipeline: catalog records -> rendered, embedded documents."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Protocol

from .catalog import ContentRenderer
from .config import config
from .errors import StoreWriteFailure
from .models import CatalogRecord, Document, IndexResult

if TYPE_CHECKING:
    from .embeddings import EmbeddingService
    from .vector_store import VectorStore

logger = config.get_logger(__name__)


class CatalogSource(Protocol):
    async def fetch_all(self) -> list[CatalogRecord]: ...


class Indexer:
    """Replaces the vector store contents with the image of the catalog.

    The store is cleared before the first insert, so a failure part-way leaves
    a subset of records indexed rather than a mix of old and new documents.
    Re-running always converges to the correct state.
    """

    def __init__(
        self,
        source: CatalogSource,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        renderer: type[ContentRenderer] = ContentRenderer,
    ) -> None:
        self.source = source
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.renderer = renderer

    async def reindex(self) -> IndexResult:
        """Rebuild the document set from the current catalog.

        Returns:
            IndexResult with the number of documents written.

        Raises:
            SourceUnavailable: If the catalog cannot be read; the store is untouched.
            EmbeddingFailure: If a record cannot be embedded.
            StoreWriteFailure: If clearing or inserting fails.
        """
        records = await self.source.fetch_all()
        if not records:
            logger.warning("Catalog is empty; leaving the vector store untouched")
            return IndexResult(count=0)

        logger.info("Reindexing %d catalog records", len(records))
        self._write(self.vector_store.clear)

        written = 0
        try:
            for record in records:
                content = self.renderer.render(record)
                embedding = await self.embedding_service.get_embedding(content)
                document = Document(
                    content=content,
                    metadata={
                        "source": f"{record.kind}:{record.id}",
                        "kind": record.kind,
                        "name": record.name,
                    },
                    embedding=embedding,
                )
                self._write(self.vector_store.add_documents, [document])
                written += 1
        except Exception:
            logger.warning(
                "Indexing stopped after %d of %d catalog records", written, len(records)
            )
            self._save_partial()
            raise

        self._write(self.vector_store.save)
        logger.info("Indexed %d of %d catalog records", written, len(records))
        return IndexResult(count=written)

    def _save_partial(self) -> None:
        """Persist what was written before a failure without masking it."""
        try:
            self.vector_store.save()
        except (sqlite3.Error, OSError, RuntimeError, ValueError):
            logger.exception("Could not save the partially indexed store")

    @staticmethod
    def _write(operation, *args) -> None:  # noqa: ANN001
        try:
            operation(*args)
        except (sqlite3.Error, OSError, RuntimeError, ValueError) as exc:
            logger.exception("Vector store write failed")
            msg = f"Vector store write failed: {exc}"
            raise StoreWriteFailure(msg) from exc
