"""FAISS-backed vector storage with SQLite metadata."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import faiss
import numpy as np

from menubot.config import config
from menubot.models import RetrievedChunk
from menubot.vector_store.base import BaseSQLiteStore

if TYPE_CHECKING:
    from menubot.models import Document

logger = config.get_logger(__name__)


class FaissVectorStore(BaseSQLiteStore):
    """Vector storage using FAISS for embeddings and SQLite for content.

    Vectors are L2-normalized and searched by inner product, so scores are
    cosine similarities. FAISS ids are the SQLite row ids.
    """

    backend = "faiss"

    def __init__(
        self,
        db_path: Path = Path("data/vector_store.db"),
        index_path: Path = Path("data/faiss/index.faiss"),
    ) -> None:
        """Configure FAISS-backed vector store."""
        self.index_path = Path(index_path)
        self.index_path.parent.mkdir(exist_ok=True, parents=True)

        self.index: faiss.IndexIDMap | None = None

        super().__init__(db_path)

    @staticmethod
    def _normalize_embedding(embedding: np.ndarray) -> np.ndarray:
        """Normalize embedding for cosine similarity using inner product search.

        Returns:
            Normalized embedding vector.
        """
        vector = np.array(embedding, dtype="float32").reshape(1, -1)
        if np.linalg.norm(vector) == 0:
            return vector[0]
        faiss.normalize_L2(vector)
        return vector[0]

    def _init_index(self, dimension: int) -> None:
        """Initialize FAISS index if missing."""
        base_index = faiss.IndexFlatIP(dimension)
        self.index = faiss.IndexIDMap(base_index)
        logger.info("Initialized FAISS IndexIDMap with dimension %d", dimension)

    def clear(self) -> None:
        """Delete every document and drop the index, in memory and on disk."""
        deleted = self._delete_all_rows()
        self.index = None
        self.documents = []
        if self.index_path.exists():
            self.index_path.unlink()
        logger.info("Cleared FAISS vector store (%d documents removed)", deleted)

    def add_documents(self, documents: list[Document]) -> None:
        """Add documents and embeddings to FAISS index and metadata store.

        Raises:
            ValueError: If a document has no embedding or its dimension
                mismatches the index.
        """
        if not documents:
            return

        embeddings_batch: list[np.ndarray] = []
        vector_ids: list[int] = []

        with self._connect() as conn:
            cursor = conn.cursor()

            for document in documents:
                if document.embedding is None:
                    msg = f"Document {document.metadata.get('source')} has no embedding"
                    raise ValueError(msg)

                embedding = self._normalize_embedding(document.embedding)
                if self.index is None:
                    self._init_index(embedding.shape[0])
                elif embedding.shape[0] != self.index.d:
                    msg = (
                        f"Embedding dimension {embedding.shape[0]} does not match "
                        f"FAISS index dimension {self.index.d}"
                    )
                    raise ValueError(msg)

                document.id = self._insert_document_row(
                    cursor, document, vector_file=None
                )
                embeddings_batch.append(embedding)
                vector_ids.append(document.id)

            conn.commit()

        vectors = np.vstack(embeddings_batch).astype("float32")
        ids_array = np.asarray(vector_ids, dtype="int64")
        self.index.add_with_ids(vectors, ids_array)  # pyright: ignore[reportCallIssue, reportOptionalMemberAccess]
        self.documents.extend(documents)
        logger.info("Added %d vectors to FAISS index", len(vector_ids))

    def match_documents(
        self,
        query_embedding: np.ndarray,
        match_threshold: float,
        match_count: int,
    ) -> list[RetrievedChunk]:
        """Search similar documents using the FAISS index.

        Returns:
            Documents with similarity >= ``match_threshold``, most similar
            first, at most ``match_count`` of them.
        """
        index = self.index
        if index is None or index.ntotal == 0 or match_count <= 0:
            return []

        normalized_query = self._normalize_embedding(query_embedding)
        top_k = min(match_count, index.ntotal)
        scores, vector_ids = index.search(
            normalized_query.reshape(1, -1),
            top_k,
        )  # pyright: ignore[reportCallIssue]

        candidates: list[RetrievedChunk] = []
        with self._connect() as conn:
            cursor = conn.cursor()
            for score, vector_id in zip(scores[0], vector_ids[0], strict=True):
                if int(vector_id) == -1:  # faiss returns -1 for empty results
                    continue
                document = self._fetch_document(cursor, int(vector_id))
                if document:
                    candidates.append(RetrievedChunk(document, float(score)))

        return self._rank(candidates, match_threshold, match_count)

    def save(self) -> None:
        """Persist FAISS index to disk."""
        index = self.index
        if index is None:
            logger.warning("No FAISS index to save")
            return

        self.index_path.parent.mkdir(exist_ok=True, parents=True)
        faiss.write_index(index, str(self.index_path))
        logger.info("Saved FAISS index to %s", self.index_path)

    def load(self) -> None:
        """Load documents and the FAISS index from disk."""
        if self.index_path.exists():
            loaded_index = faiss.read_index(str(self.index_path))
            if not isinstance(loaded_index, (faiss.IndexIDMap, faiss.IndexIDMap2)):
                logger.warning(
                    "Loaded FAISS index is %s; wrapping with IndexIDMap to enable IDs",
                    type(loaded_index).__name__,
                )
                loaded_index = faiss.IndexIDMap(loaded_index)
            self.index = loaded_index
            logger.info(
                "Loaded FAISS index from %s with %d vectors",
                self.index_path,
                loaded_index.ntotal,
            )
        else:
            logger.warning(
                "FAISS index not found at %s. Start with an empty index.",
                self.index_path,
            )
            self.index = None

        self.documents = self.list_documents()
        logger.info("Loaded %d documents from metadata store", len(self.documents))
