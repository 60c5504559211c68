"""SQLite-based vector storage with numpy file backend."""

from __future__ import annotations

from pathlib import Path

import numpy as np

from menubot.config import config
from menubot.models import Document, RetrievedChunk
from menubot.vector_store.base import BaseSQLiteStore

logger = config.get_logger(__name__)


class SQLiteVectorStore(BaseSQLiteStore):
    """Vector storage using SQLite for content and numpy files for embeddings."""

    backend = "sqlite"

    def __init__(
        self,
        db_path: Path = Path("data/vector_store.db"),
        vectors_dir: Path = Path("data/vectors"),
    ) -> None:
        """Initialize the SQLiteVectorStore with database and vector directory paths.

        Args:
            db_path: Path to the SQLite database file.
            vectors_dir: Directory to store numpy vector files.
        """
        self.vectors_dir = Path(vectors_dir)
        self.vectors_dir.mkdir(exist_ok=True, parents=True)

        self.embeddings: np.ndarray | None = None
        self._embedding_ids: list[int] = []

        super().__init__(db_path)

    def clear(self) -> None:
        """Delete every document row and vector file."""
        deleted = self._delete_all_rows()
        for vector_path in self.vectors_dir.glob("doc*.npy"):
            vector_path.unlink()
        self.documents = []
        self.embeddings = None
        self._embedding_ids = []
        logger.info("Cleared SQLite vector store (%d documents removed)", deleted)

    def add_documents(self, documents: list[Document]) -> None:
        """Add documents with embeddings to the store.

        Raises:
            ValueError: If a document has no embedding.
        """
        if not documents:
            return

        with self._connect() as conn:
            cursor = conn.cursor()

            for document in documents:
                if document.embedding is None:
                    msg = f"Document {document.metadata.get('source')} has no embedding"
                    raise ValueError(msg)

                document.id = self._insert_document_row(
                    cursor, document, vector_file=None
                )
                vector_filename = f"doc{document.id:06d}.npy"
                np.save(self.vectors_dir / vector_filename, document.embedding)
                cursor.execute(
                    "UPDATE documents SET vector_file = ? WHERE id = ?",
                    (vector_filename, document.id),
                )
                document.metadata["vector_file"] = vector_filename

            conn.commit()

        self.documents.extend(documents)
        self._rebuild_embeddings_matrix()

        logger.info("Added %d documents to SQLite vector store", len(documents))

    def _rebuild_embeddings_matrix(self) -> None:
        """Rebuild the embeddings matrix from individual vector files."""
        embeddings_list = []
        embedding_ids = []
        for document in self.list_documents():
            vector_file = document.metadata.get("vector_file")
            if not vector_file:
                continue
            vector_path = self.vectors_dir / vector_file
            if vector_path.exists():
                embeddings_list.append(np.load(vector_path))
                embedding_ids.append(document.id)
            else:
                logger.warning("Vector file not found: %s", vector_path)

        self.embeddings = np.vstack(embeddings_list) if embeddings_list else None
        self._embedding_ids = embedding_ids

        logger.info("Rebuilt embeddings matrix with %d vectors", len(embeddings_list))

    @staticmethod
    def cosine_similarity(
        query_embedding: np.ndarray,
        embeddings: np.ndarray,
    ) -> np.ndarray:
        """Calculate cosine similarity between query and document embeddings.

        Zero vectors score 0 against everything.

        Returns:
            np.ndarray: Array of cosine similarity scores
                    between the query and each document embedding.
        """
        query = np.asarray(query_embedding, dtype="float64")
        docs = np.asarray(embeddings, dtype="float64")
        query_norm = np.linalg.norm(query)
        doc_norms = np.linalg.norm(docs, axis=1)
        denominators = doc_norms * query_norm
        dots = docs @ query
        return np.divide(
            dots,
            denominators,
            out=np.zeros_like(dots),
            where=denominators != 0,
        )

    def match_documents(
        self,
        query_embedding: np.ndarray,
        match_threshold: float,
        match_count: int,
    ) -> list[RetrievedChunk]:
        """Search for similar documents based on query embedding.

        Returns:
            Documents with similarity >= ``match_threshold``, most similar
            first, at most ``match_count`` of them.
        """
        if self.embeddings is None:
            self._rebuild_embeddings_matrix()

        if self.embeddings is None or match_count <= 0:
            return []

        similarities = self.cosine_similarity(query_embedding, self.embeddings)
        top_indices = np.argsort(similarities)[::-1][:match_count]

        candidates = []
        with self._connect() as conn:
            cursor = conn.cursor()
            for idx in top_indices:
                score = float(similarities[idx])
                if score < match_threshold:
                    break
                document = self._fetch_document(cursor, self._embedding_ids[idx])
                if document:
                    logger.debug(
                        "Retrieved document %s with similarity %.4f",
                        document.metadata.get("source"),
                        score,
                    )
                    candidates.append(RetrievedChunk(document, score))

        return self._rank(candidates, match_threshold, match_count)

    def save(self) -> None:  # noqa: PLR6301
        """
        Save operation - data is already persisted in SQLite and files.

        Note:
            This method is kept as an instance method for interface consistency
            with other vector store implementations, even though it does not use `self`.
        """
        logger.info("Data already persisted in SQLite database and vector files")

    def load(self) -> None:
        """Load documents and their embeddings from disk."""
        self.documents = self.list_documents()
        self._rebuild_embeddings_matrix()
        logger.info("Loaded %d documents from SQLite vector store", len(self.documents))
