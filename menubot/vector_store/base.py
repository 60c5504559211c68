"""Shared helpers for SQLite-backed vector stores."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import numpy as np

from menubot.config import config
from menubot.models import Document, RetrievedChunk

logger = config.get_logger(__name__)

_DOCUMENT_COLUMNS = "id, source, kind, name, content, vector_file, created_at"


class BaseSQLiteStore:
    """Schema management and row helpers for stores keeping content in SQLite.

    Subclasses own the embeddings and implement ``clear``, ``add_documents``,
    ``match_documents``, ``save`` and ``load``.
    """

    backend = "base"

    def __init__(self, db_path: Path) -> None:
        """Initialize metadata store and ensure schema exists."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self.documents: list[Document] = []
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _create_tables(self) -> None:
        """Create the documents table if it doesn't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source TEXT,
                    kind TEXT,
                    name TEXT,
                    content TEXT NOT NULL,
                    vector_file TEXT,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_source ON documents(source)"
            )
            conn.commit()

    @staticmethod
    def _insert_document_row(
        cursor: sqlite3.Cursor,
        document: Document,
        *,
        vector_file: str | None,
    ) -> int:
        """Persist a document row.

        Raises:
            RuntimeError: If the row cannot be inserted.

        Returns:
            Row id assigned by SQLite.
        """
        metadata = document.metadata
        cursor.execute(
            """
            INSERT INTO documents (source, kind, name, content, vector_file)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                metadata.get("source"),
                metadata.get("kind"),
                metadata.get("name"),
                document.content,
                vector_file,
            ),
        )
        row_id = cursor.lastrowid
        if row_id is None:
            msg = "Failed to insert document row"
            raise RuntimeError(msg)
        return int(row_id)

    @staticmethod
    def _build_document_from_row(
        row: tuple,
        *,
        embedding: np.ndarray | None = None,
    ) -> Document:
        """Create a Document from a table row.

        Returns:
            Document hydrated with metadata and optional embedding.
        """
        doc_id, source, kind, name, content, vector_file, created_at = row
        metadata: dict[str, Any] = {
            "source": source,
            "kind": kind,
            "name": name,
            "vector_file": vector_file,
            "created_at": created_at,
        }
        return Document(
            content=content,
            metadata=metadata,
            embedding=embedding,
            id=int(doc_id),
        )

    def _fetch_document(self, cursor: sqlite3.Cursor, doc_id: int) -> Document | None:
        """Fetch a document by row id.

        Returns:
            Document if found; otherwise None.
        """
        cursor.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?",  # noqa: S608
            (int(doc_id),),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._build_document_from_row(row)

    def _fetch_all_rows(self) -> list[tuple]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY id"  # noqa: S608
            )
            return cursor.fetchall()

    def _delete_all_rows(self) -> int:
        """Delete every document row.

        Returns:
            Number of rows removed.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM documents")
            deleted = cursor.rowcount
            conn.commit()
        return deleted

    def count(self) -> int:
        """Return the number of stored documents."""  # noqa: DOC201
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM documents")
            return int(cursor.fetchone()[0])

    def list_documents(self) -> list[Document]:
        """Return every stored document in insertion order, without embeddings."""  # noqa: DOC201
        return [self._build_document_from_row(row) for row in self._fetch_all_rows()]

    @staticmethod
    def _rank(
        candidates: list[RetrievedChunk],
        match_threshold: float,
        match_count: int,
    ) -> list[RetrievedChunk]:
        """Apply the similarity-search contract to scored candidates.

        Returns:
            Candidates with similarity >= threshold, descending, at most
            ``match_count`` long.
        """
        kept = [c for c in candidates if c.similarity >= match_threshold]
        kept.sort(key=lambda c: c.similarity, reverse=True)
        return kept[: max(0, match_count)]
