"""Vector store adapters and factory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Protocol

from menubot.config import config

from .faiss_store import FaissVectorStore
from .sqlite_store import SQLiteVectorStore

if TYPE_CHECKING:
    from pathlib import Path

    import numpy as np

    from menubot.models import Document, RetrievedChunk

VectorBackend = Literal["faiss", "sqlite"]


class VectorStore(Protocol):
    """Contract the indexer and retriever rely on."""

    backend: str

    def clear(self) -> None: ...

    def add_documents(self, documents: list[Document]) -> None: ...

    def match_documents(
        self,
        query_embedding: np.ndarray,
        match_threshold: float,
        match_count: int,
    ) -> list[RetrievedChunk]: ...

    def count(self) -> int: ...

    def save(self) -> None: ...

    def load(self) -> None: ...


def get_vector_store(
    store: VectorBackend = "faiss",
    *,
    db_path: Path | None = None,
    vectors_dir: Path | None = None,
    index_path: Path | None = None,
) -> FaissVectorStore | SQLiteVectorStore:
    """Return a configured vector store instance.

    Raises:
        ValueError: If an unsupported backend is requested.
    """
    if db_path is None:
        db_path = config.VECTOR_STORE_DB_PATH
    backend = store.lower()

    if backend == "faiss":
        return FaissVectorStore(
            db_path=db_path,
            index_path=(
                index_path if index_path is not None else config.FAISS_INDEX_PATH
            ),
        )

    if backend == "sqlite":
        return SQLiteVectorStore(
            db_path=db_path,
            vectors_dir=(
                vectors_dir if vectors_dir is not None else config.VECTOR_STORE_DIR
            ),
        )

    msg = f"Unsupported vector store backend: {store}"
    raise ValueError(msg)


__all__ = [
    "FaissVectorStore",
    "SQLiteVectorStore",
    "VectorBackend",
    "VectorStore",
    "get_vector_store",
]
