"""Test configuration and fixtures for MenuBot tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- Service fixtures (embeddings, generator, speech)
- Vector store fixtures
- Catalog factories
- Orchestration helpers
"""

import hashlib
import json
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock, Mock, patch

import numpy as np
import pytest

from menubot.embeddings import EmbeddingService
from menubot.generator import Generator
from menubot.models import (
    AudioClip,
    Dish,
    Document,
    FlavorProfile,
    Ingredient,
    MainFlavor,
    Wine,
)
from menubot.speech import SpeechService
from menubot.vector_store import FaissVectorStore, SQLiteVectorStore


class TestConstants:
    """Centralized test constants to avoid repetition across test files."""

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_EMBEDDING_MODEL = "text-embedding-3-small"
    DEFAULT_EMBEDDING_DIMENSION = 384

    # Audio
    TEST_AUDIO_BYTES = b"ID3\x03\x00fake-mp3"


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash,
    ensuring consistent test results across runs.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        self.dimension = dimension
        self.calls: list[str] = []

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    async def get_embedding(self, text: str) -> np.ndarray:
        self.calls.append(text)
        return self.embed(text)


class FakeAnswerSource:
    """Scripted answer source for orchestrator tests.

    ``answers`` maps a question to its fragments; a value (or fragment) that
    is an exception instance is raised from the stream when reached.
    ``gates`` lets a test hold a stream open until an event is set.
    """

    def __init__(self) -> None:
        self.answers: dict[str, list[str | Exception] | Exception] = {}
        self.gates: dict[str, object] = {}
        self.speech: dict[str, AudioClip | Exception] = {}
        self.synthesized: list[str] = []

    async def answer_stream(self, question: str) -> AsyncIterator[str]:
        gate = self.gates.get(question)
        if gate is not None:
            await gate.wait()  # type: ignore[attr-defined]
        answer = self.answers.get(question, [])
        if isinstance(answer, Exception):
            raise answer
        for fragment in answer:
            if isinstance(fragment, Exception):
                raise fragment
            yield fragment

    async def synthesize(self, text: str) -> AudioClip:
        self.synthesized.append(text)
        result = self.speech.get(
            text, AudioClip(data=TestConstants.TEST_AUDIO_BYTES)
        )
        if isinstance(result, Exception):
            raise result
        return result


class StaticCatalogSource:
    """Catalog source returning a fixed list of records."""

    def __init__(self, records=None, error: Exception | None = None) -> None:
        self.records = list(records or [])
        self.error = error

    async def fetch_all(self):
        if self.error is not None:
            raise self.error
        return list(self.records)


def create_mock_embedding_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_stream_chunk(content: str | None) -> Mock:
    """Create one chunk of a streamed chat completion."""  # noqa: DOC201
    chunk = Mock()
    chunk.choices = [Mock(delta=Mock(content=content))]
    return chunk


class MockCompletionStream:
    """Async iterator standing in for an OpenAI completion stream.

    Items that are exceptions are raised when reached.
    """

    def __init__(self, items: list) -> None:
        self._items = list(items)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._items:
            raise StopAsyncIteration
        item = self._items.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def embedding_service_factory():
    """Factory for creating EmbeddingService instances with different configurations."""

    def _create_service(api_key=None, model=None):  # noqa: ANN202
        api_key = api_key or TestConstants.TEST_API_KEY
        if model is not None:
            return EmbeddingService(api_key=api_key, model=model)
        return EmbeddingService(api_key=api_key)

    return _create_service


@pytest.fixture
def embedding_service(embedding_service_factory):
    """Default EmbeddingService with test API key for most tests."""
    return embedding_service_factory()


@pytest.fixture
def embeddings_create_mock(embedding_service):
    """Patch the embeddings endpoint of the default service's client."""
    with patch.object(
        embedding_service.client.embeddings, "create", new_callable=AsyncMock
    ) as mock_create:
        yield mock_create


@pytest.fixture
def embedding_response_factory():
    return create_mock_embedding_response


@pytest.fixture
def generator():
    return Generator(api_key=TestConstants.TEST_API_KEY)


@pytest.fixture
def completion_stream_factory(generator):
    """Patch the generator's completions endpoint to return a scripted stream."""
    patches = []

    def _mock_stream(items=None, error: Exception | None = None):  # noqa: ANN202
        mock_create = AsyncMock()
        if error is not None:
            mock_create.side_effect = error
        else:
            mock_create.return_value = MockCompletionStream(items or [])
        patcher = patch.object(generator.client.chat.completions, "create", mock_create)
        patches.append(patcher)
        return patcher.start()

    yield _mock_stream

    for patcher in patches:
        patcher.stop()


@pytest.fixture
def speech_service():
    return SpeechService(api_key=TestConstants.TEST_API_KEY, response_format="mp3")


@pytest.fixture(scope="session")
def mock_embedding_service():
    """Pre-configured MockEmbeddingService for consistent test embeddings."""
    return MockEmbeddingService()


@pytest.fixture
def mock_embeddings(mock_embedding_service):
    """Factory function to create mock embeddings using the service."""

    def _create_mock_embedding(text: str) -> np.ndarray:
        return mock_embedding_service.embed(text)

    return _create_mock_embedding


@pytest.fixture
def temp_vector_store(tmp_path) -> SQLiteVectorStore:
    """Create temporary SQLite vector store for testing."""
    return SQLiteVectorStore(tmp_path / "test_store.db", tmp_path / "vectors")


@pytest.fixture
def temp_faiss_store(tmp_path) -> FaissVectorStore:
    """Create temporary FAISS vector store for testing."""
    return FaissVectorStore(
        db_path=tmp_path / "faiss_store.db",
        index_path=tmp_path / "faiss" / "index.faiss",
    )


@pytest.fixture(params=["faiss", "sqlite"])
def any_vector_store(request, tmp_path):
    """Each vector store backend, for contract tests."""
    if request.param == "faiss":
        return FaissVectorStore(
            db_path=tmp_path / "store.db",
            index_path=tmp_path / "faiss" / "index.faiss",
        )
    return SQLiteVectorStore(tmp_path / "store.db", tmp_path / "vectors")


@pytest.fixture
def document_factory():
    """Factory for documents with explicit embeddings."""

    def _create_document(content: str, embedding, source: str | None = None) -> Document:
        return Document(
            content=content,
            metadata={"source": source or f"dish:{content}", "kind": "dish", "name": content},
            embedding=np.asarray(embedding, dtype=np.float32),
        )

    return _create_document


@pytest.fixture
def garlic_chicken() -> Dish:
    return Dish(
        id=1,
        name="蒜味奶油雞",
        price=280,
        story="主廚的招牌菜",
        ingredients=(
            Ingredient(
                name="雞腿",
                story="在地放養雞",
                flavor_profiles=(FlavorProfile(index="1", remark="多汁"),),
            ),
            Ingredient(name="蒜頭", story=""),
        ),
    )


@pytest.fixture
def pinot_noir() -> Wine:
    return Wine(
        id=7,
        name="黑皮諾紅酒",
        price=1200.5,
        story=None,
        main_flavors=(
            MainFlavor(
                name="莓果",
                flavor_profiles=(
                    FlavorProfile(index="2", remark="覆盆子"),
                    FlavorProfile(index="3", remark="櫻桃"),
                ),
            ),
        ),
    )


@pytest.fixture
def sample_catalog_payload() -> dict:
    return {
        "dishes": [
            {
                "id": 1,
                "name": "蒜味奶油雞",
                "price": 280,
                "story": "主廚的招牌菜",
                "ingredients": [
                    {
                        "name": "雞腿",
                        "story": "在地放養雞",
                        "flavor_profiles": [
                            {"index": "1", "remark": "多汁"},
                            {"index": "", "remark": ""},
                        ],
                    },
                    {"name": "  ", "story": "ignored"},
                ],
            },
            {"id": 2, "name": "松露燉飯", "price": "360", "ingredients": []},
        ],
        "wines": [
            {
                "id": 7,
                "name": "黑皮諾紅酒",
                "price": 1200,
                "main_flavors": [
                    {
                        "name": "莓果",
                        "flavor_profiles": [{"index": "2", "remark": "覆盆子"}],
                    }
                ],
            },
            {"id": 8, "name": "白蘇維濃", "price": 900, "flavors": ["柑橘", " ", "青草"]},
        ],
    }


@pytest.fixture
def catalog_file_factory(tmp_path):
    """Write a catalog payload to a temporary JSON file."""

    def _write(payload, name: str = "catalog.json"):  # noqa: ANN202
        path = tmp_path / name
        path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def fake_answer_source() -> FakeAnswerSource:
    return FakeAnswerSource()
