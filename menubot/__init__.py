"""MenuBot: retrieval-augmented menu assistant for dishes and wines."""

from .errors import (
    EmbeddingFailure,
    MenuBotError,
    ProviderFailure,
    SearchFailure,
    SourceUnavailable,
    StoreWriteFailure,
)
from .orchestrator import ResponseOrchestrator
from .pipeline import RAGPipeline
from .playback import PlaybackController

__all__ = [
    "EmbeddingFailure",
    "MenuBotError",
    "PlaybackController",
    "ProviderFailure",
    "RAGPipeline",
    "ResponseOrchestrator",
    "SearchFailure",
    "SourceUnavailable",
    "StoreWriteFailure",
]
