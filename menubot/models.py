"""Data models for the menu assistant."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

import numpy as np

MAX_FLAVOR_PROFILES = 6


@dataclass(frozen=True)
class FlavorProfile:
    """One indexed tasting remark attached to an ingredient or a main flavor."""

    index: str
    remark: str

    def is_blank(self) -> bool:
        return not self.index.strip() and not self.remark.strip()


@dataclass(frozen=True)
class Ingredient:
    """An ingredient of a dish."""

    name: str
    story: str = ""
    flavor_profiles: tuple[FlavorProfile, ...] = ()


@dataclass(frozen=True)
class MainFlavor:
    """A main flavor of a wine."""

    name: str
    flavor_profiles: tuple[FlavorProfile, ...] = ()


@dataclass(frozen=True)
class Dish:
    """Catalog record for a dish."""

    id: int
    name: str
    price: float
    story: str | None = None
    in_stock: bool = True
    ingredients: tuple[Ingredient, ...] = ()
    kind: Literal["dish"] = "dish"


@dataclass(frozen=True)
class Wine:
    """Catalog record for a wine.

    ``flavor_tags`` is set instead of ``main_flavors`` for records written by
    the older flat-tag schema.
    """

    id: int
    name: str
    price: float
    story: str | None = None
    in_stock: bool = True
    main_flavors: tuple[MainFlavor, ...] = ()
    flavor_tags: tuple[str, ...] | None = None
    kind: Literal["wine"] = "wine"


CatalogRecord = Dish | Wine


@dataclass
class Document:
    """Rendered catalog record stored in the vector store."""

    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    embedding: np.ndarray | None = None
    id: int | None = None


@dataclass(frozen=True)
class RetrievedChunk:
    """A stored document matched at query time with its cosine similarity."""

    document: Document
    similarity: float


@dataclass(frozen=True)
class IndexResult:
    """Outcome of one indexing run."""

    count: int

    @property
    def message(self) -> str:
        if self.count == 0:
            return "資料庫中沒有項目可同步。"
        return f"成功同步 {self.count} 筆項目資料到 AI 知識庫。"


@dataclass(frozen=True)
class AudioClip:
    """Playable audio returned by the speech provider."""

    data: bytes
    content_type: str = "audio/mpeg"


class Sender(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class AudioState(StrEnum):
    NONE = "none"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class Message:
    """A transcript entry; replaced wholesale on every change."""

    id: int
    sender: Sender
    text: str = ""
    audio_state: AudioState = AudioState.NONE
    audio: AudioClip | None = None


@dataclass(frozen=True)
class PlaybackState:
    """Transport state of the shared audio resource."""

    active_message_id: int | None = None
    is_playing: bool = False
    is_paused: bool = False

    @property
    def is_idle(self) -> bool:
        return not self.is_playing and not self.is_paused


IDLE_PLAYBACK = PlaybackState()
