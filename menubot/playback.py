"""Audio playback controller owning the single shared audio resource."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from .config import config
from .models import IDLE_PLAYBACK, AudioClip, PlaybackState

logger = config.get_logger(__name__)


class TransportEvent(StrEnum):
    STARTED = "started"
    PAUSED = "paused"
    RESUMED = "resumed"
    ENDED = "ended"


@dataclass(frozen=True)
class PlaybackEvent:
    kind: TransportEvent
    message_id: int | None = None


def reduce_playback(state: PlaybackState, event: PlaybackEvent) -> PlaybackState:
    """Pure transport state transition.

    ``ended`` resets to idle whichever message was playing.

    Returns:
        The next playback state.
    """
    if event.kind is TransportEvent.STARTED:
        return PlaybackState(
            active_message_id=event.message_id, is_playing=True, is_paused=False
        )
    if event.kind is TransportEvent.PAUSED:
        return replace(state, is_playing=False, is_paused=True)
    if event.kind is TransportEvent.RESUMED:
        return replace(state, is_playing=True, is_paused=False)
    return IDLE_PLAYBACK


class AudioSink(Protocol):
    """The one audio output device. Only ``PlaybackController`` touches it."""

    def bind(self, on_ended: Callable[[], None]) -> None: ...

    def load(self, clip: AudioClip) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def rewind(self) -> None: ...


class NullAudioSink:
    """Sink that records requested operations instead of producing sound."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.clip: AudioClip | None = None
        self._on_ended: Callable[[], None] | None = None

    def bind(self, on_ended: Callable[[], None]) -> None:
        self._on_ended = on_ended

    def load(self, clip: AudioClip) -> None:
        self.clip = clip
        self.calls.append("load")

    def play(self) -> None:
        self.calls.append("play")

    def pause(self) -> None:
        self.calls.append("pause")

    def rewind(self) -> None:
        self.calls.append("rewind")

    def finish(self) -> None:
        """Report that the loaded clip played to the end."""
        if self._on_ended is not None:
            self._on_ended()


class FileAudioSink(NullAudioSink):
    """Sink that writes each played clip to ``path``.

    The clip is reported finished on the next event loop iteration, so it must
    be driven from a running loop. Loading, pausing or playing again drops a
    finish that has not been reported yet.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._pending_end: asyncio.Handle | None = None

    def load(self, clip: AudioClip) -> None:
        self._cancel_pending_end()
        super().load(clip)

    def play(self) -> None:
        super().play()
        self._cancel_pending_end()
        if self.clip is None:
            return
        self.path.parent.mkdir(exist_ok=True, parents=True)
        self.path.write_bytes(self.clip.data)
        logger.info("Wrote %d bytes of audio to %s", len(self.clip.data), self.path)
        self._pending_end = asyncio.get_running_loop().call_soon(self.finish)

    def pause(self) -> None:
        self._cancel_pending_end()
        super().pause()

    def finish(self) -> None:
        self._pending_end = None
        super().finish()

    def _cancel_pending_end(self) -> None:
        if self._pending_end is not None:
            self._pending_end.cancel()
            self._pending_end = None


class PlaybackController:
    """Switches the shared sink between messages and tracks transport state."""

    def __init__(self, sink: AudioSink) -> None:
        self._sink = sink
        self._state = IDLE_PLAYBACK
        self._loaded_message_id: int | None = None
        self._listeners: list[Callable[[PlaybackEvent, PlaybackState], None]] = []
        sink.bind(self._on_sink_ended)

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def loaded_message_id(self) -> int | None:
        return self._loaded_message_id

    def subscribe(
        self, listener: Callable[[PlaybackEvent, PlaybackState], None]
    ) -> None:
        self._listeners.append(listener)

    def play(self, message_id: int, clip: AudioClip) -> None:
        """Start ``clip`` for ``message_id`` from the beginning.

        The sink source is reassigned whenever the message is not the one
        currently loaded.
        """
        if self._loaded_message_id != message_id:
            logger.info("Switching audio source to message %d", message_id)
            self._sink.load(clip)
            self._loaded_message_id = message_id
        else:
            self._sink.rewind()
        self._sink.play()
        self._dispatch(PlaybackEvent(TransportEvent.STARTED, message_id))

    def pause_or_resume(self) -> None:
        """Toggle based on transport state; no-op while idle."""
        if self._state.is_playing:
            self._sink.pause()
            self._dispatch(
                PlaybackEvent(TransportEvent.PAUSED, self._state.active_message_id)
            )
        elif self._state.is_paused:
            self._sink.play()
            self._dispatch(
                PlaybackEvent(TransportEvent.RESUMED, self._state.active_message_id)
            )

    def replay(self) -> None:
        """Rewind and play the loaded source; no-op when nothing is loaded."""
        if self._loaded_message_id is None:
            logger.debug("Replay requested with no audio loaded")
            return
        self._sink.rewind()
        self._sink.play()
        self._dispatch(PlaybackEvent(TransportEvent.STARTED, self._loaded_message_id))

    def _on_sink_ended(self) -> None:
        self._dispatch(
            PlaybackEvent(TransportEvent.ENDED, self._state.active_message_id)
        )

    def _dispatch(self, event: PlaybackEvent) -> None:
        self._state = reduce_playback(self._state, event)
        logger.debug("Playback %s -> %s", event.kind, self._state)
        for listener in self._listeners:
            listener(event, self._state)
