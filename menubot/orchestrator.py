"""Response orchestration: drain the answer, then reveal it and voice it.

Each assistant message moves through ``none -> loading -> ready | error`` for
its audio. Two tasks run per answered question, keyed by the assistant
message id: speech synthesis and the character-by-character reveal. Neither
writes outside its own message, so a newer question never disturbs an older
answer that is still finishing.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Protocol

from .config import config
from .generator import is_error_fragment
from .models import AudioClip, AudioState, Message, Sender

if TYPE_CHECKING:
    from .playback import PlaybackController

logger = config.get_logger(__name__)


class AnswerSource(Protocol):
    def answer_stream(self, question: str) -> AsyncIterator[str]: ...

    async def synthesize(self, text: str) -> AudioClip: ...


@dataclass(frozen=True)
class TextRevealed:
    text: str


@dataclass(frozen=True)
class AnswerFailed:
    text: str


@dataclass(frozen=True)
class AudioReady:
    clip: AudioClip


@dataclass(frozen=True)
class AudioFailed:
    pass


MessageEvent = TextRevealed | AnswerFailed | AudioReady | AudioFailed


class InvalidTransition(ValueError):
    """An event does not apply to the message's current audio state."""


def apply_event(message: Message, event: MessageEvent) -> Message:
    """Pure per-message state transition.

    Once audio is ready its clip is immutable: later audio events leave the
    message unchanged.

    Returns:
        The updated message.

    Raises:
        InvalidTransition: For audio events on a message with no audio
            pending, or ``ready`` arriving after ``error``.
    """
    if isinstance(event, TextRevealed):
        return replace(message, text=event.text)
    if isinstance(event, AnswerFailed):
        return replace(message, text=event.text, audio_state=AudioState.ERROR)

    state = message.audio_state
    if state is AudioState.READY:
        return message
    if isinstance(event, AudioReady):
        if state is AudioState.LOADING:
            return replace(message, audio_state=AudioState.READY, audio=event.clip)
    elif state in {AudioState.LOADING, AudioState.ERROR}:
        return replace(message, audio_state=AudioState.ERROR)

    msg = f"{type(event).__name__} is not valid for message {message.id} in state {state}"
    raise InvalidTransition(msg)


class RevealTimer:
    """Repeating timer that shows ``text`` one more character per tick.

    Every emitted value is a prefix of ``text`` one character longer than the
    previous; the last one is ``text`` itself. ``cancel`` may be called any
    number of times.
    """

    def __init__(
        self,
        text: str,
        interval: float,
        on_tick: Callable[[str], None],
        message_id: int | None = None,
    ) -> None:
        self.text = text
        self.message_id = message_id
        self.interval = interval
        self.on_tick = on_tick
        self._task: asyncio.Task | None = None

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self._task

    async def _run(self) -> None:
        for length in range(1, len(self.text) + 1):
            await asyncio.sleep(self.interval)
            self.on_tick(self.text[:length])

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if self.running:
            self._task.cancel()  # pyright: ignore[reportOptionalMemberAccess]


class ResponseOrchestrator:
    """Owns the transcript and coordinates answer, reveal and audio per message."""

    def __init__(  # noqa: PLR0913,PLR0917
        self,
        source: AnswerSource,
        playback: PlaybackController,
        reveal_interval_ms: int | None = None,
        apology_text: str | None = None,
        greeting_text: str | None = None,
        auto_play: bool | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            source: Produces answer fragments and synthesized speech.
            playback: Controller of the shared audio resource.
            reveal_interval_ms: Delay per revealed character. If None, uses
                config.REVEAL_INTERVAL_MS.
            apology_text: Text shown when no answer could be produced. If None,
                uses config.APOLOGY_TEXT.
            greeting_text: Initial assistant message; empty string for none.
                If None, uses config.GREETING_TEXT.
            auto_play: Play audio for the latest answer as soon as it is
                ready. If None, uses config.AUTO_PLAY.
        """
        self.source = source
        self.playback = playback
        self.reveal_interval = (
            config.REVEAL_INTERVAL_MS if reveal_interval_ms is None else reveal_interval_ms
        ) / 1000
        self.apology_text = apology_text or config.APOLOGY_TEXT
        self.auto_play = config.AUTO_PLAY if auto_play is None else auto_play

        self._messages: dict[int, Message] = {}
        self._ids = itertools.count(1)
        self._latest_assistant_id: int | None = None
        self._reveal: RevealTimer | None = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Callable[[Message], None]] = []

        greeting = config.GREETING_TEXT if greeting_text is None else greeting_text
        if greeting:
            self._append(Sender.ASSISTANT, greeting)

    @property
    def messages(self) -> list[Message]:
        return list(self._messages.values())

    def get(self, message_id: int) -> Message:
        return self._messages[message_id]

    def subscribe(self, listener: Callable[[Message], None]) -> None:
        """Register a callback invoked with every new or changed message."""
        self._listeners.append(listener)

    async def submit(self, question: str) -> int:
        """Ask ``question`` and start revealing and voicing the answer.

        Returns once the answer text is complete and both follow-up tasks have
        been started (or the apology has been stored).

        Returns:
            Id of the assistant message holding the answer.

        Raises:
            ValueError: If ``question`` is blank.
        """
        if not question.strip():
            msg = "Question must not be empty"
            raise ValueError(msg)

        self.cancel_reveal()
        self._append(Sender.USER, question)
        assistant_id = self._append(Sender.ASSISTANT, "", AudioState.LOADING)
        self._latest_assistant_id = assistant_id

        final_text = await self._drain(question)
        if final_text is None:
            self._apply(assistant_id, AnswerFailed(self.apology_text))
            return assistant_id

        self._spawn(self._synthesize(assistant_id, final_text))
        if assistant_id == self._latest_assistant_id:
            self.cancel_reveal()
            self._reveal = RevealTimer(
                final_text,
                self.reveal_interval,
                lambda text: self._apply(assistant_id, TextRevealed(text)),
                message_id=assistant_id,
            )
            self._track(self._reveal.start())
        else:
            # superseded while draining; show the whole answer without animation
            self._apply(assistant_id, TextRevealed(final_text))
        return assistant_id

    async def _drain(self, question: str) -> str | None:
        fragments: list[str] = []
        try:
            async for fragment in self.source.answer_stream(question):
                fragments.append(fragment)
        except Exception:
            logger.exception("Answer stream failed")
            return None

        final_text = "".join(fragments)
        if is_error_fragment(final_text):
            logger.error("Answer stream ended with a provider error")
            return None
        if not final_text.strip():
            logger.warning("Answer stream produced no text")
            return None
        return final_text

    async def _synthesize(self, message_id: int, text: str) -> None:
        try:
            clip = await self.source.synthesize(text)
        except Exception:
            logger.exception("Speech synthesis failed for message %d", message_id)
            self._apply(message_id, AudioFailed())
            return

        self._apply(message_id, AudioReady(clip))
        if self.auto_play and message_id == self._latest_assistant_id:
            self.playback.play(message_id, clip)

    def cancel_reveal(self) -> None:
        """Stop the running reveal and show its message in full."""
        reveal = self._reveal
        if reveal is None or not reveal.running:
            return
        reveal.cancel()
        if reveal.message_id is not None:
            self._apply(reveal.message_id, TextRevealed(reveal.text))

    def play(self, message_id: int) -> bool:
        """Play the audio of ``message_id`` if it is ready.

        Returns:
            True if playback was requested.
        """
        message = self._messages[message_id]
        if message.audio_state is not AudioState.READY or message.audio is None:
            return False
        self.playback.play(message_id, message.audio)
        return True

    def pause_or_resume(self) -> None:
        self.playback.pause_or_resume()

    def replay(self) -> None:
        self.playback.replay()

    async def wait_idle(self) -> None:
        """Wait until every reveal and synthesis task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _append(
        self,
        sender: Sender,
        text: str,
        audio_state: AudioState = AudioState.NONE,
    ) -> int:
        message = Message(
            id=next(self._ids), sender=sender, text=text, audio_state=audio_state
        )
        self._messages[message.id] = message
        self._notify(message)
        return message.id

    def _apply(self, message_id: int, event: MessageEvent) -> None:
        message = apply_event(self._messages[message_id], event)
        self._messages[message_id] = message
        self._notify(message)

    def _notify(self, message: Message) -> None:
        for listener in self._listeners:
            listener(message)

    def _spawn(self, coroutine: Awaitable[None]) -> None:
        self._track(asyncio.ensure_future(coroutine))

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
