"""Tests for response orchestration: reveal, speech and per-message state."""

import asyncio

import pytest

from menubot.errors import ProviderFailure, SearchFailure
from menubot.generator import ERROR_FRAGMENT_PREFIX
from menubot.models import AudioClip, AudioState, Message, Sender
from menubot.orchestrator import (
    AnswerFailed,
    AudioFailed,
    AudioReady,
    InvalidTransition,
    ResponseOrchestrator,
    RevealTimer,
    TextRevealed,
    apply_event,
)
from menubot.playback import NullAudioSink, PlaybackController

APOLOGY = "抱歉，發生了一點問題..."
GREETING = "你好！"
CLIP = AudioClip(data=b"clip")


@pytest.fixture
def sink():
    return NullAudioSink()


@pytest.fixture
def orchestrator_factory(fake_answer_source, sink):
    def _create(**overrides):  # noqa: ANN202
        options = {
            "reveal_interval_ms": 0,
            "apology_text": APOLOGY,
            "greeting_text": GREETING,
            "auto_play": True,
        }
        options.update(overrides)
        return ResponseOrchestrator(
            fake_answer_source, PlaybackController(sink), **options
        )

    return _create


@pytest.fixture
def orchestrator(orchestrator_factory):
    return orchestrator_factory()


def text_history(orchestrator, message_id):
    history = []
    orchestrator.subscribe(
        lambda message: history.append(message.text)
        if message.id == message_id
        else None
    )
    return history


# apply_event


@pytest.mark.parametrize(
    ("state", "event", "expected_state"),
    [
        (AudioState.LOADING, AudioReady(CLIP), AudioState.READY),
        (AudioState.LOADING, AudioFailed(), AudioState.ERROR),
        (AudioState.READY, AudioReady(AudioClip(data=b"other")), AudioState.READY),
        (AudioState.READY, AudioFailed(), AudioState.READY),
        (AudioState.LOADING, AnswerFailed(APOLOGY), AudioState.ERROR),
        (AudioState.ERROR, AudioFailed(), AudioState.ERROR),
    ],
)
def test_apply_event_transitions(state, event, expected_state):
    audio = CLIP if state is AudioState.READY else None
    message = Message(id=1, sender=Sender.ASSISTANT, audio_state=state, audio=audio)

    assert apply_event(message, event).audio_state is expected_state


def test_apply_event_ready_clip_is_immutable():
    message = Message(
        id=1, sender=Sender.ASSISTANT, audio_state=AudioState.READY, audio=CLIP
    )

    updated = apply_event(message, AudioReady(AudioClip(data=b"other")))

    assert updated.audio == CLIP


@pytest.mark.parametrize(
    ("state", "event"),
    [
        (AudioState.NONE, AudioReady(CLIP)),
        (AudioState.NONE, AudioFailed()),
        (AudioState.ERROR, AudioReady(CLIP)),
    ],
)
def test_apply_event_rejects_illegal_transitions(state, event):
    message = Message(id=1, sender=Sender.ASSISTANT, audio_state=state)

    with pytest.raises(InvalidTransition):
        apply_event(message, event)


def test_apply_event_text_revealed_keeps_audio():
    message = Message(id=1, sender=Sender.ASSISTANT, audio_state=AudioState.LOADING)

    updated = apply_event(message, TextRevealed("蒜"))

    assert updated.text == "蒜"
    assert updated.audio_state is AudioState.LOADING


# RevealTimer


async def test_reveal_timer_emits_growing_prefixes():
    ticks = []
    timer = RevealTimer("蒜味雞", 0, ticks.append)

    await timer.start()

    assert ticks == ["蒜", "蒜味", "蒜味雞"]
    assert not timer.running


async def test_reveal_timer_cancel_is_idempotent():
    ticks = []
    timer = RevealTimer("long answer", 10, ticks.append)
    task = timer.start()

    timer.cancel()
    timer.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert ticks == []
    timer.cancel()


# ResponseOrchestrator


def test_greeting_is_first_message(orchestrator):
    greeting = orchestrator.messages[0]

    assert greeting.sender is Sender.ASSISTANT
    assert greeting.text == GREETING
    assert greeting.audio_state is AudioState.NONE


def test_no_greeting_when_empty(orchestrator_factory):
    assert orchestrator_factory(greeting_text="").messages == []


async def test_submit_reveals_and_voices_answer(orchestrator, fake_answer_source, sink):
    fragments = ["蒜味奶油雞", "的價格是 ", "280 元。"]
    fake_answer_source.answers["蒜味奶油雞多少錢？"] = fragments
    full_text = "".join(fragments)
    history = text_history(orchestrator, 3)

    message_id = await orchestrator.submit("蒜味奶油雞多少錢？")
    await orchestrator.wait_idle()

    assert message_id == 3
    user, assistant = orchestrator.messages[1:]
    assert user.sender is Sender.USER
    assert user.text == "蒜味奶油雞多少錢？"
    assert assistant.text == full_text
    assert assistant.audio_state is AudioState.READY
    assert fake_answer_source.synthesized == [full_text]

    revealed = [text for text in history if text]
    assert revealed == [full_text[:n] for n in range(1, len(full_text) + 1)]

    assert sink.calls == ["load", "play"]
    assert orchestrator.playback.state.active_message_id == message_id


async def test_submit_without_auto_play(orchestrator_factory, fake_answer_source, sink):
    orchestrator = orchestrator_factory(auto_play=False)
    fake_answer_source.answers["q"] = ["答案"]

    message_id = await orchestrator.submit("q")
    await orchestrator.wait_idle()

    assert orchestrator.get(message_id).audio_state is AudioState.READY
    assert sink.calls == []
    assert orchestrator.play(message_id)
    assert sink.calls == ["load", "play"]


async def test_submit_rejects_blank_question(orchestrator):
    with pytest.raises(ValueError, match="must not be empty"):
        await orchestrator.submit("  ")

    assert len(orchestrator.messages) == 1


@pytest.mark.parametrize(
    "answer",
    [
        SearchFailure("store locked"),
        ["部分答案", f"{ERROR_FRAGMENT_PREFIX}timeout"],
        [],
        ["  "],
    ],
)
async def test_failed_answer_becomes_apology(orchestrator, fake_answer_source, answer):
    fake_answer_source.answers["q"] = answer

    message_id = await orchestrator.submit("q")
    await orchestrator.wait_idle()

    message = orchestrator.get(message_id)
    assert message.text == APOLOGY
    assert message.audio_state is AudioState.ERROR
    assert fake_answer_source.synthesized == []


async def test_speech_failure_keeps_text(orchestrator, fake_answer_source, sink):
    fake_answer_source.answers["q"] = ["我不知道"]
    fake_answer_source.speech["我不知道"] = ProviderFailure("tts down")

    message_id = await orchestrator.submit("q")
    await orchestrator.wait_idle()

    message = orchestrator.get(message_id)
    assert message.text == "我不知道"
    assert message.audio_state is AudioState.ERROR
    assert not orchestrator.play(message_id)
    assert sink.calls == []


async def test_new_question_cancels_previous_reveal(
    orchestrator_factory, fake_answer_source, sink
):
    orchestrator = orchestrator_factory(reveal_interval_ms=10)
    fake_answer_source.answers["first"] = ["一個很長的第一個答案"]
    fake_answer_source.answers["second"] = ["短"]

    first_id = await orchestrator.submit("first")
    second_id = await orchestrator.submit("second")
    await orchestrator.wait_idle()

    first = orchestrator.get(first_id)
    assert first.text == "一個很長的第一個答案"
    assert first.audio_state is AudioState.READY
    assert orchestrator.get(second_id).text == "短"
    assert orchestrator.playback.loaded_message_id == second_id


async def test_reveal_cut_short_mid_way_shows_full_text(
    orchestrator_factory, fake_answer_source
):
    orchestrator = orchestrator_factory(reveal_interval_ms=10)
    fake_answer_source.answers["first"] = ["一個很長的第一個答案"]
    fake_answer_source.answers["second"] = ["短"]
    seen: list[str] = []

    first_id = await orchestrator.submit("first")

    def record(message: Message) -> None:
        if message.id == first_id:
            seen.append(message.text)

    orchestrator.subscribe(record)
    await asyncio.sleep(0.035)
    await orchestrator.submit("second")
    await orchestrator.wait_idle()

    full_text = "一個很長的第一個答案"
    assert orchestrator.get(first_id).text == full_text
    assert seen[-1] == full_text
    assert all(full_text.startswith(text) for text in seen)


async def test_cancel_reveal_without_running_reveal_is_noop(orchestrator):
    orchestrator.cancel_reveal()

    assert [message.text for message in orchestrator.messages] == [GREETING]


async def test_stream_crash_mid_answer_becomes_apology(orchestrator, fake_answer_source):
    fake_answer_source.answers["q"] = ["部分", RuntimeError("connection reset")]

    message_id = await orchestrator.submit("q")
    await orchestrator.wait_idle()

    message = orchestrator.get(message_id)
    assert message.text == APOLOGY
    assert message.audio_state is AudioState.ERROR
    assert fake_answer_source.synthesized == []


async def test_unexpected_speech_error_marks_audio_failed(
    orchestrator, fake_answer_source, sink
):
    fake_answer_source.answers["q"] = ["我不知道"]
    fake_answer_source.speech["我不知道"] = RuntimeError("boom")

    message_id = await orchestrator.submit("q")
    await orchestrator.wait_idle()

    message = orchestrator.get(message_id)
    assert message.text == "我不知道"
    assert message.audio_state is AudioState.ERROR
    assert sink.calls == []


async def test_stale_answer_completes_without_touching_latest(
    orchestrator, fake_answer_source, sink
):
    gate = asyncio.Event()
    fake_answer_source.gates["slow"] = gate
    fake_answer_source.answers["slow"] = ["慢的答案"]
    fake_answer_source.answers["fast"] = ["快的答案"]

    slow_task = asyncio.create_task(orchestrator.submit("slow"))
    await asyncio.sleep(0)
    fast_id = await orchestrator.submit("fast")
    gate.set()
    slow_id = await slow_task
    await orchestrator.wait_idle()

    assert slow_id < fast_id
    assert orchestrator.get(slow_id).text == "慢的答案"
    assert orchestrator.get(slow_id).audio_state is AudioState.READY
    assert orchestrator.get(fast_id).text == "快的答案"
    assert orchestrator.playback.loaded_message_id == fast_id
    assert sink.calls == ["load", "play"]


async def test_pause_and_replay_delegate_to_playback(orchestrator, fake_answer_source):
    fake_answer_source.answers["q"] = ["答案"]
    message_id = await orchestrator.submit("q")
    await orchestrator.wait_idle()

    orchestrator.pause_or_resume()
    assert orchestrator.playback.state.is_paused

    orchestrator.replay()
    assert orchestrator.playback.state.is_playing
    assert orchestrator.playback.state.active_message_id == message_id
