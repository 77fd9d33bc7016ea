"""Tests for the DashScope transcription and continuous recognition adapters."""

from __future__ import annotations

import time
from queue import Queue
from unittest.mock import MagicMock, patch

import pytest

from errors import AUTH_FAILED, NETWORK_ERROR, TRANSCRIPTION_FAILED, TranscriptionError
from models import AudioFrame, RecognitionEvent, RecognitionKind
from recognizer import (
    DashscopeContinuousRecognition,
    DashscopeTranscriber,
    classify_error,
    extract_text,
)


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _chunk(text: str) -> dict:
    return {"output": {"choices": [{"message": {"content": [{"text": text}]}}]}}


class _Response(dict):
    def __init__(self, text: str, status_code: int = 200, message: str = "") -> None:
        super().__init__(_chunk(text))
        self.status_code = status_code
        self.message = message


class _WindowRecorder:
    """Pushes enough loud audio for ``windows`` recognition windows, then a sentinel."""

    sample_rate = 16000
    channels = 1

    def __init__(self, windows: int = 1, fail: Exception | None = None) -> None:
        self._windows = windows
        self._fail = fail
        self.stopped = False

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        if self._fail is not None:
            raise self._fail
        loud = b"\xff\x3f" * 16000  # one second at amplitude 16383
        for _ in range(self._windows):
            audio_queue.put_nowait(AudioFrame(pcm16_bytes=loud))
        audio_queue.put_nowait(None)

    def stop(self) -> None:
        self.stopped = True


def _run_session(recognition: DashscopeContinuousRecognition) -> list[RecognitionEvent]:
    events: list[RecognitionEvent] = []
    recognition.start(7, events.append)
    deadline = time.time() + 3.0
    while time.time() < deadline:
        if any(e.kind == RecognitionKind.ENDED.value for e in events):
            break
        time.sleep(0.02)
    recognition.stop()
    return events


def _kinds(events: list[RecognitionEvent]) -> list[str]:
    return [e.kind for e in events]


# ---------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------

def test_extract_text_reads_first_content_item() -> None:
    assert extract_text(_chunk("help aura")) == "help aura"
    assert extract_text({"output": {"choices": []}}) == ""
    assert extract_text("not a dict") == ""


@pytest.mark.parametrize(
    "message, code",
    [
        ("401 Unauthorized", AUTH_FAILED),
        ("Invalid API key", AUTH_FAILED),
        ("Read timeout", NETWORK_ERROR),
        ("Connection reset", NETWORK_ERROR),
        ("model overloaded", TRANSCRIPTION_FAILED),
    ],
)
def test_classify_error(message: str, code: str) -> None:
    assert classify_error(RuntimeError(message)) == code


# ---------------------------------------------------------------
# DashscopeTranscriber
# ---------------------------------------------------------------

def test_transcribe_rejects_empty_audio() -> None:
    with pytest.raises(TranscriptionError):
        DashscopeTranscriber(api_key="k").transcribe(b"")


@patch("recognizer.dashscope", MagicMock())
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_transcribe_without_api_key_is_auth_failure() -> None:
    with pytest.raises(TranscriptionError) as info:
        DashscopeTranscriber(api_key="").transcribe(b"RIFF....")
    assert info.value.code == AUTH_FAILED


@patch("recognizer.dashscope")
def test_transcribe_returns_stripped_text(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _Response("  please stop  ")

    text = DashscopeTranscriber(api_key="k").transcribe(b"RIFF....")

    assert text == "please stop"
    kwargs = mock_ds.MultiModalConversation.call.call_args.kwargs
    assert kwargs["model"] == "qwen3-asr-flash"
    assert kwargs["stream"] is False


@patch("recognizer.dashscope")
def test_transcribe_non_200_raises(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _Response("", status_code=500, message="boom")
    with pytest.raises(TranscriptionError, match="boom"):
        DashscopeTranscriber(api_key="k").transcribe(b"RIFF....")


@patch("recognizer.dashscope")
def test_transcribe_network_failure_is_classified(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.side_effect = RuntimeError("connection refused")
    with pytest.raises(TranscriptionError) as info:
        DashscopeTranscriber(api_key="k").transcribe(b"RIFF....")
    assert info.value.code == NETWORK_ERROR


# ---------------------------------------------------------------
# DashscopeContinuousRecognition
# ---------------------------------------------------------------

@patch("recognizer.dashscope")
def test_session_emits_started_interim_final_ended(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = iter([_chunk("help"), _chunk("help aura")])
    recorder = _WindowRecorder(windows=1)
    recognition = DashscopeContinuousRecognition(
        api_key="k", recorder_factory=lambda: recorder, window_s=1.0
    )
    recognition.configure(continuous=True, interim_results=True, language="en-US")

    events = _run_session(recognition)

    assert _kinds(events) == ["started", "result", "result", "result", "ended"]
    final = events[3]
    assert final.session_id == 7
    assert final.results[0].is_final is True
    assert final.results[0].alternatives == ["help aura"]
    assert mock_ds.MultiModalConversation.call.call_args.kwargs["asr_options"]["language"] == "en"
    assert recorder.stopped


@patch("recognizer.dashscope")
def test_session_without_interim_results_reports_final_only(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = iter([_chunk("help"), _chunk("help aura")])
    recognition = DashscopeContinuousRecognition(
        api_key="k", recorder_factory=lambda: _WindowRecorder(), window_s=1.0
    )
    recognition.configure(continuous=True, interim_results=False, language="en-US")

    events = _run_session(recognition)

    assert _kinds(events) == ["started", "result", "ended"]


@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
@patch("recognizer.dashscope", MagicMock())
def test_missing_api_key_reports_service_not_allowed() -> None:
    recognition = DashscopeContinuousRecognition(
        api_key="", recorder_factory=lambda: _WindowRecorder(), window_s=1.0
    )

    events = _run_session(recognition)

    assert _kinds(events) == ["started", "error", "ended"]
    assert events[1].code == "service-not-allowed"


def test_microphone_denied_reports_not_allowed() -> None:
    recognition = DashscopeContinuousRecognition(
        api_key="k",
        recorder_factory=lambda: _WindowRecorder(fail=RuntimeError("Permission denied")),
    )

    events = _run_session(recognition)

    assert _kinds(events) == ["error", "ended"]
    assert events[0].code == "not-allowed"


@patch("recognizer.dashscope")
def test_window_failure_is_transient_error(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.side_effect = RuntimeError("network unreachable")
    recognition = DashscopeContinuousRecognition(
        api_key="k", recorder_factory=lambda: _WindowRecorder(), window_s=1.0
    )

    events = _run_session(recognition)

    assert _kinds(events) == ["started", "error", "ended"]
    assert events[1].code == "network"
