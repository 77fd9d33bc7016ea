from __future__ import annotations

import pytest

from errors import (
    AI_RESPONSE_FAILED,
    AUTH_FAILED,
    PLAYBACK_FAILED,
    TRANSCRIPTION_FAILED,
    PlaybackError,
    ResponseError,
    SynthesisError,
    TranscriptionError,
)
from models import ResponseMode
from threat_pipeline import CANNED_RESPONSES, FALLBACK_TRANSCRIPT, AudioThreatPipeline, detect_threat


class FakeTranscriber:
    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        self.text = text
        self.error = error

    def transcribe(self, audio: bytes) -> str:
        if self.error is not None:
            raise self.error
        return self.text


class FakeResponder:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.modes: list[ResponseMode] = []

    def respond(self, transcript: str, mode: ResponseMode) -> str:
        self.modes.append(mode)
        if self.error is not None:
            raise self.error
        return f"reply to {transcript}"


class FakeSynthesizer:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error

    def synthesize(self, text: str) -> bytes:
        if self.error is not None:
            raise self.error
        return b"RIFF" + text.encode()


class FakePlayer:
    def __init__(self) -> None:
        self.played: list[bytes] = []
        self.cancelled = False

    def play(self, audio: bytes) -> None:
        self.played.append(audio)

    def cancel(self) -> None:
        self.cancelled = True


class FakeSpeech:
    def __init__(self, available: bool = True, error: Exception | None = None) -> None:
        self._available = available
        self.error = error
        self.spoken: list[str] = []
        self.cancelled = False

    def available(self) -> bool:
        return self._available

    def speak(self, text: str) -> None:
        if self.error is not None:
            raise self.error
        self.spoken.append(text)

    def cancel(self) -> None:
        self.cancelled = True


def _pipeline(**kwargs) -> tuple[AudioThreatPipeline, list[str]]:  # noqa: ANN003
    errors: list[str] = []
    kwargs.setdefault("transcriber", FakeTranscriber("hello"))
    kwargs.setdefault("responder", FakeResponder())
    pipeline = AudioThreatPipeline(on_error=lambda code, message: errors.append(code), **kwargs)
    return pipeline, errors


def test_threat_keywords_detected() -> None:
    assert detect_threat("please stop following me")
    assert not detect_threat("what a nice day")


def test_threat_detection_is_case_insensitive() -> None:
    assert detect_threat("I am SCARED")
    assert detect_threat("Leave me ALONE", ["leave me alone"])


def test_assess_chooses_assertive_mode_on_threat() -> None:
    responder = FakeResponder()
    pipeline, _ = _pipeline(transcriber=FakeTranscriber("please stop following me"), responder=responder)

    assessment = pipeline.assess(b"RIFF")

    assert assessment.threat_detected
    assert assessment.transcription == "please stop following me"
    assert assessment.ai_response == "reply to please stop following me"
    assert responder.modes == [ResponseMode.ASSERTIVE]


def test_assess_chooses_calm_mode_without_threat() -> None:
    responder = FakeResponder()
    pipeline, _ = _pipeline(transcriber=FakeTranscriber("what a nice day"), responder=responder)

    assessment = pipeline.assess(b"RIFF")

    assert not assessment.threat_detected
    assert responder.modes == [ResponseMode.CALM]


def test_transcription_failure_uses_fallback_transcript() -> None:
    pipeline, errors = _pipeline(transcriber=FakeTranscriber(error=TranscriptionError("offline")))

    assessment = pipeline.assess(b"RIFF")

    assert assessment.transcription == FALLBACK_TRANSCRIPT
    assert errors == [TRANSCRIPTION_FAILED]


def test_transcription_error_code_is_kept() -> None:
    pipeline, errors = _pipeline(
        transcriber=FakeTranscriber(error=TranscriptionError("no key", code=AUTH_FAILED))
    )
    pipeline.assess(b"RIFF")
    assert errors == [AUTH_FAILED]


@pytest.mark.parametrize(
    "text, mode",
    [("please stop", ResponseMode.ASSERTIVE), ("nice weather", ResponseMode.CALM)],
)
def test_response_failure_uses_canned_response(text: str, mode: ResponseMode) -> None:
    pipeline, errors = _pipeline(
        transcriber=FakeTranscriber(text), responder=FakeResponder(error=ResponseError("503"))
    )

    assessment = pipeline.assess(b"RIFF")

    assert assessment.ai_response == CANNED_RESPONSES[mode]
    assert errors == [AI_RESPONSE_FAILED]


def test_unexpected_provider_exception_still_falls_back() -> None:
    pipeline, errors = _pipeline(responder=FakeResponder(error=ValueError("bad json")))
    assert pipeline.assess(b"RIFF").ai_response == CANNED_RESPONSES[ResponseMode.CALM]
    assert errors == [AI_RESPONSE_FAILED]


def test_custom_keywords() -> None:
    pipeline, _ = _pipeline(
        transcriber=FakeTranscriber("Back off right now"), threat_keywords=["Back Off"]
    )
    assert pipeline.threat_keywords == ["back off"]
    assert pipeline.assess(b"RIFF").threat_detected


def test_play_response_prefers_cloud_speech() -> None:
    player = FakePlayer()
    speech = FakeSpeech()
    pipeline, _ = _pipeline(synthesizer=FakeSynthesizer(), player=player, on_device=speech)

    pipeline.play_response("stay calm")

    assert player.played == [b"RIFFstay calm"]
    assert speech.spoken == []


def test_play_response_falls_back_to_on_device_speech() -> None:
    speech = FakeSpeech()
    pipeline, _ = _pipeline(
        synthesizer=FakeSynthesizer(error=SynthesisError("quota")),
        player=FakePlayer(),
        on_device=speech,
    )

    pipeline.play_response("stay calm")

    assert speech.spoken == ["stay calm"]


def test_play_response_without_any_output_raises() -> None:
    pipeline, _ = _pipeline(on_device=FakeSpeech(available=False))
    with pytest.raises(PlaybackError):
        pipeline.play_response("stay calm")


def test_on_device_failure_becomes_playback_error() -> None:
    pipeline, _ = _pipeline(on_device=FakeSpeech(error=RuntimeError("driver")))
    with pytest.raises(PlaybackError, match="driver"):
        pipeline.play_response("stay calm")


def test_run_reports_playback_failure_and_returns_assessment() -> None:
    pipeline, errors = _pipeline(transcriber=FakeTranscriber("nice day"))

    assessment = pipeline.run(b"RIFF")

    assert assessment.ai_response == "reply to nice day"
    assert errors == [PLAYBACK_FAILED]


def test_cancel_stops_all_outputs() -> None:
    player = FakePlayer()
    speech = FakeSpeech()
    pipeline, _ = _pipeline(synthesizer=FakeSynthesizer(), player=player, on_device=speech)

    pipeline.cancel()

    assert player.cancelled and speech.cancelled
