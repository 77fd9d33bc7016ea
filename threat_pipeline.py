"""Audio-to-response pipeline: transcribe, classify, respond, speak."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

from config import DEFAULT_THREAT_KEYWORDS
from errors import (
    AI_RESPONSE_FAILED,
    PLAYBACK_FAILED,
    TRANSCRIPTION_FAILED,
    PlaybackError,
    ProviderError,
)
from interfaces import AudioPlayer, OnDeviceSpeech, ResponseGenerator, SpeechSynthesizer, Transcriber
from models import ResponseMode, ThreatAssessment

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[str, str], None]

FALLBACK_TRANSCRIPT = "Someone is talking to me and I'm not sure about their intentions."

CANNED_RESPONSES = {
    ResponseMode.CALM: "Hey, what's going on? Are you okay? Can you describe what's happening?",
    ResponseMode.ASSERTIVE: (
        "This call is being monitored and recorded. The user's location has been shared "
        "with emergency services. Please step away immediately."
    ),
}


def detect_threat(text: str, keywords: Iterable[str] = DEFAULT_THREAT_KEYWORDS) -> bool:
    """Case-insensitive containment check against the threat keyword list."""
    lowered = text.lower()
    return any(keyword.lower() in lowered for keyword in keywords if keyword)


class AudioThreatPipeline:
    """Runs one captured audio segment through the provider chain.

    Every provider failure is replaced by a fixed fallback value so the
    pipeline always yields a :class:`ThreatAssessment`. Only playback can
    fail outward, as :class:`PlaybackError` from :meth:`play_response`.
    The pipeline never touches the safety state.
    """

    def __init__(
        self,
        transcriber: Transcriber,
        responder: ResponseGenerator,
        synthesizer: Optional[SpeechSynthesizer] = None,
        player: Optional[AudioPlayer] = None,
        on_device: Optional[OnDeviceSpeech] = None,
        threat_keywords: Optional[Iterable[str]] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._transcriber = transcriber
        self._responder = responder
        self._synthesizer = synthesizer
        self._player = player
        self._on_device = on_device
        self._keywords = [k.lower() for k in (threat_keywords or DEFAULT_THREAT_KEYWORDS)]
        self._on_error = on_error

    @property
    def threat_keywords(self) -> list[str]:
        return list(self._keywords)

    def transcribe(self, audio: bytes) -> str:
        try:
            return self._transcriber.transcribe(audio)
        except Exception as exc:
            logger.warning("transcription failed, using fallback transcript: %s", exc)
            self._emit_error(_code(exc, TRANSCRIPTION_FAILED), str(exc))
            return FALLBACK_TRANSCRIPT

    def classify(self, transcript: str) -> bool:
        return detect_threat(transcript, self._keywords)

    def generate_response(self, transcript: str, threat_detected: bool) -> str:
        mode = ResponseMode.ASSERTIVE if threat_detected else ResponseMode.CALM
        try:
            return self._responder.respond(transcript, mode)
        except Exception as exc:
            logger.warning("AI response failed (%s), using canned response: %s", mode.value, exc)
            self._emit_error(_code(exc, AI_RESPONSE_FAILED), str(exc))
            return CANNED_RESPONSES[mode]

    def assess(self, audio: bytes) -> ThreatAssessment:
        t0 = time.monotonic()
        transcription = self.transcribe(audio)
        threat_detected = self.classify(transcription)
        ai_response = self.generate_response(transcription, threat_detected)
        logger.info(
            "assessment done in %.0f ms (threat=%s)",
            (time.monotonic() - t0) * 1000.0,
            threat_detected,
        )
        return ThreatAssessment(
            transcription=transcription,
            threat_detected=threat_detected,
            ai_response=ai_response,
        )

    def play_response(self, text: str) -> None:
        """Speak ``text``; falls back to on-device speech.

        Raises:
            PlaybackError: if neither path could play the response.
        """
        if not text.strip():
            return
        if self._synthesizer is not None and self._player is not None:
            try:
                audio = self._synthesizer.synthesize(text)
                if audio:
                    self._player.play(audio)
                    return
                logger.warning("speech synthesis returned no audio")
            except Exception as exc:
                logger.warning("cloud speech failed, trying on-device speech: %s", exc)

        if self._on_device is not None and self._on_device.available():
            try:
                self._on_device.speak(text)
                return
            except Exception as exc:
                raise PlaybackError(f"on-device speech failed: {exc}") from exc
        raise PlaybackError("no speech output available")

    def run(self, audio: bytes) -> ThreatAssessment:
        assessment = self.assess(audio)
        try:
            self.play_response(assessment.ai_response)
        except PlaybackError as exc:
            logger.error("playback failed: %s", exc)
            self._emit_error(PLAYBACK_FAILED, str(exc))
        return assessment

    def cancel(self) -> None:
        if self._player is not None:
            self._player.cancel()
        if self._on_device is not None:
            self._on_device.cancel()

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)


def _code(exc: Exception, default: str) -> str:
    if isinstance(exc, ProviderError):
        return exc.code
    return default
