"""Spoken output: cloud synthesis, speaker playback and on-device speech."""

from __future__ import annotations

import io
import logging
import os
import threading
import wave
from typing import Any, Optional

from errors import AUTH_FAILED, PlaybackError, SynthesisError

try:
    import dashscope
    from dashscope.audio.tts import SpeechSynthesizer as _DashscopeTTS
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    _DashscopeTTS = None  # type: ignore

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

try:
    import pyttsx3
except Exception:  # pragma: no cover
    pyttsx3 = None  # type: ignore

logger = logging.getLogger(__name__)


class DashscopeSynthesizer:
    def __init__(
        self,
        api_key: str,
        model: str = "sambert-cindy-v1",
        sample_rate: int = 16000,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._sample_rate = sample_rate

    def synthesize(self, text: str) -> bytes:
        if dashscope is None or _DashscopeTTS is None:
            raise SynthesisError("dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise SynthesisError("No API key configured", code=AUTH_FAILED)
        dashscope.api_key = api_key
        try:
            result = _DashscopeTTS.call(
                model=self._model,
                text=text,
                sample_rate=self._sample_rate,
                format="wav",
            )
        except Exception as exc:
            raise SynthesisError(str(exc)) from exc

        audio = result.get_audio_data() if result is not None else None
        if not audio:
            response = result.get_response() if result is not None else None
            raise SynthesisError(f"no audio returned: {response}")
        return audio


class SoundDevicePlayer:
    """Plays WAV bytes on the default output device."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def play(self, audio: bytes) -> None:
        if sd is None or np is None:
            raise PlaybackError("sounddevice is not installed")
        try:
            samples, sample_rate = self._decode(audio)
        except (wave.Error, EOFError) as exc:
            raise PlaybackError(f"invalid audio: {exc}") from exc
        try:
            with self._lock:
                sd.play(samples, sample_rate)
            sd.wait()
        except Exception as exc:
            raise PlaybackError(str(exc)) from exc

    def cancel(self) -> None:
        if sd is None:
            return
        try:
            sd.stop()
        except Exception as exc:  # pragma: no cover
            logger.debug("sounddevice stop raised: %s", exc)

    @staticmethod
    def _decode(audio: bytes) -> tuple[Any, int]:
        with wave.open(io.BytesIO(audio), "rb") as wf:
            channels = wf.getnchannels()
            sample_rate = wf.getframerate()
            frames = wf.readframes(wf.getnframes())
        samples = np.frombuffer(frames, dtype=np.int16)
        if channels > 1:
            samples = samples.reshape(-1, channels)
        return samples, sample_rate


class Pyttsx3Speaker:
    """On-device speech used when cloud synthesis is unavailable."""

    def __init__(self, rate: int = 180, volume: float = 1.0) -> None:
        self._rate = rate
        self._volume = volume
        self._engine: Optional[Any] = None
        self._lock = threading.Lock()
        self._init_failed = False

    def available(self) -> bool:
        return self._get_engine() is not None

    def speak(self, text: str, rate: Optional[int] = None) -> None:
        engine = self._get_engine()
        if engine is None:
            raise PlaybackError("on-device speech is not available")
        with self._lock:
            engine.setProperty("rate", rate or self._rate)
            engine.setProperty("volume", self._volume)
            engine.say(text)
        engine.runAndWait()

    def cancel(self) -> None:
        engine = self._engine
        if engine is None:
            return
        try:
            engine.stop()
        except Exception as exc:  # pragma: no cover
            logger.debug("pyttsx3 stop raised: %s", exc)

    def _get_engine(self) -> Optional[Any]:
        if self._engine is not None or self._init_failed:
            return self._engine
        if pyttsx3 is None:
            self._init_failed = True
            return None
        with self._lock:
            if self._engine is None:
                try:
                    self._engine = pyttsx3.init()
                except Exception as exc:
                    logger.warning("pyttsx3 init failed: %s", exc)
                    self._init_failed = True
        return self._engine
