"""Speech recognition adapters using DashScope qwen3-asr-flash.

The qwen3-asr-flash model accepts complete audio (file path, URL, or base64)
and streams back recognition results via ``stream=True``. Two adapters are
built on it:

* :class:`DashscopeTranscriber` turns one captured audio segment into text.
* :class:`DashscopeContinuousRecognition` records the microphone in short
  windows, recognises each window and reports started/result/error/ended
  events the way a browser speech-recognition session does. A session ends
  on its own after ``max_session_s`` so the caller has to restart it.
"""

from __future__ import annotations

import base64
import logging
import os
import threading
from queue import Empty, Queue
from typing import Callable, Iterable, Optional

from errors import AUTH_FAILED, NETWORK_ERROR, TRANSCRIPTION_FAILED, TranscriptionError
from models import AudioFrame, RecognitionEvent, RecognitionKind, RecognitionResult
from recorder import SoundDeviceRecorder, input_supported, pcm_to_wav

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "qwen3-asr-flash"


def _wav_base64(wav: bytes) -> str:
    return base64.b64encode(wav).decode("ascii")


def _resolve_api_key(api_key: str) -> str:
    return api_key or os.getenv("DASHSCOPE_API_KEY", "")


def _call_asr(
    api_key: str,
    model: str,
    wav_base64: str,
    timeout_s: float,
    stream: bool,
    language: str = "",
) -> object:
    asr_options: dict = {"enable_itn": False}
    if language:
        asr_options["language"] = language.split("-")[0].lower()
    return dashscope.MultiModalConversation.call(
        api_key=api_key,
        model=model,
        messages=[
            {"role": "system", "content": [{"text": ""}]},
            {"role": "user", "content": [{"audio": wav_base64}]},
        ],
        result_format="message",
        asr_options=asr_options,
        stream=stream,
        timeout=timeout_s,
    )


def extract_text(chunk: object) -> str:
    """Pull text from a dashscope response or streaming chunk dict."""
    if isinstance(chunk, dict):
        output = chunk.get("output", {}) or {}
        choices = output.get("choices", []) or []
        if not choices:
            return ""
        message = choices[0].get("message", {}) or {}
        content = message.get("content", []) or []
        if not content:
            return ""
        value = content[0]
        if isinstance(value, dict):
            return str(value.get("text", ""))
    return ""


def classify_error(exc: Exception) -> str:
    """Map an SDK/network exception to an error code."""
    low = str(exc).lower()
    if "401" in low or "auth" in low or "api key" in low:
        return AUTH_FAILED
    if "timeout" in low or "network" in low or "connection" in low:
        return NETWORK_ERROR
    return TRANSCRIPTION_FAILED


class DashscopeTranscriber:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s

    def transcribe(self, audio: bytes) -> str:
        if not audio:
            raise TranscriptionError("no audio captured")
        if dashscope is None:
            raise TranscriptionError("dashscope is not installed")
        api_key = _resolve_api_key(self._api_key)
        if not api_key:
            raise TranscriptionError("No API key configured", code=AUTH_FAILED)

        try:
            response = _call_asr(
                api_key, self._model, _wav_base64(audio), self._request_timeout_s, stream=False
            )
        except Exception as exc:
            raise TranscriptionError(str(exc), code=classify_error(exc)) from exc

        status = getattr(response, "status_code", 200)
        if status != 200:
            message = getattr(response, "message", "") or f"status {status}"
            raise TranscriptionError(str(message))
        return extract_text(response).strip()


class DashscopeContinuousRecognition:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        recorder_factory: Callable[[], SoundDeviceRecorder] = SoundDeviceRecorder,
        window_s: float = 3.0,
        max_session_s: float = 60.0,
        silence_rms: float = 200.0,
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._recorder_factory = recorder_factory
        self._window_s = window_s
        self._max_session_s = max_session_s
        self._silence_rms = silence_rms
        self._request_timeout_s = request_timeout_s
        self._continuous = True
        self._interim_results = True
        self._language = "en-US"
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @staticmethod
    def supported() -> bool:
        return dashscope is not None and input_supported()

    def configure(self, *, continuous: bool, interim_results: bool, language: str) -> None:
        self._continuous = continuous
        self._interim_results = interim_results
        self._language = language

    def start(self, session_id: int, on_event: Callable[[RecognitionEvent], None]) -> None:
        if self._thread and self._thread.is_alive():
            self.stop()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._worker,
            args=(session_id, on_event, self._stop_event),
            daemon=True,
            name=f"recognition-{session_id}",
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=0.5)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(
        self,
        session_id: int,
        on_event: Callable[[RecognitionEvent], None],
        stop_event: threading.Event,
    ) -> None:
        audio_queue: Queue[AudioFrame | None] = Queue(maxsize=200)
        recorder = self._recorder_factory()
        try:
            recorder.start(audio_queue)
        except Exception as exc:
            low = str(exc).lower()
            code = "not-allowed" if "permission" in low or "denied" in low else "audio-capture"
            on_event(
                RecognitionEvent(
                    kind=RecognitionKind.ERROR.value,
                    session_id=session_id,
                    code=code,
                    message=str(exc),
                )
            )
            on_event(RecognitionEvent(kind=RecognitionKind.ENDED.value, session_id=session_id))
            return

        on_event(RecognitionEvent(kind=RecognitionKind.STARTED.value, session_id=session_id))
        window_bytes = int(recorder.sample_rate * recorder.channels * 2 * self._window_s)
        windows_left = max(1, int(self._max_session_s / self._window_s))
        pcm = bytearray()
        try:
            while not stop_event.is_set() and windows_left > 0:
                try:
                    frame = audio_queue.get(timeout=0.2)
                except Empty:
                    continue
                if frame is None:
                    break
                pcm.extend(frame.pcm16_bytes)
                if len(pcm) < window_bytes:
                    continue
                windows_left -= 1
                chunk, pcm = bytes(pcm), bytearray()
                if self._is_silent(chunk):
                    continue
                if not self._recognize_window(chunk, recorder, session_id, on_event, stop_event):
                    break
                if not self._continuous:
                    break
        finally:
            recorder.stop()
            on_event(RecognitionEvent(kind=RecognitionKind.ENDED.value, session_id=session_id))

    def _is_silent(self, pcm: bytes) -> bool:
        if np is None or not pcm:
            return False
        samples = np.frombuffer(pcm, dtype=np.int16).astype(np.float64)
        rms = float(np.sqrt(np.mean(samples * samples))) if samples.size else 0.0
        return rms < self._silence_rms

    def _recognize_window(
        self,
        pcm: bytes,
        recorder: SoundDeviceRecorder,
        session_id: int,
        on_event: Callable[[RecognitionEvent], None],
        stop_event: threading.Event,
    ) -> bool:
        """Recognise one window. Returns False when the session must end."""
        api_key = _resolve_api_key(self._api_key)
        if dashscope is None or not api_key:
            on_event(
                RecognitionEvent(
                    kind=RecognitionKind.ERROR.value,
                    session_id=session_id,
                    code="service-not-allowed",
                    message="dashscope is not installed" if dashscope is None else "No API key configured",
                )
            )
            return False

        wav_b64 = _wav_base64(pcm_to_wav(pcm, recorder.sample_rate, recorder.channels))
        latest_text = ""
        try:
            response: Iterable[object] = _call_asr(
                api_key,
                self._model,
                wav_b64,
                self._request_timeout_s,
                stream=True,
                language=self._language,
            )
            for chunk in response:
                if stop_event.is_set():
                    return False
                text = extract_text(chunk)
                if not text:
                    continue
                latest_text = text
                if self._interim_results:
                    on_event(self._result_event(session_id, text, is_final=False))
        except Exception as exc:
            code = "network" if classify_error(exc) == NETWORK_ERROR else "aborted"
            logger.warning("recognition window failed: %s", exc)
            on_event(
                RecognitionEvent(
                    kind=RecognitionKind.ERROR.value,
                    session_id=session_id,
                    code=code,
                    message=str(exc),
                )
            )
            return True

        if latest_text and not stop_event.is_set():
            on_event(self._result_event(session_id, latest_text, is_final=True))
        return True

    @staticmethod
    def _result_event(session_id: int, text: str, is_final: bool) -> RecognitionEvent:
        return RecognitionEvent(
            kind=RecognitionKind.RESULT.value,
            session_id=session_id,
            result_index=0,
            results=[RecognitionResult(alternatives=[text], is_final=is_final)],
        )
