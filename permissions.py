"""Microphone permission capability backed by sounddevice."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from interfaces import PermissionCallback
from models import PermissionState

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDevicePermission:
    """Derives microphone access from the host audio stack.

    ``query`` reports GRANTED once a stream has been opened successfully,
    DENIED after a failed open, and PROMPT before anything was tried.
    ``request`` opens (and immediately closes) a short input stream.
    """

    def __init__(self, sample_rate: int = 16000) -> None:
        self._sample_rate = sample_rate
        self._state = PermissionState.PROMPT
        self._callbacks: list[PermissionCallback] = []
        self._lock = threading.Lock()

    def query(self) -> str:
        if sd is None:
            return PermissionState.DENIED.value
        if self._state == PermissionState.PROMPT and not self._has_input_device():
            return PermissionState.DENIED.value
        return self._state.value

    def request(self) -> bool:
        if sd is None:
            self._update(PermissionState.DENIED)
            return False
        try:
            stream = sd.InputStream(samplerate=self._sample_rate, channels=1, dtype="int16")
            stream.start()
            stream.stop()
            stream.close()
        except Exception as exc:
            logger.warning("microphone open failed: %s", exc)
            self._update(PermissionState.DENIED)
            return False
        self._update(PermissionState.GRANTED)
        return True

    def watch(self, callback: PermissionCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def revoke(self) -> None:
        """Mark access as lost, e.g. after the input device disappeared."""
        self._update(PermissionState.DENIED)

    def _has_input_device(self) -> bool:
        try:
            device: Optional[dict] = sd.query_devices(kind="input")
        except Exception:
            return False
        return bool(device) and int(device.get("max_input_channels", 0)) > 0

    def _update(self, state: PermissionState) -> None:
        with self._lock:
            if state == self._state:
                return
            self._state = state
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback(state.value)
