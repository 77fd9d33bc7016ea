"""Protocol interfaces for the external collaborators of the core."""

from __future__ import annotations

from typing import Callable, Protocol

from models import AlertKind, Location, RecognitionEvent, ResponseMode

PermissionCallback = Callable[[str], None]


class AudioCapture(Protocol):
    def start(self) -> None: ...

    def stop(self) -> bytes: ...


class RecognitionCapability(Protocol):
    """Continuous recognizer. Emits started/result/error/ended events."""

    def configure(self, *, continuous: bool, interim_results: bool, language: str) -> None: ...

    def start(self, session_id: int, on_event: Callable[[RecognitionEvent], None]) -> None: ...

    def stop(self) -> None: ...


class PermissionCapability(Protocol):
    def query(self) -> str: ...

    def request(self) -> bool: ...

    def watch(self, callback: PermissionCallback) -> None: ...


class Transcriber(Protocol):
    def transcribe(self, audio: bytes) -> str: ...


class ResponseGenerator(Protocol):
    def respond(self, transcript: str, mode: ResponseMode) -> str: ...


class SpeechSynthesizer(Protocol):
    def synthesize(self, text: str) -> bytes: ...


class AudioPlayer(Protocol):
    def play(self, audio: bytes) -> None: ...

    def cancel(self) -> None: ...


class OnDeviceSpeech(Protocol):
    def available(self) -> bool: ...

    def speak(self, text: str) -> None: ...

    def cancel(self) -> None: ...


class Geolocator(Protocol):
    def locate(self) -> Location: ...


class Notifier(Protocol):
    def send(self, user_id: str, location: Location, kind: AlertKind) -> dict: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...
