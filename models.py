"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class RecognitionSessionState(str, Enum):
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    LISTENING = "LISTENING"
    ENDED = "ENDED"


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"
    UNSUPPORTED = "unsupported"


class SafetyState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    ALERT = "alert"
    SOS_ACTIVE = "sos_active"
    EMERGENCY_VOICE = "emergency_voice"


class RecognitionKind(str, Enum):
    STARTED = "started"
    RESULT = "result"
    ERROR = "error"
    ENDED = "ended"
    # Internal messages posted by the session manager itself.
    PERMISSION = "permission"
    RESTART_DUE = "restart_due"


class ResponseMode(str, Enum):
    CALM = "calm"
    ASSERTIVE = "assertive"


class AlertKind(str, Enum):
    AURA = "aura"
    SOS = "sos"


@dataclass(frozen=True)
class TriggerPhraseConfig:
    phrase: str = "Help Aura"
    language: str = "en-US"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class RecognitionResult:
    alternatives: list[str] = field(default_factory=list)
    is_final: bool = False


@dataclass
class RecognitionEvent:
    kind: str
    session_id: int = 0
    result_index: int = 0
    results: list[RecognitionResult] = field(default_factory=list)
    code: str = ""
    message: str = ""
    permission: str = ""


@dataclass
class TranscriptEvent:
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class ThreatAssessment:
    transcription: str
    threat_detected: bool
    ai_response: str


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    @property
    def is_fallback(self) -> bool:
        return self == FALLBACK_LOCATION


FALLBACK_LOCATION = Location(latitude=0.0, longitude=0.0)


@dataclass
class AlertResult:
    success: bool
    message: str
    contacts_notified: int
    location: Location
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
