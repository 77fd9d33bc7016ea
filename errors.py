"""Shared error codes, user-facing messages and provider exceptions."""

from __future__ import annotations

RECOGNITION_UNSUPPORTED = "RECOGNITION_UNSUPPORTED"
PERMISSION_DENIED = "PERMISSION_DENIED"
RECOGNITION_ERROR = "RECOGNITION_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
AI_RESPONSE_FAILED = "AI_RESPONSE_FAILED"
SYNTHESIS_FAILED = "SYNTHESIS_FAILED"
PLAYBACK_FAILED = "PLAYBACK_FAILED"
AUDIO_CAPTURE_FAILED = "AUDIO_CAPTURE_FAILED"
LOCATION_FAILED = "LOCATION_FAILED"
NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
NOTIFICATION_MISCONFIGURED = "NOTIFICATION_MISCONFIGURED"

ERROR_MESSAGES = {
    RECOGNITION_UNSUPPORTED: "Speech recognition is not supported on this device.",
    PERMISSION_DENIED: "Microphone access was denied. Re-request permission to use voice activation.",
    RECOGNITION_ERROR: "Speech recognition error.",
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid.",
    TRANSCRIPTION_FAILED: "Transcription failed, using fallback transcript.",
    AI_RESPONSE_FAILED: "AI response failed, using canned response.",
    SYNTHESIS_FAILED: "Speech synthesis failed.",
    PLAYBACK_FAILED: "Unable to play the spoken response.",
    AUDIO_CAPTURE_FAILED: "Unable to capture audio from the microphone.",
    LOCATION_FAILED: "Unable to retrieve location.",
    NOTIFICATION_FAILED: "Error sending alert, but emergency contacts may have been notified.",
    NOTIFICATION_MISCONFIGURED: "Notification service is not configured.",
}

# Platform recognition error codes (browser speech API vocabulary).
REVOKED_ACCESS_CODES = frozenset({"not-allowed", "service-not-allowed"})

# Geolocation failure reasons.
LOCATION_PERMISSION_DENIED = "permission_denied"
LOCATION_POSITION_UNAVAILABLE = "position_unavailable"
LOCATION_TIMEOUT = "timeout"

LOCATION_MESSAGES = {
    LOCATION_PERMISSION_DENIED: "Location access denied by user",
    LOCATION_POSITION_UNAVAILABLE: "Location information unavailable",
    LOCATION_TIMEOUT: "Location request timed out",
}


class ProviderError(Exception):
    """Failure reported by an external collaborator."""

    code = RECOGNITION_ERROR

    def __init__(self, message: str = "", code: str | None = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(message or ERROR_MESSAGES.get(self.code, self.code))


class TranscriptionError(ProviderError):
    code = TRANSCRIPTION_FAILED


class ResponseError(ProviderError):
    code = AI_RESPONSE_FAILED


class SynthesisError(ProviderError):
    code = SYNTHESIS_FAILED


class PlaybackError(ProviderError):
    code = PLAYBACK_FAILED


class NotificationError(ProviderError):
    code = NOTIFICATION_FAILED


class NotificationMisconfigured(NotificationError):
    code = NOTIFICATION_MISCONFIGURED


class LocationError(ProviderError):
    code = LOCATION_FAILED

    def __init__(self, reason: str, message: str = "") -> None:
        self.reason = reason
        super().__init__(message or LOCATION_MESSAGES.get(reason, reason))
