"""
Authoritative safety workflow state machine.

Thread-safe FSM with an explicit validated transition map, transition
history (last 50) and structured logging. Side effects (audio capture,
alert dispatch, the emergency-voice call) run outside the lock; results
that come back after the state has moved on are discarded.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from alert_dispatcher import AlertDispatcher
from emergency_voice import EmergencyVoiceSequence
from errors import AUDIO_CAPTURE_FAILED, PLAYBACK_FAILED, PlaybackError
from interfaces import AudioCapture
from location import LocationService
from models import FALLBACK_LOCATION, AlertKind, AlertResult, Location, SafetyState
from threat_pipeline import AudioThreatPipeline

logger = logging.getLogger(__name__)

TransitionCallback = Callable[[SafetyState, SafetyState, str], None]
ErrorCallback = Callable[[str, str], None]


class InvalidTransitionError(RuntimeError):
    """Raised when a requested transition is not in the valid transition map."""

    def __init__(self, from_state: SafetyState, to_state: SafetyState, event: str = "") -> None:
        self.from_state = from_state
        self.to_state = to_state
        self.event = event
        super().__init__(
            f"Invalid transition {from_state.value} → {to_state.value}"
            + (f" (event: {event})" if event else "")
        )


_VALID_TRANSITIONS: dict[SafetyState, list[SafetyState]] = {
    SafetyState.IDLE: [
        SafetyState.ACTIVE,
        SafetyState.SOS_ACTIVE,
        SafetyState.EMERGENCY_VOICE,
    ],
    SafetyState.ACTIVE: [
        SafetyState.IDLE,
        SafetyState.ALERT,
        SafetyState.SOS_ACTIVE,
    ],
    SafetyState.ALERT: [
        SafetyState.SOS_ACTIVE,
    ],
    SafetyState.SOS_ACTIVE: [],
    SafetyState.EMERGENCY_VOICE: [],
}

# Idle is reachable from every state through reset_to_idle() only.

_AT_REST = frozenset({SafetyState.IDLE, SafetyState.SOS_ACTIVE})

_MAX_HISTORY = 50


class SafetyStateMachine:
    """
    Single owner of :class:`~models.SafetyState`.

    Every public operation returns True when it was applied and False when
    the current state does not allow it. Collaborator failures are converted
    to fallbacks or reported through ``on_error``; nothing raises out of a
    public operation.

    Args:
        dispatcher: Sends AURA and SOS alerts.
        user_id: Identity passed with every alert.
        location: Bounded-timeout location source; None means fallback coordinates.
        pipeline: Threat pipeline for captured audio segments.
        capture: Microphone capture used while Active.
        emergency_voice: Simulated call played in the EmergencyVoice state.
        on_transition: Called after each transition with ``(from, to, event)``.
        on_error: Called with ``(code, message)`` for non-fatal failures.
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        user_id: str,
        location: Optional[LocationService] = None,
        pipeline: Optional[AudioThreatPipeline] = None,
        capture: Optional[AudioCapture] = None,
        emergency_voice: Optional[EmergencyVoiceSequence] = None,
        on_transition: Optional[TransitionCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._user_id = user_id
        self._location = location
        self._pipeline = pipeline
        self._capture = capture
        self._emergency_voice = emergency_voice
        self._on_transition = on_transition
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = SafetyState.IDLE
        self._epoch = 0
        self._history: list[dict] = []
        self._transcription = ""
        self._ai_response = ""
        self._alert_result: Optional[AlertResult] = None
        self._capturing = False

        logger.info("SafetyStateMachine initialised in state: %s", SafetyState.IDLE.value)

    # ──────────────────────────────────────────
    # Read-only view
    # ──────────────────────────────────────────

    @property
    def state(self) -> SafetyState:
        with self._lock:
            return self._state

    @property
    def is_at_rest(self) -> bool:
        """Idle and SOSActive are at rest; every other state is a workflow in progress."""
        with self._lock:
            return self._state in _AT_REST

    @property
    def transcription(self) -> str:
        with self._lock:
            return self._transcription

    @property
    def ai_response(self) -> str:
        with self._lock:
            return self._ai_response

    @property
    def alert_result(self) -> Optional[AlertResult]:
        with self._lock:
            return self._alert_result

    @property
    def history(self) -> list[dict]:
        with self._lock:
            return list(self._history)

    # ──────────────────────────────────────────
    # Transitions
    # ──────────────────────────────────────────

    def activate(self) -> bool:
        if self._try_transition(SafetyState.ACTIVE, "activate") is None:
            return False
        if self._start_capture():
            return True
        self._try_transition(SafetyState.IDLE, "capture_failed")
        return False

    def deactivate(self) -> bool:
        if self._try_transition(SafetyState.IDLE, "deactivate") is None:
            return False
        self._stop_capture()
        with self._lock:
            self._transcription = ""
            self._ai_response = ""
        return True

    def process_capture(self) -> bool:
        """Stop capturing and run the recorded segment through the pipeline."""
        with self._lock:
            if self._state != SafetyState.ACTIVE or not self._capturing:
                return False
        audio = self._stop_capture()
        processed = self.submit_audio(audio)
        with self._lock:
            listen_again = self._state == SafetyState.ACTIVE
        if listen_again:
            self._start_capture()
        return processed

    def submit_audio(self, segment: bytes) -> bool:
        """Assess one captured segment. Only honoured while Active."""
        with self._lock:
            if self._state != SafetyState.ACTIVE or self._pipeline is None:
                logger.info("audio segment ignored in state %s", self._state.value)
                return False
            epoch = self._epoch

        try:
            assessment = self._pipeline.assess(segment)
        except Exception as exc:
            logger.error("threat assessment failed: %s", exc)
            return False

        with self._lock:
            if self._epoch != epoch:
                logger.info("assessment discarded, state changed to %s", self._state.value)
                return False
            self._transcription = assessment.transcription
            self._ai_response = assessment.ai_response

        # Reply is spoken before the alert is dispatched.
        self._play(assessment.ai_response)
        if assessment.threat_detected:
            self.threat_detected()
        return True

    def threat_detected(self) -> bool:
        applied = self._try_transition(SafetyState.ALERT, "threat_detected")
        if applied is None:
            return False
        self._dispatch(AlertKind.AURA, applied[1])
        return True

    def sos_trigger(self) -> bool:
        applied = self._try_transition(SafetyState.SOS_ACTIVE, "sos_trigger")
        if applied is None:
            return False
        from_state, epoch = applied
        logger.critical("SOS triggered from %s", from_state.value)
        if from_state == SafetyState.ACTIVE:
            self._stop_capture()
        self._dispatch(AlertKind.SOS, epoch)
        return True

    def voice_trigger(self) -> bool:
        """Trigger phrase heard. Escalates to SOS unless an emergency is already running."""
        with self._lock:
            if self._state in (SafetyState.SOS_ACTIVE, SafetyState.EMERGENCY_VOICE):
                logger.info("voice trigger ignored in state %s", self._state.value)
                return False
        return self.sos_trigger()

    def emergency_voice_trigger(self) -> bool:
        applied = self._try_transition(SafetyState.EMERGENCY_VOICE, "emergency_voice_trigger")
        if applied is None:
            return False
        logger.critical("emergency voice call started")
        if self._emergency_voice is not None:
            self._emergency_voice.start()
        self._dispatch(AlertKind.AURA, applied[1])
        return True

    def answer_call(self) -> bool:
        with self._lock:
            if self._state != SafetyState.EMERGENCY_VOICE or self._emergency_voice is None:
                return False
        return self._emergency_voice.answer()

    def end_call(self) -> bool:
        with self._lock:
            if self._state != SafetyState.EMERGENCY_VOICE:
                return False
        return self.reset_to_idle("end_call")

    def all_clear(self) -> bool:
        """Tell contacts the user is safe, then return to Idle."""
        with self._lock:
            if self._state not in (SafetyState.ALERT, SafetyState.SOS_ACTIVE):
                return False
            epoch = self._epoch
        location = self._current_location()
        self._dispatcher.send_alert(self._user_id, location, AlertKind.AURA)
        return self._reset("all_clear", epoch)

    def reset_to_idle(self, event: str = "reset_to_idle") -> bool:
        """Return to Idle from any state, cancelling whatever is in flight."""
        return self._reset(event)

    # ──────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────

    def _reset(self, event: str, epoch: Optional[int] = None) -> bool:
        with self._lock:
            if epoch is not None and self._epoch != epoch:
                logger.info("%s skipped, state already changed to %s", event, self._state.value)
                return False
            from_state = self._state
            self._state = SafetyState.IDLE
            self._epoch += 1
            self._transcription = ""
            self._ai_response = ""
            self._alert_result = None
            self._record(from_state, SafetyState.IDLE, event)

        self._stop_capture()
        if self._emergency_voice is not None:
            self._emergency_voice.end_call()
        if self._pipeline is not None:
            try:
                self._pipeline.cancel()
            except Exception as exc:
                logger.warning("pipeline cancel failed: %s", exc)
        self._notify(from_state, SafetyState.IDLE, event)
        return True

    def _transition(self, new_state: SafetyState, event: str) -> tuple[SafetyState, int]:
        """
        Apply a validated transition.

        Returns the state left and the epoch the transition opened, both read
        under the lock so callers can tie later results to this transition.

        Raises:
            InvalidTransitionError: If the transition is not in the valid map.
        """
        with self._lock:
            from_state = self._state
            if new_state not in _VALID_TRANSITIONS.get(from_state, []):
                raise InvalidTransitionError(from_state, new_state, event)
            self._state = new_state
            self._epoch += 1
            self._record(from_state, new_state, event)
            epoch = self._epoch
        self._notify(from_state, new_state, event)
        return from_state, epoch

    def _try_transition(
        self, new_state: SafetyState, event: str
    ) -> Optional[tuple[SafetyState, int]]:
        try:
            return self._transition(new_state, event)
        except InvalidTransitionError as exc:
            logger.info("ignored: %s", exc)
            return None

    def _record(self, from_state: SafetyState, to_state: SafetyState, event: str) -> None:
        self._history.append(
            {
                "from": from_state.value,
                "to": to_state.value,
                "event": event,
                "timestamp": time.time(),
            }
        )
        if len(self._history) > _MAX_HISTORY:
            self._history.pop(0)
        logger.info("safety: %s → %s [%s]", from_state.value, to_state.value, event)

    def _notify(self, from_state: SafetyState, to_state: SafetyState, event: str) -> None:
        if self._on_transition is None:
            return
        try:
            self._on_transition(from_state, to_state, event)
        except Exception as exc:  # noqa: BLE001
            logger.warning("transition callback raised: %s", exc)

    def _dispatch(self, kind: AlertKind, epoch: int) -> None:
        location = self._current_location()
        result = self._dispatcher.send_alert(self._user_id, location, kind)
        with self._lock:
            if self._epoch != epoch:
                logger.info("%s alert result discarded, state changed to %s", kind.value, self._state.value)
                return
            self._alert_result = result

    def _current_location(self) -> Location:
        if self._location is None:
            return FALLBACK_LOCATION
        return self._location.current_or_fallback()

    def _start_capture(self) -> bool:
        if self._capture is None:
            return True
        try:
            self._capture.start()
        except Exception as exc:
            logger.error("audio capture failed to start: %s", exc)
            self._report(AUDIO_CAPTURE_FAILED, str(exc))
            return False
        with self._lock:
            self._capturing = True
        return True

    def _stop_capture(self) -> bytes:
        with self._lock:
            if self._capture is None or not self._capturing:
                return b""
            self._capturing = False
        try:
            return self._capture.stop()
        except Exception as exc:
            logger.error("audio capture failed to stop: %s", exc)
            self._report(AUDIO_CAPTURE_FAILED, str(exc))
            return b""

    def _play(self, text: str) -> None:
        if self._pipeline is None:
            return
        try:
            self._pipeline.play_response(text)
        except PlaybackError as exc:
            logger.error("playback failed: %s", exc)
            self._report(PLAYBACK_FAILED, str(exc))

    def _report(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)
