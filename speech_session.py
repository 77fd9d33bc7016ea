"""Continuous voice-trigger session with auto-restart and cooldown."""

from __future__ import annotations

import logging
import threading
from queue import Empty, Queue
from typing import Callable, Optional

from errors import (
    ERROR_MESSAGES,
    PERMISSION_DENIED,
    RECOGNITION_ERROR,
    RECOGNITION_UNSUPPORTED,
    REVOKED_ACCESS_CODES,
)
from fuzzy_match import matches
from interfaces import PermissionCapability, RecognitionCapability, Scheduler, TimerHandle
from models import (
    PermissionState,
    RecognitionEvent,
    RecognitionKind,
    RecognitionSessionState,
    TranscriptEvent,
    TriggerPhraseConfig,
)
from scheduler import ThreadingScheduler

logger = logging.getLogger(__name__)

StateCallback = Callable[[RecognitionSessionState, RecognitionSessionState], None]
TranscriptCallback = Callable[[TranscriptEvent], None]
ErrorCallback = Callable[[str, str], None]
PermissionChangeCallback = Callable[[PermissionState], None]

TRIGGER_COOLDOWN_S = 1.0
MAX_RESTART_BACKOFF_S = 30.0

_ACTIVE_STATES = (RecognitionSessionState.STARTING, RecognitionSessionState.LISTENING)


def assemble_transcript(event: RecognitionEvent) -> TranscriptEvent:
    """Collapse a result event into the current transcript.

    Final text wins over interim text when both are present.
    """
    final_text = ""
    interim_text = ""
    for result in event.results[event.result_index:]:
        if not result.alternatives:
            continue
        if result.is_final:
            final_text += result.alternatives[0]
        else:
            interim_text += result.alternatives[0]
    if final_text:
        return TranscriptEvent(text=final_text, is_final=True)
    return TranscriptEvent(text=interim_text, is_final=False)


class SpeechSessionManager:
    """Owns the single recognition session used for voice activation.

    Platform events, permission changes and cooldown timers are all posted
    to one queue and handled in order by :meth:`pump` (or the dispatch
    thread started with :meth:`run_in_background`). Events tagged with an
    older session id are dropped, so a stopped or triggered session can
    never restart or fire twice.
    """

    def __init__(
        self,
        recognition: Optional[RecognitionCapability],
        permission: Optional[PermissionCapability],
        trigger: TriggerPhraseConfig,
        on_activate: Callable[[], None],
        scheduler: Optional[Scheduler] = None,
        cooldown_s: float = TRIGGER_COOLDOWN_S,
        matcher: Callable[[str, str], bool] = matches,
        on_state_change: Optional[StateCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_permission_change: Optional[PermissionChangeCallback] = None,
    ) -> None:
        self._recognition = recognition
        self._permission_capability = permission
        self._trigger = trigger
        self._on_activate = on_activate
        self._scheduler = scheduler or ThreadingScheduler()
        self._cooldown_s = cooldown_s
        self._matcher = matcher
        self._on_state_change = on_state_change
        self._on_transcript = on_transcript
        self._on_error = on_error
        self._on_permission_change = on_permission_change

        self._lock = threading.RLock()
        self._events: Queue[RecognitionEvent | None] = Queue()
        self._state = RecognitionSessionState.STOPPED
        self._permission = PermissionState.PROMPT
        self._enabled = False
        self._session_id = 0
        self._restart_handle: Optional[TimerHandle] = None
        self._restart_token = 0
        self._failed_sessions = 0
        self._session_errored = False
        self._transcript = ""
        self._last_error = ""
        self._dispatch_thread: Optional[threading.Thread] = None

        if recognition is None or permission is None:
            self._permission = PermissionState.UNSUPPORTED
        else:
            recognition.configure(
                continuous=True,
                interim_results=True,
                language=trigger.language,
            )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> RecognitionSessionState:
        return self._state

    @property
    def permission_state(self) -> PermissionState:
        return self._permission

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_listening(self) -> bool:
        return self._state == RecognitionSessionState.LISTENING

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def last_error(self) -> str:
        return self._last_error

    @property
    def trigger(self) -> TriggerPhraseConfig:
        return self._trigger

    @property
    def restart_pending(self) -> bool:
        return self._restart_handle is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def initialize(self) -> PermissionState:
        """Query the current microphone permission and subscribe to changes."""
        with self._lock:
            if self._permission == PermissionState.UNSUPPORTED:
                self._emit_error(RECOGNITION_UNSUPPORTED, ERROR_MESSAGES[RECOGNITION_UNSUPPORTED])
                return self._permission
            assert self._permission_capability is not None
            try:
                value = self._permission_capability.query()
                self._permission_capability.watch(self._post_permission)
            except Exception as exc:
                logger.warning("permission query failed: %s", exc)
                value = PermissionState.PROMPT.value
            self._set_permission(_coerce_permission(value))
            return self._permission

    def start(self) -> bool:
        """Enable voice activation and begin listening if permitted.

        Returns True when a session is running or about to run.
        """
        with self._lock:
            if self._permission == PermissionState.UNSUPPORTED:
                self._emit_error(RECOGNITION_UNSUPPORTED, ERROR_MESSAGES[RECOGNITION_UNSUPPORTED])
                return False
            self._enabled = True
            if self._permission != PermissionState.GRANTED:
                logger.info("voice activation waiting for permission (%s)", self._permission.value)
                return False
            if self._state in _ACTIVE_STATES or self._restart_handle is not None:
                return True
            return self._begin_session()

    def stop(self) -> None:
        """Disable voice activation and end any session or pending restart."""
        with self._lock:
            self._enabled = False
            self._cancel_restart()
            if self._state == RecognitionSessionState.STOPPED:
                return
            self._halt_session()

    def request_permission(self) -> bool:
        with self._lock:
            if self._permission == PermissionState.UNSUPPORTED:
                self._emit_error(RECOGNITION_UNSUPPORTED, ERROR_MESSAGES[RECOGNITION_UNSUPPORTED])
                return False
            assert self._permission_capability is not None
            try:
                granted = bool(self._permission_capability.request())
            except Exception as exc:
                logger.warning("permission request failed: %s", exc)
                granted = False
            if not granted:
                self._set_permission(PermissionState.DENIED)
                self._emit_error(PERMISSION_DENIED, ERROR_MESSAGES[PERMISSION_DENIED])
                return False
            self._set_permission(PermissionState.GRANTED)
            if self._should_restart():
                self._begin_session()
            return True

    def post(self, event: RecognitionEvent) -> None:
        """Queue a platform event; safe to call from any thread."""
        self._events.put(event)

    def pump(self) -> int:
        """Handle every queued event in order. Returns the number handled."""
        handled = 0
        while True:
            try:
                event = self._events.get_nowait()
            except Empty:
                return handled
            if event is None:
                return handled
            self._dispatch(event)
            handled += 1

    def run_in_background(self) -> None:
        if self._dispatch_thread and self._dispatch_thread.is_alive():
            return
        self._dispatch_thread = threading.Thread(
            target=self._dispatch_loop,
            daemon=True,
            name="speech-session",
        )
        self._dispatch_thread.start()

    def close(self) -> None:
        self.stop()
        thread = self._dispatch_thread
        if thread is not None and thread.is_alive():
            self._events.put(None)
            thread.join(timeout=1.0)
        self._dispatch_thread = None

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def _dispatch_loop(self) -> None:
        while True:
            event = self._events.get()
            if event is None:
                return
            try:
                self._dispatch(event)
            except Exception:
                logger.exception("speech session dispatch failed for %s", event.kind)

    def _dispatch(self, event: RecognitionEvent) -> None:
        with self._lock:
            kind = event.kind
            if kind == RecognitionKind.PERMISSION.value:
                self._handle_permission_change(_coerce_permission(event.permission))
                return
            if kind == RecognitionKind.RESTART_DUE.value:
                self._handle_restart_due(event.session_id)
                return
            if event.session_id != self._session_id:
                logger.debug("dropping stale %s event from session %d", kind, event.session_id)
                return
            if kind == RecognitionKind.STARTED.value:
                self._handle_started()
            elif kind == RecognitionKind.RESULT.value:
                self._handle_result(event)
            elif kind == RecognitionKind.ERROR.value:
                self._handle_error(event.code, event.message)
            elif kind == RecognitionKind.ENDED.value:
                self._handle_ended()

    def _handle_started(self) -> None:
        if self._state != RecognitionSessionState.STARTING:
            return
        self._last_error = ""
        self._failed_sessions = 0
        self._transition(RecognitionSessionState.LISTENING)

    def _handle_result(self, event: RecognitionEvent) -> None:
        if not self._enabled or self._state not in _ACTIVE_STATES:
            return
        current = assemble_transcript(event)
        self._transcript = current.text
        if self._on_transcript:
            self._on_transcript(current)
        if current.text and self._matcher(current.text, self._trigger.phrase):
            self._handle_trigger(current.text)

    def _handle_trigger(self, text: str) -> None:
        logger.info("trigger phrase detected in %r", text)
        try:
            self._on_activate()
        except Exception:
            logger.exception("activation callback raised")
        self._halt_session()
        self._schedule_restart()

    def _handle_error(self, code: str, message: str) -> None:
        if code in REVOKED_ACCESS_CODES:
            logger.warning("microphone access revoked (%s)", code)
            self._set_permission(PermissionState.DENIED)
            self._emit_error(PERMISSION_DENIED, message or ERROR_MESSAGES[PERMISSION_DENIED])
            self._cancel_restart()
            self._halt_session()
            return
        # Transient: report and let the ended event schedule the restart.
        self._session_errored = True
        logger.warning("speech recognition error: %s %s", code, message)
        self._emit_error(RECOGNITION_ERROR, f"Speech recognition error: {code}")

    def _handle_ended(self) -> None:
        failed = self._session_errored or self._state == RecognitionSessionState.STARTING
        self._transition(RecognitionSessionState.ENDED)
        if not self._should_restart():
            return
        if not failed:
            logger.debug("recognition ended, restarting")
            self._begin_session()
            return
        # A session that errored or never reached LISTENING waits before retrying.
        self._failed_sessions += 1
        delay = min(self._cooldown_s * 2 ** (self._failed_sessions - 1), MAX_RESTART_BACKOFF_S)
        logger.info("recognition failed %d time(s), retrying in %.1fs", self._failed_sessions, delay)
        self._schedule_restart(delay)

    def _handle_restart_due(self, token: int) -> None:
        if self._restart_handle is None or token != self._restart_token:
            return
        self._restart_handle = None
        if self._should_restart():
            logger.debug("cooldown elapsed, restarting")
            self._begin_session()

    def _handle_permission_change(self, permission: PermissionState) -> None:
        if permission == self._permission:
            return
        self._set_permission(permission)
        if permission == PermissionState.GRANTED:
            if self._should_restart():
                self._begin_session()
        elif self._state != RecognitionSessionState.STOPPED:
            self._cancel_restart()
            self._halt_session()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _should_restart(self) -> bool:
        return (
            self._enabled
            and self._permission == PermissionState.GRANTED
            and self._restart_handle is None
            and self._state not in _ACTIVE_STATES
        )

    def _begin_session(self) -> bool:
        if self._recognition is None:
            return False
        self._session_id += 1
        self._transcript = ""
        self._session_errored = False
        self._transition(RecognitionSessionState.STARTING)
        try:
            self._recognition.start(self._session_id, self.post)
        except Exception as exc:
            logger.error("failed to start speech recognition: %s", exc)
            self._emit_error(RECOGNITION_ERROR, f"Failed to start speech recognition: {exc}")
            self._session_id += 1
            self._transition(RecognitionSessionState.STOPPED)
            return False
        return True

    def _halt_session(self) -> None:
        # Bumping the id turns any in-flight events of the old session stale.
        self._session_id += 1
        self._safe_stop_recognition()
        self._transition(RecognitionSessionState.STOPPED)

    def _schedule_restart(self, delay_s: Optional[float] = None) -> None:
        self._cancel_restart()
        self._restart_token += 1
        token = self._restart_token
        self._restart_handle = self._scheduler.call_later(
            self._cooldown_s if delay_s is None else delay_s,
            lambda: self.post(
                RecognitionEvent(kind=RecognitionKind.RESTART_DUE.value, session_id=token)
            ),
        )

    def _cancel_restart(self) -> None:
        handle = self._restart_handle
        self._restart_handle = None
        if handle is not None:
            handle.cancel()

    def _post_permission(self, value: str) -> None:
        self.post(RecognitionEvent(kind=RecognitionKind.PERMISSION.value, permission=value))

    def _set_permission(self, permission: PermissionState) -> None:
        if permission == self._permission:
            return
        logger.info("microphone permission: %s → %s", self._permission.value, permission.value)
        self._permission = permission
        if self._on_permission_change:
            self._on_permission_change(permission)

    def _emit_error(self, code: str, message: str) -> None:
        self._last_error = message
        if self._on_error:
            self._on_error(code, message)

    def _safe_stop_recognition(self) -> None:
        if self._recognition is None:
            return
        try:
            self._recognition.stop()
        except Exception as exc:  # pragma: no cover
            logger.debug("recognition stop raised: %s", exc)

    def _transition(self, to_state: RecognitionSessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.info("speech session: %s → %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)


def _coerce_permission(value: object) -> PermissionState:
    if isinstance(value, PermissionState):
        return value
    try:
        return PermissionState(str(value))
    except ValueError:
        return PermissionState.PROMPT
