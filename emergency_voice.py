"""Simulated incoming call that speaks escalating warnings once answered."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Sequence

from interfaces import OnDeviceSpeech, Scheduler, TimerHandle
from scheduler import ThreadingScheduler

logger = logging.getLogger(__name__)

WARNINGS = (
    "Hey! I can see you on camera right now. Step away from that person immediately.",
    "This is a monitored safety call. I'm recording everything and your location is being "
    "tracked. Back off now!",
    "Police have been notified and are en route to your exact location. I repeat - authorities "
    "are on the way. Leave immediately!",
    "This is your final warning. Emergency services are 2 minutes away. You are being recorded "
    "and identified. Move away now!",
)

AUTO_ANSWER_DELAY_S = 2.5
WARNING_GAP_S = 10.0
CALLER_NAME = "Dad"


class EmergencyVoiceSequence:
    """Fake call from ``caller_name``.

    The call auto-answers after ``answer_delay_s``; answering starts the
    warning sequence on a worker thread with ``warning_gap_s`` between lines.
    :meth:`end_call` cancels pending speech immediately.
    """

    def __init__(
        self,
        speech: OnDeviceSpeech,
        scheduler: Optional[Scheduler] = None,
        warnings: Sequence[str] = WARNINGS,
        answer_delay_s: float = AUTO_ANSWER_DELAY_S,
        warning_gap_s: float = WARNING_GAP_S,
        caller_name: str = CALLER_NAME,
        on_finished: Optional[Callable[[], None]] = None,
    ) -> None:
        self._speech = speech
        self._scheduler = scheduler or ThreadingScheduler()
        self._warnings = tuple(warnings)
        self._answer_delay_s = answer_delay_s
        self._warning_gap_s = warning_gap_s
        self.caller_name = caller_name
        self._on_finished = on_finished

        self._lock = threading.RLock()
        self._cancel = threading.Event()
        self._answer_timer: Optional[TimerHandle] = None
        self._worker: Optional[threading.Thread] = None
        self._active = False
        self._answered = False
        self._spoken: list[str] = []

    @property
    def active(self) -> bool:
        return self._active

    @property
    def answered(self) -> bool:
        return self._answered

    @property
    def spoken(self) -> list[str]:
        return list(self._spoken)

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self._active = True
            self._answered = False
            self._spoken = []
            self._cancel = threading.Event()
            logger.critical("incoming call from %s", self.caller_name)
            self._answer_timer = self._scheduler.call_later(self._answer_delay_s, self.answer)

    def answer(self) -> bool:
        with self._lock:
            if not self._active or self._answered:
                return False
            self._answered = True
            self._cancel_answer_timer()
            cancel = self._cancel
            self._worker = threading.Thread(
                target=self._play_warnings, args=(cancel,), daemon=True, name="emergency-voice"
            )
            self._worker.start()
        logger.info("call answered, playing %d warnings", len(self._warnings))
        return True

    def end_call(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            self._cancel.set()
            self._cancel_answer_timer()
        try:
            self._speech.cancel()
        except Exception as exc:
            logger.warning("speech cancel failed: %s", exc)
        logger.info("call with %s ended", self.caller_name)

    def join(self, timeout: Optional[float] = None) -> None:
        worker = self._worker
        if worker is not None:
            worker.join(timeout)

    def _play_warnings(self, cancel: threading.Event) -> None:
        for index, warning in enumerate(self._warnings):
            if cancel.is_set():
                return
            try:
                self._speech.speak(warning)
            except Exception as exc:
                logger.error("warning %d could not be spoken: %s", index + 1, exc)
            if cancel.is_set():
                return
            self._spoken.append(warning)
            if index < len(self._warnings) - 1 and cancel.wait(self._warning_gap_s):
                return
        logger.info("warning sequence finished")
        if self._on_finished:
            self._on_finished()

    def _cancel_answer_timer(self) -> None:
        if self._answer_timer is not None:
            self._answer_timer.cancel()
            self._answer_timer = None
