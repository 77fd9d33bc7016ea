"""Application entrypoint."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import Callable, Optional

from alert_dispatcher import AlertDispatcher
from config import JsonConfigStore
from emergency_voice import EmergencyVoiceSequence
from errors import ERROR_MESSAGES
from hotkey import GlobalHotkeyAdapter
from location import IpGeolocator, LocationService
from models import PermissionState, RecognitionSessionState, SafetyState, TranscriptEvent
from notifier import HttpAlertNotifier
from permissions import SoundDevicePermission
from recognizer import DashscopeContinuousRecognition, DashscopeTranscriber
from recorder import AudioSegmentCapture
from responder import DashscopeResponder
from safety_state import SafetyStateMachine
from scheduler import ThreadingScheduler
from speech_output import DashscopeSynthesizer, Pyttsx3Speaker, SoundDevicePlayer
from speech_session import SpeechSessionManager
from threat_pipeline import AudioThreatPipeline

logger = logging.getLogger("aura")

LOG_FORMAT = "[%(levelname)s] %(name)s — %(message)s"


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


class App:
    def __init__(self, config_store: JsonConfigStore, voice_enabled: bool) -> None:
        self.config_store = config_store
        self._voice_enabled = voice_enabled
        self._stopped = threading.Event()

        api_key = config_store.get_api_key()
        scheduler = ThreadingScheduler()
        speaker = Pyttsx3Speaker()

        contact_count = config_store.get_contact_count()
        self.dispatcher = AlertDispatcher(
            notifier=HttpAlertNotifier(
                base_url=config_store.get_alert_base_url(),
                api_key=config_store.get_alert_api_key(),
            ),
            contact_count=contact_count,
            on_error=self._on_error,
        )
        timeout_s = config_store.get_location_timeout_s()
        self.pipeline = AudioThreatPipeline(
            transcriber=DashscopeTranscriber(api_key=api_key),
            responder=DashscopeResponder(api_key=api_key),
            synthesizer=DashscopeSynthesizer(api_key=api_key),
            player=SoundDevicePlayer(),
            on_device=speaker,
            threat_keywords=config_store.get_threat_keywords(),
            on_error=self._on_error,
        )
        self.machine = SafetyStateMachine(
            dispatcher=self.dispatcher,
            user_id=config_store.get_user_id(),
            location=LocationService(IpGeolocator(timeout_s=timeout_s), timeout_s=timeout_s),
            pipeline=self.pipeline,
            capture=AudioSegmentCapture(),
            emergency_voice=EmergencyVoiceSequence(speaker, scheduler=scheduler),
            on_transition=self._on_safety_transition,
            on_error=self._on_error,
        )

        recognition: Optional[DashscopeContinuousRecognition] = None
        permission: Optional[SoundDevicePermission] = None
        if DashscopeContinuousRecognition.supported():
            recognition = DashscopeContinuousRecognition(api_key=api_key)
            permission = SoundDevicePermission()
        self.session = SpeechSessionManager(
            recognition=recognition,
            permission=permission,
            trigger=config_store.get_trigger_config(),
            on_activate=self._on_voice_activate,
            scheduler=scheduler,
            on_state_change=self._on_session_state,
            on_transcript=self._on_transcript,
            on_error=self._on_error,
        )
        self.hotkey = GlobalHotkeyAdapter(bindings=config_store.get_hotkeys())

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads)
    # ------------------------------------------------------------------

    def _on_voice_activate(self) -> None:
        logger.warning("trigger phrase detected")
        _spawn(self.machine.voice_trigger, "voice-trigger")

    def _on_session_state(
        self, from_state: RecognitionSessionState, to_state: RecognitionSessionState
    ) -> None:
        logger.debug("voice session: %s → %s", from_state.value, to_state.value)

    def _on_transcript(self, event: TranscriptEvent) -> None:
        logger.debug("heard%s: %s", " (final)" if event.is_final else "", event.text)

    def _on_safety_transition(self, from_state: SafetyState, to_state: SafetyState, event: str) -> None:
        if to_state == SafetyState.SOS_ACTIVE:
            print("SOS active: alerting emergency contacts.", file=sys.stderr)
        elif to_state == SafetyState.ALERT:
            print("Threat detected: alerting emergency contacts.", file=sys.stderr)

    def _on_error(self, code: str, message: str) -> None:
        logger.warning("%s: %s", ERROR_MESSAGES.get(code, code), message)

    # ------------------------------------------------------------------
    # Hotkey handlers
    # ------------------------------------------------------------------

    def _on_activate_key(self) -> None:
        if self.machine.state == SafetyState.ACTIVE:
            # Processing waits on network calls; keep the listener thread free.
            _spawn(self.machine.process_capture, "process-capture")
        else:
            self.machine.activate()

    def _on_sos_key(self) -> None:
        _spawn(self.machine.sos_trigger, "sos")

    def _on_emergency_voice_key(self) -> None:
        if self.machine.state == SafetyState.EMERGENCY_VOICE:
            self.machine.end_call()
        else:
            _spawn(self.machine.emergency_voice_trigger, "emergency-voice")

    def _on_reset_key(self) -> None:
        if self.machine.state in (SafetyState.ALERT, SafetyState.SOS_ACTIVE):
            _spawn(self.machine.all_clear, "all-clear")
        else:
            self.machine.reset_to_idle()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _start_voice(self) -> None:
        permission = self.session.initialize()
        if permission == PermissionState.PROMPT:
            self.session.request_permission()
        self.session.run_in_background()
        if not self.session.start():
            logger.warning(
                "voice activation unavailable (permission: %s)",
                self.session.permission_state.value,
            )

    def run(self) -> int:
        if self._voice_enabled:
            self._start_voice()
        try:
            self.hotkey.start(
                {
                    "activate": self._on_activate_key,
                    "sos": self._on_sos_key,
                    "emergency_voice": self._on_emergency_voice_key,
                    "reset": self._on_reset_key,
                }
            )
        except Exception as exc:
            logger.error("Hotkey disabled: %s", exc)
        logger.info("ready; press Ctrl+C to quit")
        try:
            while not self._stopped.wait(0.5):
                pass
        except KeyboardInterrupt:
            pass
        self.quit()
        return 0

    def quit(self) -> None:
        self._stopped.set()
        self.hotkey.stop()
        self.session.close()
        self.machine.reset_to_idle("app quit")


def _spawn(target: Callable[[], object], name: str) -> None:
    threading.Thread(target=target, daemon=True, name=name).start()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="aura", description="Personal safety companion")
    parser.add_argument("--config", type=Path, default=None, help="path to config.json")
    parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")
    voice = parser.add_mutually_exclusive_group()
    voice.add_argument("--voice", dest="voice", action="store_true", default=None,
                       help="enable voice activation")
    voice.add_argument("--no-voice", dest="voice", action="store_false",
                       help="disable voice activation")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    config_store = JsonConfigStore(args.config)
    voice_enabled = config_store.get_voice_activation_enabled() if args.voice is None else args.voice
    app = App(config_store, voice_enabled=voice_enabled)
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
