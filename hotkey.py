"""Global hotkey adapter based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Mapping, Optional

from config import DEFAULT_HOTKEYS

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)


class GlobalHotkeyAdapter:
    """Maps pynput key names to actions; each action fires once per key press.

    ``bindings`` is ``{action: key_name}`` with names in pynput's ``str(key)``
    format, e.g. ``Key.f9`` or ``'s'``.
    """

    def __init__(self, bindings: Optional[Mapping[str, str]] = None) -> None:
        self._bindings = dict(bindings or DEFAULT_HOTKEYS)
        self._listener: Optional[object] = None
        self._held: set[str] = set()
        self._lock = threading.Lock()
        self._actions: dict[str, Callable[[], None]] = {}

    @property
    def bindings(self) -> dict[str, str]:
        return dict(self._bindings)

    def start(self, actions: Mapping[str, Callable[[], None]]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self._actions = {
            key_name: actions[action]
            for action, key_name in self._bindings.items()
            if action in actions
        }
        self._listener = keyboard.Listener(on_press=self._on_press, on_release=self._on_release)
        self._listener.start()
        logger.info("hotkeys active: %s", self._bindings)

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None

    def _on_press(self, key: object) -> None:
        name = str(key)
        callback = self._actions.get(name)
        if callback is None:
            return
        with self._lock:
            if name in self._held:
                return
            self._held.add(name)
        try:
            callback()
        except Exception as exc:
            logger.error("hotkey %s handler failed: %s", name, exc)

    def _on_release(self, key: object) -> None:
        with self._lock:
            self._held.discard(str(key))
