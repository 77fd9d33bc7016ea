"""Simple JSON-based config store."""

from __future__ import annotations

import json
import random
import string
import time
from pathlib import Path
from typing import Optional

from models import TriggerPhraseConfig

DEFAULT_TRIGGER_PHRASE = "Help Aura"
DEFAULT_LANGUAGE = "en-US"
DEFAULT_LOCATION_TIMEOUT_S = 10.0

DEFAULT_THREAT_KEYWORDS = [
    "help me",
    "help",
    "go away",
    "leave me alone",
    "stop",
    "no",
    "scared",
    "afraid",
    "uncomfortable",
    "threatening",
    "following",
    "emergency",
    "call police",
    "danger",
    "unsafe",
]

DEFAULT_HOTKEYS = {
    "activate": "Key.f8",
    "sos": "Key.f9",
    "emergency_voice": "Key.f10",
    "reset": "Key.f12",
}


def generate_user_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"user_{int(time.time() * 1000)}_{suffix}"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "aura" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        return str(self._read_all().get("api_key", ""))

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_trigger_phrase(self) -> str:
        return str(self._read_all().get("trigger_phrase", DEFAULT_TRIGGER_PHRASE))

    def set_trigger_phrase(self, phrase: str) -> None:
        self._set("trigger_phrase", phrase)

    def get_language(self) -> str:
        return str(self._read_all().get("language", DEFAULT_LANGUAGE))

    def set_language(self, language: str) -> None:
        self._set("language", language)

    def get_trigger_config(self) -> TriggerPhraseConfig:
        return TriggerPhraseConfig(phrase=self.get_trigger_phrase(), language=self.get_language())

    def get_voice_activation_enabled(self) -> bool:
        return bool(self._read_all().get("voice_activation_enabled", False))

    def set_voice_activation_enabled(self, enabled: bool) -> None:
        self._set("voice_activation_enabled", bool(enabled))

    def get_user_id(self) -> str:
        data = self._read_all()
        user_id = str(data.get("user_id", ""))
        if not user_id:
            user_id = generate_user_id()
            data["user_id"] = user_id
            self._write_all(data)
        return user_id

    def get_alert_base_url(self) -> str:
        return str(self._read_all().get("alert_base_url", ""))

    def set_alert_base_url(self, url: str) -> None:
        self._set("alert_base_url", url)

    def get_alert_api_key(self) -> str:
        return str(self._read_all().get("alert_api_key", ""))

    def set_alert_api_key(self, key: str) -> None:
        self._set("alert_api_key", key)

    def get_contact_count(self) -> Optional[int]:
        """Configured emergency-contact count, or None when never set."""
        value = self._read_all().get("contact_count")
        if value is None:
            return None
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return None

    def set_contact_count(self, count: int) -> None:
        self._set("contact_count", max(0, int(count)))

    def get_location_timeout_s(self) -> float:
        try:
            return float(self._read_all().get("location_timeout_s", DEFAULT_LOCATION_TIMEOUT_S))
        except (TypeError, ValueError):
            return DEFAULT_LOCATION_TIMEOUT_S

    def get_threat_keywords(self) -> list[str]:
        value = self._read_all().get("threat_keywords")
        if not isinstance(value, list) or not value:
            return list(DEFAULT_THREAT_KEYWORDS)
        return [str(item).lower() for item in value if str(item).strip()]

    def set_threat_keywords(self, keywords: list[str]) -> None:
        self._set("threat_keywords", [k.lower() for k in keywords])

    def get_hotkeys(self) -> dict[str, str]:
        hotkeys = dict(DEFAULT_HOTKEYS)
        value = self._read_all().get("hotkeys")
        if isinstance(value, dict):
            hotkeys.update({str(k): str(v) for k, v in value.items()})
        return hotkeys

    def set_hotkey(self, action: str, key_name: str) -> None:
        data = self._read_all()
        hotkeys = data.get("hotkeys") if isinstance(data.get("hotkeys"), dict) else {}
        hotkeys[action] = key_name
        data["hotkeys"] = hotkeys
        self._write_all(data)

    def _set(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
