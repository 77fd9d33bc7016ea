from __future__ import annotations

from pathlib import Path

from config import DEFAULT_THREAT_KEYWORDS, JsonConfigStore, generate_user_id
from models import TriggerPhraseConfig


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_api_key() == ""
    assert store.get_trigger_phrase() == "Help Aura"
    assert store.get_hotkeys()["sos"] == "Key.f9"

    store.set_api_key("abc")
    store.set_trigger_phrase("Hey Aura")
    store.set_hotkey("sos", "Key.f7")

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_api_key() == "abc"
    assert reloaded.get_trigger_config() == TriggerPhraseConfig(phrase="Hey Aura", language="en-US")
    hotkeys = reloaded.get_hotkeys()
    assert hotkeys["sos"] == "Key.f7"
    assert hotkeys["activate"] == "Key.f8"


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_api_key() == ""
    assert store.get_voice_activation_enabled() is False
    assert store.get_threat_keywords() == DEFAULT_THREAT_KEYWORDS


def test_user_id_generated_once(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    first = JsonConfigStore(path=path).get_user_id()

    assert first.startswith("user_")
    assert JsonConfigStore(path=path).get_user_id() == first


def test_generate_user_id_format() -> None:
    _, millis, suffix = generate_user_id().split("_")
    assert millis.isdigit()
    assert len(suffix) == 9
    assert suffix.isalnum() and suffix == suffix.lower()


def test_contact_count_is_never_negative(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    assert store.get_contact_count() is None
    store.set_contact_count(-4)
    assert store.get_contact_count() == 0
    store.set_contact_count(2)
    assert store.get_contact_count() == 2


def test_threat_keywords_are_lowercased(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set_threat_keywords(["Back Off", "HELP"])
    assert store.get_threat_keywords() == ["back off", "help"]


def test_location_timeout_default_and_bad_value(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)
    assert store.get_location_timeout_s() == 10.0

    path.write_text('{"location_timeout_s": "soon"}', encoding="utf-8")
    assert store.get_location_timeout_s() == 10.0
