from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from hotkey import GlobalHotkeyAdapter


class _Key:
    def __init__(self, name: str) -> None:
        self._name = name

    def __str__(self) -> str:
        return self._name


@patch("hotkey.keyboard")
def test_bound_key_fires_action_once_per_press(mock_keyboard: MagicMock) -> None:
    calls: list[str] = []
    adapter = GlobalHotkeyAdapter({"sos": "Key.f9", "reset": "Key.f12"})
    adapter.start({"sos": lambda: calls.append("sos"), "reset": lambda: calls.append("reset")})

    kwargs = mock_keyboard.Listener.call_args.kwargs
    on_press, on_release = kwargs["on_press"], kwargs["on_release"]

    on_press(_Key("Key.f9"))
    on_press(_Key("Key.f9"))  # auto-repeat while held
    on_release(_Key("Key.f9"))
    on_press(_Key("Key.f9"))
    on_press(_Key("Key.f12"))
    on_press(_Key("Key.space"))

    assert calls == ["sos", "sos", "reset"]
    mock_keyboard.Listener.return_value.start.assert_called_once()


@patch("hotkey.keyboard")
def test_handler_error_does_not_break_listener(mock_keyboard: MagicMock) -> None:
    def _boom() -> None:
        raise RuntimeError("boom")

    adapter = GlobalHotkeyAdapter({"sos": "Key.f9"})
    adapter.start({"sos": _boom})
    on_press = mock_keyboard.Listener.call_args.kwargs["on_press"]

    on_press(_Key("Key.f9"))


@patch("hotkey.keyboard")
def test_stop_stops_listener(mock_keyboard: MagicMock) -> None:
    adapter = GlobalHotkeyAdapter()
    adapter.start({})
    adapter.stop()
    adapter.stop()
    mock_keyboard.Listener.return_value.stop.assert_called_once()


def test_default_bindings() -> None:
    assert GlobalHotkeyAdapter().bindings == {
        "activate": "Key.f8",
        "sos": "Key.f9",
        "emergency_voice": "Key.f10",
        "reset": "Key.f12",
    }


def test_start_without_pynput(monkeypatch) -> None:  # noqa: ANN001
    import hotkey

    monkeypatch.setattr(hotkey, "keyboard", None)
    with pytest.raises(RuntimeError, match="pynput is not installed"):
        GlobalHotkeyAdapter().start({})
