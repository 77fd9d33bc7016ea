from __future__ import annotations

from unittest.mock import MagicMock, patch

from permissions import SoundDevicePermission


@patch("permissions.sd")
def test_query_prompt_with_input_device(mock_sd: MagicMock) -> None:
    mock_sd.query_devices.return_value = {"name": "mic", "max_input_channels": 1}
    assert SoundDevicePermission().query() == "prompt"


@patch("permissions.sd")
def test_query_denied_without_input_device(mock_sd: MagicMock) -> None:
    mock_sd.query_devices.side_effect = ValueError("no input device")
    assert SoundDevicePermission().query() == "denied"


def test_query_denied_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    import permissions

    monkeypatch.setattr(permissions, "sd", None)
    assert SoundDevicePermission().query() == "denied"


@patch("permissions.sd")
def test_request_grants_and_notifies(mock_sd: MagicMock) -> None:
    stream = MagicMock()
    mock_sd.InputStream.return_value = stream
    seen: list[str] = []
    permission = SoundDevicePermission()
    permission.watch(seen.append)

    assert permission.request()

    stream.start.assert_called_once()
    stream.close.assert_called_once()
    assert permission.query() == "granted"
    assert seen == ["granted"]


@patch("permissions.sd")
def test_request_failure_denies(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.side_effect = RuntimeError("Access denied")
    seen: list[str] = []
    permission = SoundDevicePermission()
    permission.watch(seen.append)

    assert not permission.request()
    assert permission.query() == "denied"
    assert seen == ["denied"]


@patch("permissions.sd")
def test_revoke_notifies_once(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    seen: list[str] = []
    permission = SoundDevicePermission()
    permission.watch(seen.append)
    permission.request()

    permission.revoke()
    permission.revoke()

    assert seen == ["granted", "denied"]
