from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from errors import NotificationError, NotificationMisconfigured
from models import AlertKind, Location
from notifier import HttpAlertNotifier

HERE = Location(latitude=10.0, longitude=20.0)


def _response(ok: bool = True, payload: object = None, status: int = 200) -> MagicMock:
    response = MagicMock()
    response.ok = ok
    response.status_code = status
    response.reason = "OK" if ok else "Server Error"
    response.json.return_value = payload if payload is not None else {"success": True}
    return response


@pytest.mark.parametrize(
    "base_url, api_key",
    [("", "key"), ("https://x.supabase.co", ""), ("your-supabase-url", "your-supabase-anon-key")],
)
def test_unconfigured_notifier_raises_misconfigured(base_url: str, api_key: str) -> None:
    notifier = HttpAlertNotifier(base_url, api_key)
    assert not notifier.configured
    with pytest.raises(NotificationMisconfigured):
        notifier.send("u", HERE, AlertKind.SOS)


@pytest.mark.parametrize(
    "kind, endpoint",
    [(AlertKind.SOS, "send-sos-alert"), (AlertKind.AURA, "send-aura-alert")],
)
@patch("notifier.requests.post")
def test_posts_to_alert_endpoint(mock_post: MagicMock, kind: AlertKind, endpoint: str) -> None:
    mock_post.return_value = _response(payload={"success": True, "message": "ok"})

    payload = HttpAlertNotifier("https://x.supabase.co/", "anon").send("user_1", HERE, kind)

    assert payload == {"success": True, "message": "ok"}
    args, kwargs = mock_post.call_args
    assert args[0] == f"https://x.supabase.co/functions/v1/{endpoint}"
    assert kwargs["json"] == {"userId": "user_1", "latitude": 10.0, "longitude": 20.0}
    assert kwargs["headers"]["Authorization"] == "Bearer anon"


@patch("notifier.requests.post")
def test_http_error_raises_notification_error(mock_post: MagicMock) -> None:
    mock_post.return_value = _response(ok=False, status=500)
    with pytest.raises(NotificationError, match="500"):
        HttpAlertNotifier("https://x", "k").send("u", HERE, AlertKind.SOS)


@patch("notifier.requests.post")
def test_network_error_raises_notification_error(mock_post: MagicMock) -> None:
    mock_post.side_effect = requests.ConnectionError("offline")
    with pytest.raises(NotificationError):
        HttpAlertNotifier("https://x", "k").send("u", HERE, AlertKind.SOS)


@patch("notifier.requests.post")
def test_invalid_body_raises_notification_error(mock_post: MagicMock) -> None:
    response = _response()
    response.json.side_effect = ValueError("not json")
    mock_post.return_value = response
    with pytest.raises(NotificationError):
        HttpAlertNotifier("https://x", "k").send("u", HERE, AlertKind.AURA)


@patch("notifier.requests.post")
def test_non_object_body_raises_notification_error(mock_post: MagicMock) -> None:
    mock_post.return_value = _response(payload=["unexpected"])
    with pytest.raises(NotificationError):
        HttpAlertNotifier("https://x", "k").send("u", HERE, AlertKind.AURA)
