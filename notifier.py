"""HTTP notification collaborator for emergency-contact alerts."""

from __future__ import annotations

import logging

from errors import NotificationError, NotificationMisconfigured
from models import AlertKind, Location

try:
    import requests
except Exception:  # pragma: no cover
    requests = None  # type: ignore

logger = logging.getLogger(__name__)

ENDPOINTS = {
    AlertKind.AURA: "send-aura-alert",
    AlertKind.SOS: "send-sos-alert",
}

_PLACEHOLDER_VALUES = {"", "your-supabase-url", "your-supabase-anon-key"}


class HttpAlertNotifier:
    """Posts ``{userId, latitude, longitude}`` to the alert functions service.

    The service looks up the user's emergency contacts and texts them; the
    response is ``{success, message, data: {contactsNotified, ...}}``.
    """

    def __init__(self, base_url: str, api_key: str, timeout_s: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_s = timeout_s

    @property
    def configured(self) -> bool:
        return self._base_url not in _PLACEHOLDER_VALUES and self._api_key not in _PLACEHOLDER_VALUES

    def send(self, user_id: str, location: Location, kind: AlertKind) -> dict:
        if not self.configured:
            raise NotificationMisconfigured("notification service not configured")
        if requests is None:
            raise NotificationMisconfigured("requests is not installed")

        url = f"{self._base_url}/functions/v1/{ENDPOINTS[kind]}"
        try:
            response = requests.post(
                url,
                json={
                    "userId": user_id,
                    "latitude": location.latitude,
                    "longitude": location.longitude,
                },
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout_s,
            )
        except requests.RequestException as exc:
            raise NotificationError(str(exc)) from exc

        if not response.ok:
            raise NotificationError(f"Alert failed: {response.status_code} {response.reason}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise NotificationError(f"invalid response body: {exc}") from exc
        if not isinstance(payload, dict):
            raise NotificationError("invalid response body")
        logger.info("%s alert accepted by %s", kind.value, url)
        return payload
