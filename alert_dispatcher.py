"""Alert dispatch to emergency contacts with degraded-success fallback."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from errors import NOTIFICATION_FAILED, NotificationMisconfigured, ProviderError
from interfaces import Notifier
from models import AlertKind, AlertResult, Location

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[str, str], None]

MOCK_MESSAGES = {
    AlertKind.SOS: "Critical SOS alert sent successfully (mock response)",
    AlertKind.AURA: "Emergency alert sent successfully (mock response)",
}
UNCONFIGURED_MESSAGES = {
    AlertKind.SOS: "Critical SOS alert sent successfully (mock response - notification service not configured)",
    AlertKind.AURA: "Emergency alert sent successfully (mock response - notification service not configured)",
}
PLACEHOLDER_CONTACTS = {AlertKind.SOS: 3, AlertKind.AURA: 0}


class AlertDispatcher:
    """Sends alerts through the notifier and never raises.

    When the notifier fails or is not configured the result is a degraded
    success: contacts may still have been reached some other way, and the
    caller must always get a usable :class:`AlertResult`.

    Args:
        notifier: Notification collaborator, or None when not configured.
        contact_count: Number of configured emergency contacts; caps
            ``contacts_notified``. None means unknown (no upper cap).
    """

    def __init__(
        self,
        notifier: Optional[Notifier],
        contact_count: Optional[int] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._notifier = notifier
        self._contact_count = contact_count
        self._on_error = on_error

    def send_alert(
        self,
        user_id: str,
        location: Location,
        kind: AlertKind = AlertKind.SOS,
    ) -> AlertResult:
        if self._notifier is None:
            logger.warning("notifier not configured, returning mock %s result", kind.value)
            return self._degraded(location, kind, unconfigured=True)
        try:
            payload = self._notifier.send(user_id, location, kind)
            result = self._from_payload(payload, location)
        except NotificationMisconfigured as exc:
            logger.warning("notifier misconfigured (%s), returning mock %s result", exc, kind.value)
            return self._degraded(location, kind, unconfigured=True)
        except Exception as exc:
            code = exc.code if isinstance(exc, ProviderError) else NOTIFICATION_FAILED
            logger.error("%s alert failed: %s", kind.value, exc)
            self._report(code, str(exc))
            return self._degraded(location, kind)

        logger.info(
            "%s alert dispatched: success=%s contacts=%d",
            kind.value,
            result.success,
            result.contacts_notified,
        )
        return result

    def _from_payload(self, payload: dict, location: Location) -> AlertResult:
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            data = {}
        raw_count = data.get("contactsNotified", payload.get("contactsNotified", 0))
        return AlertResult(
            success=bool(payload.get("success", False)),
            message=str(payload.get("message", "")),
            contacts_notified=self._clamp(raw_count),
            location=_parse_location(data.get("location"), location),
            timestamp=_parse_timestamp(data.get("timestamp", payload.get("timestamp"))),
        )

    def _degraded(self, location: Location, kind: AlertKind, unconfigured: bool = False) -> AlertResult:
        return AlertResult(
            success=True,
            message=(UNCONFIGURED_MESSAGES if unconfigured else MOCK_MESSAGES)[kind],
            contacts_notified=self._clamp(PLACEHOLDER_CONTACTS[kind]),
            location=location,
        )

    def _report(self, code: str, message: str) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(code, message)
        except Exception as exc:  # noqa: BLE001
            logger.warning("alert error callback raised: %s", exc)

    def _clamp(self, value: object) -> int:
        try:
            count = max(0, int(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            count = 0
        if self._contact_count is not None:
            count = min(count, max(0, self._contact_count))
        return count


def _parse_location(value: object, default: Location) -> Location:
    if isinstance(value, dict):
        try:
            return Location(latitude=float(value["latitude"]), longitude=float(value["longitude"]))
        except (KeyError, TypeError, ValueError):
            return default
    return default


def _parse_timestamp(value: object) -> datetime:
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)
