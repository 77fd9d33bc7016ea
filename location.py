"""Location acquisition with a bounded timeout and fallback coordinates."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from errors import (
    LOCATION_PERMISSION_DENIED,
    LOCATION_POSITION_UNAVAILABLE,
    LOCATION_TIMEOUT,
    LocationError,
)
from interfaces import Geolocator
from models import FALLBACK_LOCATION, Location

try:
    import requests
except Exception:  # pragma: no cover
    requests = None  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0


class IpGeolocator:
    """Approximate position from the public IP address."""

    def __init__(
        self,
        url: str = "http://ip-api.com/json",
        timeout_s: float = DEFAULT_TIMEOUT_S,
        sharing_enabled: bool = True,
    ) -> None:
        self._url = url
        self._timeout_s = timeout_s
        self._sharing_enabled = sharing_enabled

    def locate(self) -> Location:
        if not self._sharing_enabled:
            raise LocationError(LOCATION_PERMISSION_DENIED)
        if requests is None:
            raise LocationError(LOCATION_POSITION_UNAVAILABLE, "requests is not installed")
        try:
            response = requests.get(self._url, timeout=self._timeout_s)
            response.raise_for_status()
            data = response.json()
        except requests.Timeout as exc:
            raise LocationError(LOCATION_TIMEOUT) from exc
        except (requests.RequestException, ValueError) as exc:
            raise LocationError(LOCATION_POSITION_UNAVAILABLE, str(exc)) from exc

        if data.get("status", "success") != "success":
            raise LocationError(LOCATION_POSITION_UNAVAILABLE, str(data.get("message", "")))
        try:
            return Location(latitude=float(data["lat"]), longitude=float(data["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise LocationError(LOCATION_POSITION_UNAVAILABLE, f"bad payload: {data}") from exc


class LocationService:
    """Wraps a geolocator so no caller waits longer than ``timeout_s``."""

    def __init__(self, geolocator: Geolocator, timeout_s: float = DEFAULT_TIMEOUT_S) -> None:
        self._geolocator = geolocator
        self._timeout_s = timeout_s
        self._last_location: Optional[Location] = None
        self._last_error = ""

    @property
    def last_location(self) -> Optional[Location]:
        return self._last_location

    @property
    def last_error(self) -> str:
        return self._last_error

    def current_location(self) -> Location:
        """Return the current position.

        Raises:
            LocationError: on provider failure or when the timeout elapses.
        """
        done = threading.Event()
        outcome: dict = {}

        def _worker() -> None:
            try:
                outcome["location"] = self._geolocator.locate()
            except Exception as exc:
                outcome["error"] = exc
            finally:
                done.set()

        threading.Thread(target=_worker, daemon=True, name="geolocate").start()
        if not done.wait(timeout=self._timeout_s):
            self._last_error = LOCATION_TIMEOUT
            raise LocationError(LOCATION_TIMEOUT)

        error = outcome.get("error")
        if error is not None:
            if isinstance(error, LocationError):
                self._last_error = error.reason
                raise error
            self._last_error = LOCATION_POSITION_UNAVAILABLE
            raise LocationError(LOCATION_POSITION_UNAVAILABLE, str(error)) from error

        self._last_error = ""
        self._last_location = outcome["location"]
        return self._last_location

    def current_or_fallback(self) -> Location:
        try:
            return self.current_location()
        except LocationError as exc:
            logger.warning("location unavailable (%s), using fallback coordinates", exc.reason)
            return FALLBACK_LOCATION
