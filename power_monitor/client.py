"""HTTP client for the dormitory power balance service."""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import requests

from .models import FetchError, LoginError, Reading

logger = logging.getLogger(__name__)

USER_AGENT = "power-monitor/1.0"


def _to_decimal(payload: Dict[str, Any], key: str) -> Decimal:
    """Numeric fields arrive as strings, e.g. "26.91"."""
    value = payload.get(key)
    if value is None:
        raise FetchError(f"Missing field {key!r} in balance payload")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise FetchError(f"Field {key!r} is not a number: {value!r}") from None
    if not number.is_finite():
        raise FetchError(f"Field {key!r} is not a finite number: {value!r}")
    return number


def parse_reading(payload: Dict[str, Any], fetched_at: Optional[datetime] = None) -> Reading:
    """Map the service's bedroom payload onto a Reading."""
    return Reading(
        remaining_money=_to_decimal(payload, "syje"),
        remaining_energy=_to_decimal(payload, "sydl"),
        room_display_name=str(payload.get("roomName", "")),
        fetched_at=fetched_at or datetime.now(),
        meter_room_id=str(payload.get("dffjbh", "")),
        room_id=str(payload.get("roomId", "")),
        building_id=str(payload.get("buiId", "")),
        campus_id=str(payload.get("areaid", "")),
        room_number=str(payload.get("fjh", "")),
    )


class PowerClient:
    """Authenticated session against the balance service."""

    def __init__(
        self,
        service_url: str,
        login_url: str,
        username: str,
        password: str,
        session: Optional[requests.Session] = None,
        timeout: int = 15,
    ):
        self.service_url = service_url.rstrip("/")
        self.login_url = login_url
        self.username = username
        self.password = password
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    def login(self) -> None:
        """
        Authenticate and keep the session cookies.

        Raises:
            LoginError: If the credentials are rejected.
            FetchError: If the service cannot be reached.
        """
        logger.info(f"Logging in as {self.username}...")
        try:
            response = self.session.post(
                self.login_url,
                data={"username": self.username, "password": self.password},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise FetchError(f"Login request failed: {e}") from e

        if response.status_code in (401, 403):
            raise LoginError(f"Credentials rejected (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise FetchError(f"Login endpoint returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("e", 0) != 0:
            raise LoginError(body.get("m") or "Login rejected")
        logger.info("Login successful")

    def fetch_reading(self) -> Optional[Reading]:
        """
        Fetch the current balance.

        Returns:
            The reading, or None when the service has no data for the room.

        Raises:
            LoginError: If the session is no longer authenticated.
            FetchError: On transport errors or an error envelope.
        """
        url = f"{self.service_url}/bedroom"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Request to {url} failed: {e}") from e

        if response.status_code in (401, 403):
            raise LoginError(f"Session rejected (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise FetchError(f"{url} returned HTTP {response.status_code}")

        try:
            envelope = response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {url}: {e}") from e

        if envelope.get("e", 0) != 0:
            raise FetchError(f"Service error {envelope.get('e')}: {envelope.get('m', '')}")

        data = envelope.get("d")
        if not data:
            return None
        return parse_reading(data)

    def close(self) -> None:
        self.session.close()
