"""Shared-secret guard for the device-facing endpoints."""

from __future__ import annotations

import logging
import secrets

from sensorrelay.errors import Unauthorized

logger = logging.getLogger(__name__)

DEVICE_KEY_HEADER = "X-API-Key"


class DeviceGuard:
    """Accepts a request only if it carries exactly the configured device key."""

    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise ValueError("device api_key must not be empty")
        self._api_key = api_key

    def check(self, credential: str | None) -> None:
        """Raise Unauthorized unless ``credential`` equals the device key."""
        if not credential or not secrets.compare_digest(
            credential.encode("utf-8"), self._api_key.encode("utf-8")
        ):
            logger.warning("Rejected device request with %s key", "missing" if not credential else "invalid")
            raise Unauthorized("Invalid device API key")
