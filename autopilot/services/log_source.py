"""Client for the external API log source read by the detectors."""

import logging
from datetime import datetime
from typing import Any

import httpx

from autopilot.core.config import settings
from autopilot.core.errors import CapabilityUnavailableError

logger = logging.getLogger(__name__)


class LogSourceClient:
    """Reads API request logs from an HTTP JSON endpoint.

    The endpoint is expected to answer GET /api-logs with a JSON list of
    records carrying endpoint, status_code, response_time_ms, message and
    created_at.
    """

    def __init__(self, base_url: str | None = None, timeout: float = 30.0):
        base_url = base_url or settings.log_source_url
        if not base_url:
            raise CapabilityUnavailableError("LOG_SOURCE_URL is not configured")
        self.base_url = base_url
        self.timeout = timeout

    def get_client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            headers={"X-API-Key": settings.api_secret_key},
            timeout=self.timeout,
        )

    def _fetch(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        with self.get_client() as client:
            response = client.get("/api-logs", params=params)
            response.raise_for_status()
            records = response.json()

        if not isinstance(records, list):
            raise ValueError("Log source returned a non-list payload")
        return records

    def fetch_error_logs(
        self, since: datetime, status_code: int = 500, limit: int = 20
    ) -> list[dict[str, Any]]:
        """Fetch failed requests since a timestamp."""
        return self._fetch(
            {"since": since.isoformat(), "status_code": status_code, "limit": limit}
        )

    def fetch_slow_requests(
        self, since: datetime, min_response_time_ms: int = 5000, limit: int = 50
    ) -> list[dict[str, Any]]:
        """Fetch requests slower than a threshold since a timestamp."""
        return self._fetch(
            {
                "since": since.isoformat(),
                "min_response_time_ms": min_response_time_ms,
                "limit": limit,
            }
        )
