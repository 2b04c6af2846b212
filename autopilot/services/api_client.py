"""API client service for interacting with the Autopilot API."""

import os
from typing import Any

import httpx


class ApiClientService:
    """Service for Autopilot API client operations."""

    @staticmethod
    def get_client(
        base_url: str | None = None, api_key: str | None = None, timeout: float = 30.0
    ) -> httpx.Client:
        """Get configured HTTP client.

        Args:
            base_url: API base URL (defaults to AUTOPILOT_URL env var or http://localhost:8000)
            api_key: API key for authentication (defaults to API_SECRET_KEY env var)
            timeout: Request timeout in seconds

        Returns:
            Configured httpx.Client with base_url, headers, and timeout
        """
        if base_url is None:
            base_url = os.getenv("AUTOPILOT_URL", "http://localhost:8000")
        if api_key is None:
            api_key = os.getenv("API_SECRET_KEY", "")

        return httpx.Client(
            base_url=base_url,
            headers={"X-API-Key": api_key},
            timeout=timeout,
        )

    @staticmethod
    def _request(
        method: str,
        path: str,
        client: httpx.Client | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            httpx.HTTPStatusError: If API request fails
        """
        should_close = client is None
        if client is None:
            client = ApiClientService.get_client()

        try:
            response = client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        finally:
            if should_close:
                client.close()

    @staticmethod
    def run_cycle(
        trigger: str = "manual", client: httpx.Client | None = None
    ) -> dict[str, Any]:
        """Trigger one cycle and return {success, summary}."""
        if client is None:
            # A cycle runs synchronously and can take several minutes
            client = ApiClientService.get_client(timeout=600.0)
            with client:
                return ApiClientService._request(
                    "POST", "/v1/cycles", client=client, params={"trigger": trigger}
                )
        return ApiClientService._request(
            "POST", "/v1/cycles", client=client, params={"trigger": trigger}
        )

    @staticmethod
    def list_tasks(
        status: str | None = None,
        type: str | None = None,
        limit: int = 20,
        client: httpx.Client | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit}
        if status:
            params["status"] = status
        if type:
            params["type"] = type
        return ApiClientService._request("GET", "/v1/tasks", client=client, params=params)

    @staticmethod
    def get_task(task_id: str, client: httpx.Client | None = None) -> dict[str, Any]:
        """Get task by ID.

        Raises:
            httpx.HTTPStatusError: If API request fails (e.g., 404 for not found)
        """
        return ApiClientService._request("GET", f"/v1/tasks/{task_id}", client=client)

    @staticmethod
    def create_task(
        type: str,
        title: str,
        category: str,
        priority: int = 5,
        description: str | None = None,
        client: httpx.Client | None = None,
    ) -> dict[str, Any]:
        """Queue a manual task."""
        payload: dict[str, Any] = {
            "type": type,
            "title": title,
            "category": category,
            "priority": priority,
        }
        if description is not None:
            payload["description"] = description
        return ApiClientService._request("POST", "/v1/tasks", client=client, json=payload)

    @staticmethod
    def list_findings(
        converted: bool | None = None,
        severity: str | None = None,
        limit: int = 20,
        client: httpx.Client | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit}
        if converted is not None:
            params["converted"] = str(converted).lower()
        if severity:
            params["severity"] = severity
        return ApiClientService._request(
            "GET", "/v1/findings", client=client, params=params
        )

    @staticmethod
    def get_latest_report(client: httpx.Client | None = None) -> dict[str, Any]:
        return ApiClientService._request("GET", "/v1/reports/latest", client=client)

    @staticmethod
    def generate_report(
        window_hours: int | None = None, client: httpx.Client | None = None
    ) -> dict[str, Any]:
        payload = {"window_hours": window_hours} if window_hours else {}
        return ApiClientService._request("POST", "/v1/reports", client=client, json=payload)

    @staticmethod
    def list_logs(
        level: str | None = None,
        phase: str | None = None,
        limit: int = 50,
        client: httpx.Client | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit}
        if level:
            params["level"] = level
        if phase:
            params["phase"] = phase
        return ApiClientService._request("GET", "/v1/logs", client=client, params=params)
