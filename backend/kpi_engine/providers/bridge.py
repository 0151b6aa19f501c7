"""Shared HTTP plumbing for the upstream integration bridges."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import httpx
from opentelemetry.propagate import inject


class BridgeError(RuntimeError):
    """Raised when an integration bridge cannot be reached or answers with an error."""


class BridgeClient:
    """JSON client for an integration bridge service.

    The accounting and commerce platforms sit behind small bridge services that
    own authentication and return normalised JSON. An ``httpx.AsyncClient`` can
    be injected for tests; otherwise one is opened per request.
    """

    error_class: type[BridgeError] = BridgeError
    service_name = "bridge"

    def __init__(
        self,
        base_url: str | None,
        *,
        token: str | None = None,
        timeout_seconds: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._token = token
        self._timeout = timeout_seconds
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        # Propagate trace context so the bridge links to our span
        inject(headers)
        return headers

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        if not self._base_url:
            raise self.error_class(f"{self.service_name} service URL is not configured")
        url = f"{self._base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            raise self.error_class(f"Failed to reach {self.service_name} service: {exc}") from exc

        if response.status_code >= 400:
            detail: Any
            try:
                payload = response.json()
                detail = payload.get("detail", payload) if isinstance(payload, dict) else payload
            except ValueError:
                detail = response.text
            raise self.error_class(f"{self.service_name} service error {response.status_code}: {detail}")

        try:
            return response.json()
        except ValueError as exc:
            raise self.error_class(f"{self.service_name} service returned invalid JSON payload") from exc

    @contextmanager
    def _parsing(self, path: str) -> Iterator[None]:
        """Report a payload that cannot be turned into facts as a bridge failure."""

        try:
            yield
        except (ArithmeticError, AttributeError, TypeError, ValueError) as exc:
            raise self.error_class(f"{self.service_name} service returned a malformed {path} payload: {exc}") from exc

    async def _get_object(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = await self._get(path, params=params)
        if not isinstance(payload, dict):
            raise self.error_class(f"{self.service_name} service response for {path} is not an object")
        return payload

    async def test_connection(self) -> bool:
        try:
            await self._get("/health")
        except self.error_class:
            return False
        return True


__all__ = ["BridgeClient", "BridgeError"]
