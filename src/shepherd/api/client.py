"""HTTP client for the church management backend API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from shepherd.api.models import ApiError, ApiResponse, ReferenceEndpoint
from shepherd.core.config import ApiConfig

logger = logging.getLogger(__name__)

# InvalidURL is raised while building the request and is not an HTTPError.
_CLIENT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)

REFERENCE_ENDPOINTS: dict[str, ReferenceEndpoint] = {
    "members": ReferenceEndpoint(
        path="/api/members", params={"limit": 100}, items_key="members"
    ),
    "eligible_members": ReferenceEndpoint(
        path="/api/members",
        params={"eligibility": "ELIGIBLE", "limit": 100},
        items_key="members",
    ),
    "member_fields": ReferenceEndpoint(
        path="/api/data-collection/member-fields", items_key="fields"
    ),
    "ministries": ReferenceEndpoint(path="/api/ministries", items_key="ministries"),
}


class ApiClient:
    """Async client for the backend REST API.

    Reads (reference data, existing records) retry on 5xx and transport
    errors. Submissions are sent exactly once.
    """

    def __init__(
        self,
        config: ApiConfig | None = None,
        reference_endpoints: dict[str, ReferenceEndpoint] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or ApiConfig()
        self._endpoints = dict(REFERENCE_ENDPOINTS)
        if reference_endpoints:
            self._endpoints.update(reference_endpoints)
        headers = {"Content-Type": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        self._http = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(self.config.timeout_seconds),
            headers=headers,
            transport=transport,
        )

    # -- public API ----------------------------------------------------------

    async def fetch_reference_data(self, kind: str) -> list[dict[str, Any]]:
        """Fetch a list of reference records (members, field catalogs...).

        Raises:
            KeyError: If ``kind`` has no configured endpoint.
            ApiError: If the request fails.
        """
        endpoint = self._endpoints.get(kind)
        if endpoint is None:
            raise KeyError(f"Unknown reference data kind: {kind!r}")

        envelope = await self._read("GET", endpoint.path, params=endpoint.params)
        data = envelope.data
        if isinstance(data, dict) and endpoint.items_key:
            data = data.get(endpoint.items_key, [])
        if not isinstance(data, list):
            return []
        return data

    async def fetch_existing(self, path: str) -> dict[str, Any]:
        envelope = await self._read("GET", path)
        if not isinstance(envelope.data, dict):
            raise ApiError("Record not found", status_code=404, url=path)
        return envelope.data

    async def submit(
        self, method: str, path: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        """Send the state-changing request. Never retried."""
        try:
            resp = await self._http.request(method, path, json=payload)
        except _CLIENT_ERRORS as exc:
            raise ApiError(f"Network error: {exc}", url=path) from exc
        envelope = self._unwrap(resp)
        return envelope.data if isinstance(envelope.data, dict) else {}

    async def close(self) -> None:
        await self._http.aclose()

    # -- internals -----------------------------------------------------------

    async def _read(self, method: str, url: str, **kwargs: Any) -> ApiResponse:
        try:
            resp = await self._request_with_retry(method, url, **kwargs)
        except _CLIENT_ERRORS as exc:
            raise ApiError(f"Network error: {exc}", url=url) from exc
        return self._unwrap(resp)

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a read, trying again on 5xx answers and transport failures.

        Waits ``retry_backoff_seconds`` before the second attempt and doubles
        the wait each time after. Once attempts run out the last 5xx response
        is returned so ``_unwrap`` can surface the server's own message.
        """
        attempts = max(1, self.config.max_retries + 1)
        attempt = 1
        while True:
            try:
                resp = await self._http.request(method, url, **kwargs)
            except httpx.TransportError as exc:
                if attempt >= attempts:
                    raise
                reason = str(exc)
            else:
                if resp.status_code < 500 or attempt >= attempts:
                    return resp
                reason = f"HTTP {resp.status_code}"

            wait = self.config.retry_backoff_seconds * 2 ** (attempt - 1)
            logger.warning(
                "Read of %s failed (%s), attempt %d of %d; next try in %.1fs",
                url, reason, attempt, attempts, wait,
            )
            await asyncio.sleep(wait)
            attempt += 1

    @staticmethod
    def _unwrap(resp: httpx.Response) -> ApiResponse:
        url = str(resp.request.url) if resp.request is not None else ""
        try:
            body = resp.json()
        except ValueError:
            body = resp.text

        if resp.is_error or (isinstance(body, dict) and body.get("success") is False):
            message = "Request failed"
            if isinstance(body, dict):
                message = body.get("message") or body.get("error") or message
            raise ApiError(
                message,
                status_code=resp.status_code,
                field_errors=_parse_field_errors(body),
                url=url,
                body=body,
            )

        if not isinstance(body, dict):
            return ApiResponse(data=body)
        return ApiResponse.model_validate(body)


def _parse_field_errors(body: Any) -> dict[str, list[str]]:
    """Normalize ``errors`` as either a mapping or a list of ``{field, message}``."""
    if not isinstance(body, dict):
        return {}
    raw = body.get("errors")
    errors: dict[str, list[str]] = {}
    if isinstance(raw, dict):
        for field, msgs in raw.items():
            errors[field] = [msgs] if isinstance(msgs, str) else [str(m) for m in msgs]
    elif isinstance(raw, list):
        for item in raw:
            if not isinstance(item, dict):
                continue
            field = item.get("field") or item.get("path") or item.get("param")
            msg = item.get("message") or item.get("msg") or "Invalid value"
            if field:
                errors.setdefault(str(field), []).append(str(msg))
    return errors
