"""Backend API data models."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field


class Pagination(BaseModel):
    page: int = 1
    limit: int = 0
    total: int = 0
    pages: int = 0


class ApiResponse(BaseModel):
    """Standard response envelope returned by every backend endpoint."""

    success: bool = True
    message: str = ""
    data: Any = None
    error: str | None = None
    pagination: Pagination | None = None


class ReferenceEndpoint(BaseModel):
    """Where a kind of reference data lives and how to unwrap it."""

    path: str
    params: dict[str, Any] = Field(default_factory=dict)
    items_key: str | None = None


class ApiError(Exception):
    """A backend request failed.

    ``message`` is the server's own message when it sent one, so callers can
    show it verbatim. ``field_errors`` maps wire field names to reasons when
    the backend reports field-level validation failures.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        field_errors: dict[str, list[str]] | None = None,
        url: str = "",
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.field_errors = field_errors or {}
        self.url = url
        self.body = body

    def debug_info(self) -> dict[str, Any]:
        """Raw details for the operator diagnostics panel."""
        return {
            "status_code": self.status_code,
            "url": self.url,
            "body": self.body,
        }


@runtime_checkable
class ApiCollaborator(Protocol):
    """The request/response interface the wizard engine depends on."""

    async def fetch_reference_data(self, kind: str) -> list[dict[str, Any]]: ...

    async def fetch_existing(self, path: str) -> dict[str, Any]: ...

    async def submit(
        self, method: str, path: str, payload: dict[str, Any]
    ) -> dict[str, Any]: ...
