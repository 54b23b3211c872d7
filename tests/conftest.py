"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any

import pytest

from shepherd.api.models import ApiError
from shepherd.core.clock import FixedClock
from shepherd.wizard.engine import WizardEngine
from shepherd.wizard.validation import ValidationEngine
from shepherd.wizard.validators.cross_field import CrossFieldValidator

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeApi:
    """In-memory backend collaborator.

    ``responses`` is a queue of submit results; an exception in the queue
    is raised instead of returned. Setting ``gate`` holds every submit until
    the event is set.
    """

    def __init__(self) -> None:
        self.reference: dict[str, list[dict[str, Any]]] = {}
        self.records: dict[str, dict[str, Any]] = {}
        self.reference_failures: set[str] = set()
        self.responses: list[Any] = []
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.gate: asyncio.Event | None = None

    async def fetch_reference_data(self, kind: str) -> list[dict[str, Any]]:
        if kind in self.reference_failures:
            raise ApiError("Service unavailable", status_code=503, url=f"/ref/{kind}")
        return copy.deepcopy(self.reference.get(kind, []))

    async def fetch_existing(self, path: str) -> dict[str, Any]:
        if path not in self.records:
            raise ApiError("Record not found", status_code=404, url=path)
        return copy.deepcopy(self.records[path])

    async def submit(self, method: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((method, path, copy.deepcopy(payload)))
        if self.gate is not None:
            await self.gate.wait()
        result = self.responses.pop(0) if self.responses else {}
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def validation_engine(clock):
    return ValidationEngine(cross_field=CrossFieldValidator(clock=clock), clock=clock)


@pytest.fixture
def engine(fake_api, validation_engine, clock):
    """Engine loaded from the real config/wizards directory."""
    return WizardEngine(fake_api, validation_engine, clock=clock)
