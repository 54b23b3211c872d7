"""Unsaved-changes detection for edit-mode wizards."""

from __future__ import annotations

import copy
import json
from types import MappingProxyType
from typing import Any, Mapping


class ChangeDetector:
    """Compares a live draft against the values loaded from the backend.

    Scalars compare by equality. Lists and mappings compare by their JSON
    serialization, so option order matters.
    """

    def __init__(self, original: Mapping[str, Any], tracked_fields: list[str] | None = None) -> None:
        fields = tracked_fields or list(original.keys())
        self._tracked = tuple(fields)
        self._original: Mapping[str, Any] = MappingProxyType(
            {f: copy.deepcopy(original.get(f)) for f in fields}
        )

    @property
    def original(self) -> Mapping[str, Any]:
        return self._original

    @property
    def tracked_fields(self) -> tuple[str, ...]:
        return self._tracked

    def changed_fields(self, draft: Mapping[str, Any]) -> list[str]:
        return [
            f for f in self._tracked
            if not _same(self._original.get(f), draft.get(f))
        ]

    def has_changes(self, draft: Mapping[str, Any]) -> bool:
        return any(
            not _same(self._original.get(f), draft.get(f)) for f in self._tracked
        )


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, (list, tuple, dict)) or isinstance(b, (list, tuple, dict)):
        return _serialize(a) == _serialize(b)
    return a == b


def _serialize(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)
