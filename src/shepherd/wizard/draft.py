"""In-memory working state of one wizard session."""

from __future__ import annotations

import copy
from typing import Any


class DraftStore:
    """Single mutable source of truth for an in-flight wizard.

    ``update`` is a shallow merge: list-valued fields are replaced wholesale,
    so callers compute the full new list (append/remove/reorder) first.
    ``update_path`` reaches into compound fields such as ``address``.
    """

    def __init__(
        self,
        defaults: dict[str, Any],
        initial: dict[str, Any] | None = None,
    ) -> None:
        self._defaults = copy.deepcopy(defaults)
        self._values: dict[str, Any] = copy.deepcopy(defaults)
        if initial:
            self._values.update(copy.deepcopy(initial))

    @property
    def values(self) -> dict[str, Any]:
        """Live values. Treat as read-only; mutate through ``update``."""
        return self._values

    def get(self, field_id: str, default: Any = None) -> Any:
        return self._values.get(field_id, default)

    def update(self, partial: dict[str, Any]) -> None:
        for key, value in partial.items():
            self._values[key] = copy.deepcopy(value)

    def update_path(self, path: str, value: Any) -> None:
        """Set a nested value, e.g. ``update_path("address.city", "Austin")``.

        Raises:
            ValueError: If an intermediate segment is not a mapping.
        """
        head, *rest = path.split(".")
        if not rest:
            self.update({head: value})
            return

        node = self._values.get(head)
        if node is None:
            node = {}
            self._values[head] = node
        for segment in rest[:-1]:
            if not isinstance(node, dict):
                raise ValueError(f"Cannot set {path!r}: {segment!r} is not a mapping")
            node = node.setdefault(segment, {})
        if not isinstance(node, dict):
            raise ValueError(f"Cannot set {path!r}: parent is not a mapping")
        node[rest[-1]] = copy.deepcopy(value)

    def reset(self, field_ids: list[str]) -> None:
        """Restore fields to their declared empty defaults."""
        for field_id in field_ids:
            self._values[field_id] = copy.deepcopy(self._defaults.get(field_id))

    def default_for(self, field_id: str) -> Any:
        return copy.deepcopy(self._defaults.get(field_id))

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._values)
