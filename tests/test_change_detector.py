"""Tests for unsaved-changes detection."""

from __future__ import annotations

import pytest

from shepherd.wizard.changes import ChangeDetector
from shepherd.wizard.draft import DraftStore


ORIGINAL = {
    "title": "Board Election",
    "options": ["A", "B"],
    "anonymous": False,
    "start_at": "2024-06-01T10:00",
}


@pytest.fixture
def draft():
    return DraftStore({"title": "", "options": [], "anonymous": False, "start_at": ""}, ORIGINAL)


@pytest.fixture
def detector(draft):
    return ChangeDetector(draft.snapshot(), ["title", "options", "anonymous", "start_at"])


class TestChangeDetector:
    def test_fresh_draft_has_no_changes(self, detector, draft):
        assert detector.has_changes(draft.values) is False
        assert detector.changed_fields(draft.values) == []

    def test_scalar_change(self, detector, draft):
        draft.update({"title": "Board Election 2024"})
        assert detector.has_changes(draft.values) is True
        assert detector.changed_fields(draft.values) == ["title"]

    def test_reverting_clears_changes(self, detector, draft):
        draft.update({"title": "Something else", "options": ["A", "B", "C"]})
        assert detector.has_changes(draft.values) is True

        draft.update({"title": "Board Election", "options": ["A", "B"]})
        assert detector.has_changes(draft.values) is False

    def test_option_order_matters(self, detector, draft):
        draft.update({"options": ["B", "A"]})
        assert detector.changed_fields(draft.values) == ["options"]

    def test_snapshot_is_read_only(self, detector):
        with pytest.raises(TypeError):
            detector.original["title"] = "x"

    def test_snapshot_unaffected_by_draft_mutation(self, detector, draft):
        draft.values["options"].append("C")
        assert detector.original["options"] == ["A", "B"]
        assert detector.has_changes(draft.values) is True

    def test_untracked_fields_ignored(self, draft):
        detector = ChangeDetector(draft.snapshot(), ["title"])
        draft.update({"anonymous": True})
        assert detector.has_changes(draft.values) is False
