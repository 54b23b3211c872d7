"""Core type definitions shared across all Shepherd modules."""

from __future__ import annotations

from enum import StrEnum


class SessionMode(StrEnum):
    """Whether a wizard session creates a new record or edits an existing one."""

    CREATE = "create"
    EDIT = "edit"


class SubmissionState(StrEnum):
    """Lifecycle of a wizard session's submission."""

    EDITING = "editing"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


# States in which the draft still accepts user input.
EDITABLE_STATES = frozenset({SubmissionState.EDITING, SubmissionState.FAILED})
