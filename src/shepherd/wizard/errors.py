"""Wizard engine exceptions."""

from __future__ import annotations


class WizardLoadError(Exception):
    """An edit-mode wizard could not be opened.

    Raised when the existing record cannot be fetched or is no longer in an
    editable status. The message is meant to be shown to the user.
    """


class SessionLockedError(Exception):
    """The session does not accept changes in its current state."""

    def __init__(self, session_state: str) -> None:
        self.session_state = session_state
        super().__init__(f"Session is {session_state}; changes are not accepted")


class ReadOnlyFieldError(ValueError):
    """A field pre-filled when the session opened cannot be changed."""

    def __init__(self, field_id: str) -> None:
        self.field_id = field_id
        super().__init__(f"Field {field_id!r} is read-only")
