"""A live wizard session: draft, step position and submission state."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from shepherd.core.clock import Clock, SystemClock
from shepherd.core.types import SessionMode, SubmissionState
from shepherd.wizard.changes import ChangeDetector
from shepherd.wizard.coordinator import SubmissionCoordinator
from shepherd.wizard.draft import DraftStore
from shepherd.wizard.errors import ReadOnlyFieldError, SessionLockedError
from shepherd.wizard.models import (
    SessionView,
    SubmissionOutcome,
    ValidationResult,
    WizardDefinition,
)
from shepherd.wizard.normalizers import normalize, split_path
from shepherd.wizard.sequencer import StepSequencer


class WizardSession:
    """Facade over one in-flight wizard.

    All user input goes through ``update``/``update_path``; navigation
    through ``next``/``back``/``skip``. Reaching the end of the path with
    ``next`` (or ``skip``) submits. Mutations are refused while a
    submission is in flight and after the session has finished.
    """

    def __init__(
        self,
        definition: WizardDefinition,
        draft: DraftStore,
        sequencer: StepSequencer,
        coordinator: SubmissionCoordinator,
        *,
        mode: SessionMode = SessionMode.CREATE,
        record_id: str | None = None,
        changes: ChangeDetector | None = None,
        reference: dict[str, list[dict[str, Any]]] | None = None,
        read_only: list[str] | None = None,
        clock: Clock | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.definition = definition
        self.mode = mode
        self.record_id = record_id
        self.reference = reference or {}
        self.read_only: frozenset[str] = frozenset(read_only or ())
        self.sequencer = sequencer
        self.coordinator = coordinator
        self.changes = changes
        self.step_errors: dict[str, list[str]] = {}
        self.outcome: SubmissionOutcome | None = None
        self._draft: DraftStore | None = draft
        self._clock = clock or SystemClock()
        self.created_at: datetime = self._clock.now()
        self.touched_at: datetime = self.created_at

    # -- queries --

    @property
    def wizard_id(self) -> str:
        return self.definition.id

    @property
    def state(self) -> SubmissionState:
        return self.coordinator.state

    @property
    def current_step(self) -> str:
        return self.sequencer.current

    @property
    def draft(self) -> DraftStore | None:
        """The draft, or ``None`` once it has been discarded."""
        return self._draft

    @property
    def values(self) -> dict[str, Any]:
        return self._draft.snapshot() if self._draft is not None else {}

    def can_advance(self) -> ValidationResult:
        return self.sequencer.can_advance(self.values)

    def has_changes(self) -> bool:
        if self.changes is None or self._draft is None:
            return False
        return self.changes.has_changes(self._draft.values)

    def changed_fields(self) -> list[str]:
        if self.changes is None or self._draft is None:
            return []
        return self.changes.changed_fields(self._draft.values)

    def progress(self) -> tuple[int, int]:
        """(1-based position, number of visible steps)."""
        data = self.values
        return self.sequencer.position(data), self.sequencer.total(data)

    def view(self) -> SessionView:
        data = self.values
        step = self.sequencer.current_step
        position, total = self.progress()
        return SessionView(
            id=self.id,
            wizard_id=self.wizard_id,
            mode=self.mode,
            record_id=self.record_id,
            current_step=step.id,
            step_title=step.title,
            position=position,
            total_steps=total,
            optional=step.optional,
            can_advance=self._draft is not None and self.sequencer.can_advance(data).valid,
            actions=self.sequencer.actions(step.id, data),
            step_errors=self.step_errors,
            read_only=sorted(self.read_only),
            has_changes=self.has_changes(),
            state=self.state,
            last_error=self.coordinator.last_error,
            draft=data,
            outcome=self.outcome,
        )

    # -- input --

    def update(self, partial: dict[str, Any]) -> None:
        """Merge ``partial`` into the draft, normalizing each value.

        Raises:
            ReadOnlyFieldError: If ``partial`` touches a pre-filled, locked field.
            SessionLockedError: If the session does not accept changes.
        """
        draft = self._editable_draft()
        for field_id in partial:
            self._check_writable(field_id)
        draft.update({k: self._normalize(k, v) for k, v in partial.items()})
        self._clear_errors(partial.keys())

    def update_path(self, path: str, value: Any) -> None:
        draft = self._editable_draft()
        field_id, subpath = split_path(path)
        self._check_writable(field_id)
        draft.update_path(path, self._normalize(field_id, value, subpath))
        self._clear_errors([field_id])

    # -- navigation --

    async def next(self, action: str | None = None) -> SessionView:
        """Leave the current step; submits when the path ends here.

        A closed gate leaves the session where it is, with ``step_errors``
        describing why.

        Raises:
            ValueError: If ``action`` is not offered by the current step.
        """
        draft = self._editable_draft()
        gate = self.sequencer.can_advance(draft.values)
        if not gate.valid:
            self.step_errors = gate.errors
            return self.view()

        self.step_errors = {}
        target = self.sequencer.advance(draft, action)
        if target is None:
            await self.submit()
        return self.view()

    def back(self) -> SessionView:
        self._editable_draft()
        self.step_errors = {}
        self.sequencer.retreat(self.values)
        return self.view()

    async def skip(self) -> SessionView:
        """Skip an optional step, clearing what was entered on it.

        Raises:
            ValueError: If the current step is not optional.
        """
        draft = self._editable_draft()
        self.step_errors = {}
        target = self.sequencer.skip(draft)
        if target is None:
            await self.submit()
        return self.view()

    # -- lifecycle --

    async def submit(self) -> SubmissionOutcome:
        """Submit the whole draft.

        Raises:
            SessionLockedError: If the session is submitting or finished.
        """
        if self._draft is None:
            raise SessionLockedError(self.state)
        self._touch()
        outcome = await self.coordinator.submit(self._draft, self.sequencer)
        if outcome.state == SubmissionState.CANCELLED:
            return outcome
        self.outcome = outcome
        self.step_errors = dict(outcome.errors)
        if outcome.state == SubmissionState.SUCCEEDED:
            self._draft = None
        return outcome

    def cancel(self) -> None:
        """Abandon the session and discard the draft."""
        self.coordinator.cancel()
        if self.state == SubmissionState.CANCELLED:
            self._draft = None

    def _editable_draft(self) -> DraftStore:
        self.coordinator.touch()
        if self._draft is None:
            raise SessionLockedError(self.state)
        self._touch()
        return self._draft

    def _check_writable(self, field_id: str) -> None:
        if field_id in self.read_only:
            raise ReadOnlyFieldError(field_id)

    def _normalize(self, field_id: str, value: Any, subpath: str | None = None) -> Any:
        field = self.definition.get_field(field_id)
        if field is None:
            return value
        return normalize(field, value, subpath)

    def _touch(self) -> None:
        self.touched_at = self._clock.now()

    def _clear_errors(self, field_ids: Any) -> None:
        for field_id in field_ids:
            self.step_errors.pop(field_id, None)
