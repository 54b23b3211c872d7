"""Step sequencing over a wizard's declared step graph."""

from __future__ import annotations

import uuid
from typing import Any

from shepherd.wizard.draft import DraftStore
from shepherd.wizard.models import (
    StepDefinition,
    Transition,
    ValidationResult,
    WizardDefinition,
    condition_holds,
)
from shepherd.wizard.validation import ValidationEngine


class StepSequencer:
    """Tracks the current step and the path actually traversed.

    Steps form a graph: each step may declare labeled transitions (for
    example ``family_intro --add_family_member--> family_add``); a step with
    no matching plain transition falls through to the next visible step in
    declared order. A transition to ``None`` ends the path, which is the
    caller's cue to submit. The history stack makes ``retreat`` follow
    branch re-entries back the way the user came.
    """

    def __init__(
        self,
        definition: WizardDefinition,
        validation: ValidationEngine,
        start: str | None = None,
    ) -> None:
        if not definition.steps:
            raise ValueError(f"Wizard {definition.id!r} has no steps")
        self._defn = definition
        self._validation = validation
        self._order = [s.id for s in definition.steps]
        self.current: str = start or self._order[0]
        self.history: list[str] = []

    # -- queries --

    @property
    def current_step(self) -> StepDefinition:
        return self._defn.step(self.current)

    def is_visible(self, step_id: str, data: dict[str, Any]) -> bool:
        return condition_holds(self._defn.step(step_id).show_if, data)

    def visible_steps(self, data: dict[str, Any]) -> list[str]:
        return [s for s in self._order if self.is_visible(s, data)]

    def position(self, data: dict[str, Any]) -> int:
        """1-based position of the current step among visible steps."""
        visible = self.visible_steps(data)
        if self.current in visible:
            return visible.index(self.current) + 1
        return self._order.index(self.current) + 1

    def total(self, data: dict[str, Any]) -> int:
        return len(self.visible_steps(data))

    def is_first(self) -> bool:
        return not self.history

    def can_advance(self, data: dict[str, Any]) -> ValidationResult:
        return self._validation.validate_step(self._defn.id, self.current_step, data)

    def resolve_next(
        self, step_id: str, data: dict[str, Any], action: str | None = None
    ) -> str | None:
        """Target of leaving ``step_id``; ``None`` means end of path.

        Raises:
            ValueError: If ``action`` is not offered by the step.
        """
        step = self._defn.step(step_id)

        if action is not None:
            edge = self._match(step.transitions, data, action)
            if edge is None:
                raise ValueError(f"Action {action!r} is not available on step {step_id!r}")
            return edge.to

        edge = self._match(step.transitions, data, None)
        if edge is not None:
            return edge.to

        index = self._order.index(step_id)
        for candidate in self._order[index + 1:]:
            if self.is_visible(candidate, data):
                return candidate
        return None

    def actions(self, step_id: str, data: dict[str, Any]) -> list[str]:
        step = self._defn.step(step_id)
        return [
            t.action for t in step.transitions
            if t.action is not None and condition_holds(t.when, data)
        ]

    # -- moves --

    def advance(self, draft: DraftStore, action: str | None = None) -> str | None:
        """Leave the current step if its validator passes.

        Returns the new current step, the unchanged current step when the
        gate is closed, or ``None`` when the path ends here.
        """
        data = draft.values
        if not self.can_advance(data).valid:
            return self.current

        target = self.resolve_next(self.current, data, action)
        self._run_collect(self.current_step, draft)
        if target is None:
            return None
        self._move_to(target)
        return target

    def skip(self, draft: DraftStore) -> str | None:
        """Bypass an optional step's validator, clearing its fields.

        Raises:
            ValueError: If the current step is not optional.
        """
        step = self.current_step
        if not step.optional:
            raise ValueError(f"Step {step.id!r} is not optional")
        draft.reset([f.id for f in step.fields])

        target = self.resolve_next(self.current, draft.values)
        if target is None:
            return None
        self._move_to(target)
        return target

    def retreat(self, data: dict[str, Any] | None = None) -> str:
        """Return to the previous step on the traversed path (no-op at the start)."""
        while self.history:
            previous = self.history.pop()
            if data is None or self.is_visible(previous, data):
                self.current = previous
                break
        return self.current

    def jump_to(self, step_id: str) -> None:
        """Make ``step_id`` current, rewinding history if it was already visited."""
        self._defn.step(step_id)
        if step_id == self.current:
            return
        if step_id in self.history:
            index = self.history.index(step_id)
            self.history = self.history[:index]
            self.current = step_id
            return
        self._move_to(step_id)

    def _move_to(self, step_id: str) -> None:
        self.history.append(self.current)
        self.current = step_id

    @staticmethod
    def _match(
        transitions: list[Transition], data: dict[str, Any], action: str | None
    ) -> Transition | None:
        for edge in transitions:
            if edge.action == action and condition_holds(edge.when, data):
                return edge
        return None

    @staticmethod
    def _run_collect(step: StepDefinition, draft: DraftStore) -> None:
        """Append the staged sub-object to its list and clear the stage."""
        if step.collect is None:
            return
        staged = dict(draft.get(step.collect.source) or {})
        staged.setdefault("id", uuid.uuid4().hex[:12])
        for key, fallback_field in step.collect.fallbacks.items():
            if not staged.get(key):
                staged[key] = draft.get(fallback_field)
        items = list(draft.get(step.collect.target) or [])
        items.append(staged)
        draft.update({step.collect.target: items})
        draft.reset([step.collect.source])
