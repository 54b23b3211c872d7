"""Shared models for the wizard engine."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from shepherd.core.types import SessionMode, SubmissionState


class FieldType(str, Enum):
    """Supported field types in wizard steps."""

    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    PHONE = "phone"
    PASSWORD = "password"
    DATETIME = "datetime"
    NUMBER = "number"
    SELECT = "select"
    CHECKBOX = "checkbox"
    ADDRESS = "address"
    LIST = "list"
    GROUP = "group"


class FieldDefinition(BaseModel):
    """Definition of a single draft field owned by a wizard step."""

    id: str
    label: str
    field_type: FieldType
    required: bool = False
    validators: list[str] = Field(default_factory=list)
    normalizers: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)
    default: Any = None
    wire_name: str | None = None
    help_text: str = ""
    lock_when_prefilled: bool = False


class Transition(BaseModel):
    """A labeled edge out of a step.

    ``to=None`` ends the path: leaving the step submits the wizard.
    ``action`` is the user's choice that selects the edge (``None`` for the
    plain "Next" button). ``when`` is an optional ``{field, equals}`` guard.
    """

    to: str | None = None
    action: str | None = None
    when: dict[str, Any] | None = None


class CollectDefinition(BaseModel):
    """Append a sub-object draft field to a list field when leaving a step."""

    source: str
    target: str
    fallbacks: dict[str, str] = Field(default_factory=dict)


class StepDefinition(BaseModel):
    """Definition of a single wizard step."""

    id: str
    title: str
    description: str = ""
    optional: bool = False
    fields: list[FieldDefinition] = Field(default_factory=list)
    show_if: dict[str, Any] | None = None
    transitions: list[Transition] = Field(default_factory=list)
    collect: CollectDefinition | None = None


class SubmitDefinition(BaseModel):
    """Where and how a wizard's payload is sent."""

    method: str = "POST"
    path: str
    record_key: str | None = None
    failure_step: str | None = None


class EditDefinition(BaseModel):
    """Edit-mode loading, editability and change tracking."""

    load_path: str
    record_key: str | None = None
    submit: SubmitDefinition
    editable_when: dict[str, Any] | None = None
    not_editable_message: str = "This record can no longer be edited."
    tracked_fields: list[str] = Field(default_factory=list)


class WizardDefinition(BaseModel):
    """Full definition of a wizard loaded from YAML."""

    id: str
    title: str
    description: str = ""
    steps: list[StepDefinition] = Field(default_factory=list)
    payload: str
    submit: SubmitDefinition
    edit: EditDefinition | None = None
    reference_data: list[str] = Field(default_factory=list)

    def step(self, step_id: str) -> StepDefinition:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(f"Unknown step {step_id!r} in wizard {self.id!r}")

    def all_fields(self) -> list[FieldDefinition]:
        return [f for step in self.steps for f in step.fields]

    def get_field(self, field_id: str) -> FieldDefinition | None:
        for f in self.all_fields():
            if f.id == field_id:
                return f
        return None

    def default_draft(self) -> dict[str, Any]:
        return {f.id: _copy_default(f.default) for f in self.all_fields()}


class ValidationResult(BaseModel):
    """Result of validating a field, step, or whole draft."""

    valid: bool
    errors: dict[str, list[str]] = Field(default_factory=dict)


class SubmissionOutcome(BaseModel):
    """What happened when the user pressed submit."""

    state: SubmissionState
    record: dict[str, Any] | None = None
    message: str | None = None
    errors: dict[str, list[str]] = Field(default_factory=dict)
    debug: dict[str, Any] | None = None
    return_step: str | None = None


class SessionView(BaseModel):
    """Serializable snapshot of a live wizard session."""

    id: str
    wizard_id: str
    mode: SessionMode
    record_id: str | None = None
    current_step: str
    step_title: str = ""
    position: int
    total_steps: int
    optional: bool
    can_advance: bool
    actions: list[str] = Field(default_factory=list)
    step_errors: dict[str, list[str]] = Field(default_factory=dict)
    read_only: list[str] = Field(default_factory=list)
    has_changes: bool = False
    state: SubmissionState
    last_error: str | None = None
    draft: dict[str, Any] = Field(default_factory=dict)
    outcome: SubmissionOutcome | None = None


def _copy_default(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _copy_default(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_copy_default(v) for v in value]
    return value


def condition_holds(condition: dict[str, Any] | None, data: dict[str, Any]) -> bool:
    """Evaluate a ``{field, equals}`` / ``{field, in}`` / ``{field, not_equals}`` guard."""
    if not condition:
        return True
    actual = data.get(condition.get("field", ""))
    if "equals" in condition:
        return actual == condition["equals"]
    if "not_equals" in condition:
        return actual != condition["not_equals"]
    if "in" in condition:
        return actual in (condition["in"] or [])
    return True
