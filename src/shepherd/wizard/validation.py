"""Validation engine for wizard steps."""

from __future__ import annotations

from datetime import timezone, tzinfo
from typing import Any, Callable

from shepherd.core.clock import Clock, SystemClock
from shepherd.wizard.models import (
    FieldDefinition,
    StepDefinition,
    ValidationResult,
    WizardDefinition,
)
from shepherd.wizard.normalizers import parse_rule
from shepherd.wizard.validators.common import VALIDATORS
from shepherd.wizard.validators.cross_field import CrossFieldValidator


class ValidationEngine:
    """Registry-based validation engine.

    Field validators are pure functions of the value, the whole draft
    (``data``) and the injected clock. Cross-field rules run at the exit of
    the step they are attached to, and all of them run again on submit.
    """

    def __init__(
        self,
        cross_field: CrossFieldValidator | None = None,
        clock: Clock | None = None,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self._validators: dict[str, Callable[..., str | None]] = dict(VALIDATORS)
        self._clock = clock or SystemClock()
        self._tz = tz
        self._cross_field = cross_field or CrossFieldValidator(clock=self._clock, tz=tz)

    @property
    def clock(self) -> Clock:
        return self._clock

    def register(self, name: str, fn: Callable[..., str | None]) -> None:
        self._validators[name] = fn

    def validate_field(
        self,
        field: FieldDefinition,
        value: Any,
        data: dict[str, Any] | None = None,
    ) -> list[str]:
        """Validate a single field value. Returns list of error messages."""
        errors: list[str] = []
        params: dict[str, Any] = {"data": data or {}, "clock": self._clock, "tz": self._tz}

        # Always check required first
        if field.required:
            fn = self._validators.get("required")
            if fn:
                err = fn(value)
                if err:
                    errors.append(err)
                    return errors  # No point running other validators on empty

        for validator_name in field.validators:
            # Validator name may include params like "numeric:min_val=0"
            name, extra_params = parse_rule(validator_name)

            fn = self._validators.get(name)
            if fn is None:
                raise KeyError(f"Unknown validator {name!r} on field {field.id!r}")

            # "key=..." points a validator at one entry of a compound field
            target = value
            key = extra_params.pop("key", None)
            if key is not None:
                target = value.get(key) if isinstance(value, dict) else None

            err = fn(target, **{**params, **extra_params})
            if err:
                errors.append(err)

        return errors

    def validate_step(
        self,
        wizard_id: str,
        step: StepDefinition,
        data: dict[str, Any],
    ) -> ValidationResult:
        """Validate a step's fields plus the cross-field rules attached to it."""
        all_errors: dict[str, list[str]] = {}

        for field in step.fields:
            field_errors = self.validate_field(field, data.get(field.id), data)
            if field_errors:
                all_errors[field.id] = field_errors

        for field_id, msgs in self._cross_field.validate(wizard_id, data, step=step.id).items():
            all_errors.setdefault(field_id, []).extend(msgs)

        return ValidationResult(valid=not all_errors, errors=all_errors)

    def validate_all(
        self,
        definition: WizardDefinition,
        data: dict[str, Any],
        step_ids: list[str],
    ) -> ValidationResult:
        """Full pass over every given step and every applicable cross-field rule.

        Steps with a ``collect`` hook are skipped: their fields are a staging
        buffer that was validated on the way out and has since been reset.
        """
        all_errors: dict[str, list[str]] = {}

        for step_id in step_ids:
            step = definition.step(step_id)
            if step.collect is not None:
                continue
            for field in step.fields:
                field_errors = self.validate_field(field, data.get(field.id), data)
                if field_errors:
                    all_errors[field.id] = field_errors

        cross = self._cross_field.validate(definition.id, data, steps=step_ids)
        for field_id, msgs in cross.items():
            bucket = all_errors.setdefault(field_id, [])
            bucket.extend(m for m in msgs if m not in bucket)

        return ValidationResult(valid=not all_errors, errors=all_errors)
