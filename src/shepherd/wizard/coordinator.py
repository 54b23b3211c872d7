"""Submission lifecycle for one wizard session."""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any

from pydantic.alias_generators import to_camel

from shepherd.api.models import ApiCollaborator, ApiError
from shepherd.core.types import EDITABLE_STATES, SessionMode, SubmissionState
from shepherd.wizard.draft import DraftStore
from shepherd.wizard.errors import SessionLockedError
from shepherd.wizard.models import SubmissionOutcome, SubmitDefinition, WizardDefinition
from shepherd.wizard.payloads import PayloadContext, PayloadError, PayloadMapper
from shepherd.wizard.sequencer import StepSequencer
from shepherd.wizard.validation import ValidationEngine

logger = logging.getLogger(__name__)

VALIDATION_FAILED_MESSAGE = "Please fix the highlighted fields before submitting."
MALFORMED_DRAFT_MESSAGE = "Some answers could not be read. Please review them and try again."


class SubmissionCoordinator:
    """Drives ``EDITING -> VALIDATING -> SUBMITTING -> SUCCEEDED | FAILED``.

    Every submit re-validates the whole visible path against a fresh clock
    read, so a start time that was in the future at step exit but has since
    passed is caught here. Each network call is tagged with an ownership
    token; ``cancel`` drops the token and whatever the backend answers for
    it afterwards is ignored.
    """

    def __init__(
        self,
        definition: WizardDefinition,
        api: ApiCollaborator,
        validation: ValidationEngine,
        mapper: PayloadMapper,
        context: PayloadContext,
    ) -> None:
        self._defn = definition
        self._api = api
        self._validation = validation
        self._mapper = mapper
        self._context = context
        self._token: str | None = None
        self.state = SubmissionState.EDITING
        self.last_error: str | None = None

        self._wire_to_field: dict[str, str] = {}
        for f in definition.all_fields():
            self._wire_to_field[f.id] = f.id
            self._wire_to_field[f.wire_name or to_camel(f.id)] = f.id

    @property
    def is_editable(self) -> bool:
        return self.state in EDITABLE_STATES

    @property
    def in_flight(self) -> bool:
        return self._token is not None

    def ensure_editable(self) -> None:
        if not self.is_editable:
            raise SessionLockedError(self.state)

    def touch(self) -> None:
        """Record a user edit. A failed submission becomes editable again."""
        self.ensure_editable()
        if self.state == SubmissionState.FAILED:
            self.state = SubmissionState.EDITING

    def cancel(self) -> None:
        """Abandon the session; a pending response will be discarded."""
        if self.state == SubmissionState.SUCCEEDED:
            return
        if self._token is not None:
            logger.info("Cancelling in-flight submission of %s", self._defn.id)
        self._token = None
        self.state = SubmissionState.CANCELLED

    async def submit(self, draft: DraftStore, sequencer: StepSequencer) -> SubmissionOutcome:
        """Validate the whole draft, send it, and route the outcome.

        Raises:
            SessionLockedError: If a submission is already in flight or the
                session has finished.
        """
        self.ensure_editable()
        self.state = SubmissionState.VALIDATING
        data = draft.snapshot()
        visible = sequencer.visible_steps(data)

        try:
            result = self._validation.validate_all(self._defn, data, visible)
            if not result.valid:
                return self._reject(result.errors, sequencer, visible)

            try:
                payload = self._mapper.to_payload(data, self._context)
            except PayloadError as exc:
                return self._reject(self.to_field_errors(exc.errors), sequencer, visible)
            except (AttributeError, TypeError, ValueError) as exc:
                logger.warning("Could not build %s payload from draft: %s", self._defn.id, exc)
                return self._reject({}, sequencer, visible, message=MALFORMED_DRAFT_MESSAGE)
        except Exception:
            self.state = SubmissionState.EDITING
            raise

        target = self._target()
        path = target.path.format(record_id=self._context.record_id or "")
        token = uuid.uuid4().hex
        self._token = token
        self.state = SubmissionState.SUBMITTING
        logger.debug("Submitting %s: %s %s", self._defn.id, target.method, path)

        try:
            response = await self._api.submit(target.method, path, payload)
        except ApiError as exc:
            if token != self._token:
                return self._late(exc.message)
            self._token = None
            return self._fail(exc, sequencer, visible)
        except Exception:
            if token == self._token:
                self._token = None
                self.state = SubmissionState.FAILED
                self.last_error = "Request failed"
            raise

        if token != self._token:
            return self._late("success")
        self._token = None
        self.state = SubmissionState.SUCCEEDED
        self.last_error = None
        logger.info("Submitted %s (%s)", self._defn.id, self._context.mode)
        return SubmissionOutcome(
            state=self.state,
            record=_unwrap_record(response, target.record_key),
        )

    def to_field_errors(self, errors: dict[str, list[str]]) -> dict[str, list[str]]:
        """Re-key errors reported by wire name (``startAt``, ``familyMembers.0``) by field id."""
        routed: dict[str, list[str]] = {}
        for key, msgs in errors.items():
            head = re.split(r"[.\[]", key, maxsplit=1)[0]
            field_id = self._wire_to_field.get(key) or self._wire_to_field.get(head, key)
            bucket = routed.setdefault(field_id, [])
            bucket.extend(m for m in msgs if m not in bucket)
        return routed

    def owning_step(self, field_ids: list[str], step_ids: list[str]) -> str | None:
        """First step on the path that owns any of ``field_ids``."""
        wanted = set(field_ids)
        for step_id in step_ids:
            step = self._defn.step(step_id)
            if any(f.id in wanted for f in step.fields):
                return step_id
        return None

    # -- outcomes --

    def _target(self) -> SubmitDefinition:
        if self._context.mode == SessionMode.EDIT and self._defn.edit is not None:
            return self._defn.edit.submit
        return self._defn.submit

    def _reject(
        self,
        errors: dict[str, list[str]],
        sequencer: StepSequencer,
        visible: list[str],
        message: str = VALIDATION_FAILED_MESSAGE,
    ) -> SubmissionOutcome:
        self.state = SubmissionState.EDITING
        step = self.owning_step(list(errors), visible) or sequencer.current
        sequencer.jump_to(step)
        logger.debug("Submission of %s blocked by validation at %s", self._defn.id, step)
        return SubmissionOutcome(
            state=self.state,
            message=message,
            errors=errors,
            return_step=step,
        )

    def _fail(
        self,
        exc: ApiError,
        sequencer: StepSequencer,
        visible: list[str],
    ) -> SubmissionOutcome:
        self.state = SubmissionState.FAILED
        self.last_error = exc.message
        errors = self.to_field_errors(exc.field_errors)

        step = self.owning_step(list(errors), visible)
        if step is None:
            fallback = self._target().failure_step or self._defn.submit.failure_step
            step = fallback if fallback in visible else sequencer.current
        sequencer.jump_to(step)

        logger.warning(
            "Submission of %s failed (status=%s url=%s): %s",
            self._defn.id, exc.status_code, exc.url, exc.message,
        )
        return SubmissionOutcome(
            state=self.state,
            message=exc.message,
            errors=errors,
            debug=exc.debug_info(),
            return_step=step,
        )

    def _late(self, what: str) -> SubmissionOutcome:
        logger.info(
            "Ignoring late response for abandoned %s submission: %s", self._defn.id, what
        )
        return SubmissionOutcome(state=self.state)


def _unwrap_record(response: dict[str, Any], record_key: str | None) -> dict[str, Any]:
    if record_key and isinstance(response.get(record_key), dict):
        return response[record_key]
    return response
