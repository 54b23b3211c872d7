"""Config-driven wizard engine."""

from __future__ import annotations

import logging
from datetime import timezone, tzinfo
from pathlib import Path
from typing import Any

import yaml

from shepherd.api.models import ApiCollaborator, ApiError
from shepherd.core.clock import Clock
from shepherd.core.types import SessionMode
from shepherd.wizard.changes import ChangeDetector
from shepherd.wizard.coordinator import SubmissionCoordinator
from shepherd.wizard.draft import DraftStore
from shepherd.wizard.errors import WizardLoadError
from shepherd.wizard.models import (
    CollectDefinition,
    EditDefinition,
    FieldDefinition,
    FieldType,
    StepDefinition,
    SubmitDefinition,
    Transition,
    WizardDefinition,
    condition_holds,
)
from shepherd.wizard.normalizers import normalize
from shepherd.wizard.payloads import PayloadContext, get_mapper
from shepherd.wizard.sequencer import StepSequencer
from shepherd.wizard.session import WizardSession
from shepherd.wizard.validation import ValidationEngine

logger = logging.getLogger(__name__)

_DEFAULT_WIZARDS_DIR = Path(__file__).resolve().parents[3] / "config" / "wizards"


def _parse_field(data: dict[str, Any]) -> FieldDefinition:
    return FieldDefinition(
        id=data["id"],
        label=data.get("label", data["id"]),
        field_type=FieldType(data.get("type", "text")),
        required=data.get("required", False),
        validators=data.get("validators", []),
        normalizers=data.get("normalizers", []),
        options=data.get("options", []),
        default=data.get("default"),
        wire_name=data.get("wire_name"),
        help_text=data.get("help_text", ""),
        lock_when_prefilled=data.get("lock_when_prefilled", False),
    )


def _parse_step(data: dict[str, Any]) -> StepDefinition:
    fields = [_parse_field(f) for f in data.get("fields", [])]
    transitions = [Transition(**t) for t in data.get("transitions", [])]
    collect = data.get("collect")
    return StepDefinition(
        id=data["id"],
        title=data.get("title", data["id"]),
        description=data.get("description", ""),
        optional=data.get("optional", False),
        fields=fields,
        show_if=data.get("show_if"),
        transitions=transitions,
        collect=CollectDefinition(**collect) if collect else None,
    )


def _parse_edit(data: dict[str, Any] | None) -> EditDefinition | None:
    if not data:
        return None
    return EditDefinition(
        load_path=data["load_path"],
        record_key=data.get("record_key"),
        submit=SubmitDefinition(**data["submit"]),
        editable_when=data.get("editable_when"),
        not_editable_message=data.get(
            "not_editable_message", "This record can no longer be edited."
        ),
        tracked_fields=data.get("tracked_fields", []),
    )


def _load_wizard(path: Path) -> WizardDefinition:
    with open(path) as fh:
        data = yaml.safe_load(fh)
    steps = [_parse_step(s) for s in data.get("steps", [])]
    return WizardDefinition(
        id=data["id"],
        title=data.get("title", data["id"]),
        description=data.get("description", ""),
        steps=steps,
        payload=data.get("payload", data["id"]),
        submit=SubmitDefinition(**data["submit"]),
        edit=_parse_edit(data.get("edit")),
        reference_data=data.get("reference_data", []),
    )


class WizardEngine:
    """Loads wizard definitions and opens sessions on them.

    Definitions come from YAML files in the wizards directory. Opening a
    session fetches the wizard's reference data (a failed fetch degrades to
    an empty list) and, in edit mode, the existing record.
    """

    def __init__(
        self,
        api: ApiCollaborator,
        validation_engine: ValidationEngine,
        wizards_dir: str | Path | None = None,
        tz: tzinfo = timezone.utc,
        clock: Clock | None = None,
    ) -> None:
        self._api = api
        self._validation = validation_engine
        self._tz = tz
        self._clock = clock or validation_engine.clock
        self._wizards: dict[str, WizardDefinition] = {}
        self._load_wizards(Path(wizards_dir) if wizards_dir else _DEFAULT_WIZARDS_DIR)

    def _load_wizards(self, wizards_dir: Path) -> None:
        if not wizards_dir.exists():
            logger.warning("Wizards directory %s does not exist", wizards_dir)
            return
        for path in sorted(wizards_dir.glob("*.yml")):
            defn = _load_wizard(path)
            get_mapper(defn.payload)
            self._wizards[defn.id] = defn
        logger.debug("Loaded %d wizard definitions from %s", len(self._wizards), wizards_dir)

    @property
    def wizard_definitions(self) -> dict[str, WizardDefinition]:
        return dict(self._wizards)

    def get_definition(self, wizard_id: str) -> WizardDefinition:
        defn = self._wizards.get(wizard_id)
        if defn is None:
            raise KeyError(f"Unknown wizard: {wizard_id!r}")
        return defn

    async def start_session(
        self,
        wizard_id: str,
        record_id: str | None = None,
        initial: dict[str, Any] | None = None,
    ) -> WizardSession:
        """Open a create-mode session, or an edit-mode one when ``record_id`` is given.

        ``initial`` pre-fills fields (for example the phone number carried by
        an invitation link). Values are normalized, and fields marked
        ``lock_when_prefilled`` become read-only for the session.

        Raises:
            KeyError: If the wizard is unknown.
            ValueError: If the wizard has no edit mode but ``record_id`` is
                given, or ``initial`` names a field the wizard does not have.
            WizardLoadError: If the record cannot be loaded or is not editable.
        """
        defn = self.get_definition(wizard_id)
        mode = SessionMode.EDIT if record_id else SessionMode.CREATE
        if mode == SessionMode.EDIT and defn.edit is None:
            raise ValueError(f"Wizard {wizard_id!r} does not support editing")
        prefilled = self._prefill(defn, initial or {})

        reference = await self._load_reference(defn)
        context = PayloadContext(mode=mode, tz=self._tz, reference=reference, record_id=record_id)
        mapper = get_mapper(defn.payload)

        defaults = defn.default_draft()
        values: dict[str, Any] = {}
        if mode == SessionMode.EDIT:
            record = await self._load_record(defn, record_id)
            values = mapper.from_record(record, context)
        values.update(prefilled)

        draft = DraftStore(defaults, initial=values)
        read_only = [
            field_id for field_id, value in prefilled.items()
            if defn.get_field(field_id).lock_when_prefilled and value not in (None, "")
        ]
        changes = None
        if mode == SessionMode.EDIT:
            changes = ChangeDetector(draft.snapshot(), defn.edit.tracked_fields or None)

        sequencer = StepSequencer(defn, self._validation)
        coordinator = SubmissionCoordinator(defn, self._api, self._validation, mapper, context)
        session = WizardSession(
            defn,
            draft,
            sequencer,
            coordinator,
            mode=mode,
            record_id=record_id,
            changes=changes,
            reference=reference,
            read_only=read_only,
            clock=self._clock,
        )
        logger.info("Started %s session %s for wizard %s", mode, session.id, wizard_id)
        return session

    async def _load_reference(self, defn: WizardDefinition) -> dict[str, list[dict[str, Any]]]:
        reference: dict[str, list[dict[str, Any]]] = {}
        for kind in defn.reference_data:
            try:
                reference[kind] = await self._api.fetch_reference_data(kind)
            except (ApiError, KeyError) as exc:
                logger.warning(
                    "Could not load %s for wizard %s, continuing without: %s",
                    kind, defn.id, exc,
                )
                reference[kind] = []
        return reference

    async def _load_record(self, defn: WizardDefinition, record_id: str) -> dict[str, Any]:
        edit = defn.edit
        path = edit.load_path.format(record_id=record_id)
        try:
            data = await self._api.fetch_existing(path)
        except ApiError as exc:
            logger.warning("Failed to load %s for editing: %s", path, exc.message)
            raise WizardLoadError(exc.message) from exc

        record = data.get(edit.record_key) if edit.record_key else data
        if not isinstance(record, dict):
            raise WizardLoadError("Record not found")
        if not condition_holds(edit.editable_when, record):
            raise WizardLoadError(edit.not_editable_message)
        return record

    @staticmethod
    def _prefill(defn: WizardDefinition, initial: dict[str, Any]) -> dict[str, Any]:
        prefilled: dict[str, Any] = {}
        for field_id, value in initial.items():
            field = defn.get_field(field_id)
            if field is None:
                raise ValueError(f"Wizard {defn.id!r} has no field {field_id!r}")
            prefilled[field_id] = normalize(field, value)
        return prefilled
