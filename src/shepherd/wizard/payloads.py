"""Draft <-> wire mapping for each wizard.

Drafts use snake_case field ids and datetime-local strings; the backend
expects camelCase keys and ISO-8601 UTC timestamps. Each wizard names a
mapper in its YAML (``payload: vote``); the mapper turns an existing record
into a draft (edit mode) and a draft into the request body. Wire bodies are
validated through pydantic models before anything is sent, so contract
violations surface as field errors instead of a failed request.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from shepherd.core.clock import parse_datetime, to_datetime_local, to_iso_utc
from shepherd.core.types import SessionMode

# Registry of payload mappers: name -> mapper instance
PAYLOADS: dict[str, PayloadMapper] = {}

SMS_SEGMENT_LENGTH = 160
SMS_COST_PER_SEGMENT = 0.0075

PREVIEW_LINKS = {
    "ballotLink": "https://church.app/vote/123",
    "registerLink": "https://church.app/register",
}

AudienceType = Literal[
    "ALL", "ELIGIBLE", "DELINQUENT_30", "DELINQUENT_60", "DELINQUENT_90", "CUSTOM"
]


def register(name: str):
    """Class decorator registering a payload mapper under ``name``."""
    def decorator(cls):
        PAYLOADS[name] = cls()
        return cls
    return decorator


def get_mapper(name: str) -> PayloadMapper:
    try:
        return PAYLOADS[name]
    except KeyError:
        raise KeyError(f"Unknown payload mapper {name!r}") from None


class PayloadError(ValueError):
    """The draft cannot be turned into a valid request body.

    ``errors`` maps wire field names to messages.
    """

    def __init__(self, errors: dict[str, list[str]]) -> None:
        self.errors = errors
        super().__init__("; ".join(f"{k}: {', '.join(v)}" for k, v in errors.items()))


@dataclass
class PayloadContext:
    """Everything a mapper may need besides the draft itself."""

    mode: SessionMode = SessionMode.CREATE
    tz: tzinfo = timezone.utc
    reference: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    record_id: str | None = None


class PayloadMapper:
    """Base mapper. Subclasses override ``to_payload`` and usually ``from_record``."""

    def from_record(self, record: dict[str, Any], context: PayloadContext) -> dict[str, Any]:
        return {}

    def to_payload(self, draft: dict[str, Any], context: PayloadContext) -> dict[str, Any]:
        raise NotImplementedError


# -- wire models --


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VotePayload(_WireModel):
    title: str = Field(min_length=1)
    description: str = ""
    type: Literal["SINGLE_CHOICE", "YES_NO"]
    options: list[str] = Field(min_length=2, max_length=10)
    start_at: str
    end_at: str
    anonymous: bool = False
    status: Literal["SCHEDULED"] | None = None


class FamilyMemberPayload(_WireModel):
    first_name: str = Field(min_length=1)
    last_name: str
    relationship: Literal["CHILD", "SPOUSE", "PARENT", "SIBLING", "OTHER"]
    phone: str | None = None


class MemberProfilePayload(_WireModel):
    phone: str = Field(pattern=r"^\+1\d{10}$")
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str | None = None
    address: str | None = None
    password: str = Field(min_length=8)
    consent: Literal[True]
    family_members: list[FamilyMemberPayload] = Field(default_factory=list)


class CommunicationPayload(_WireModel):
    name: str = Field(min_length=1)
    audience: AudienceType
    custom_audience: list[str] | None = None
    body: str = Field(min_length=1, max_length=1600)
    scheduled_at: str | None = None


class QuestionPayload(_WireModel):
    id: str
    order: int
    question_text: str = Field(min_length=1)
    field_mapping: str = Field(min_length=1)
    field_type: str = "text"
    is_active: bool = True
    validation_rules: dict[str, Any] | None = None


class RecipientPayload(_WireModel):
    member: str
    phone: str
    status: Literal["PENDING"] = "PENDING"
    current_question_index: int = -1


class DataCollectionPayload(_WireModel):
    name: str = Field(min_length=1)
    description: str = ""
    type: Literal["SINGLE", "BULK"]
    questions: list[QuestionPayload] = Field(min_length=1)
    consent_question: str = Field(min_length=1)
    auto_approve: bool = False
    recipients: list[RecipientPayload] = Field(min_length=1)


class EventPayload(_WireModel):
    title: str = Field(min_length=1)
    description: str | None = None
    type: Literal["SERVICE", "MEETING", "SPECIAL_OCCASION", "CONFERENCE", "SOCIAL", "OTHER"]
    start_date: str
    end_date: str
    location: str = Field(min_length=1)
    capacity: int | None = Field(default=None, ge=1)
    registration_required: bool = False
    registration_deadline: str | None = None
    allow_waitlist: bool = False
    max_waitlist: int | None = Field(default=None, ge=0)
    is_recurring: bool = False
    recurrence_pattern: Literal["DAILY", "WEEKLY", "MONTHLY", "YEARLY"] | None = None
    recurrence_end_date: str | None = None


def _build(model_cls: type[_WireModel], **values: Any) -> dict[str, Any]:
    """Validate ``values`` against a wire model and dump it by alias.

    ``None`` values are left out of the body, as an absent optional key.

    Raises:
        PayloadError: With messages keyed by wire field name.
    """
    try:
        model = model_cls(**values)
    except ValidationError as exc:
        errors: dict[str, list[str]] = {}
        for err in exc.errors():
            loc = err.get("loc") or ("__root__",)
            name = str(loc[0])
            info = model_cls.model_fields.get(name)
            wire = info.alias if info is not None and info.alias else name
            errors.setdefault(wire, []).append(err["msg"])
        raise PayloadError(errors) from exc
    return model.model_dump(by_alias=True, exclude_none=True)


def _iso(value: Any, wire: str, tz: tzinfo) -> str:
    try:
        return to_iso_utc(parse_datetime(value, tz))
    except (ValueError, TypeError):
        raise PayloadError({wire: ["Please enter a valid date and time."]}) from None


def _iso_or_none(value: Any, wire: str, tz: tzinfo) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _iso(value, wire, tz)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _blank_to_none(value: Any) -> str | None:
    text = _text(value)
    return text or None


def _int_or_none(value: Any) -> Any:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def _record_id(record: dict[str, Any]) -> str:
    return str(record.get("id") or record.get("_id") or "")


# -- helpers --


def format_phone_number(phone: str) -> str:
    """Normalize user input towards ``+1XXXXXXXXXX``.

    Too-short input is returned as bare digits so the phone validator still
    rejects it.
    """
    cleaned = re.sub(r"\D", "", phone or "")
    if len(cleaned) == 11 and cleaned.startswith("1"):
        return "+" + cleaned
    if len(cleaned) == 10:
        return "+1" + cleaned
    if len(cleaned) < 10:
        return cleaned
    if not cleaned.startswith("1"):
        return "+1" + cleaned
    return "+" + cleaned


def sms_segments(body: str) -> int:
    length = len(body or "")
    if length <= SMS_SEGMENT_LENGTH:
        return 1
    return math.ceil(length / SMS_SEGMENT_LENGTH)


def estimate_sms_cost(body: str, recipients: int) -> float:
    """Estimated send cost in dollars, rounded to cents."""
    return round(sms_segments(body) * max(recipients, 0) * SMS_COST_PER_SEGMENT, 2)


def render_message_preview(body: str, member: dict[str, Any] | None = None) -> str:
    """Substitute ``{{variable}}`` placeholders for one member.

    Without a member, sample values are used.
    """
    member = member or {"firstName": "John", "lastName": "Smith", "eligibility": "Eligible"}
    values = {
        "firstName": member.get("firstName") or "",
        "lastName": member.get("lastName") or "",
        "eligibility": member.get("eligibility") or "",
        **PREVIEW_LINKS,
    }
    preview = body or ""
    for name, replacement in values.items():
        preview = preview.replace("{{" + name + "}}", str(replacement))
    return preview


# -- mappers --


@register("vote")
class VoteMapper(PayloadMapper):
    def from_record(self, record: dict[str, Any], context: PayloadContext) -> dict[str, Any]:
        return {
            "title": record.get("title") or "",
            "description": record.get("description") or "",
            "type": record.get("type") or "SINGLE_CHOICE",
            "options": list(record.get("options") or []),
            "start_at": to_datetime_local(record.get("startAt"), context.tz),
            "end_at": to_datetime_local(record.get("endAt"), context.tz),
            "anonymous": bool(record.get("anonymous", False)),
        }

    def to_payload(self, draft: dict[str, Any], context: PayloadContext) -> dict[str, Any]:
        vote_type = draft.get("type")
        if vote_type == "YES_NO":
            options = ["Yes", "No"]
        else:
            options = [_text(o) for o in draft.get("options") or []]
        return _build(
            VotePayload,
            title=_text(draft.get("title")),
            description=draft.get("description") or "",
            type=vote_type,
            options=options,
            start_at=_iso(draft.get("start_at"), "startAt", context.tz),
            end_at=_iso(draft.get("end_at"), "endAt", context.tz),
            anonymous=bool(draft.get("anonymous")),
            status="SCHEDULED" if context.mode == SessionMode.CREATE else None,
        )


@register("member_profile")
class MemberProfileMapper(PayloadMapper):
    ADDRESS_PARTS = ("street", "street2", "city", "state", "zip_code")

    def to_payload(self, draft: dict[str, Any], context: PayloadContext) -> dict[str, Any]:
        address = draft.get("address") or {}
        parts = [_text(address.get(k)) for k in self.ADDRESS_PARTS]
        parts = [p for p in parts if p]
        last_name = _text(draft.get("last_name"))

        family = [
            {
                "first_name": _text(fm.get("first_name")),
                "last_name": _text(fm.get("last_name")) or last_name,
                "relationship": fm.get("relationship") or "CHILD",
                "phone": _blank_to_none(fm.get("phone")),
            }
            for fm in draft.get("family_members") or []
        ]

        return _build(
            MemberProfilePayload,
            phone=format_phone_number(draft.get("phone") or ""),
            first_name=_text(draft.get("first_name")),
            last_name=last_name,
            email=_blank_to_none(draft.get("email")),
            address=", ".join(parts) if parts else None,
            password=draft.get("password") or "",
            consent=draft.get("consent") is True,
            family_members=family,
        )


@register("communication")
class CommunicationMapper(PayloadMapper):
    def from_record(self, record: dict[str, Any], context: PayloadContext) -> dict[str, Any]:
        scheduled = record.get("scheduledAt")
        return {
            "name": record.get("name") or "",
            "audience": record.get("audience") or "ALL",
            "custom_audience": [
                (m.get("_id") or m.get("id")) if isinstance(m, dict) else m
                for m in record.get("customAudience") or []
            ],
            "body": record.get("body") or "",
            "send_mode": "schedule" if scheduled else "now",
            "scheduled_at": to_datetime_local(scheduled, context.tz),
        }

    def to_payload(self, draft: dict[str, Any], context: PayloadContext) -> dict[str, Any]:
        audience = draft.get("audience")
        scheduling = draft.get("send_mode") == "schedule"
        return _build(
            CommunicationPayload,
            name=_text(draft.get("name")),
            audience=audience,
            custom_audience=list(draft.get("custom_audience") or []) if audience == "CUSTOM" else None,
            body=draft.get("body") or "",
            scheduled_at=(
                _iso(draft.get("scheduled_at"), "scheduledAt", context.tz) if scheduling else None
            ),
        )


@register("data_collection")
class DataCollectionMapper(PayloadMapper):
    def to_payload(self, draft: dict[str, Any], context: PayloadContext) -> dict[str, Any]:
        field_types = {
            f.get("field"): f.get("type") or "text"
            for f in context.reference.get("member_fields", [])
        }
        questions = []
        for order, question in enumerate(draft.get("questions") or []):
            mapping = _text(question.get("field_mapping"))
            questions.append({
                "id": str(question.get("id") or f"q{order + 1}"),
                "order": order,
                "question_text": _text(question.get("question_text")),
                "field_mapping": mapping,
                "field_type": question.get("field_type") or field_types.get(mapping, "text"),
                "is_active": question.get("is_active", True),
                "validation_rules": question.get("validation_rules"),
            })

        members = {_record_id(m): m for m in context.reference.get("members", [])}
        recipients = [
            {"member": member_id, "phone": (members.get(member_id) or {}).get("phone") or ""}
            for member_id in draft.get("selected_members") or []
        ]

        return _build(
            DataCollectionPayload,
            name=_text(draft.get("name")),
            description=draft.get("description") or "",
            type=draft.get("campaign_type") or "BULK",
            questions=questions,
            consent_question=_text(draft.get("consent_question")),
            auto_approve=bool(draft.get("auto_approve")),
            recipients=recipients,
        )


@register("event")
class EventMapper(PayloadMapper):
    def from_record(self, record: dict[str, Any], context: PayloadContext) -> dict[str, Any]:
        return {
            "title": record.get("title") or "",
            "description": record.get("description") or "",
            "type": record.get("type") or "SERVICE",
            "start_date": to_datetime_local(record.get("startDate"), context.tz),
            "end_date": to_datetime_local(record.get("endDate"), context.tz),
            "location": record.get("location") or "",
            "registration_required": bool(record.get("registrationRequired", False)),
            "capacity": record.get("capacity"),
            "registration_deadline": to_datetime_local(
                record.get("registrationDeadline"), context.tz
            ),
            "allow_waitlist": bool(record.get("allowWaitlist", False)),
            "max_waitlist": record.get("maxWaitlist"),
            "is_recurring": bool(record.get("isRecurring", False)),
            "recurrence_pattern": record.get("recurrencePattern"),
            "recurrence_end_date": to_datetime_local(
                record.get("recurrenceEndDate"), context.tz
            ),
        }

    def to_payload(self, draft: dict[str, Any], context: PayloadContext) -> dict[str, Any]:
        tz = context.tz
        registration = bool(draft.get("registration_required"))
        recurring = bool(draft.get("is_recurring"))
        waitlist = registration and bool(draft.get("allow_waitlist"))
        return _build(
            EventPayload,
            title=_text(draft.get("title")),
            description=_blank_to_none(draft.get("description")),
            type=draft.get("type"),
            start_date=_iso(draft.get("start_date"), "startDate", tz),
            end_date=_iso(draft.get("end_date"), "endDate", tz),
            location=_text(draft.get("location")),
            registration_required=registration,
            capacity=_int_or_none(draft.get("capacity")) if registration else None,
            registration_deadline=(
                _iso_or_none(draft.get("registration_deadline"), "registrationDeadline", tz)
                if registration else None
            ),
            allow_waitlist=waitlist,
            max_waitlist=_int_or_none(draft.get("max_waitlist")) if waitlist else None,
            is_recurring=recurring,
            recurrence_pattern=draft.get("recurrence_pattern") if recurring else None,
            recurrence_end_date=(
                _iso_or_none(draft.get("recurrence_end_date"), "recurrenceEndDate", tz)
                if recurring else None
            ),
        )


def audience_size(draft: dict[str, Any], members: list[dict[str, Any]]) -> int:
    """Number of members a communication would reach."""
    audience = draft.get("audience")
    if audience == "CUSTOM":
        return len(draft.get("custom_audience") or [])
    if audience == "ALL":
        return len(members)
    return sum(1 for m in members if m.get("eligibility") == audience)
