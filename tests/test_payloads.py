"""Tests for draft <-> wire payload mapping."""

from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest

from shepherd.core.types import SessionMode
from shepherd.wizard.payloads import (
    PAYLOADS,
    PayloadContext,
    PayloadError,
    audience_size,
    estimate_sms_cost,
    format_phone_number,
    get_mapper,
    render_message_preview,
    sms_segments,
)


@pytest.fixture
def create_ctx():
    return PayloadContext(mode=SessionMode.CREATE)


@pytest.fixture
def edit_ctx():
    return PayloadContext(mode=SessionMode.EDIT, record_id="v1")


def _vote_draft(**overrides):
    draft = {
        "title": "Board Election",
        "description": "",
        "type": "SINGLE_CHOICE",
        "options": ["Alice ", "Bob"],
        "start_at": "2024-06-01T10:00",
        "end_at": "2024-06-01T11:00",
        "anonymous": True,
    }
    draft.update(overrides)
    return draft


class TestRegistry:
    def test_all_mappers_registered(self):
        assert {"vote", "member_profile", "communication", "data_collection", "event"} <= set(PAYLOADS)

    def test_unknown_mapper(self):
        with pytest.raises(KeyError):
            get_mapper("nope")


class TestVoteMapper:
    def test_create_payload(self, create_ctx):
        payload = get_mapper("vote").to_payload(_vote_draft(), create_ctx)
        assert payload == {
            "title": "Board Election",
            "description": "",
            "type": "SINGLE_CHOICE",
            "options": ["Alice", "Bob"],
            "startAt": "2024-06-01T10:00:00.000Z",
            "endAt": "2024-06-01T11:00:00.000Z",
            "anonymous": True,
            "status": "SCHEDULED",
        }

    def test_edit_payload_has_no_status(self, edit_ctx):
        payload = get_mapper("vote").to_payload(_vote_draft(), edit_ctx)
        assert "status" not in payload

    def test_yes_no_forces_options(self, create_ctx):
        payload = get_mapper("vote").to_payload(
            _vote_draft(type="YES_NO", options=["whatever"]), create_ctx
        )
        assert payload["options"] == ["Yes", "No"]

    def test_local_time_converted_to_utc(self):
        ctx = PayloadContext(tz=ZoneInfo("America/Chicago"))
        payload = get_mapper("vote").to_payload(_vote_draft(), ctx)
        assert payload["startAt"] == "2024-06-01T15:00:00.000Z"

    def test_bad_date_reported_by_wire_name(self, create_ctx):
        with pytest.raises(PayloadError) as exc_info:
            get_mapper("vote").to_payload(_vote_draft(end_at="tomorrow"), create_ctx)
        assert "endAt" in exc_info.value.errors

    def test_contract_violation_reported_by_wire_name(self, create_ctx):
        with pytest.raises(PayloadError) as exc_info:
            get_mapper("vote").to_payload(_vote_draft(type="RANKED"), create_ctx)
        assert "type" in exc_info.value.errors

    def test_from_record(self, edit_ctx):
        draft = get_mapper("vote").from_record(
            {
                "id": "v1",
                "title": "Board Election",
                "options": ["A", "B"],
                "startAt": "2024-06-01T10:00:00.000Z",
                "endAt": "2024-06-01T11:00:00.000Z",
                "status": "SCHEDULED",
            },
            edit_ctx,
        )
        assert draft["start_at"] == "2024-06-01T10:00"
        assert draft["end_at"] == "2024-06-01T11:00"
        assert draft["description"] == ""
        assert draft["anonymous"] is False


class TestMemberProfileMapper:
    @pytest.fixture
    def draft(self):
        return {
            "first_name": "Jane",
            "last_name": "Doe",
            "phone": "(555) 123-4567",
            "email": "  ",
            "address": {"street": "1 Main St", "street2": "", "city": "Austin", "state": "TX", "zip_code": "78701"},
            "password": "Secret123",
            "confirm_password": "Secret123",
            "consent": True,
            "family_members": [
                {"id": "a", "first_name": "Sam", "last_name": "", "relationship": "CHILD", "phone": ""},
                {"id": "b", "first_name": "Lee", "last_name": "Roe", "relationship": "SPOUSE", "phone": "+15550001111"},
            ],
        }

    def test_payload(self, draft, create_ctx):
        payload = get_mapper("member_profile").to_payload(draft, create_ctx)
        assert payload["phone"] == "+15551234567"
        assert payload["address"] == "1 Main St, Austin, TX, 78701"
        assert "email" not in payload
        assert "confirmPassword" not in payload
        assert payload["familyMembers"] == [
            {"firstName": "Sam", "lastName": "Doe", "relationship": "CHILD"},
            {"firstName": "Lee", "lastName": "Roe", "relationship": "SPOUSE", "phone": "+15550001111"},
        ]

    def test_empty_address_omitted(self, draft, create_ctx):
        draft["address"] = {"street": "", "city": ""}
        payload = get_mapper("member_profile").to_payload(draft, create_ctx)
        assert payload.get("address") is None

    def test_consent_required(self, draft, create_ctx):
        draft["consent"] = False
        with pytest.raises(PayloadError) as exc_info:
            get_mapper("member_profile").to_payload(draft, create_ctx)
        assert "consent" in exc_info.value.errors


class TestCommunicationMapper:
    def test_custom_audience_only_for_custom(self, create_ctx):
        mapper = get_mapper("communication")
        draft = {
            "name": "Reminder",
            "audience": "ALL",
            "custom_audience": ["m1"],
            "body": "Hello {{firstName}}",
            "send_mode": "now",
            "scheduled_at": "2024-06-01T10:00",
        }
        payload = mapper.to_payload(draft, create_ctx)
        assert "customAudience" not in payload
        assert "scheduledAt" not in payload

        draft.update(audience="CUSTOM", send_mode="schedule")
        payload = mapper.to_payload(draft, create_ctx)
        assert payload["customAudience"] == ["m1"]
        assert payload["scheduledAt"] == "2024-06-01T10:00:00.000Z"

    def test_unknown_audience_rejected(self, create_ctx):
        with pytest.raises(PayloadError) as exc_info:
            get_mapper("communication").to_payload(
                {"name": "x", "audience": "EVERYONE", "body": "hi"}, create_ctx
            )
        assert "audience" in exc_info.value.errors

    def test_from_record(self, edit_ctx):
        draft = get_mapper("communication").from_record(
            {
                "name": "Reminder",
                "audience": "CUSTOM",
                "customAudience": [{"_id": "m1"}, "m2"],
                "body": "Hi",
                "scheduledAt": "2024-06-01T10:00:00.000Z",
            },
            edit_ctx,
        )
        assert draft["custom_audience"] == ["m1", "m2"]
        assert draft["send_mode"] == "schedule"
        assert draft["scheduled_at"] == "2024-06-01T10:00"


class TestDataCollectionMapper:
    def test_questions_and_recipients(self):
        ctx = PayloadContext(
            reference={
                "members": [
                    {"id": "m1", "phone": "+15550000001"},
                    {"_id": "m2", "phone": "+15550000002"},
                ],
                "member_fields": [{"field": "email", "type": "email"}],
            }
        )
        draft = {
            "name": "Update info",
            "description": "",
            "campaign_type": "BULK",
            "auto_approve": False,
            "consent_question": "Reply YES",
            "questions": [
                {"question_text": "Your email?", "field_mapping": "email"},
                {"question_text": "Your city?", "field_mapping": "city"},
            ],
            "selected_members": ["m2", "m1", "m3"],
        }
        payload = get_mapper("data_collection").to_payload(draft, ctx)

        assert [q["order"] for q in payload["questions"]] == [0, 1]
        assert payload["questions"][0]["fieldType"] == "email"
        assert payload["questions"][1]["fieldType"] == "text"
        assert payload["recipients"] == [
            {"member": "m2", "phone": "+15550000002", "status": "PENDING", "currentQuestionIndex": -1},
            {"member": "m1", "phone": "+15550000001", "status": "PENDING", "currentQuestionIndex": -1},
            {"member": "m3", "phone": "", "status": "PENDING", "currentQuestionIndex": -1},
        ]
        assert payload["consentQuestion"] == "Reply YES"


class TestEventMapper:
    def test_capacity_only_with_registration(self, create_ctx):
        mapper = get_mapper("event")
        draft = {
            "title": "Picnic",
            "description": "",
            "type": "SOCIAL",
            "start_date": "2024-06-01T10:00",
            "end_date": "2024-06-01T14:00",
            "location": "Park",
            "registration_required": False,
            "capacity": "50",
            "is_recurring": False,
            "recurrence_pattern": "WEEKLY",
        }
        payload = mapper.to_payload(draft, create_ctx)
        assert "capacity" not in payload
        assert "recurrencePattern" not in payload
        assert "description" not in payload
        assert payload["startDate"] == "2024-06-01T10:00:00.000Z"

        draft["registration_required"] = True
        payload = mapper.to_payload(draft, create_ctx)
        assert payload["capacity"] == 50
        assert payload["registrationRequired"] is True


class TestHelpers:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("(555) 123-4567", "+15551234567"),
            ("1-555-123-4567", "+15551234567"),
            ("555-1234", "5551234"),
            ("+1 555 123 4567", "+15551234567"),
        ],
    )
    def test_format_phone_number(self, raw, expected):
        assert format_phone_number(raw) == expected

    def test_sms_segments(self):
        assert sms_segments("") == 1
        assert sms_segments("x" * 160) == 1
        assert sms_segments("x" * 161) == 2
        assert sms_segments("x" * 481) == 4

    def test_estimate_sms_cost(self):
        assert estimate_sms_cost("hi", 100) == 0.75
        assert estimate_sms_cost("x" * 200, 100) == 1.5

    def test_render_preview(self):
        body = "Hi {{firstName}} {{lastName}}, vote at {{ballotLink}}"
        assert render_message_preview(body, {"firstName": "Ann", "lastName": "Lee"}) == (
            "Hi Ann Lee, vote at https://church.app/vote/123"
        )
        assert render_message_preview("Hi {{firstName}}").startswith("Hi John")

    def test_audience_size(self):
        members = [{"eligibility": "ELIGIBLE"}, {"eligibility": "DELINQUENT_30"}]
        assert audience_size({"audience": "ALL"}, members) == 2
        assert audience_size({"audience": "ELIGIBLE"}, members) == 1
        assert audience_size({"audience": "CUSTOM", "custom_audience": ["a", "b", "c"]}, members) == 3
