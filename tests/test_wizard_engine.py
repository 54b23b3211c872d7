"""Tests for the wizard engine and end-to-end wizard sessions."""

from __future__ import annotations

import logging

import pytest
import yaml

from shepherd.api.models import ApiError
from shepherd.core.types import SessionMode, SubmissionState
from shepherd.wizard.engine import WizardEngine
from shepherd.wizard.errors import ReadOnlyFieldError, WizardLoadError


EXISTING_VOTE = {
    "id": "v1",
    "title": "Board Election",
    "description": "Annual board election",
    "type": "SINGLE_CHOICE",
    "options": ["A", "B"],
    "startAt": "2024-06-01T10:00:00.000Z",
    "endAt": "2024-06-01T11:00:00.000Z",
    "status": "SCHEDULED",
    "anonymous": False,
}

MEMBER = {
    "first_name": "Jane",
    "last_name": "Doe",
    "phone": "+15551234567",
    "password": "Secret123",
    "confirm_password": "Secret123",
    "consent": True,
}


async def _onboard_to_family_intro(engine):
    """Walk the onboarding wizard up to the family step, skipping the optional steps."""
    session = await engine.start_session("member_onboarding")
    session.update(MEMBER)
    for _ in range(3):
        await session.next()
    assert session.current_step == "email"
    await session.skip()
    await session.skip()
    for _ in range(3):
        await session.next()
    assert session.current_step == "family_intro"
    return session


class TestDefinitions:
    def test_ships_all_wizards(self, engine):
        assert set(engine.wizard_definitions) == {
            "vote",
            "member_onboarding",
            "communication_campaign",
            "data_collection_campaign",
            "event",
        }

    def test_unknown_wizard(self, engine):
        with pytest.raises(KeyError):
            engine.get_definition("nope")

    def test_loads_from_custom_dir(self, tmp_path, fake_api, validation_engine):
        wizard_dir = tmp_path / "wizards"
        wizard_dir.mkdir()
        (wizard_dir / "mini.yml").write_text(yaml.dump({
            "id": "mini",
            "title": "Mini",
            "payload": "vote",
            "submit": {"path": "/api/mini"},
            "steps": [
                {"id": "one", "title": "One", "fields": [{"id": "title", "type": "text", "default": ""}]},
            ],
        }))
        engine = WizardEngine(fake_api, validation_engine, wizards_dir=wizard_dir)

        defn = engine.get_definition("mini")
        assert defn.steps[0].fields[0].label == "title"
        assert defn.submit.method == "POST"
        assert defn.edit is None

    def test_unknown_payload_mapper_rejected(self, tmp_path, fake_api, validation_engine):
        wizard_dir = tmp_path / "wizards"
        wizard_dir.mkdir()
        (wizard_dir / "bad.yml").write_text(yaml.dump({
            "id": "bad", "payload": "nope", "submit": {"path": "/x"}, "steps": [],
        }))
        with pytest.raises(KeyError):
            WizardEngine(fake_api, validation_engine, wizards_dir=wizard_dir)


class TestStartSession:
    @pytest.mark.asyncio
    async def test_create_session_uses_defaults(self, engine):
        session = await engine.start_session("vote")
        assert session.mode == SessionMode.CREATE
        assert session.current_step == "title"
        assert session.values["options"] == ["Option 1", "Option 2"]
        assert session.has_changes() is False

    @pytest.mark.asyncio
    async def test_reference_failure_degrades_to_empty(self, engine, fake_api, caplog):
        fake_api.reference_failures.add("members")
        fake_api.reference["member_fields"] = [{"field": "email", "type": "email"}]

        with caplog.at_level(logging.WARNING, logger="shepherd"):
            session = await engine.start_session("data_collection_campaign")

        assert session.reference["members"] == []
        assert session.reference["member_fields"] == [{"field": "email", "type": "email"}]
        assert "Could not load members" in caplog.text

    @pytest.mark.asyncio
    async def test_edit_mode_load_failure_is_fatal(self, engine):
        with pytest.raises(WizardLoadError, match="Record not found"):
            await engine.start_session("vote", record_id="missing")

    @pytest.mark.asyncio
    async def test_edit_mode_rejects_started_vote(self, engine, fake_api):
        fake_api.records["/api/votes/v1"] = {"vote": {**EXISTING_VOTE, "status": "ACTIVE"}}
        with pytest.raises(WizardLoadError, match="already started or closed"):
            await engine.start_session("vote", record_id="v1")

    @pytest.mark.asyncio
    async def test_edit_mode_not_offered(self, engine):
        with pytest.raises(ValueError):
            await engine.start_session("member_onboarding", record_id="m1")


class TestVoteEdit:
    @pytest.mark.asyncio
    async def test_edit_title_and_submit(self, engine, fake_api):
        fake_api.records["/api/votes/v1"] = {"vote": EXISTING_VOTE}
        fake_api.responses.append({"vote": {**EXISTING_VOTE, "title": "Board Election 2024"}})

        session = await engine.start_session("vote", record_id="v1")
        assert session.values["start_at"] == "2024-06-01T10:00"
        assert session.has_changes() is False

        session.update({"title": "Board Election 2024"})
        assert session.has_changes() is True
        assert session.changed_fields() == ["title"]

        outcome = await session.submit()

        method, path, payload = fake_api.calls[0]
        assert (method, path) == ("PUT", "/api/votes/v1")
        assert payload["title"] == "Board Election 2024"
        assert payload["options"] == ["A", "B"]
        assert payload["startAt"] == "2024-06-01T10:00:00.000Z"
        assert "status" not in payload

        assert outcome.state == SubmissionState.SUCCEEDED
        assert outcome.record["title"] == "Board Election 2024"
        assert session.state == SubmissionState.SUCCEEDED
        assert session.draft is None

    @pytest.mark.asyncio
    async def test_reverting_edit_clears_changes(self, engine, fake_api):
        fake_api.records["/api/votes/v1"] = {"vote": EXISTING_VOTE}
        session = await engine.start_session("vote", record_id="v1")

        session.update({"options": ["A", "B", "C"]})
        assert session.has_changes() is True
        session.update({"options": ["A", "B"]})
        assert session.has_changes() is False


class TestFamilyBranch:
    @pytest.mark.asyncio
    async def test_add_two_family_members(self, engine, fake_api):
        fake_api.responses.append({"member": {"id": "m1"}})
        session = await _onboard_to_family_intro(engine)

        view = await session.next("add_family_member")
        assert view.current_step == "family_add"

        session.update_path("current_family.first_name", "Sam")
        view = await session.next()
        assert view.current_step == "family_list"
        assert len(view.draft["family_members"]) == 1
        assert "add_another" in view.actions

        view = await session.next("add_another")
        assert view.current_step == "family_add"
        assert view.draft["current_family"]["first_name"] == ""

        session.update_path("current_family.first_name", "Lee")
        session.update_path("current_family.relationship", "SPOUSE")
        await session.next()

        view = await session.next()

        assert view.state == SubmissionState.SUCCEEDED
        _, path, payload = fake_api.calls[0]
        assert path == "/api/members/complete-profile"
        assert [m["firstName"] for m in payload["familyMembers"]] == ["Sam", "Lee"]
        assert all(m["lastName"] == "Doe" for m in payload["familyMembers"])
        assert payload["familyMembers"][1]["relationship"] == "SPOUSE"

    @pytest.mark.asyncio
    async def test_blank_first_name_blocks_add(self, engine):
        session = await _onboard_to_family_intro(engine)
        await session.next("add_family_member")

        view = await session.next()

        assert view.current_step == "family_add"
        assert view.step_errors == {"current_family": ["This field is required."]}
        assert view.draft["family_members"] == []

    @pytest.mark.asyncio
    async def test_skipping_family_submits(self, engine, fake_api):
        fake_api.responses.append({"member": {"id": "m1"}})
        session = await _onboard_to_family_intro(engine)

        view = await session.skip()

        assert view.state == SubmissionState.SUCCEEDED
        assert fake_api.calls[0][2]["familyMembers"] == []
        assert "email" not in fake_api.calls[0][2]


class TestFailureRecovery:
    @pytest.mark.asyncio
    async def test_conflict_returns_to_editable_step_with_draft(self, engine, fake_api):
        fake_api.responses.append(
            ApiError("Phone number already registered", status_code=409)
        )
        session = await _onboard_to_family_intro(engine)
        await session.next("add_family_member")
        session.update_path("current_family.first_name", "Sam")
        await session.next()

        view = await session.next()

        assert view.state == SubmissionState.FAILED
        assert view.last_error == "Phone number already registered"
        assert view.outcome.message == "Phone number already registered"
        assert view.current_step == "consent"
        for key, value in MEMBER.items():
            assert view.draft[key] == value
        assert [m["first_name"] for m in view.draft["family_members"]] == ["Sam"]

        session.update({"phone": "+15559876543"})
        assert session.state == SubmissionState.EDITING

    @pytest.mark.asyncio
    async def test_back_navigation_keeps_values(self, engine):
        session = await engine.start_session("member_onboarding")
        session.update({"first_name": "Jane"})
        await session.next()
        session.update({"last_name": "Doe"})

        view = session.back()

        assert view.current_step == "first_name"
        assert view.draft["last_name"] == "Doe"
        assert view.position == 1


class TestPhoneEntry:
    @pytest.mark.asyncio
    async def test_formatted_phone_advances(self, engine):
        session = await engine.start_session("member_onboarding")
        session.update({"first_name": "Jane"})
        await session.next()
        session.update({"last_name": "Doe"})
        await session.next()

        session.update({"phone": "(555) 123-4567"})
        view = await session.next()

        assert view.current_step == "email"
        assert view.draft["phone"] == "+15551234567"
        assert view.step_errors == {}

    @pytest.mark.asyncio
    async def test_short_phone_still_rejected(self, engine):
        session = await engine.start_session("member_onboarding")
        session.sequencer.jump_to("phone")
        session.update({"phone": "555-1234"})

        view = await session.next()

        assert view.current_step == "phone"
        assert view.step_errors == {"phone": ["Please enter a valid phone number."]}

    @pytest.mark.asyncio
    async def test_family_member_phone_formatted(self, engine):
        session = await _onboard_to_family_intro(engine)
        await session.next("add_family_member")

        session.update_path("current_family.first_name", "Sam")
        session.update_path("current_family.phone", "1 (555) 000-1111")
        assert session.values["current_family"]["phone"] == "+15550001111"

        view = await session.next()
        assert view.current_step == "family_list"
        assert view.draft["family_members"][0]["phone"] == "+15550001111"


class TestPrefill:
    @pytest.mark.asyncio
    async def test_invitation_phone_prefilled_and_locked(self, engine):
        session = await engine.start_session(
            "member_onboarding", initial={"phone": "(555) 123-4567"}
        )

        assert session.values["phone"] == "+15551234567"
        assert session.view().read_only == ["phone"]

        with pytest.raises(ReadOnlyFieldError):
            session.update({"phone": "+15559999999"})
        with pytest.raises(ReadOnlyFieldError):
            session.update_path("phone", "+15559999999")
        assert session.values["phone"] == "+15551234567"

    @pytest.mark.asyncio
    async def test_prefilled_phone_step_passes(self, engine):
        session = await engine.start_session(
            "member_onboarding", initial={"phone": "5551234567"}
        )
        session.update({"first_name": "Jane", "last_name": "Doe"})
        session.sequencer.jump_to("phone")

        view = await session.next()

        assert view.current_step == "email"

    @pytest.mark.asyncio
    async def test_blank_prefill_not_locked(self, engine):
        session = await engine.start_session("member_onboarding", initial={"phone": ""})
        assert session.read_only == frozenset()
        session.update({"phone": "+15551234567"})

    @pytest.mark.asyncio
    async def test_unlocked_prefill_stays_editable(self, engine):
        session = await engine.start_session("member_onboarding", initial={"first_name": "Jane"})
        assert session.read_only == frozenset()
        session.update({"first_name": "Janet"})
        assert session.values["first_name"] == "Janet"

    @pytest.mark.asyncio
    async def test_unknown_prefill_field_rejected(self, engine, fake_api):
        with pytest.raises(ValueError):
            await engine.start_session("member_onboarding", initial={"nickname": "JJ"})
