"""FastAPI router for wizard sessions."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, Field

from shepherd.wizard.errors import SessionLockedError, WizardLoadError
from shepherd.wizard.models import SessionView
from shepherd.wizard.payloads import (
    audience_size,
    estimate_sms_cost,
    render_message_preview,
    sms_segments,
)
from shepherd.wizard.session import WizardSession

router = APIRouter()


# --- Request/Response models ---


class StartSessionRequest(BaseModel):
    record_id: str | None = None
    initial: dict[str, Any] = Field(default_factory=dict)


class DraftUpdateRequest(BaseModel):
    values: dict[str, Any] = Field(default_factory=dict)
    path: str | None = None
    value: Any = None


class NavigateRequest(BaseModel):
    action: str | None = None


class MessagePreviewResponse(BaseModel):
    preview: str
    characters: int
    segments: int
    recipients: int
    estimated_cost: float


# --- Helpers ---


def _get_session(request: Request, session_id: str) -> WizardSession:
    session = request.app.state.session_store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id!r} not found")
    return session


def _locked(exc: SessionLockedError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(exc))


# --- Wizard endpoints ---


@router.get("/api/wizards")
async def list_wizards(request: Request) -> list[dict[str, Any]]:
    engine = request.app.state.wizard_engine
    return [
        {
            "id": defn.id,
            "title": defn.title,
            "description": defn.description,
            "steps": len(defn.steps),
            "editable": defn.edit is not None,
        }
        for defn in engine.wizard_definitions.values()
    ]


@router.post("/api/wizards/{wizard_id}/sessions", status_code=201)
async def start_session(
    wizard_id: str, request: Request, body: StartSessionRequest | None = None
) -> SessionView:
    engine = request.app.state.wizard_engine
    body = body or StartSessionRequest()
    try:
        session = await engine.start_session(
            wizard_id, record_id=body.record_id, initial=body.initial
        )
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WizardLoadError as e:
        raise HTTPException(status_code=422, detail=str(e))

    request.app.state.session_store.save(session)
    return session.view()


@router.get("/api/sessions/{session_id}")
async def get_session(session_id: str, request: Request) -> SessionView:
    return _get_session(request, session_id).view()


@router.patch("/api/sessions/{session_id}/draft")
async def update_draft(
    session_id: str, body: DraftUpdateRequest, request: Request
) -> SessionView:
    session = _get_session(request, session_id)
    try:
        if body.values:
            session.update(body.values)
        if body.path:
            session.update_path(body.path, body.value)
    except SessionLockedError as e:
        raise _locked(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.view()


@router.post("/api/sessions/{session_id}/next")
async def next_step(
    session_id: str, request: Request, body: NavigateRequest | None = None
) -> SessionView:
    session = _get_session(request, session_id)
    try:
        return await session.next(body.action if body else None)
    except SessionLockedError as e:
        raise _locked(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/api/sessions/{session_id}/back")
async def go_back(session_id: str, request: Request) -> SessionView:
    session = _get_session(request, session_id)
    try:
        return session.back()
    except SessionLockedError as e:
        raise _locked(e)


@router.post("/api/sessions/{session_id}/skip")
async def skip_step(session_id: str, request: Request) -> SessionView:
    session = _get_session(request, session_id)
    try:
        return await session.skip()
    except SessionLockedError as e:
        raise _locked(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/api/sessions/{session_id}/submit")
async def submit_session(session_id: str, request: Request) -> SessionView:
    session = _get_session(request, session_id)
    try:
        await session.submit()
    except SessionLockedError as e:
        raise _locked(e)
    return session.view()


@router.delete("/api/sessions/{session_id}", status_code=204)
async def cancel_session(session_id: str, request: Request) -> Response:
    session = _get_session(request, session_id)
    session.cancel()
    request.app.state.session_store.remove(session_id)
    return Response(status_code=204)


@router.get("/api/sessions/{session_id}/preview")
async def message_preview(session_id: str, request: Request) -> MessagePreviewResponse:
    """Personalized SMS preview with segment count and cost estimate."""
    session = _get_session(request, session_id)
    data = session.values
    body = data.get("body")
    if not isinstance(body, str):
        raise HTTPException(
            status_code=400, detail=f"Wizard {session.wizard_id!r} has no message body"
        )

    members = session.reference.get("members", [])
    sample = members[0] if members else None
    recipients = audience_size(data, members)
    return MessagePreviewResponse(
        preview=render_message_preview(body, sample),
        characters=len(body),
        segments=sms_segments(body),
        recipients=recipients,
        estimated_cost=estimate_sms_cost(body, recipients),
    )
