"""FastAPI application exposing the wizard engine to the front-end.

Provides REST endpoints for opening wizard sessions, editing drafts,
navigating steps and submitting, plus a health check.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from shepherd.api.client import ApiClient
from shepherd.api.models import ApiCollaborator
from shepherd.core.clock import Clock, SystemClock, resolve_timezone
from shepherd.core.config import Settings
from shepherd.web.wizard_router import router as wizard_router
from shepherd.wizard.engine import WizardEngine
from shepherd.wizard.store import SessionStore
from shepherd.wizard.validation import ValidationEngine
from shepherd.wizard.validators.cross_field import CrossFieldValidator


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str = "0.1.0"


def create_app(
    settings: Settings | None = None,
    api: ApiCollaborator | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Uses the factory pattern so tests can create isolated app instances
    with a fake backend and a pinned clock.

    Args:
        settings: Application settings. Defaults to Settings().
        api: Backend collaborator. Defaults to an ApiClient built from
            ``settings.api``.
        clock: Source of the current instant. Defaults to the wall clock.

    Returns:
        A configured FastAPI instance.
    """
    if settings is None:
        settings = Settings()

    logging.getLogger("shepherd").setLevel(settings.log_level.upper())

    owns_api = api is None
    if api is None:
        api = ApiClient(settings.api)
    if clock is None:
        clock = SystemClock()

    tz = resolve_timezone(settings.wizard.timezone)
    cross_field = CrossFieldValidator(settings.wizard.cross_field_rules_path, clock=clock, tz=tz)
    validation_engine = ValidationEngine(cross_field=cross_field, clock=clock, tz=tz)
    wizard_engine = WizardEngine(
        api,
        validation_engine,
        wizards_dir=settings.wizard.wizards_dir,
        tz=tz,
        clock=clock,
    )
    session_store = SessionStore(ttl_minutes=settings.wizard.session_ttl_minutes, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_api:
            await api.close()

    app = FastAPI(
        title="Shepherd Wizards",
        description="Wizard engine for the church management front-end",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store on app state for access in route handlers
    app.state.settings = settings
    app.state.api = api
    app.state.validation_engine = validation_engine
    app.state.wizard_engine = wizard_engine
    app.state.session_store = session_store

    app.include_router(wizard_router)

    @app.get("/health")
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", service="shepherd-wizards")

    return app
