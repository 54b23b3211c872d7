"""Data-driven wizard engine: drafts, step graphs, validation and submission."""

from shepherd.wizard.engine import WizardEngine
from shepherd.wizard.errors import SessionLockedError, WizardLoadError
from shepherd.wizard.session import WizardSession
from shepherd.wizard.store import SessionStore
from shepherd.wizard.validation import ValidationEngine

__all__ = [
    "SessionLockedError",
    "SessionStore",
    "ValidationEngine",
    "WizardEngine",
    "WizardLoadError",
    "WizardSession",
]
