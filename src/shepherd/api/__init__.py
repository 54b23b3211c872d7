"""Backend API collaborator for the wizard engine."""

from shepherd.api.client import ApiClient
from shepherd.api.models import ApiCollaborator, ApiError, ApiResponse

__all__ = ["ApiClient", "ApiCollaborator", "ApiError", "ApiResponse"]
