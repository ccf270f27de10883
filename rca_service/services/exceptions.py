"""Custom exceptions for the analysis pipeline and repository management."""

from __future__ import annotations


class RcaServiceError(Exception):
    """Base exception for service failures."""


class CredentialError(RcaServiceError):
    """Raised when no usable access token can be produced for a user."""


class AzureDevOpsError(RcaServiceError):
    """Raised when an Azure DevOps REST call fails."""

    def __init__(self, message: str, status_code: int | None = None, response_text: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class RepositoryNotFoundError(RcaServiceError):
    """Raised when a repository is not registered with the service."""


class PlanLimitError(RcaServiceError):
    """Raised when the user's plan does not allow another repository."""
