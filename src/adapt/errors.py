"""Failure taxonomy for the model lifecycle.

The orchestrator turns every one of these into an ``Error`` state
publication, except ``OrchestratorBusyError`` which is raised to the caller.
"""

from __future__ import annotations


class LifecycleError(Exception):
    """Base exception for model lifecycle failures."""


class ResourceRejection(LifecycleError):
    """Insufficient RAM or storage for the requested model.

    Attributes:
        model_key: Catalog key that failed admission.
        reason: Human-readable admission verdict.
    """

    def __init__(self, model_key: str, reason: str) -> None:
        self.model_key = model_key
        self.reason = reason
        super().__init__(reason)


class DownloadFailure(LifecycleError):
    """Network or storage I/O failed while fetching model bytes."""


class LoadFailure(LifecycleError):
    """The inference engine refused or failed to load a model.

    Attributes:
        attempts: Number of load attempts made before giving up.
    """

    def __init__(self, message: str, attempts: int = 1) -> None:
        self.attempts = attempts
        super().__init__(message)


class NotFoundFailure(LifecycleError):
    """A catalog key has no matching entry in the host's model listing."""

    def __init__(self, model_key: str, display_name: str | None = None) -> None:
        self.model_key = model_key
        self.display_name = display_name or model_key
        super().__init__(f"Model not found: {self.display_name}")


class OrchestratorBusyError(LifecycleError):
    """A lifecycle operation is already in flight on this orchestrator."""
