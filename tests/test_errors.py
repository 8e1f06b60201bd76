"""Tests for the lifecycle failure taxonomy."""

from __future__ import annotations

import pytest

from adapt.errors import (
    DownloadFailure,
    LifecycleError,
    LoadFailure,
    NotFoundFailure,
    OrchestratorBusyError,
    ResourceRejection,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_cls",
        [ResourceRejection, DownloadFailure, LoadFailure, NotFoundFailure, OrchestratorBusyError],
    )
    def test_rooted_at_lifecycle_error(self, exc_cls: type[Exception]) -> None:
        assert issubclass(exc_cls, LifecycleError)

    def test_not_found_message_uses_display_name(self) -> None:
        assert str(NotFoundFailure("Qwen-3B", "Qwen 2.5 3B")) == "Model not found: Qwen 2.5 3B"
        assert str(NotFoundFailure("Qwen-3B")) == "Model not found: Qwen-3B"

    def test_payloads(self) -> None:
        rejection = ResourceRejection("Mistral-7B", "Insufficient RAM")
        assert (rejection.model_key, str(rejection)) == ("Mistral-7B", "Insufficient RAM")
        assert LoadFailure("gave up", attempts=3).attempts == 3
