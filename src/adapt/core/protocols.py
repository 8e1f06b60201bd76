"""Interface contracts for the host collaborators the orchestrator drives.

The inference engine and model storage are black boxes; any object with
these methods can be injected, which keeps the lifecycle testable.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class HostModel:
    """One entry of the host's model listing.

    Attributes:
        id: Host-assigned runtime identifier passed to download/load.
        display_name: Name shown to users; matches the catalog display name.
        is_downloaded: Whether the model bytes already exist locally.
        model_key: Catalog key, when the host knows it.
    """

    id: str
    display_name: str
    is_downloaded: bool
    model_key: str | None = None


@runtime_checkable
class DownloadService(Protocol):
    """Fetch model bytes, yielding progress fractions in [0, 1].

    Exhausting the iterator means success; raising means failure.
    """

    def download(self, model_id: str) -> Iterable[float]: ...


@runtime_checkable
class LoadService(Protocol):
    """Load a downloaded model into the inference engine."""

    def load(self, model_id: str) -> bool: ...


@runtime_checkable
class ModelListing(Protocol):
    """List models the host can download or load."""

    def list_available_models(self) -> list[HostModel]: ...
