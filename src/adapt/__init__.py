"""ADAPT -- adaptive local model lifecycle manager."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from adapt.catalog import ModelCatalog
    from adapt.config import ADAPTConfig
    from adapt.orchestrator import LifecycleOrchestrator

__all__ = ["ADAPTConfig", "LifecycleOrchestrator", "ModelCatalog", "__version__"]


def __getattr__(name: str) -> type:
    """Lazy-load public classes on first access."""
    if name == "LifecycleOrchestrator":
        from adapt.orchestrator import LifecycleOrchestrator

        return LifecycleOrchestrator
    if name == "ModelCatalog":
        from adapt.catalog import ModelCatalog

        return ModelCatalog
    if name == "ADAPTConfig":
        from adapt.config import ADAPTConfig

        return ADAPTConfig
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
