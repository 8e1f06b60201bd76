"""Composition root: wires config into a ready-to-use orchestrator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from adapt.catalog import ModelCatalog
from adapt.host.gguf import GGUFModelStore
from adapt.host.llama import LlamaCppLoader
from adapt.orchestrator import LifecycleOrchestrator
from adapt.preferences import PreferenceStore
from adapt.probe import ResourceProbe, TierThresholds

if TYPE_CHECKING:
    from adapt.config import ADAPTConfig

logger = logging.getLogger(__name__)


def build_orchestrator(
    config: ADAPTConfig,
    catalog: ModelCatalog | None = None,
) -> LifecycleOrchestrator:
    """Create an orchestrator backed by the local GGUF store and llama.cpp.

    Args:
        config: Fully resolved configuration.
        catalog: Model registry; defaults to the bundled catalog.
    """
    catalog = catalog or ModelCatalog()
    store = GGUFModelStore(
        catalog,
        config.models_path,
        timeout=config.host.download_timeout_seconds,
        chunk_size=config.host.chunk_size_bytes,
    )
    probe = ResourceProbe(
        catalog,
        storage_path=config.storage_path,
        thresholds=TierThresholds.from_config(config.probe),
        ram_safety_margin=config.probe.ram_safety_margin,
    )
    logger.debug(
        "Building orchestrator (models=%s, preferences=%s)",
        config.models_path,
        config.preferences_path,
    )
    return LifecycleOrchestrator(
        catalog=catalog,
        probe=probe,
        preferences=PreferenceStore(config.preferences_path),
        listing=store,
        downloader=store,
        loader=LlamaCppLoader(
            store,
            n_ctx=config.host.n_ctx,
            n_gpu_layers=config.host.n_gpu_layers,
        ),
        config=config.lifecycle,
    )
