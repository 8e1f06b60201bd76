"""Model selection policy.

Pure functions over a resource snapshot, the user's preferences and the
catalog. Precedence in ``select_best_model`` is: explicit user choice, then
the last model that loaded, then the device tier's default.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

from adapt.probe import evaluate_requirements

if TYPE_CHECKING:
    from adapt.catalog import ModelCatalog, ModelRequirements
    from adapt.preferences import Preferences
    from adapt.probe import ResourceSnapshot

logger = logging.getLogger(__name__)


def _admit(
    model_key: str,
    snapshot: ResourceSnapshot,
    catalog: ModelCatalog,
    ram_safety_margin: float,
) -> tuple[bool, str]:
    if model_key not in catalog:
        return False, f"Unknown model: {model_key}"
    return evaluate_requirements(
        catalog.requirements_for(model_key), snapshot, ram_safety_margin
    )


def select_best_model(
    snapshot: ResourceSnapshot,
    preferences: Preferences,
    availability: Mapping[str, bool],
    catalog: ModelCatalog,
    ram_safety_margin: float = 1.0,
) -> str:
    """Choose the model key to load.

    Args:
        snapshot: Current host resources.
        preferences: Persisted user preferences.
        availability: Model key to "bytes already on disk" flag.
        catalog: Model registry.
        ram_safety_margin: Multiplier applied to RAM floors.

    Returns:
        The preferred key if loadable; else the last-loaded key if loadable
        and downloaded; else the default for ``snapshot.device_tier``.
    """
    preferred = preferences.preferred_model_key
    if preferred is not None:
        ok, reason = _admit(preferred, snapshot, catalog, ram_safety_margin)
        if ok:
            logger.debug("Using preferred model: %s", preferred)
            return preferred
        logger.warning("Preferred model %s cannot load: %s", preferred, reason)

    last_loaded = preferences.last_loaded_model_key
    if last_loaded is not None:
        ok, _ = _admit(last_loaded, snapshot, catalog, ram_safety_margin)
        if ok and availability.get(last_loaded, False):
            logger.debug("Using last loaded model: %s", last_loaded)
            return last_loaded

    default = catalog.default_for_tier(snapshot.device_tier)
    logger.debug("Using default model for %s: %s", snapshot.device_tier.name, default)
    return default


def can_upgrade(
    current_key: str | None,
    snapshot: ResourceSnapshot,
    catalog: ModelCatalog,
    ram_safety_margin: float = 1.0,
) -> tuple[bool, str | None]:
    """Find the closest loadable step up in quality from ``current_key``.

    Returns:
        ``(True, key)`` for the loadable entry with the smallest quality tier
        above the current one (declaration order breaks ties), otherwise
        ``(False, None)``.
    """
    if current_key is None or current_key not in catalog:
        return False, None
    current_tier = catalog.requirements_for(current_key).quality_tier

    # sorted() is stable, so equal tiers keep declaration order
    candidates = sorted(
        (e for e in catalog if e.quality_tier > current_tier),
        key=lambda e: e.quality_tier,
    )
    for entry in candidates:
        ok, _ = evaluate_requirements(entry, snapshot, ram_safety_margin)
        if ok:
            return True, entry.model_key
    return False, None


def models_with_status(
    snapshot: ResourceSnapshot,
    catalog: ModelCatalog,
    ram_safety_margin: float = 1.0,
) -> list[tuple[ModelRequirements, bool, str]]:
    """Every catalog entry with its admission verdict, ordered by quality tier."""
    rows = [
        (entry, *evaluate_requirements(entry, snapshot, ram_safety_margin))
        for entry in catalog
    ]
    return sorted(rows, key=lambda row: row[0].quality_tier)


def safe_models(
    snapshot: ResourceSnapshot,
    catalog: ModelCatalog,
    ram_safety_margin: float = 1.0,
) -> list[ModelRequirements]:
    """Entries that pass admission, ordered by quality tier."""
    return [
        entry
        for entry, ok, _ in models_with_status(snapshot, catalog, ram_safety_margin)
        if ok
    ]
