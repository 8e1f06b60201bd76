"""Tests for the model catalog."""

from __future__ import annotations

import pytest

from adapt.catalog import ModelCatalog, ModelRequirements
from adapt.probe import DeviceTier, evaluate_requirements
from tests.conftest import make_snapshot

EXPECTED_KEYS = [
    "SmolLM2-360M",
    "Qwen-0.5B",
    "Llama-1B-Q4",
    "Llama-1B-Q6",
    "Qwen-1.5B",
    "Qwen-3B",
    "Llama-3B",
    "Phi-3-Mini",
    "Mistral-7B",
]


class TestBundledCatalog:
    """Contents of the bundled catalog."""

    def test_keys_in_declaration_order(self, catalog: ModelCatalog) -> None:
        assert catalog.all_keys() == EXPECTED_KEYS
        assert [e.model_key for e in catalog] == EXPECTED_KEYS
        assert len(catalog) == 9

    def test_requirements_lookup(self, catalog: ModelCatalog) -> None:
        req = catalog.requirements_for("Qwen-1.5B")
        assert isinstance(req, ModelRequirements)
        assert req.min_ram_mb == 4096
        assert req.min_battery_percent == 15
        assert req.quality_tier == 5

    def test_unknown_key_raises(self, catalog: ModelCatalog) -> None:
        with pytest.raises(KeyError, match="Unknown model key"):
            catalog.requirements_for("GPT-5")
        assert "GPT-5" not in catalog

    def test_display_names(self, catalog: ModelCatalog) -> None:
        assert catalog.display_name_for("Phi-3-Mini") == "Phi-3 Mini 3.8B"
        assert catalog.display_name_for("unknown") == "unknown"
        assert catalog.key_for_display_name("Mistral 7B") == "Mistral-7B"
        assert catalog.key_for_display_name("Nope") is None

    def test_small_models_have_no_battery_floor(self, catalog: ModelCatalog) -> None:
        """Models below 1.5B parameters are not battery-sensitive."""
        for key in EXPECTED_KEYS[:4]:
            assert catalog.requirements_for(key).min_battery_percent is None

    def test_download_urls_point_to_gguf(self, catalog: ModelCatalog) -> None:
        for entry in catalog:
            assert entry.download_url.startswith("https://")
            assert entry.filename.endswith(".gguf")
        assert catalog.download_url_for("SmolLM2-360M").endswith("SmolLM2-360M.Q8_0.gguf")

    def test_entries_are_frozen(self, catalog: ModelCatalog) -> None:
        req = catalog.requirements_for("Qwen-3B")
        with pytest.raises(AttributeError):
            req.min_ram_mb = 1  # type: ignore[misc]


class TestTierTables:
    """Per-tier default and recommended model tables."""

    @pytest.mark.parametrize(
        ("tier", "expected"),
        [
            (DeviceTier.LOW, "SmolLM2-360M"),
            (DeviceTier.MEDIUM, "Qwen-0.5B"),
            (DeviceTier.HIGH, "Llama-1B-Q4"),
            (DeviceTier.ULTRA, "Llama-1B-Q4"),
        ],
    )
    def test_startup_defaults(self, catalog: ModelCatalog, tier: DeviceTier, expected: str) -> None:
        assert catalog.default_for_tier(tier) == expected

    @pytest.mark.parametrize(
        ("tier", "expected"),
        [
            (DeviceTier.LOW, "SmolLM2-360M"),
            (DeviceTier.MEDIUM, "Llama-1B-Q4"),
            (DeviceTier.HIGH, "Qwen-1.5B"),
            (DeviceTier.ULTRA, "Qwen-3B"),
        ],
    )
    def test_recommended(self, catalog: ModelCatalog, tier: DeviceTier, expected: str) -> None:
        assert catalog.recommended_for_tier(tier) == expected

    @pytest.mark.parametrize("ram", [2048, 4096, 6144])
    def test_default_fits_at_tier_lower_bound(self, catalog: ModelCatalog, ram: int) -> None:
        """A device at the bottom of a tier can always load that tier's default."""
        snapshot = make_snapshot(available_ram_mb=ram)
        default = catalog.default_for_tier(snapshot.device_tier)
        ok, reason = evaluate_requirements(catalog.requirements_for(default), snapshot)
        assert ok, reason

    def test_missing_tier_rejected(self) -> None:
        with pytest.raises(ValueError, match="MEDIUM"):
            ModelCatalog(startup_defaults={DeviceTier.LOW: "SmolLM2-360M"})

    def test_tier_pointing_at_unknown_key_rejected(self) -> None:
        bad = {tier: "SmolLM2-360M" for tier in DeviceTier}
        bad[DeviceTier.ULTRA] = "GPT-5"
        with pytest.raises(ValueError, match="ULTRA"):
            ModelCatalog(recommended=bad)
