"""Curated catalog of GGUF chat models and their resource requirements.

Entries are declared smallest-first; declaration order is the tie-break
for equal quality tiers.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from adapt.probe import DeviceTier


@dataclass(frozen=True, slots=True)
class ModelRequirements:
    """Resource requirements and metadata for one catalog model.

    Args:
        model_key: Stable catalog identifier, used as a persistence key.
        display_name: Human-readable name, also the host listing name.
        min_ram_mb: Available RAM needed to load the model.
        min_storage_mb: Free storage needed to hold the model file.
        min_battery_percent: Advisory battery floor, None if not battery-sensitive.
        quality_tier: Ordinal capability rank; higher is better.
        download_url: Direct URL of the GGUF file.
        size_mb: Approximate download size.
    """

    model_key: str
    display_name: str
    min_ram_mb: int
    min_storage_mb: int
    min_battery_percent: int | None
    quality_tier: int
    download_url: str
    size_mb: int

    @property
    def filename(self) -> str:
        """File name of the model on disk."""
        return self.download_url.rsplit("/", 1)[-1]


_HF = "https://huggingface.co"

_ENTRIES: tuple[ModelRequirements, ...] = (
    ModelRequirements(
        model_key="SmolLM2-360M",
        display_name="SmolLM2 360M",
        min_ram_mb=1024,
        min_storage_mb=119,
        min_battery_percent=None,
        quality_tier=2,
        download_url=f"{_HF}/prithivMLmods/SmolLM2-360M-GGUF/resolve/main/SmolLM2-360M.Q8_0.gguf",
        size_mb=119,
    ),
    ModelRequirements(
        model_key="Qwen-0.5B",
        display_name="Qwen 2.5 0.5B",
        min_ram_mb=2048,
        min_storage_mb=374,
        min_battery_percent=None,
        quality_tier=3,
        download_url=(
            f"{_HF}/Triangle104/Qwen2.5-0.5B-Instruct-Q6_K-GGUF/resolve/main/"
            "qwen2.5-0.5b-instruct-q6_k.gguf"
        ),
        size_mb=374,
    ),
    ModelRequirements(
        model_key="Llama-1B-Q4",
        display_name="Llama 3.2 1B Q4",
        min_ram_mb=2048,
        min_storage_mb=600,
        min_battery_percent=None,
        quality_tier=4,
        download_url=(
            f"{_HF}/bartowski/Llama-3.2-1B-Instruct-GGUF/resolve/main/"
            "Llama-3.2-1B-Instruct-Q4_K_M.gguf"
        ),
        size_mb=600,
    ),
    ModelRequirements(
        model_key="Llama-1B-Q6",
        display_name="Llama 3.2 1B Q6",
        min_ram_mb=3072,
        min_storage_mb=815,
        min_battery_percent=None,
        quality_tier=4,
        download_url=(
            f"{_HF}/bartowski/Llama-3.2-1B-Instruct-GGUF/resolve/main/"
            "Llama-3.2-1B-Instruct-Q6_K_L.gguf"
        ),
        size_mb=815,
    ),
    ModelRequirements(
        model_key="Qwen-1.5B",
        display_name="Qwen 2.5 1.5B",
        min_ram_mb=4096,
        min_storage_mb=1200,
        min_battery_percent=15,
        quality_tier=5,
        download_url=(
            f"{_HF}/Qwen/Qwen2.5-1.5B-Instruct-GGUF/resolve/main/"
            "qwen2.5-1.5b-instruct-q6_k.gguf"
        ),
        size_mb=1200,
    ),
    ModelRequirements(
        model_key="Qwen-3B",
        display_name="Qwen 2.5 3B",
        min_ram_mb=6144,
        min_storage_mb=2100,
        min_battery_percent=20,
        quality_tier=6,
        download_url=(
            f"{_HF}/Qwen/Qwen2.5-3B-Instruct-GGUF/resolve/main/"
            "qwen2.5-3b-instruct-q4_k_m.gguf"
        ),
        size_mb=2100,
    ),
    ModelRequirements(
        model_key="Llama-3B",
        display_name="Llama 3.2 3B",
        min_ram_mb=6144,
        min_storage_mb=2000,
        min_battery_percent=20,
        quality_tier=6,
        download_url=(
            f"{_HF}/bartowski/Llama-3.2-3B-Instruct-GGUF/resolve/main/"
            "Llama-3.2-3B-Instruct-Q4_K_M.gguf"
        ),
        size_mb=2000,
    ),
    ModelRequirements(
        model_key="Phi-3-Mini",
        display_name="Phi-3 Mini 3.8B",
        min_ram_mb=6144,
        min_storage_mb=2300,
        min_battery_percent=20,
        quality_tier=7,
        download_url=(
            f"{_HF}/microsoft/Phi-3-mini-4k-instruct-gguf/resolve/main/"
            "Phi-3-mini-4k-instruct-q4.gguf"
        ),
        size_mb=2300,
    ),
    ModelRequirements(
        model_key="Mistral-7B",
        display_name="Mistral 7B",
        min_ram_mb=8192,
        min_storage_mb=4400,
        min_battery_percent=30,
        quality_tier=8,
        download_url=(
            f"{_HF}/MaziyarPanahi/Mistral-7B-Instruct-v0.3-GGUF/resolve/main/"
            "Mistral-7B-Instruct-v0.3.Q4_K_M.gguf"
        ),
        size_mb=4400,
    ),
)

# Small enough to pre-load at startup on each tier.
_STARTUP_DEFAULTS: dict[DeviceTier, str] = {
    DeviceTier.LOW: "SmolLM2-360M",
    DeviceTier.MEDIUM: "Qwen-0.5B",
    DeviceTier.HIGH: "Llama-1B-Q4",
    DeviceTier.ULTRA: "Llama-1B-Q4",
}

# Best quality the tier can sustain.
_RECOMMENDED: dict[DeviceTier, str] = {
    DeviceTier.LOW: "SmolLM2-360M",
    DeviceTier.MEDIUM: "Llama-1B-Q4",
    DeviceTier.HIGH: "Qwen-1.5B",
    DeviceTier.ULTRA: "Qwen-3B",
}


class ModelCatalog:
    """Read-only registry of model requirements keyed by model key.

    Args:
        entries: Requirements in declaration order. Defaults to the bundled catalog.
        startup_defaults: Startup model key per device tier.
        recommended: Recommended model key per device tier.
    """

    def __init__(
        self,
        entries: tuple[ModelRequirements, ...] = _ENTRIES,
        startup_defaults: Mapping[DeviceTier, str] | None = None,
        recommended: Mapping[DeviceTier, str] | None = None,
    ) -> None:
        self._entries: Mapping[str, ModelRequirements] = MappingProxyType(
            {entry.model_key: entry for entry in entries}
        )
        self._startup_defaults = dict(startup_defaults or _STARTUP_DEFAULTS)
        self._recommended = dict(recommended or _RECOMMENDED)

        for tier in DeviceTier:
            for table in (self._startup_defaults, self._recommended):
                key = table.get(tier)
                if key is None or key not in self._entries:
                    raise ValueError(f"No catalog entry configured for tier {tier.name}")

    def __contains__(self, model_key: object) -> bool:
        return model_key in self._entries

    def __iter__(self) -> Iterator[ModelRequirements]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def all_keys(self) -> list[str]:
        """Model keys in declaration order."""
        return list(self._entries)

    def requirements_for(self, model_key: str) -> ModelRequirements:
        """Return requirements for a key, raising KeyError if unknown."""
        try:
            return self._entries[model_key]
        except KeyError:
            raise KeyError(f"Unknown model key: {model_key!r}") from None

    def display_name_for(self, model_key: str) -> str:
        """Human-readable name, falling back to the key itself."""
        entry = self._entries.get(model_key)
        return entry.display_name if entry is not None else model_key

    def download_url_for(self, model_key: str) -> str:
        return self.requirements_for(model_key).download_url

    def key_for_display_name(self, display_name: str) -> str | None:
        """Reverse lookup used to match host listings to catalog keys."""
        for entry in self._entries.values():
            if entry.display_name == display_name:
                return entry.model_key
        return None

    def default_for_tier(self, tier: DeviceTier) -> str:
        """Startup model for a device tier."""
        return self._startup_defaults[tier]

    def recommended_for_tier(self, tier: DeviceTier) -> str:
        """Recommended model for a device tier."""
        return self._recommended[tier]
