"""Layered TOML configuration with typed dataclass mapping.

Priority stack (highest wins):
    1. Hardcoded defaults (ADAPTConfig())
    2. config/default.toml (bundled)
    3. ~/.config/adapt/config.toml (user config)
    4. CLI overrides (dot-notation)
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Typed config tree: frozen, slotted dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GeneralConfig:
    """Top-level general settings."""

    log_level: str = "warning"
    data_dir: str = "~/.local/share/adapt"


@dataclass(frozen=True, slots=True)
class TierThresholdsConfig:
    """Available-RAM upper bounds (exclusive, MB) for each device tier."""

    low_below_mb: int = 2048
    medium_below_mb: int = 4096
    high_below_mb: int = 6144


@dataclass(frozen=True, slots=True)
class ProbeConfig:
    """Resource probe and admission check settings."""

    ram_safety_margin: float = 1.0
    storage_path: str = ""
    thresholds: TierThresholdsConfig = field(default_factory=TierThresholdsConfig)


@dataclass(frozen=True, slots=True)
class LifecycleConfig:
    """Retry and progress throttling policy for the orchestrator."""

    max_load_attempts: int = 3
    retry_delay_seconds: float = 0.5
    progress_step_percent: int = 2
    progress_final_percent: int = 99


@dataclass(frozen=True, slots=True)
class HostConfig:
    """Local model store and inference engine settings."""

    models_dir: str = ""
    download_timeout_seconds: float = 30.0
    chunk_size_bytes: int = 256 * 1024
    n_ctx: int = 2048
    n_gpu_layers: int = 0


@dataclass(frozen=True, slots=True)
class PreferencesConfig:
    """Preference persistence settings."""

    path: str = ""


@dataclass(frozen=True, slots=True)
class ADAPTConfig:
    """Root configuration node."""

    general: GeneralConfig = field(default_factory=GeneralConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    host: HostConfig = field(default_factory=HostConfig)
    preferences: PreferencesConfig = field(default_factory=PreferencesConfig)

    @property
    def data_path(self) -> Path:
        """Expanded data directory."""
        return Path(self.general.data_dir).expanduser()

    @property
    def models_path(self) -> Path:
        """Directory holding downloaded model files."""
        if self.host.models_dir:
            return Path(self.host.models_dir).expanduser()
        return self.data_path / "models"

    @property
    def preferences_path(self) -> Path:
        """JSON file backing the preference store."""
        if self.preferences.path:
            return Path(self.preferences.path).expanduser()
        return self.data_path / "preferences.json"

    @property
    def storage_path(self) -> Path:
        """Filesystem whose free space gates downloads."""
        if self.probe.storage_path:
            return Path(self.probe.storage_path).expanduser()
        return self.models_path


# ---------------------------------------------------------------------------
# Config loading helpers
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Lists replace, dicts recurse."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _coerce_value(s: str) -> bool | int | float | str:
    """Coerce a CLI string value to its typed equivalent."""
    if s.lower() == "true":
        return True
    if s.lower() == "false":
        return False
    try:
        return int(s)
    except ValueError:
        pass
    try:
        return float(s)
    except ValueError:
        pass
    return s


def _apply_dot_override(raw: dict[str, Any], dot_key: str, str_value: str) -> None:
    """Apply a dot-notation CLI override into the raw config dict.

    Example: _apply_dot_override(raw, "lifecycle.max_load_attempts", "5")
    sets raw["lifecycle"]["max_load_attempts"] = 5
    """
    parts = dot_key.split(".")
    target = raw
    for part in parts[:-1]:
        if part not in target:
            target[part] = {}
        target = target[part]
    target[parts[-1]] = _coerce_value(str_value)


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load and parse a TOML file, returning empty dict if not found."""
    if not path.is_file():
        return {}
    with open(path, "rb") as f:
        return tomllib.load(f)


def _load_bundled_toml(filename: str) -> dict[str, Any]:
    """Load a TOML file bundled in the config/ directory relative to project root."""
    # Walk up from this file to find the project root containing config/
    current = Path(__file__).resolve().parent
    for _ in range(5):
        config_path = current / "config" / filename
        if config_path.is_file():
            with open(config_path, "rb") as f:
                return tomllib.load(f)
        current = current.parent

    # Fallback: try importlib.resources for installed packages
    try:
        config_pkg = resources.files("adapt").joinpath(f"../../config/{filename}")
        if hasattr(config_pkg, "read_bytes"):
            data = config_pkg.read_bytes()
            return tomllib.loads(data.decode("utf-8"))
    except (FileNotFoundError, TypeError):
        pass

    return {}


def _build_config(raw: dict[str, Any]) -> ADAPTConfig:
    """Map a merged raw dict to the typed ADAPTConfig tree."""
    probe_raw = dict(raw.get("probe", {}))
    thresholds = TierThresholdsConfig(**probe_raw.pop("thresholds", {}))

    return ADAPTConfig(
        general=GeneralConfig(**raw.get("general", {})),
        probe=ProbeConfig(**probe_raw, thresholds=thresholds),
        lifecycle=LifecycleConfig(**raw.get("lifecycle", {})),
        host=HostConfig(**raw.get("host", {})),
        preferences=PreferencesConfig(**raw.get("preferences", {})),
    )


def load_config(
    user_config_path: Path | None = None,
    cli_overrides: dict[str, str] | None = None,
) -> ADAPTConfig:
    """Load configuration with 4-layer priority stack.

    Args:
        user_config_path: Path to user config TOML. Defaults to
            ~/.config/adapt/config.toml.
        cli_overrides: Dot-notation key→value pairs from CLI flags.

    Returns:
        Fully resolved, typed ADAPTConfig.
    """
    # Layer 1: hardcoded defaults (implicit via dataclass defaults)
    # Layer 2: bundled default.toml
    raw = _load_bundled_toml("default.toml")

    # Layer 3: user config
    if user_config_path is None:
        user_config_path = Path.home() / ".config" / "adapt" / "config.toml"
    user_raw = _load_toml_file(user_config_path)
    raw = _deep_merge(raw, user_raw)

    # Layer 4: CLI overrides
    if cli_overrides:
        for dot_key, str_value in cli_overrides.items():
            _apply_dot_override(raw, dot_key, str_value)

    return _build_config(raw)
