"""Device resource sampling and model admission checks.

Reads are cheap and synchronous. A failed read never raises: the field
keeps its last-known value so admission heuristics degrade instead of
crashing the lifecycle.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from adapt.catalog import ModelCatalog, ModelRequirements
    from adapt.config import ProbeConfig

logger = logging.getLogger(__name__)

_MB = 1024 * 1024

WARNING_PREFIX = "Warning:"

# psutil.Error (AccessDenied, NoSuchProcess, ...) does not derive from OSError
_READ_ERRORS: tuple[type[Exception], ...] = (
    OSError,
    RuntimeError,
    AttributeError,
    psutil.Error,
)


class DeviceTier(enum.IntEnum):
    """Coarse host capability class, ordered from weakest to strongest."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2
    ULTRA = 3


@dataclass(frozen=True, slots=True)
class TierThresholds:
    """Exclusive available-RAM upper bounds (MB) for LOW, MEDIUM and HIGH."""

    low_below_mb: int = 2048
    medium_below_mb: int = 4096
    high_below_mb: int = 6144

    def __post_init__(self) -> None:
        if not (0 < self.low_below_mb <= self.medium_below_mb <= self.high_below_mb):
            raise ValueError(
                "Tier thresholds must be positive and non-decreasing, got "
                f"{self.low_below_mb}/{self.medium_below_mb}/{self.high_below_mb}"
            )

    @classmethod
    def from_config(cls, config: ProbeConfig) -> TierThresholds:
        t = config.thresholds
        return cls(t.low_below_mb, t.medium_below_mb, t.high_below_mb)


def classify_tier(available_ram_mb: int, thresholds: TierThresholds | None = None) -> DeviceTier:
    """Map available RAM to a device tier. Monotonic in available_ram_mb."""
    t = thresholds or TierThresholds()
    if available_ram_mb < t.low_below_mb:
        return DeviceTier.LOW
    if available_ram_mb < t.medium_below_mb:
        return DeviceTier.MEDIUM
    if available_ram_mb < t.high_below_mb:
        return DeviceTier.HIGH
    return DeviceTier.ULTRA


@dataclass(frozen=True, slots=True)
class ResourceSnapshot:
    """Point-in-time view of host resources."""

    total_ram_mb: int
    available_ram_mb: int
    battery_percent: int
    is_charging: bool
    available_storage_mb: int
    device_tier: DeviceTier
    sampled_at: datetime


def evaluate_requirements(
    requirements: ModelRequirements,
    snapshot: ResourceSnapshot,
    ram_safety_margin: float = 1.0,
) -> tuple[bool, str]:
    """Admission verdict for one model against one snapshot.

    RAM and storage shortfalls block. Low battery while discharging only
    warns: the verdict is True with a reason starting with ``Warning:``.
    """
    needed_ram = requirements.min_ram_mb * ram_safety_margin
    if snapshot.available_ram_mb < needed_ram:
        return (
            False,
            f"Insufficient RAM for {requirements.display_name}: needs "
            f"{int(needed_ram)}MB, {snapshot.available_ram_mb}MB available",
        )
    if snapshot.available_storage_mb < requirements.min_storage_mb:
        return (
            False,
            f"Insufficient storage for {requirements.display_name}: needs "
            f"{requirements.min_storage_mb}MB, {snapshot.available_storage_mb}MB free",
        )
    floor = requirements.min_battery_percent
    if floor is not None and snapshot.battery_percent < floor and not snapshot.is_charging:
        return (
            True,
            f"{WARNING_PREFIX} battery at {snapshot.battery_percent}% is below "
            f"{floor}% recommended for {requirements.display_name}; consider charging",
        )
    return True, "OK"


def describe(snapshot: ResourceSnapshot) -> str:
    """Multi-line resource summary for display."""
    lines = [
        f"Device: {snapshot.device_tier.name} tier",
        f"RAM: {snapshot.available_ram_mb}MB / {snapshot.total_ram_mb}MB",
        f"Battery: {snapshot.battery_percent}%" + (" (Charging)" if snapshot.is_charging else ""),
        f"Storage: {snapshot.available_storage_mb / 1024:.1f}GB free",
    ]
    return "\n".join(lines)


class ResourceProbe:
    """Samples RAM, storage and battery and answers admission questions.

    Args:
        catalog: Catalog used to resolve model keys in ``can_load``.
        storage_path: Directory whose filesystem is checked for free space.
        thresholds: Tier table; override in tests.
        ram_safety_margin: Multiplier applied to each model's RAM floor.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        storage_path: Path | None = None,
        thresholds: TierThresholds | None = None,
        ram_safety_margin: float = 1.0,
    ) -> None:
        self._catalog = catalog
        self._storage_path = storage_path or Path.home()
        self._thresholds = thresholds or TierThresholds()
        self._ram_safety_margin = ram_safety_margin
        self._lock = threading.Lock()
        self._latest: ResourceSnapshot | None = None

    @property
    def thresholds(self) -> TierThresholds:
        return self._thresholds

    @property
    def ram_safety_margin(self) -> float:
        return self._ram_safety_margin

    @property
    def latest(self) -> ResourceSnapshot:
        """Most recent snapshot, sampling once if none exists yet."""
        with self._lock:
            latest = self._latest
        return latest if latest is not None else self.sample()

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def sample(self) -> ResourceSnapshot:
        """Read live host counters into a fresh snapshot."""
        with self._lock:
            previous = self._latest
            total_ram, available_ram = self._read_memory(previous)
            storage = self._read_storage(previous)
            battery, charging = self._read_battery(previous)

            snapshot = ResourceSnapshot(
                total_ram_mb=total_ram,
                available_ram_mb=available_ram,
                battery_percent=battery,
                is_charging=charging,
                available_storage_mb=storage,
                device_tier=classify_tier(available_ram, self._thresholds),
                sampled_at=datetime.now(UTC),
            )
            self._latest = snapshot

        logger.debug(
            "Resources: tier=%s ram=%d/%dMB storage=%dMB battery=%d%%%s",
            snapshot.device_tier.name,
            snapshot.available_ram_mb,
            snapshot.total_ram_mb,
            snapshot.available_storage_mb,
            snapshot.battery_percent,
            " (charging)" if snapshot.is_charging else "",
        )
        return snapshot

    def _read_memory(self, previous: ResourceSnapshot | None) -> tuple[int, int]:
        try:
            vm = psutil.virtual_memory()
            return int(vm.total // _MB), int(vm.available // _MB)
        except _READ_ERRORS as exc:
            logger.warning("Memory read failed, reusing last value: %s", exc)
            if previous is None:
                return 0, 0
            return previous.total_ram_mb, previous.available_ram_mb

    def _read_storage(self, previous: ResourceSnapshot | None) -> int:
        path = self._storage_path
        # disk_usage needs an existing path; walk up to the nearest ancestor
        while not path.exists() and path != path.parent:
            path = path.parent
        try:
            return int(psutil.disk_usage(str(path)).free // _MB)
        except _READ_ERRORS as exc:
            logger.warning("Storage read failed for %s, reusing last value: %s", path, exc)
            return previous.available_storage_mb if previous is not None else 0

    def _read_battery(self, previous: ResourceSnapshot | None) -> tuple[int, bool]:
        try:
            battery = psutil.sensors_battery()
        except _READ_ERRORS as exc:
            logger.warning("Battery read failed, reusing last value: %s", exc)
            if previous is None:
                return 100, True
            return previous.battery_percent, previous.is_charging
        if battery is None:
            # No battery: mains-powered host
            return 100, True
        return int(battery.percent), bool(battery.power_plugged)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def can_load(self, model_key: str) -> tuple[bool, str]:
        """Check a catalog model against the latest snapshot."""
        if model_key not in self._catalog:
            return False, f"Unknown model: {model_key}"
        return evaluate_requirements(
            self._catalog.requirements_for(model_key),
            self.latest,
            self._ram_safety_margin,
        )
