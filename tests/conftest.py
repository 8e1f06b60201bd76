"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from adapt.catalog import ModelCatalog
from adapt.config import ADAPTConfig, LifecycleConfig, load_config
from adapt.core.protocols import HostModel
from adapt.orchestrator import LifecycleOrchestrator
from adapt.preferences import PreferenceStore
from adapt.probe import ResourceProbe, ResourceSnapshot, TierThresholds, classify_tier
from adapt.state import LifecycleState

SnapshotFactory = Callable[..., ResourceSnapshot]


def make_snapshot(
    available_ram_mb: int = 8192,
    total_ram_mb: int = 16384,
    battery_percent: int = 80,
    is_charging: bool = False,
    available_storage_mb: int = 50_000,
    thresholds: TierThresholds | None = None,
) -> ResourceSnapshot:
    """Build a snapshot whose tier is derived the same way the probe derives it."""
    return ResourceSnapshot(
        total_ram_mb=total_ram_mb,
        available_ram_mb=available_ram_mb,
        battery_percent=battery_percent,
        is_charging=is_charging,
        available_storage_mb=available_storage_mb,
        device_tier=classify_tier(available_ram_mb, thresholds),
        sampled_at=datetime.now(UTC),
    )


class StaticProbe(ResourceProbe):
    """Probe that reports a fixed snapshot instead of reading the host."""

    def __init__(self, catalog: ModelCatalog, snapshot: ResourceSnapshot) -> None:
        super().__init__(catalog)
        self.snapshot = snapshot
        self.sample_count = 0

    def sample(self) -> ResourceSnapshot:
        self.sample_count += 1
        with self._lock:
            self._latest = self.snapshot
        return self.snapshot


class FakeHost:
    """In-memory listing, download and load collaborator.

    Args:
        models: Host listing returned by ``list_available_models``.
        progress: Values yielded by ``download``.
        download_error: Raised by ``download`` after yielding ``progress``.
        load_results: Successive outcomes of ``load``; exceptions are raised.
    """

    def __init__(
        self,
        models: list[HostModel] | None = None,
        progress: tuple[float, ...] = (0.5, 1.0),
        download_error: Exception | None = None,
        load_results: tuple[bool | Exception, ...] = (True,),
    ) -> None:
        self.models = models if models is not None else []
        self.progress = progress
        self.download_error = download_error
        self.load_results = list(load_results)
        self.listing_error: Exception | None = None
        self.download_calls: list[str] = []
        self.load_calls: list[str] = []

    def list_available_models(self) -> list[HostModel]:
        if self.listing_error is not None:
            raise self.listing_error
        return list(self.models)

    def download(self, model_id: str) -> Iterator[float]:
        self.download_calls.append(model_id)
        yield from self.progress
        if self.download_error is not None:
            raise self.download_error

    def load(self, model_id: str) -> bool:
        self.load_calls.append(model_id)
        result = self.load_results.pop(0) if self.load_results else True
        if isinstance(result, Exception):
            raise result
        return result


def host_model(catalog: ModelCatalog, key: str, downloaded: bool = True) -> HostModel:
    """Host listing entry for a catalog key, matched by display name."""
    return HostModel(
        id=f"id-{key}",
        display_name=catalog.display_name_for(key),
        is_downloaded=downloaded,
    )


@pytest.fixture
def default_config(tmp_path: Path) -> ADAPTConfig:
    """Bundled defaults, isolated from any real user config."""
    return load_config(user_config_path=tmp_path / "missing.toml")


@pytest.fixture
def catalog() -> ModelCatalog:
    return ModelCatalog()


@pytest.fixture
def snapshot_factory() -> SnapshotFactory:
    return make_snapshot


@pytest.fixture
def probe(catalog: ModelCatalog) -> StaticProbe:
    """Probe on a roomy ULTRA-tier device."""
    return StaticProbe(catalog, make_snapshot())


@pytest.fixture
def preference_store(tmp_path: Path) -> PreferenceStore:
    return PreferenceStore(tmp_path / "prefs" / "preferences.json")


@pytest.fixture
def host(catalog: ModelCatalog) -> FakeHost:
    """Host listing every catalog model, none downloaded."""
    return FakeHost(models=[host_model(catalog, k, downloaded=False) for k in catalog.all_keys()])


@pytest.fixture
def sleep() -> MagicMock:
    return MagicMock()


@pytest.fixture
def orchestrator(
    catalog: ModelCatalog,
    probe: StaticProbe,
    preference_store: PreferenceStore,
    host: FakeHost,
    sleep: MagicMock,
) -> LifecycleOrchestrator:
    """Orchestrator wired to fakes, with retry delays recorded instead of slept."""
    return LifecycleOrchestrator(
        catalog=catalog,
        probe=probe,
        preferences=preference_store,
        listing=host,
        downloader=host,
        loader=host,
        config=LifecycleConfig(),
        sleep=sleep,
    )


@pytest.fixture
def states(orchestrator: LifecycleOrchestrator) -> list[LifecycleState]:
    """Every lifecycle state published, starting with the value at subscription."""
    recorded: list[LifecycleState] = []
    orchestrator.state.subscribe(recorded.append)
    return recorded
