"""Lifecycle orchestrator: select, download, load, and publish model state.

State machine::

    Idle --initialize()--> Checking
    Checking --already downloaded--> Loading
    Checking --not downloaded--> Downloading
    Downloading --progress--> Downloading (non-decreasing)
    Downloading --complete--> Loading
    Downloading --fails--> Error
    Loading --succeeds--> Ready
    Loading --retries exhausted--> Error
    Error / Ready --new request--> Checking

One operation runs at a time per instance. A call made while another is in
flight raises ``OrchestratorBusyError`` and publishes nothing.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from adapt.config import LifecycleConfig
from adapt.errors import LoadFailure, NotFoundFailure, OrchestratorBusyError, ResourceRejection
from adapt.policy import can_upgrade, models_with_status, safe_models, select_best_model
from adapt.probe import WARNING_PREFIX, DeviceTier
from adapt.state import (
    CHECKING,
    IDLE,
    Downloading,
    Error,
    LifecycleState,
    Loading,
    Ready,
    StateBus,
)

if TYPE_CHECKING:
    from adapt.catalog import ModelCatalog, ModelRequirements
    from adapt.core.protocols import DownloadService, HostModel, LoadService, ModelListing
    from adapt.preferences import PreferenceStore, Preferences
    from adapt.probe import ResourceProbe, ResourceSnapshot

logger = logging.getLogger(__name__)

_RECOMMENDATION_TEMPLATES: dict[DeviceTier, str] = {
    DeviceTier.LOW: "Your device has limited RAM. Using {name} for best stability.",
    DeviceTier.MEDIUM: "Recommended: {name} for balanced performance.",
    DeviceTier.HIGH: "Your device can handle larger models! {name} selected.",
    DeviceTier.ULTRA: "Powerful device detected! {name} provides best quality.",
}


class ProgressThrottle:
    """Filters download progress down to the values worth publishing.

    A value passes only if it is strictly greater than the last value that
    passed, and its integer percentage advanced by at least ``step_percent``
    or reached ``final_percent``.
    """

    def __init__(self, step_percent: int = 2, final_percent: int = 99) -> None:
        self._step = step_percent
        self._final = final_percent
        self._last_progress = 0.0
        self._last_percent = 0

    def accept(self, progress: float) -> float | None:
        """Return the clamped value to publish, or None to drop it."""
        if math.isnan(progress):
            return None
        progress = min(max(progress, 0.0), 1.0)
        if progress <= self._last_progress:
            return None
        percent = int(progress * 100)
        if percent - self._last_percent < self._step and percent < self._final:
            return None
        self._last_progress = progress
        self._last_percent = percent
        return progress


class LifecycleOrchestrator:
    """Drives model selection, acquisition and loading for one engine.

    Construct one per application (see ``adapt.factory.build_orchestrator``)
    and share it; observers attach to ``state`` and ``resources``.

    Args:
        catalog: Model registry.
        probe: Resource sampler and admission checker.
        preferences: Durable preference store; this instance is its only writer.
        listing: Host model listing collaborator.
        downloader: Download collaborator.
        loader: Load collaborator.
        config: Retry and throttle policy.
        sleep: Delay function between load attempts; injectable for tests.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        probe: ResourceProbe,
        preferences: PreferenceStore,
        listing: ModelListing,
        downloader: DownloadService,
        loader: LoadService,
        config: LifecycleConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._catalog = catalog
        self._probe = probe
        self._preferences = preferences
        self._listing = listing
        self._downloader = downloader
        self._loader = loader
        self._config = config or LifecycleConfig()
        self._sleep = sleep

        self.state: StateBus[LifecycleState] = StateBus(IDLE, name="lifecycle")
        self.resources: StateBus[ResourceSnapshot | None] = StateBus(None, name="resources")

        self._current_model_id: str | None = None
        self._current_model_key: str | None = None
        self._busy = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def catalog(self) -> ModelCatalog:
        return self._catalog

    @property
    def current_model_id(self) -> str | None:
        return self._current_model_id

    @property
    def current_model_key(self) -> str | None:
        return self._current_model_key

    def is_model_loaded(self) -> bool:
        return self._current_model_id is not None

    def preferences(self) -> Preferences:
        return self._preferences.snapshot()

    def host_models(self) -> list[HostModel]:
        """The host's model listing, with download status."""
        return self._listing.list_available_models()

    def device_tier(self) -> DeviceTier:
        snapshot = self.resources.value
        if snapshot is None:
            snapshot = self._probe.latest
        return snapshot.device_tier

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    def initialize(self, auto_load: bool = True) -> LifecycleState:
        """Sample resources and, if allowed, select and load a model.

        Auto-loading requires both ``auto_load`` and the persisted
        ``auto_load_enabled`` preference. Without it the state returns to
        Ready (if a model is resident) or Idle.

        Returns:
            The state current when the call finished.
        """
        with self._exclusive("initialize"):
            logger.info("Initializing model lifecycle (auto_load=%s)", auto_load)
            self.state.publish(CHECKING)
            self.refresh_resources()
            if auto_load and self._preferences.get_auto_load_enabled():
                self._auto_load()
            else:
                self.state.publish(self._resting_state())
            return self.state.value

    def auto_load(self) -> LifecycleState:
        """Select the best model for this device and acquire it."""
        with self._exclusive("auto-load"):
            self.state.publish(CHECKING)
            self.refresh_resources()
            self._auto_load()
            return self.state.value

    def load_model_by_key(self, model_key: str) -> LifecycleState:
        """Switch to a specific catalog model, downloading it if needed."""
        with self._exclusive("load model"):
            self.state.publish(CHECKING)
            self.refresh_resources()
            if model_key not in self._catalog:
                self._fail(f"Unknown model: {model_key}")
                return self.state.value
            try:
                models = self._listing.list_available_models()
            except Exception as exc:
                logger.error("Model listing failed: %s", exc)
                self._fail(f"Model lookup failed: {exc}")
                return self.state.value
            self._acquire(model_key, models)
            return self.state.value

    def download_and_load(self, model_id: str, model_key: str) -> LifecycleState:
        """Download a model's bytes, then load it."""
        with self._exclusive("download model"):
            self.refresh_resources()
            self._download_and_load(model_id, model_key)
            return self.state.value

    def load_model(self, model_id: str, model_key: str) -> LifecycleState:
        """Load an already downloaded model, retrying transient failures."""
        with self._exclusive("load model"):
            self.refresh_resources()
            self._load(model_id, model_key)
            return self.state.value

    def submit(self, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Future[Any]:
        """Run a lifecycle operation on the orchestrator's worker thread.

        Example: ``orchestrator.submit(orchestrator.initialize, auto_load=True)``.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="adapt-lifecycle"
            )
        return self._executor.submit(operation, *args, **kwargs)

    def shutdown(self) -> None:
        """Cancel queued work and release the worker thread."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    # ------------------------------------------------------------------
    # Resources and recommendations
    # ------------------------------------------------------------------

    def refresh_resources(self) -> ResourceSnapshot:
        """Take a fresh resource sample and publish it."""
        snapshot = self._probe.sample()
        self.resources.publish(snapshot)
        return snapshot

    def can_upgrade_model(self) -> tuple[bool, str | None]:
        """Closest higher-quality model that fits this device, if any."""
        return can_upgrade(
            self._current_model_key,
            self._probe.latest,
            self._catalog,
            self._probe.ram_safety_margin,
        )

    def get_model_recommendation(self) -> str:
        """One-line recommendation for the current device tier."""
        tier = self.device_tier()
        name = self._catalog.display_name_for(self._catalog.recommended_for_tier(tier))
        return _RECOMMENDATION_TEMPLATES[tier].format(name=name)

    def safe_models(self) -> list[ModelRequirements]:
        return safe_models(self._probe.latest, self._catalog, self._probe.ram_safety_margin)

    def models_with_status(self) -> list[tuple[ModelRequirements, bool, str]]:
        return models_with_status(
            self._probe.latest, self._catalog, self._probe.ram_safety_margin
        )

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def set_preferred_model(self, model_key: str | None) -> None:
        """Record the user's explicit model choice; None clears it."""
        if model_key is not None:
            self._catalog.requirements_for(model_key)
        self._preferences.set_preferred_model(model_key)

    def set_auto_load_enabled(self, enabled: bool) -> None:
        self._preferences.set_auto_load_enabled(enabled)

    # ------------------------------------------------------------------
    # Pipeline internals (caller holds the busy lock)
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        if not self._busy.acquire(blocking=False):
            raise OrchestratorBusyError(
                f"Cannot {operation}: another lifecycle operation is in progress"
            )
        try:
            yield
        finally:
            self._busy.release()

    def _auto_load(self) -> None:
        try:
            models = self._listing.list_available_models()
        except Exception as exc:
            logger.error("Auto-load failed while listing models: %s", exc)
            self._fail(f"Auto-load failed: {exc}")
            return
        logger.debug("Available models: %d", len(models))

        model_key = select_best_model(
            self._probe.latest,
            self._preferences.snapshot(),
            self._availability(models),
            self._catalog,
            self._probe.ram_safety_margin,
        )
        logger.info("Selected model for auto-load: %s", model_key)
        self._acquire(model_key, models)

    def _acquire(self, model_key: str, models: list[HostModel]) -> None:
        try:
            host_model = self._resolve(model_key, models)
        except NotFoundFailure as exc:
            logger.warning("Model %s not found in host listing", model_key)
            self._fail(str(exc))
            return

        if host_model.is_downloaded:
            self._load(host_model.id, model_key)
        else:
            self._download_and_load(host_model.id, model_key)

    def _resolve(self, model_key: str, models: list[HostModel]) -> HostModel:
        display_name = self._catalog.display_name_for(model_key)
        for model in models:
            if model.model_key == model_key or (
                model.model_key is None and model.display_name == display_name
            ):
                return model
        raise NotFoundFailure(model_key, display_name)

    def _availability(self, models: list[HostModel]) -> dict[str, bool]:
        availability: dict[str, bool] = {}
        for model in models:
            key = model.model_key or self._catalog.key_for_display_name(model.display_name)
            if key is not None:
                availability[key] = availability.get(key, False) or model.is_downloaded
        return availability

    def _admit(self, model_key: str) -> bool:
        """Run the admission check, publishing Error on a hard rejection."""
        ok, reason = self._probe.can_load(model_key)
        if not ok:
            rejection = ResourceRejection(model_key, reason)
            logger.warning("Rejected %s: %s", rejection.model_key, rejection)
            self._fail(rejection.reason)
            return False
        if reason.startswith(WARNING_PREFIX):
            logger.warning("%s", reason)
        return True

    def _download_and_load(self, model_id: str, model_key: str) -> None:
        if not self._admit(model_key):
            return

        name = self._catalog.display_name_for(model_key)
        logger.info("Downloading model: %s", name)
        self.state.publish(Downloading(name, 0.0))

        throttle = ProgressThrottle(
            self._config.progress_step_percent,
            self._config.progress_final_percent,
        )
        try:
            for progress in self._downloader.download(model_id):
                value = throttle.accept(progress)
                if value is not None:
                    self.state.publish(Downloading(name, value))
                    logger.debug("Download progress for %s: %d%%", name, int(value * 100))
        except Exception as exc:
            logger.error("Download of %s failed: %s", name, exc)
            self._fail(f"Download failed: {exc}")
            return

        logger.info("Download complete: %s", name)
        self._load(model_id, model_key)

    def _load(self, model_id: str, model_key: str) -> None:
        if not self._admit(model_key):
            return

        name = self._catalog.display_name_for(model_key)
        logger.info("Loading model: %s", name)
        self.state.publish(Loading(name))

        max_attempts = max(1, self._config.max_load_attempts)
        last_error: str | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                if self._loader.load(model_id):
                    self._on_loaded(model_id, model_key, name)
                    return
                logger.warning(
                    "Load attempt %d/%d for %s returned False", attempt, max_attempts, name
                )
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                logger.warning(
                    "Load attempt %d/%d for %s failed: %s",
                    attempt,
                    max_attempts,
                    name,
                    last_error,
                )
            if attempt < max_attempts:
                self._sleep(self._config.retry_delay_seconds)

        message = f"Failed to load {name} after {max_attempts} attempts"
        if last_error is not None:
            message = f"{message}: {last_error}"
        failure = LoadFailure(message, attempts=max_attempts)
        logger.error("%s", failure)
        self._fail(str(failure))

    def _on_loaded(self, model_id: str, model_key: str, name: str) -> None:
        self._current_model_id = model_id
        self._current_model_key = model_key
        self.state.publish(Ready(name, model_id))
        self._preferences.set_last_loaded_model(model_key)
        logger.info("Model loaded successfully: %s", name)

    def _resting_state(self) -> LifecycleState:
        if self._current_model_id is not None and self._current_model_key is not None:
            return Ready(
                self._catalog.display_name_for(self._current_model_key),
                self._current_model_id,
            )
        return IDLE

    def _fail(self, message: str) -> None:
        self.state.publish(Error(message))
