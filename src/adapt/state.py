"""Lifecycle states and the latest-value bus that broadcasts them."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Lifecycle states
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Idle:
    """No lifecycle operation has run, or the last one finished without loading."""


@dataclass(frozen=True, slots=True)
class Checking:
    """Sampling resources and choosing a model."""


@dataclass(frozen=True, slots=True)
class Downloading:
    """Fetching model bytes. ``progress`` is in [0.0, 1.0]."""

    model_name: str
    progress: float

    def __post_init__(self) -> None:
        if not (0.0 <= self.progress <= 1.0):
            raise ValueError(f"progress must be in [0.0, 1.0], got {self.progress}")

    @property
    def percent(self) -> int:
        return int(self.progress * 100)


@dataclass(frozen=True, slots=True)
class Loading:
    """Handing the model to the inference engine."""

    model_name: str


@dataclass(frozen=True, slots=True)
class Ready:
    """A model is resident and usable."""

    model_name: str
    model_id: str


@dataclass(frozen=True, slots=True)
class Error:
    """The last lifecycle operation failed."""

    message: str


LifecycleState: TypeAlias = Idle | Checking | Downloading | Loading | Ready | Error

IDLE = Idle()
CHECKING = Checking()


# ---------------------------------------------------------------------------
# State bus
# ---------------------------------------------------------------------------


class Subscription:
    """Handle returned by ``StateBus.subscribe``; call ``cancel`` to detach."""

    def __init__(self, bus: StateBus[T], callback: Callable[[T], None]) -> None:
        self._bus = bus
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._bus._detach(self._callback)


class StateBus(Generic[T]):
    """Thread-safe latest-value channel with any number of observers.

    New subscribers receive the current value immediately, then every value
    published afterwards. Nothing else is retained. Deliveries are
    serialized, so a subscriber never sees an older value after a newer one.
    """

    def __init__(self, initial: T, name: str = "state") -> None:
        self._value = initial
        self._name = name
        self._lock = threading.RLock()
        # Held across value change and delivery; reentrant for observers that publish
        self._delivery = threading.RLock()
        self._observers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        """Register an observer and deliver the current value to it."""
        with self._delivery:
            with self._lock:
                self._observers.append(callback)
                current = self._value
            self._notify(callback, current)
        return Subscription(self, callback)

    def publish(self, value: T) -> None:
        """Replace the current value and notify every observer in order."""
        with self._delivery:
            with self._lock:
                self._value = value
                observers = list(self._observers)
            logger.debug("%s -> %r", self._name, value)
            for callback in observers:
                self._notify(callback, value)

    def _detach(self, callback: Callable[[T], None]) -> None:
        with self._lock:
            try:
                self._observers.remove(callback)
            except ValueError:
                pass

    def _notify(self, callback: Callable[[T], None], value: T) -> None:
        """Observer failures are logged, not raised."""
        try:
            callback(value)
        except Exception:
            logger.exception("Observer of %s failed", self._name)
