"""Durable user preferences for model selection."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

KEY_PREFERRED_MODEL = "preferred_model"
KEY_LAST_LOADED_MODEL = "last_loaded_model"
KEY_AUTO_LOAD_ENABLED = "auto_load_enabled"


@dataclass(frozen=True, slots=True)
class Preferences:
    """Persisted selection preferences.

    Args:
        preferred_model_key: Explicit user choice, honored first when loadable.
        last_loaded_model_key: Key of the last model that loaded successfully.
        auto_load_enabled: Whether ``initialize`` may load a model on its own.
    """

    preferred_model_key: str | None = None
    last_loaded_model_key: str | None = None
    auto_load_enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            KEY_PREFERRED_MODEL: self.preferred_model_key,
            KEY_LAST_LOADED_MODEL: self.last_loaded_model_key,
            KEY_AUTO_LOAD_ENABLED: self.auto_load_enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Preferences:
        """Deserialize from dictionary, ignoring values of the wrong type."""
        preferred = data.get(KEY_PREFERRED_MODEL)
        last_loaded = data.get(KEY_LAST_LOADED_MODEL)
        auto_load = data.get(KEY_AUTO_LOAD_ENABLED, True)
        return cls(
            preferred_model_key=preferred if isinstance(preferred, str) else None,
            last_loaded_model_key=last_loaded if isinstance(last_loaded, str) else None,
            auto_load_enabled=auto_load if isinstance(auto_load, bool) else True,
        )


class PreferenceStore:
    """JSON-file backed key-value store for ``Preferences``.

    Values are cached in memory, so reads after a write in the same process
    see the new value even if persisting failed. Updates and writes are
    serialized by a write lock, each through its own temporary file, so
    concurrent setters cannot reorder or clobber each other on disk. I/O
    errors are logged, not raised.

    Args:
        path: Location of the JSON file. Parent directories are created on write.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        # Serializes update and write so the file always holds the newest values
        self._write_lock = threading.Lock()
        self._prefs = self._read()

    @property
    def path(self) -> Path:
        return self._path

    def snapshot(self) -> Preferences:
        """Current preferences as an immutable value."""
        with self._lock:
            return self._prefs

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_preferred_model(self) -> str | None:
        return self.snapshot().preferred_model_key

    def set_preferred_model(self, model_key: str | None) -> None:
        self._update(preferred_model_key=model_key)

    def get_last_loaded_model(self) -> str | None:
        return self.snapshot().last_loaded_model_key

    def set_last_loaded_model(self, model_key: str) -> None:
        self._update(last_loaded_model_key=model_key)

    def get_auto_load_enabled(self) -> bool:
        return self.snapshot().auto_load_enabled

    def set_auto_load_enabled(self, enabled: bool) -> None:
        self._update(auto_load_enabled=enabled)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _update(self, **changes: Any) -> None:
        with self._write_lock:
            with self._lock:
                self._prefs = replace(self._prefs, **changes)
                data = self._prefs.to_dict()
            self._write(data)

    def _read(self) -> Preferences:
        if not self._path.is_file():
            return Preferences()
        try:
            with open(self._path, encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Corrupt preferences file %s: %s", self._path, exc)
            return Preferences()
        if not isinstance(raw, dict):
            logger.warning("Ignoring preferences file %s: expected a JSON object", self._path)
            return Preferences()
        return Preferences.from_dict(raw)

    def _write(self, data: dict[str, Any]) -> None:
        """Write to a fresh temporary file, then replace the target. Caller holds the write lock."""
        tmp_path: Path | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f"{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_path = Path(f.name)
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            logger.warning("Failed to persist preferences to %s: %s", self._path, exc)
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
