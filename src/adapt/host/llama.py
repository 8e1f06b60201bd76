"""llama.cpp load collaborator.

Keeps a single model resident: loading a new one releases the previous.
``llama-cpp-python`` is imported lazily so the rest of the package works
without it installed.
"""

from __future__ import annotations

import gc
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from adapt.host.gguf import GGUFModelStore

logger = logging.getLogger(__name__)


class LlamaCppLoader:
    """Load GGUF files from a ``GGUFModelStore`` into llama.cpp.

    Args:
        store: Store resolving model IDs to file paths.
        n_ctx: Context window size.
        n_gpu_layers: Number of layers to offload to GPU.
    """

    def __init__(self, store: GGUFModelStore, n_ctx: int = 2048, n_gpu_layers: int = 0) -> None:
        self._store = store
        self._n_ctx = n_ctx
        self._n_gpu_layers = n_gpu_layers
        self._llm: Any = None
        self._model_id: str | None = None

    @property
    def model_id(self) -> str | None:
        """ID of the resident model, if any."""
        return self._model_id

    @property
    def llm(self) -> Any:
        """The resident ``llama_cpp.Llama`` instance."""
        if self._llm is None:
            raise RuntimeError("No model loaded; call load() first")
        return self._llm

    def load(self, model_id: str) -> bool:
        """Load a model, returning False if its file is missing.

        Raises:
            ImportError: llama-cpp-python is not installed.
            ValueError: llama.cpp rejected the model file.
        """
        if self._model_id == model_id and self._llm is not None:
            return True

        path = self._store.path_for(model_id)
        if not path.is_file():
            logger.warning("Model file not found: %s", path)
            return False

        from llama_cpp import Llama

        self.unload()
        logger.info("Loading %s into llama.cpp (n_ctx=%d)", path.name, self._n_ctx)
        self._llm = Llama(
            model_path=str(path),
            n_ctx=self._n_ctx,
            n_gpu_layers=self._n_gpu_layers,
            verbose=False,
        )
        self._model_id = model_id
        return True

    def unload(self) -> None:
        """Release the resident model and collect garbage."""
        if self._llm is not None:
            logger.info("Unloading %s", self._model_id)
            del self._llm
            self._llm = None
            self._model_id = None
            gc.collect()
