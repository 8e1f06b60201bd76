"""Host adapters: local GGUF storage and the llama.cpp engine."""

from __future__ import annotations

from adapt.host.gguf import GGUFModelStore
from adapt.host.llama import LlamaCppLoader

__all__ = ["GGUFModelStore", "LlamaCppLoader"]
