"""Tests for the local GGUF model store."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest

from adapt.catalog import ModelCatalog
from adapt.core.protocols import DownloadService, ModelListing
from adapt.errors import DownloadFailure
from adapt.host.gguf import GGUFModelStore

PAYLOAD = b"g" * 1000


class _DroppingStream(httpx.SyncByteStream):
    """Body that breaks after the first chunk."""

    def __iter__(self) -> Iterator[bytes]:
        yield b"x" * 100
        raise httpx.ReadError("connection dropped")


def _store(catalog: ModelCatalog, models_dir: Path, handler) -> GGUFModelStore:
    return GGUFModelStore(
        catalog,
        models_dir,
        chunk_size=250,
        transport=httpx.MockTransport(handler),
    )


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


class TestListing:
    """list_available_models reflects files on disk."""

    def test_lists_every_catalog_model(self, catalog: ModelCatalog, tmp_path: Path) -> None:
        store = _store(catalog, tmp_path, _unreachable)
        models = store.list_available_models()

        assert [m.id for m in models] == catalog.all_keys()
        assert all(m.model_key == m.id for m in models)
        assert not any(m.is_downloaded for m in models)

    def test_downloaded_flag(self, catalog: ModelCatalog, tmp_path: Path) -> None:
        store = _store(catalog, tmp_path, _unreachable)
        store.path_for("Qwen-0.5B").write_bytes(b"gguf")

        status = {m.id: m.is_downloaded for m in store.list_available_models()}
        assert status["Qwen-0.5B"] is True
        assert status["Qwen-3B"] is False

    def test_satisfies_protocols(self, catalog: ModelCatalog, tmp_path: Path) -> None:
        store = _store(catalog, tmp_path, _unreachable)
        assert isinstance(store, ModelListing)
        assert isinstance(store, DownloadService)


class TestDownload:
    """Streaming download into the models directory."""

    def test_streams_with_progress(self, catalog: ModelCatalog, tmp_path: Path) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=PAYLOAD)

        models_dir = tmp_path / "models"
        store = _store(catalog, models_dir, handler)
        progress = list(store.download("SmolLM2-360M"))

        assert progress == [0.25, 0.5, 0.75, 1.0, 1.0]
        assert requested == [catalog.download_url_for("SmolLM2-360M")]
        dest = store.path_for("SmolLM2-360M")
        assert dest.read_bytes() == PAYLOAD
        assert not dest.with_suffix(".part").exists()
        assert store.is_downloaded("SmolLM2-360M")

    def test_already_downloaded_skips_network(
        self, catalog: ModelCatalog, tmp_path: Path
    ) -> None:
        store = _store(catalog, tmp_path, _unreachable)
        store.path_for("Qwen-0.5B").write_bytes(b"gguf")

        assert list(store.download("Qwen-0.5B")) == [1.0]

    def test_http_error_raises_download_failure(
        self, catalog: ModelCatalog, tmp_path: Path
    ) -> None:
        store = _store(catalog, tmp_path, lambda request: httpx.Response(404))

        with pytest.raises(DownloadFailure, match="SmolLM2 360M"):
            list(store.download("SmolLM2-360M"))
        assert not store.is_downloaded("SmolLM2-360M")

    def test_dropped_connection_removes_partial_file(
        self, catalog: ModelCatalog, tmp_path: Path
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, headers={"content-length": "1000"}, stream=_DroppingStream()
            )

        store = _store(catalog, tmp_path, handler)
        seen: list[float] = []
        with pytest.raises(DownloadFailure, match="connection dropped"):
            for value in store.download("SmolLM2-360M"):
                seen.append(value)

        assert seen == [0.1]
        dest = store.path_for("SmolLM2-360M")
        assert not dest.exists()
        assert not dest.with_suffix(".part").exists()

    def test_abandoned_download_removes_partial_file(
        self, catalog: ModelCatalog, tmp_path: Path
    ) -> None:
        """Closing the generator early leaves nothing behind."""
        store = _store(catalog, tmp_path, lambda request: httpx.Response(200, content=PAYLOAD))
        stream = store.download("SmolLM2-360M")
        assert next(stream) == 0.25
        stream.close()

        dest = store.path_for("SmolLM2-360M")
        assert not dest.exists()
        assert not dest.with_suffix(".part").exists()

    def test_unknown_model(self, catalog: ModelCatalog, tmp_path: Path) -> None:
        store = _store(catalog, tmp_path, _unreachable)
        with pytest.raises(DownloadFailure, match="Unknown model: GPT-5"):
            list(store.download("GPT-5"))

