"""Local GGUF model store: listing and streaming download.

Catalog models are stored as ``<models_dir>/<filename>.gguf``. Downloads
stream into a ``.part`` file that is renamed on completion and removed on
failure, so a listed file is always complete.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from adapt.core.protocols import HostModel
from adapt.errors import DownloadFailure

if TYPE_CHECKING:
    from adapt.catalog import ModelCatalog, ModelRequirements

logger = logging.getLogger(__name__)


class GGUFModelStore:
    """Lists and downloads catalog models in a local directory.

    Host model IDs are the catalog keys.

    Args:
        catalog: Registry providing filenames and download URLs.
        models_dir: Directory holding the GGUF files.
        timeout: Connect/read timeout in seconds for downloads.
        chunk_size: Bytes read per streamed chunk.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        models_dir: Path,
        timeout: float = 30.0,
        chunk_size: int = 256 * 1024,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._catalog = catalog
        self._models_dir = models_dir
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._transport = transport

    @property
    def models_dir(self) -> Path:
        return self._models_dir

    def path_for(self, model_id: str) -> Path:
        """Final on-disk location of a model."""
        return self._models_dir / self._entry(model_id).filename

    def is_downloaded(self, model_id: str) -> bool:
        return self.path_for(model_id).is_file()

    def list_available_models(self) -> list[HostModel]:
        """Every catalog model with its on-disk status."""
        return [
            HostModel(
                id=entry.model_key,
                display_name=entry.display_name,
                is_downloaded=self.is_downloaded(entry.model_key),
                model_key=entry.model_key,
            )
            for entry in self._catalog
        ]

    def download(self, model_id: str) -> Iterator[float]:
        """Stream a model to disk, yielding progress fractions.

        Raises:
            DownloadFailure: HTTP or filesystem error. The partial file is removed.
        """
        entry = self._entry(model_id)
        dest = self.path_for(model_id)
        if dest.is_file():
            logger.info("%s already downloaded at %s", entry.display_name, dest)
            yield 1.0
            return

        self._models_dir.mkdir(parents=True, exist_ok=True)
        tmp_dest = dest.with_suffix(".part")
        total_bytes = entry.size_mb * 1024 * 1024

        logger.info("Downloading %s from %s", entry.display_name, entry.download_url)
        try:
            downloaded = 0
            with httpx.Client(
                follow_redirects=True,
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                transport=self._transport,
            ) as client:
                with client.stream("GET", entry.download_url) as resp:
                    resp.raise_for_status()
                    content_length = resp.headers.get("content-length")
                    if content_length:
                        total_bytes = int(content_length)

                    with open(tmp_dest, "wb") as f:
                        for chunk in resp.iter_bytes(chunk_size=self._chunk_size):
                            f.write(chunk)
                            downloaded += len(chunk)
                            if total_bytes:
                                yield min(downloaded / total_bytes, 1.0)

            tmp_dest.replace(dest)
        except (httpx.HTTPError, OSError) as exc:
            if tmp_dest.exists():
                tmp_dest.unlink()
            raise DownloadFailure(f"{entry.display_name}: {exc}") from exc
        except BaseException:
            # Consumer stopped iterating or the process is exiting
            if tmp_dest.exists():
                tmp_dest.unlink()
            raise

        logger.info("Saved %s (%d bytes) to %s", entry.display_name, downloaded, dest)
        yield 1.0

    def _entry(self, model_id: str) -> ModelRequirements:
        try:
            return self._catalog.requirements_for(model_id)
        except KeyError:
            raise DownloadFailure(f"Unknown model: {model_id}") from None
