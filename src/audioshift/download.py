"""On-demand model download with aggregated progress and a global single-flight guard."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

import requests

from audioshift.catalog import (
    ModelCatalog,
    ModelDefinition,
    ModelFile,
    destination_name,
    url_file_name,
)
from audioshift.config import DownloadConfig
from audioshift.context import PipelineContext
from audioshift.errors import DownloadError, ModelError
from audioshift.events import MODEL_DOWNLOAD_PROGRESS, DownloadProgress, EventEmitter

logger = logging.getLogger(__name__)

_PART_SUFFIX = ".part"


def _percent(done: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(done / total * 100)


class ModelDownloader:
    """Fetches missing model files into the catalog's model directories.

    Resumability is per file: completed files are kept after a failure and
    skipped on the next attempt, partial ones are fetched again from scratch.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        context: PipelineContext,
        events: EventEmitter,
        config: DownloadConfig,
        session: requests.Session | None = None,
    ) -> None:
        self._catalog = catalog
        self._context = context
        self._events = events
        self._config = config
        self._session = session or requests.Session()

    def is_downloading(self) -> bool:
        return self._context.download.active

    def ensure(self, model_id: str) -> None:
        """Make sure every file of *model_id* is on disk.

        Returns immediately if the model is ready, or if another download
        (of any model) is already running; progress events from that one
        keep flowing.
        """
        if self._catalog.is_ready(model_id):
            return

        if not self._context.download.try_acquire():
            logger.info("Download already in progress, not starting %s", model_id)
            return

        try:
            self._download_model(model_id)
        finally:
            self._context.download.release()

    def delete(self, model_id: str) -> None:
        if self._catalog.find(model_id) is None:
            raise ModelError(f"Unknown model: {model_id}")
        directory = self._catalog.model_dir(model_id)
        if directory.exists():
            shutil.rmtree(directory)
            logger.info("Deleted model %s", model_id)

    def _download_model(self, model_id: str) -> None:
        model = self._catalog.find(model_id)
        if model is None:
            raise ModelError(f"Unknown model: {model_id}")
        if self._catalog.is_ready(model_id):
            return

        directory = self._catalog.model_dir(model_id)
        directory.mkdir(parents=True, exist_ok=True)

        pending = [f for f in model.files if not self._is_present(directory, f)]
        logger.info(
            "Downloading %s: %d of %d files missing", model_id, len(pending), len(model.files)
        )

        self._emit(DownloadProgress(
            file="starting", model_id=model_id, overall_total=model.approx_bytes,
        ))

        cumulative = 0
        last_pct = 0
        for file in pending:
            label = url_file_name(file.url)
            try:
                downloaded, last_pct = self._download_file(
                    model, file, directory, cumulative, last_pct
                )
            except (requests.RequestException, OSError) as e:
                logger.warning("Download of %s for %s failed: %s", label, model_id, e)
                raise DownloadError(f"Failed to download {label}: {e}") from e
            cumulative += downloaded
            self._finalize(directory, file)

        logger.info("Model %s downloaded (%d bytes)", model_id, cumulative)
        self._emit(DownloadProgress(
            file="complete",
            model_id=model_id,
            progress=100,
            overall_downloaded=cumulative,
            overall_total=model.approx_bytes,
            overall_progress=100,
        ))

    def _download_file(
        self,
        model: ModelDefinition,
        file: ModelFile,
        directory: Path,
        cumulative_offset: int,
        last_pct: int,
    ) -> tuple[int, int]:
        label = url_file_name(file.url)
        part_path = directory / (label + _PART_SUFFIX)
        timeout = (self._config.connect_timeout_sec, self._config.read_timeout_sec)

        with self._session.get(file.url, stream=True, timeout=timeout) as resp:
            resp.raise_for_status()
            total = int(resp.headers.get("content-length") or 0)
            downloaded = 0
            with open(part_path, "wb") as f:
                for chunk in resp.iter_content(chunk_size=self._config.chunk_size):
                    if not chunk:
                        continue
                    f.write(chunk)
                    downloaded += len(chunk)

                    overall = cumulative_offset + downloaded
                    overall_pct = min(_percent(overall, model.approx_bytes), 99)
                    if overall_pct > last_pct:
                        last_pct = overall_pct
                        self._emit(DownloadProgress(
                            file=label,
                            model_id=model.id,
                            progress=_percent(downloaded, total),
                            downloaded=downloaded,
                            total=total,
                            overall_downloaded=overall,
                            overall_total=model.approx_bytes,
                            overall_progress=overall_pct,
                        ))

        os.replace(part_path, directory / label)
        return downloaded, last_pct

    @staticmethod
    def _finalize(directory: Path, file: ModelFile) -> None:
        if not file.rename_to:
            return
        source = directory / url_file_name(file.url)
        target = directory / file.rename_to
        if source != target and not target.exists():
            source.rename(target)

    @staticmethod
    def _is_present(directory: Path, file: ModelFile) -> bool:
        return (directory / destination_name(file)).exists()

    def _emit(self, progress: DownloadProgress) -> None:
        self._events.emit(MODEL_DOWNLOAD_PROGRESS, progress)
