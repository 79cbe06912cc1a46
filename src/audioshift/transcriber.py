"""Model-aware transcription: ensure the model, pick its engine, run inference off-thread."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor

import numpy as np

from audioshift.audio import TARGET_SAMPLE_RATE
from audioshift.catalog import EngineKind, ModelCatalog
from audioshift.config import AppConfig
from audioshift.download import ModelDownloader
from audioshift.errors import ModelError
from audioshift.events import MODEL_PRELOAD_DONE, MODEL_PRELOAD_START, EventEmitter
from audioshift.stt import STTEngine, TranscriptionOptions, create_stt_engine

logger = logging.getLogger(__name__)


class Transcriber:
    """Owns one engine per engine kind and dispatches requests by model id.

    Engines of different kinds keep their models loaded independently.
    """

    def __init__(
        self,
        config: AppConfig,
        catalog: ModelCatalog,
        downloader: ModelDownloader,
        events: EventEmitter,
        engines: dict[EngineKind, STTEngine] | None = None,
    ) -> None:
        self._catalog = catalog
        self._downloader = downloader
        self._events = events
        if engines is None:
            engines = {kind: create_stt_engine(kind, config) for kind in EngineKind}
        self._engines = engines
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="stt")

    def engine_for(self, model_id: str) -> STTEngine:
        model = self._catalog.find(model_id)
        if model is None:
            raise ModelError(f"Unknown model: {model_id}")
        return self._engines[model.engine]

    def transcribe(
        self,
        audio: np.ndarray,
        model_id: str,
        options: TranscriptionOptions | None = None,
    ) -> str:
        """Transcribe 16kHz mono samples with *model_id*, downloading it first if needed."""
        options = options or TranscriptionOptions()
        engine = self.engine_for(model_id)

        self._downloader.ensure(model_id)
        if not self._catalog.is_ready(model_id):
            raise ModelError(f"Model {model_id} is not downloaded yet")

        model_dir = self._catalog.model_dir(model_id)
        t0 = time.monotonic()
        future = self._pool.submit(engine.transcribe, model_id, model_dir, audio, options)
        text = future.result()
        logger.info(
            "Transcribed %.1fs of audio with %s in %.1fs",
            len(audio) / TARGET_SAMPLE_RATE,
            model_id,
            time.monotonic() - t0,
        )
        return text

    def preload(self, model_id: str) -> Future[None]:
        """Load a downloaded model in the background. Failures are only logged."""
        self._events.emit(MODEL_PRELOAD_START, model_id)
        return self._pool.submit(self._preload, model_id)

    def _preload(self, model_id: str) -> None:
        try:
            if self._catalog.find(model_id) is None or not self._catalog.is_ready(model_id):
                logger.info("Skipping preload of %s: not downloaded", model_id)
                return
            t0 = time.monotonic()
            self.engine_for(model_id).load_model(model_id, self._catalog.model_dir(model_id))
            logger.info("Model preloaded: %s (%.1fs)", model_id, time.monotonic() - t0)
        except Exception:
            logger.warning("Model preload of %s failed", model_id, exc_info=True)
        finally:
            self._events.emit(MODEL_PRELOAD_DONE, model_id)

    def unload(self, model_id: str) -> None:
        engine = self.engine_for(model_id)
        # The Parakeet slot is shared by every Parakeet model.
        engine.unload(None if engine.kind == EngineKind.PARAKEET else model_id)

    def delete_model(self, model_id: str) -> None:
        self.unload(model_id)
        self._downloader.delete(model_id)

    def close(self) -> None:
        self._pool.shutdown(wait=True)
