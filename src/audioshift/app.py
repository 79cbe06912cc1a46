"""Main application orchestrator: ties all components together."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from audioshift.catalog import ModelCatalog, ModelStatus
from audioshift.config import AppConfig
from audioshift.context import PipelineContext, Status
from audioshift.download import ModelDownloader
from audioshift.errors import ModelError
from audioshift.events import LIVE_MODEL_CHANGED, EventEmitter, FileTranscriptionStatus
from audioshift.file_transcriber import FileTranscriber
from audioshift.recorder import AudioRecorder, LevelMonitor, list_input_devices
from audioshift.session import RecordingSession
from audioshift.sink import LoggingSink, TranscriptSink
from audioshift.transcriber import Transcriber

logger = logging.getLogger(__name__)


class AudioShiftApp:
    """Operation surface used by front-ends: recording, files, models, settings."""

    def __init__(
        self,
        config: AppConfig,
        sink: TranscriptSink | None = None,
        events: EventEmitter | None = None,
        context: PipelineContext | None = None,
    ) -> None:
        self._config = config
        self.events = events or EventEmitter()
        self.context = context or PipelineContext()
        self.catalog = ModelCatalog(config.paths.models_dir)
        self.downloader = ModelDownloader(
            self.catalog, self.context, self.events, config.download
        )
        self.transcriber = Transcriber(config, self.catalog, self.downloader, self.events)
        self._recorder = AudioRecorder(config.audio, self.events)
        self._monitor = LevelMonitor(config.audio, self.events)
        self.session = RecordingSession(
            self.context,
            config.audio,
            config.transcription,
            self._recorder,
            self.transcriber,
            self.events,
            sink or LoggingSink(),
        )
        self.files = FileTranscriber(
            self.context,
            config.paths,
            config.files,
            config.transcription,
            self.transcriber,
            self.events,
        )

    def start(self) -> None:
        """Warm up the live model in the background if it is already downloaded."""
        logger.info("=== AudioShift starting ===")
        logger.info("Live model: %s, file model: %s", self.live_model, self._config.transcription.file_model)
        if self.catalog.is_ready(self.live_model):
            self.transcriber.preload(self.live_model)
        else:
            logger.info("Live model %s not downloaded yet", self.live_model)

    def stop(self) -> None:
        """Stop the application, waiting for any in-flight work."""
        self._monitor.stop()
        if self.session.status != Status.IDLE:
            self.session.cancel()
        self.files.cancel()
        self.files.close()
        self.transcriber.close()
        logger.info("=== AudioShift stopped ===")

    # --- Recording ---

    def start_recording(self, device_name: str | None = None) -> None:
        self.session.start(device_name)

    def stop_recording(self, auto_paste: bool = False) -> str:
        return self.session.stop(auto_paste)

    def cancel_recording(self) -> None:
        self.session.cancel()

    @property
    def status(self) -> Status:
        return self.session.status

    def list_input_devices(self) -> list[str]:
        return list_input_devices()

    def start_monitor(self, device_name: str | None = None) -> None:
        self._monitor.start(device_name or self._config.audio.input_device)

    def stop_monitor(self) -> None:
        self._monitor.stop()

    # --- Files ---

    def transcribe_file(self, path: str | Path) -> FileTranscriptionStatus:
        t0 = time.monotonic()
        status = self.files.transcribe(path)
        logger.info("File job finished as %s in %.1fs", status.status, time.monotonic() - t0)
        return status

    def cancel_file_transcription(self) -> None:
        self.files.cancel()

    def is_file_processing(self) -> bool:
        return self.files.is_processing()

    # --- Models ---

    def models_status(self) -> list[ModelStatus]:
        return self.catalog.statuses()

    def is_download_in_progress(self) -> bool:
        return self.downloader.is_downloading()

    def download_model(self, model_id: str) -> None:
        """Download *model_id*, then preload it so the first transcription is instant."""
        self.downloader.ensure(model_id)
        self.transcriber.preload(model_id)

    def delete_model(self, model_id: str) -> None:
        self.transcriber.delete_model(model_id)

    # --- Settings ---

    @property
    def live_model(self) -> str:
        return self._config.transcription.live_model

    def set_live_model(self, model_id: str) -> None:
        if self.catalog.find(model_id) is None:
            raise ModelError(f"Unknown model: {model_id}")
        self._config.transcription.live_model = model_id
        self.events.emit(LIVE_MODEL_CHANGED, model_id)
        self.transcriber.preload(model_id)

    @property
    def file_model(self) -> str:
        return self._config.transcription.file_model

    def set_file_model(self, model_id: str) -> None:
        if self.catalog.find(model_id) is None:
            raise ModelError(f"Unknown model: {model_id}")
        self._config.transcription.file_model = model_id

    @property
    def language(self) -> str:
        return self._config.transcription.language

    def set_language(self, language: str) -> None:
        self._config.transcription.language = language or "auto"

    @property
    def translate(self) -> bool:
        return self._config.transcription.translate

    def set_translate(self, enabled: bool) -> None:
        self._config.transcription.translate = enabled
