"""Batch transcription of a media file with ETA-based progress and cancellation."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from audioshift.audio import decode_file, is_media_file
from audioshift.config import FilesConfig, PathsConfig, TranscriptionConfig
from audioshift.context import PipelineContext
from audioshift.errors import AlreadyProcessingError, UnsupportedMediaError
from audioshift.events import FILE_TRANSCRIPTION_STATUS, EventEmitter, FileTranscriptionStatus
from audioshift.stt import TranscriptionOptions
from audioshift.transcriber import Transcriber

logger = logging.getLogger(__name__)

# Estimated progress never reaches 100% before the job actually finishes.
_MAX_ESTIMATED_PROGRESS = 95


def unique_output_path(output_dir: Path, file_name: str, max_index: int = 999) -> Path:
    """``stem.txt``, then ``stem (2).txt`` ... ``stem (max_index).txt``, then a random suffix."""
    output_dir.mkdir(parents=True, exist_ok=True)
    stem = Path(file_name).stem or "transcription"

    candidate = output_dir / f"{stem}.txt"
    if not candidate.exists():
        return candidate

    for i in range(2, max_index + 1):
        candidate = output_dir / f"{stem} ({i}).txt"
        if not candidate.exists():
            return candidate

    return output_dir / f"{stem} ({uuid.uuid4()}).txt"


class _ProgressTicker:
    """Emits extrapolated progress about once per interval until stopped."""

    def __init__(
        self,
        emit,
        base: FileTranscriptionStatus,
        estimated_secs: float,
        interval_sec: float,
    ) -> None:
        self._emit = emit
        self._base = base
        self._estimated = estimated_secs
        self._interval = interval_sec
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="file-progress", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        self._thread.join()

    def _run(self) -> None:
        start = time.monotonic()
        while not self._stop.wait(self._interval):
            elapsed = time.monotonic() - start
            pct = min(int(elapsed / self._estimated * 100), _MAX_ESTIMATED_PROGRESS)
            self._emit(self._base.model_copy(update={
                "progress": pct,
                "elapsed_secs": int(elapsed),
            }))


class FileTranscriber:
    """Single-flight pipeline: decode, transcribe, save ``<stem>.txt``.

    Cancellation is checked after decoding and after transcription only; an
    in-flight decode or inference always runs to completion first.
    """

    def __init__(
        self,
        context: PipelineContext,
        paths: PathsConfig,
        files_config: FilesConfig,
        settings: TranscriptionConfig,
        transcriber: Transcriber,
        events: EventEmitter,
    ) -> None:
        self._context = context
        self._paths = paths
        self._files_config = files_config
        self._settings = settings
        self._transcriber = transcriber
        self._events = events
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="decode")

    def is_processing(self) -> bool:
        return self._context.file_processing.active

    def cancel(self) -> None:
        if self.is_processing():
            logger.info("File transcription cancel requested")
            self._context.file_cancel.set()

    def transcribe(self, source_path: str | Path) -> FileTranscriptionStatus:
        """Run the whole job and return its final status (idle when cancelled)."""
        path = Path(source_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        if not is_media_file(path):
            raise UnsupportedMediaError(f"Not a supported media file: {path.name}")

        if not self._context.file_processing.try_acquire():
            raise AlreadyProcessingError("Already processing a file")
        self._context.file_cancel.clear()

        try:
            return self._process(path)
        finally:
            self._context.file_processing.release()
            self._context.file_cancel.clear()

    def _emit(self, status: FileTranscriptionStatus) -> None:
        self._events.emit(FILE_TRANSCRIPTION_STATUS, status)

    def _reset(self) -> FileTranscriptionStatus:
        logger.info("File transcription cancelled")
        status = FileTranscriptionStatus()
        self._emit(status)
        return status

    def _process(self, path: Path) -> FileTranscriptionStatus:
        common = {"file_name": path.name, "source_path": str(path)}
        self._emit(FileTranscriptionStatus(status="converting", **common))

        t0 = time.monotonic()
        try:
            decoded = self._pool.submit(decode_file, path).result()
        except Exception as e:
            logger.warning("Decoding %s failed: %s", path.name, e)
            return self._fail(common, e)
        decode_secs = time.monotonic() - t0
        duration = decoded.duration_secs
        logger.info(
            "Decode: %.2fs (audio: %.0fs, %d samples)", decode_secs, duration, len(decoded.samples)
        )

        if self._context.file_cancel.is_set():
            return self._reset()

        estimated = self._context.speed_ratio.estimate(duration)
        base = FileTranscriptionStatus(
            status="transcribing",
            duration_secs=duration,
            decode_secs=decode_secs,
            estimated_secs=int(estimated),
            **common,
        )
        self._emit(base)

        settings = self._settings
        options = TranscriptionOptions(language=settings.language_hint, translate=settings.translate)
        ticker = _ProgressTicker(
            self._emit, base, estimated, self._files_config.progress_interval_sec
        )
        ticker.start()
        t1 = time.monotonic()
        try:
            text = self._transcriber.transcribe(decoded.samples, settings.file_model, options)
            error: Exception | None = None
        except Exception as e:
            text, error = "", e
        finally:
            ticker.stop()
        elapsed = time.monotonic() - t1
        logger.info("Transcribe: %.2fs", elapsed)

        ratio = self._context.speed_ratio.observe(elapsed, duration)
        logger.debug("Speed ratio now %.3f", ratio)

        if self._context.file_cancel.is_set():
            return self._reset()

        if error is not None:
            logger.warning("Transcribing %s failed: %s", path.name, error)
            return self._fail(common, error)

        out_path = unique_output_path(
            self._paths.output_dir, path.name, self._files_config.max_name_index
        )
        try:
            out_path.write_text(text, encoding="utf-8")
        except OSError as e:
            logger.exception("Failed to write transcription file %s", out_path)
            return self._fail(common, e)
        logger.info("Transcript saved to %s", out_path)

        status = base.model_copy(update={
            "status": "completed",
            "progress": 100,
            "elapsed_secs": int(elapsed),
            "estimated_secs": int(elapsed),
            "result_text": text,
            "output_path": str(out_path),
        })
        self._emit(status)
        return status

    def _fail(self, common: dict, error: Exception) -> FileTranscriptionStatus:
        status = FileTranscriptionStatus(status="error", error=str(error), **common)
        self._emit(status)
        return status

    def close(self) -> None:
        self._pool.shutdown(wait=True)
