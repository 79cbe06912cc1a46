"""Push notifications from the pipeline to the presentation layer."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

STATUS_CHANGED = "status-changed"
AUDIO_AMPLITUDE = "audio-amplitude"
MONITOR_AMPLITUDE = "monitor-amplitude"
MODEL_DOWNLOAD_PROGRESS = "model-download-progress"
MODEL_PRELOAD_START = "model-preload-start"
MODEL_PRELOAD_DONE = "model-preload-done"
FILE_TRANSCRIPTION_STATUS = "file-transcription-status"
TRANSCRIPTION_COMPLETE = "transcription-complete"
LIVE_MODEL_CHANGED = "live-model-changed"

Handler = Callable[[Any], None]


class DownloadProgress(BaseModel):
    file: str
    model_id: str
    progress: int = 0
    downloaded: int = 0
    total: int = 0
    overall_downloaded: int = 0
    overall_total: int = 0
    overall_progress: int = 0


class FileTranscriptionStatus(BaseModel):
    status: str = "idle"  # idle | converting | transcribing | completed | error
    file_name: str | None = None
    source_path: str | None = None
    progress: int = 0
    elapsed_secs: int = 0
    estimated_secs: int = 0
    duration_secs: float | None = None
    decode_secs: float | None = None
    result_text: str | None = None
    output_path: str | None = None
    error: str | None = None


class EventEmitter:
    """Minimal thread-safe publish/subscribe hub.

    Handlers run synchronously on the emitting thread, which may be the
    realtime audio callback; they must return quickly.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register *handler* for *event*. Returns a function that unsubscribes it."""
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def emit(self, event: str, payload: Any = None) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event, ()))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Error in %s handler", event)
