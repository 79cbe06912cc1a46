"""Recording session state machine: idle -> recording -> transcribing -> idle."""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

from audioshift.audio import TARGET_SAMPLE_RATE
from audioshift.config import AudioConfig, TranscriptionConfig
from audioshift.context import PipelineContext, Status
from audioshift.errors import AlreadyRecordingError, BusyError, NoAudioError, SessionError
from audioshift.events import STATUS_CHANGED, TRANSCRIPTION_COMPLETE, EventEmitter
from audioshift.sink import HistoryEntry, TranscriptSink
from audioshift.stt import TranscriptionOptions
from audioshift.transcriber import Transcriber

if TYPE_CHECKING:
    from audioshift.recorder import AudioRecorder

logger = logging.getLogger(__name__)


class RecordingSession:
    """Push-to-talk controller around the recorder and the transcriber.

    ``cancel()`` during transcription cannot interrupt inference; it returns
    the session to idle and the result is dropped when it arrives.
    """

    def __init__(
        self,
        context: PipelineContext,
        audio_config: AudioConfig,
        settings: TranscriptionConfig,
        recorder: AudioRecorder,
        transcriber: Transcriber,
        events: EventEmitter,
        sink: TranscriptSink,
    ) -> None:
        self._context = context
        self._audio_config = audio_config
        self._settings = settings
        self._recorder = recorder
        self._transcriber = transcriber
        self._events = events
        self._sink = sink
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def status(self) -> Status:
        return self._context.status

    def _set_status(self, status: Status) -> None:
        self._context.status = status
        self._events.emit(STATUS_CHANGED, status.value)

    def start(self, device_name: str | None = None) -> None:
        with self._lock:
            if self._context.status == Status.RECORDING:
                raise AlreadyRecordingError("Already recording")
            if self._context.status == Status.TRANSCRIBING:
                raise BusyError("Transcription in progress")
            self._recorder.start(device_name or self._audio_config.input_device)
            self._set_status(Status.RECORDING)

    def stop(self, auto_paste: bool = False) -> str:
        """Stop recording, transcribe, hand the text to the sink and return it."""
        with self._lock:
            if self._context.status != Status.RECORDING:
                raise SessionError("Not recording")
            audio = self._recorder.stop()
            if len(audio) == 0:
                self._set_status(Status.IDLE)
                raise NoAudioError("No audio recorded")
            self._set_status(Status.TRANSCRIBING)
            generation = self._generation

        settings = self._settings
        model_id = settings.live_model
        options = TranscriptionOptions(
            language=settings.language_hint, translate=settings.translate
        )
        duration_ms = len(audio) * 1000 // TARGET_SAMPLE_RATE
        logger.info("[Pipeline] Audio: %dms, model=%s", duration_ms, model_id)

        try:
            t0 = time.monotonic()
            text = self._transcriber.transcribe(audio, model_id, options)
            processing_ms = int((time.monotonic() - t0) * 1000)
        except Exception:
            logger.exception("[Pipeline] Transcription failed")
            self._finish(generation)
            raise

        if not self._is_current(generation):
            logger.info("[Pipeline] Session cancelled, discarding result")
            return ""

        try:
            if text:
                if settings.save_history:
                    self._sink.save_history(HistoryEntry(
                        samples=audio,
                        text=text,
                        duration_ms=duration_ms,
                        processing_time_ms=processing_ms,
                        model_id=model_id,
                        language=options.language,
                        translate=options.translate,
                    ))
                self._sink.deliver(text, auto_paste)
            else:
                logger.info("[Pipeline] STT returned empty text")
            self._events.emit(TRANSCRIPTION_COMPLETE, text)
        finally:
            self._finish(generation)
        return text

    def cancel(self) -> None:
        with self._lock:
            if self._context.status == Status.IDLE:
                return
            self._recorder.cancel()
            self._generation += 1
            self._set_status(Status.IDLE)
        logger.info("[Pipeline] Cancelled")

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _finish(self, generation: int) -> None:
        with self._lock:
            if generation == self._generation and self._context.status == Status.TRANSCRIBING:
                self._set_status(Status.IDLE)
