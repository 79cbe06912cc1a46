"""FasterWhisper STT engine implementation (multilingual, optional translation)."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
from faster_whisper import WhisperModel

from audioshift.catalog import EngineKind
from audioshift.config import WhisperConfig
from audioshift.stt.base import STTEngine, TranscriptionOptions

logger = logging.getLogger(__name__)


class FasterWhisperEngine(STTEngine):
    """STT engine using faster-whisper (CTranslate2).

    Keeps one model at a time; requesting a different model id evicts the
    current one before loading.
    """

    kind = EngineKind.WHISPER

    def __init__(self, config: WhisperConfig) -> None:
        super().__init__()
        self._config = config

    def _accelerated_available(self) -> bool:
        return self._config.device != "cpu"

    def _load(self, model_dir: Path, accelerated: bool) -> WhisperModel:
        device = self._config.device if accelerated else "cpu"
        compute_type = self._config.compute_type if accelerated else self._config.cpu_compute_type
        logger.info(
            "Loading faster-whisper model: %s (device=%s, compute=%s)",
            model_dir,
            device,
            compute_type,
        )
        return WhisperModel(
            str(model_dir),
            device=device,
            compute_type=compute_type,
            cpu_threads=self._config.cpu_threads,
        )

    def _run(self, model: WhisperModel, audio: np.ndarray, options: TranscriptionOptions) -> str:
        vad = self._config.vad
        segments, info = model.transcribe(
            audio,
            language=options.language,
            task="translate" if options.translate else "transcribe",
            beam_size=self._config.beam_size,
            condition_on_previous_text=self._config.condition_on_previous_text,
            vad_filter=vad.enabled,
            vad_parameters={
                "min_speech_duration_ms": vad.min_speech_duration_ms,
                "min_silence_duration_ms": vad.min_silence_duration_ms,
            },
        )

        text = "".join(segment.text for segment in segments).strip()
        prob = info.language_probability
        logger.info("STT result (lang=%s, prob=%.2f): %d chars", info.language, prob, len(text))
        return text
