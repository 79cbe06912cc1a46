"""Parakeet TDT STT engine on ONNX Runtime (monolingual, fast)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np
import onnx_asr
import onnxruntime as ort

from audioshift.audio import TARGET_SAMPLE_RATE
from audioshift.catalog import EngineKind
from audioshift.config import ParakeetConfig
from audioshift.stt.base import STTEngine, TranscriptionOptions

logger = logging.getLogger(__name__)

_ONNX_ASR_MODEL = "nemo-parakeet-tdt-0.6b-v3"
_CPU_PROVIDER = "CPUExecutionProvider"


class ParakeetEngine(STTEngine):
    """STT engine using onnx-asr's Parakeet TDT runtime.

    Single slot: any loaded Parakeet model satisfies a request, so
    ``load_model`` is a no-op once something is cached. Language and
    translate options are ignored.
    """

    kind = EngineKind.PARAKEET

    def __init__(self, config: ParakeetConfig) -> None:
        super().__init__()
        self._config = config

    def _matches(self, model_id: str) -> bool:
        return self._model is not None

    def _accelerated_providers(self) -> list[str]:
        available = set(ort.get_available_providers())
        return [p for p in self._config.accelerated_providers if p in available]

    def _accelerated_available(self) -> bool:
        return bool(self._accelerated_providers())

    def _load(self, model_dir: Path, accelerated: bool) -> Any:
        providers = [_CPU_PROVIDER]
        if accelerated:
            providers = self._accelerated_providers() + providers
        logger.info("Loading Parakeet model: %s (providers=%s)", model_dir, providers)
        return onnx_asr.load_model(_ONNX_ASR_MODEL, str(model_dir), providers=providers)

    def _run(self, model: Any, audio: np.ndarray, options: TranscriptionOptions) -> str:
        text = model.recognize(audio, sample_rate=TARGET_SAMPLE_RATE)
        logger.info("STT result (parakeet): %d chars", len(text))
        return text
