"""STT engine factory."""

from __future__ import annotations

from audioshift.catalog import EngineKind
from audioshift.config import AppConfig
from audioshift.stt.base import STTEngine


def create_stt_engine(kind: EngineKind, config: AppConfig) -> STTEngine:
    """Create the STT engine for an engine kind."""
    if kind == EngineKind.WHISPER:
        from audioshift.stt.faster_whisper_engine import FasterWhisperEngine

        return FasterWhisperEngine(config.whisper)
    elif kind == EngineKind.PARAKEET:
        from audioshift.stt.parakeet_engine import ParakeetEngine

        return ParakeetEngine(config.parakeet)
    else:
        raise ValueError(f"Unknown STT engine: {kind}")
