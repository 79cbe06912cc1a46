"""STT engine abstraction layer."""

from audioshift.stt.base import STTEngine, TranscriptionOptions
from audioshift.stt.factory import create_stt_engine

__all__ = ["STTEngine", "TranscriptionOptions", "create_stt_engine"]
