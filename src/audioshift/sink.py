"""Interfaces for the collaborators that receive finished transcripts.

History storage and clipboard/paste live outside the pipeline; the session
only talks to them through ``TranscriptSink``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class HistoryEntry:
    samples: np.ndarray
    text: str
    duration_ms: int
    processing_time_ms: int
    model_id: str
    language: str | None
    translate: bool


class TranscriptSink(ABC):
    @abstractmethod
    def save_history(self, entry: HistoryEntry) -> None:
        ...

    @abstractmethod
    def deliver(self, text: str, auto_paste: bool) -> None:
        """Paste *text* into the active application, or copy it when not *auto_paste*."""
        ...


class LoggingSink(TranscriptSink):
    """Sink used when no front-end is attached: records nothing, only logs."""

    def save_history(self, entry: HistoryEntry) -> None:
        logger.debug("History entry (%d chars, %dms audio)", len(entry.text), entry.duration_ms)

    def deliver(self, text: str, auto_paste: bool) -> None:
        logger.info("Transcript ready (%d chars, auto_paste=%s)", len(text), auto_paste)
