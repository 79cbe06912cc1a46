"""STT engine abstract base class."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from audioshift.catalog import EngineKind
from audioshift.errors import ModelError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscriptionOptions:
    language: str | None = None  # None = auto-detect
    translate: bool = False


class STTEngine(ABC):
    """One inference backend holding at most one loaded model.

    The engine lock serializes loading and inference, so concurrent requests
    for the same engine queue up instead of running in parallel.
    """

    kind: EngineKind

    def __init__(self) -> None:
        self._model: Any = None
        self._model_id: str | None = None
        self._lock = threading.Lock()

    @property
    def loaded_model_id(self) -> str | None:
        return self._model_id

    def load_model(self, model_id: str, model_dir: Path) -> None:
        """Load *model_id* from *model_dir* unless it is already cached."""
        with self._lock:
            self._ensure_loaded(model_id, model_dir)

    def transcribe(
        self,
        model_id: str,
        model_dir: Path,
        audio: np.ndarray,
        options: TranscriptionOptions,
    ) -> str:
        """Transcribe 16kHz mono float32 *audio*, loading the model if needed."""
        with self._lock:
            self._ensure_loaded(model_id, model_dir)
            return self._run(self._model, audio, options).strip()

    def unload(self, model_id: str | None = None) -> bool:
        """Drop the cached model. With *model_id*, only if that one is loaded."""
        with self._lock:
            if self._model is None:
                return False
            if model_id is not None and not self._matches(model_id):
                return False
            logger.info("Unloading %s model %s", self.kind.value, self._model_id)
            self._model = None
            self._model_id = None
            return True

    def _matches(self, model_id: str) -> bool:
        return self._model_id == model_id

    def _ensure_loaded(self, model_id: str, model_dir: Path) -> None:
        if self._model is not None and self._matches(model_id):
            return

        if self._model is not None:
            logger.info("Replacing %s model %s with %s", self.kind.value, self._model_id, model_id)
            self._model = None
            self._model_id = None

        self._model = self._load_with_fallback(model_id, model_dir)
        self._model_id = model_id

    def _load_with_fallback(self, model_id: str, model_dir: Path) -> Any:
        """Try the accelerated path first, then CPU. Only a CPU failure surfaces."""
        if self._accelerated_available():
            try:
                model = self._load(model_dir, accelerated=True)
                logger.info("Loaded %s with hardware acceleration", model_id)
                return model
            except Exception:
                logger.warning(
                    "Accelerated load of %s failed, falling back to CPU", model_id, exc_info=True
                )
        try:
            model = self._load(model_dir, accelerated=False)
        except Exception as e:
            raise ModelError(f"Failed to load model {model_id}: {e}") from e
        logger.info("Loaded %s on CPU", model_id)
        return model

    @abstractmethod
    def _accelerated_available(self) -> bool:
        """Whether an accelerated execution path is worth trying."""
        ...

    @abstractmethod
    def _load(self, model_dir: Path, accelerated: bool) -> Any:
        """Create the model handle from the files in *model_dir*."""
        ...

    @abstractmethod
    def _run(self, model: Any, audio: np.ndarray, options: TranscriptionOptions) -> str:
        """Run inference with a loaded handle."""
        ...
