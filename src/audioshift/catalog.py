"""Static registry of installable models and their on-disk state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class EngineKind(str, Enum):
    PARAKEET = "parakeet"
    WHISPER = "whisper"


@dataclass(frozen=True)
class ModelFile:
    url: str
    # Rename the downloaded file to this name once it is complete.
    rename_to: str | None = None


@dataclass(frozen=True)
class ModelDefinition:
    id: str
    name: str
    engine: EngineKind
    description: str
    approx_bytes: int
    files: tuple[ModelFile, ...]


@dataclass(frozen=True)
class ModelStatus:
    id: str
    name: str
    engine: EngineKind
    description: str
    size_label: str
    ready: bool
    disk_size: int
    path: str


DEFAULT_MODEL_ID = "parakeet-tdt-0.6b-v3"

_PARAKEET_BASE = "https://huggingface.co/istupakov/parakeet-tdt-0.6b-v3-onnx/resolve/main"
_HF = "https://huggingface.co"

MODELS: tuple[ModelDefinition, ...] = (
    ModelDefinition(
        id="parakeet-tdt-0.6b-v3",
        name="Parakeet TDT 0.6b v3",
        engine=EngineKind.PARAKEET,
        description="Fast, accurate English transcription. Best balance of speed and quality.",
        approx_bytes=680_000_000,
        files=(
            ModelFile(f"{_PARAKEET_BASE}/encoder-model.int8.onnx", "encoder-model.onnx"),
            ModelFile(f"{_PARAKEET_BASE}/decoder_joint-model.int8.onnx", "decoder_joint-model.onnx"),
            ModelFile(f"{_PARAKEET_BASE}/vocab.txt"),
            ModelFile(f"{_PARAKEET_BASE}/config.json"),
            ModelFile(f"{_PARAKEET_BASE}/nemo128.onnx"),
        ),
    ),
    ModelDefinition(
        id="whisper-large-v3-turbo",
        name="Whisper Large v3 Turbo",
        engine=EngineKind.WHISPER,
        description="Multilingual, highly accurate. Supports 100+ languages.",
        approx_bytes=1_620_000_000,
        files=tuple(
            ModelFile(f"{_HF}/mobiuslabsgmbh/faster-whisper-large-v3-turbo/resolve/main/{name}")
            for name in (
                "config.json",
                "model.bin",
                "preprocessor_config.json",
                "tokenizer.json",
                "vocabulary.json",
            )
        ),
    ),
    ModelDefinition(
        id="whisper-medium",
        name="Whisper Medium",
        engine=EngineKind.WHISPER,
        description="Multilingual, moderate speed and accuracy. Good middle ground.",
        approx_bytes=1_530_000_000,
        files=tuple(
            ModelFile(f"{_HF}/Systran/faster-whisper-medium/resolve/main/{name}")
            for name in ("config.json", "model.bin", "tokenizer.json", "vocabulary.txt")
        ),
    ),
    ModelDefinition(
        id="whisper-small",
        name="Whisper Small",
        engine=EngineKind.WHISPER,
        description="Multilingual, fastest Whisper model. Smallest download.",
        approx_bytes=484_000_000,
        files=tuple(
            ModelFile(f"{_HF}/Systran/faster-whisper-small/resolve/main/{name}")
            for name in ("config.json", "model.bin", "tokenizer.json", "vocabulary.txt")
        ),
    ),
)


def destination_name(file: ModelFile) -> str:
    """Final file name on disk: the rename target, else the URL's last segment."""
    if file.rename_to:
        return file.rename_to
    return url_file_name(file.url)


def url_file_name(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1] or "unknown"


def size_label(num_bytes: int) -> str:
    """Format approximate bytes as a human-readable label."""
    if num_bytes >= 1_000_000_000:
        return f"{num_bytes / 1_000_000_000:.1f} GB"
    return f"{num_bytes // 1_000_000} MB"


class ModelCatalog:
    """Looks up model definitions and derives their install state from disk."""

    def __init__(
        self,
        models_dir: Path,
        models: tuple[ModelDefinition, ...] = MODELS,
    ) -> None:
        self._models_dir = Path(models_dir)
        self._models = models

    @property
    def models(self) -> tuple[ModelDefinition, ...]:
        return self._models

    def find(self, model_id: str) -> ModelDefinition | None:
        for model in self._models:
            if model.id == model_id:
                return model
        return None

    def model_dir(self, model_id: str) -> Path:
        return self._models_dir / model_id

    def is_ready(self, model_id: str) -> bool:
        model = self.find(model_id)
        if model is None:
            return False
        directory = self.model_dir(model_id)
        return all((directory / destination_name(f)).exists() for f in model.files)

    def disk_size(self, model_id: str) -> int:
        directory = self.model_dir(model_id)
        if not directory.is_dir():
            return 0
        total = 0
        for entry in directory.iterdir():
            try:
                if entry.is_file():
                    total += entry.stat().st_size
            except OSError:
                logger.debug("Could not stat %s", entry, exc_info=True)
        return total

    def any_ready(self) -> bool:
        return any(self.is_ready(m.id) for m in self._models)

    def statuses(self) -> list[ModelStatus]:
        return [
            ModelStatus(
                id=m.id,
                name=m.name,
                engine=m.engine,
                description=m.description,
                size_label=size_label(m.approx_bytes),
                ready=self.is_ready(m.id),
                disk_size=self.disk_size(m.id),
                path=str(self.model_dir(m.id)),
            )
            for m in self._models
        ]
