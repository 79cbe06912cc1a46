"""Configuration management using Pydantic + YAML."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from audioshift.catalog import DEFAULT_MODEL_ID


def _default_data_dir() -> Path:
    return Path.home() / ".audioshift"


def _default_output_dir() -> Path:
    return Path.home() / "Documents" / "AudioShift Transcriptions"


class PathsConfig(BaseModel):
    data_dir: Path = Field(default_factory=_default_data_dir)
    output_dir: Path = Field(default_factory=_default_output_dir)

    @property
    def models_dir(self) -> Path:
        return self.data_dir / "models"


class AudioConfig(BaseModel):
    sample_rate: int = Field(default=16000, gt=0)
    input_device: str | None = None
    max_duration_sec: int = Field(default=600, gt=0)
    amplitude_interval_ms: int = Field(default=50, ge=0)


class TranscriptionConfig(BaseModel):
    live_model: str = DEFAULT_MODEL_ID
    file_model: str = DEFAULT_MODEL_ID
    language: str = "auto"
    translate: bool = False
    save_history: bool = True

    @property
    def language_hint(self) -> str | None:
        """Language passed to the engine; ``None`` means auto-detect."""
        if not self.language or self.language == "auto":
            return None
        return self.language


class DownloadConfig(BaseModel):
    chunk_size: int = Field(default=1024 * 1024, gt=0)
    connect_timeout_sec: float = Field(default=30.0, gt=0)
    read_timeout_sec: float = Field(default=120.0, gt=0)


class VADConfig(BaseModel):
    enabled: bool = True
    min_speech_duration_ms: int = Field(default=250, gt=0)
    min_silence_duration_ms: int = Field(default=500, gt=0)


class WhisperConfig(BaseModel):
    device: str = "cuda"
    compute_type: str = "float16"
    cpu_compute_type: str = "int8"
    cpu_threads: int = Field(default=8, ge=0)
    beam_size: int = Field(default=1, ge=1, le=10)
    condition_on_previous_text: bool = False
    vad: VADConfig = VADConfig()


class ParakeetConfig(BaseModel):
    accelerated_providers: list[str] = Field(
        default_factory=lambda: [
            "CUDAExecutionProvider",
            "DmlExecutionProvider",
            "CoreMLExecutionProvider",
        ]
    )


class FilesConfig(BaseModel):
    progress_interval_sec: float = Field(default=1.0, gt=0)
    max_name_index: int = Field(default=999, ge=2)


class AppConfig(BaseModel):
    paths: PathsConfig = PathsConfig()
    audio: AudioConfig = AudioConfig()
    transcription: TranscriptionConfig = TranscriptionConfig()
    download: DownloadConfig = DownloadConfig()
    whisper: WhisperConfig = WhisperConfig()
    parakeet: ParakeetConfig = ParakeetConfig()
    files: FilesConfig = FilesConfig()


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from YAML file. Falls back to defaults if file not found."""
    if path is None:
        path = Path("config.yaml")
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return AppConfig(**data)
    return AppConfig()
