"""Tests for STT engine abstraction, model caching and CPU fallback."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from audioshift.catalog import EngineKind
from audioshift.config import AppConfig, ParakeetConfig, WhisperConfig
from audioshift.errors import ModelError
from audioshift.stt.base import STTEngine, TranscriptionOptions
from audioshift.stt.factory import create_stt_engine


class MockSTTEngine(STTEngine):
    """Mock STT engine for testing the caching/fallback behavior."""

    kind = EngineKind.WHISPER

    def __init__(self, accelerated: bool = True, fail_accelerated: bool = False) -> None:
        super().__init__()
        self.accelerated = accelerated
        self.fail_accelerated = fail_accelerated
        self.loads: list[tuple[Path, bool]] = []

    def _accelerated_available(self) -> bool:
        return self.accelerated

    def _load(self, model_dir: Path, accelerated: bool):
        self.loads.append((model_dir, accelerated))
        if accelerated and self.fail_accelerated:
            raise RuntimeError("CUDA out of memory")
        return f"handle:{model_dir.name}:{'gpu' if accelerated else 'cpu'}"

    def _run(self, model, audio: np.ndarray, options: TranscriptionOptions) -> str:
        return f" {model} "


def test_mock_engine_transcribe_loads_and_strips():
    engine = MockSTTEngine()
    result = engine.transcribe("m1", Path("/models/m1"), np.zeros(16000, dtype=np.float32),
                               TranscriptionOptions())
    assert result == "handle:m1:gpu"
    assert engine.loaded_model_id == "m1"


def test_load_is_idempotent_for_same_id():
    engine = MockSTTEngine()
    engine.load_model("m1", Path("/models/m1"))
    engine.load_model("m1", Path("/models/m1"))
    assert len(engine.loads) == 1


def test_loading_other_model_replaces_cached_one():
    engine = MockSTTEngine()
    engine.load_model("m1", Path("/models/m1"))
    engine.load_model("m2", Path("/models/m2"))
    assert engine.loaded_model_id == "m2"
    assert [d.name for d, _ in engine.loads] == ["m1", "m2"]


def test_accelerated_failure_falls_back_to_cpu():
    """The first failure is logged and retried on CPU; the caller never sees it."""
    engine = MockSTTEngine(fail_accelerated=True)
    result = engine.transcribe("m1", Path("/models/m1"), np.zeros(10, dtype=np.float32),
                               TranscriptionOptions())
    assert result == "handle:m1:cpu"
    assert [acc for _, acc in engine.loads] == [True, False]


def test_no_acceleration_goes_straight_to_cpu():
    engine = MockSTTEngine(accelerated=False)
    engine.load_model("m1", Path("/models/m1"))
    assert [acc for _, acc in engine.loads] == [False]


def test_cpu_failure_surfaces_as_model_error():
    engine = MockSTTEngine(accelerated=False)
    engine._load = MagicMock(side_effect=RuntimeError("corrupt model"))
    with pytest.raises(ModelError, match="corrupt model"):
        engine.load_model("m1", Path("/models/m1"))
    assert engine.loaded_model_id is None


def test_unload_only_matching_id():
    engine = MockSTTEngine()
    engine.load_model("m1", Path("/models/m1"))
    assert engine.unload("other") is False
    assert engine.loaded_model_id == "m1"
    assert engine.unload("m1") is True
    assert engine.loaded_model_id is None


def test_factory_creates_engine_per_kind():
    from audioshift.stt.faster_whisper_engine import FasterWhisperEngine
    from audioshift.stt.parakeet_engine import ParakeetEngine

    config = AppConfig()
    assert isinstance(create_stt_engine(EngineKind.WHISPER, config), FasterWhisperEngine)
    assert isinstance(create_stt_engine(EngineKind.PARAKEET, config), ParakeetEngine)


def test_factory_unknown_engine():
    with pytest.raises(ValueError, match="Unknown STT engine"):
        create_stt_engine("unknown", AppConfig())


@patch("audioshift.stt.faster_whisper_engine.WhisperModel")
def test_whisper_passes_language_and_translate(mock_whisper_model_cls):
    from audioshift.stt.faster_whisper_engine import FasterWhisperEngine

    mock_model = MagicMock()
    mock_info = MagicMock()
    mock_info.language = "de"
    mock_info.language_probability = 0.99
    mock_segment = MagicMock()
    mock_segment.text = " Hallo Welt "
    mock_model.transcribe.return_value = ([mock_segment], mock_info)
    mock_whisper_model_cls.return_value = mock_model

    engine = FasterWhisperEngine(WhisperConfig(beam_size=2))
    result = engine.transcribe(
        "whisper-small",
        Path("/models/whisper-small"),
        np.zeros(16000, dtype=np.float32),
        TranscriptionOptions(language="de", translate=True),
    )

    assert result == "Hallo Welt"
    call_kwargs = mock_model.transcribe.call_args[1]
    assert call_kwargs["language"] == "de"
    assert call_kwargs["task"] == "translate"
    assert call_kwargs["beam_size"] == 2
    mock_whisper_model_cls.assert_called_once()
    assert mock_whisper_model_cls.call_args[1]["device"] == "cuda"


@patch("audioshift.stt.faster_whisper_engine.WhisperModel")
def test_whisper_auto_language_and_cpu_fallback(mock_whisper_model_cls):
    from audioshift.stt.faster_whisper_engine import FasterWhisperEngine

    cpu_model = MagicMock()
    cpu_model.transcribe.return_value = ([], MagicMock(language="en", language_probability=0.5))
    mock_whisper_model_cls.side_effect = [RuntimeError("no CUDA"), cpu_model]

    engine = FasterWhisperEngine(WhisperConfig())
    result = engine.transcribe(
        "whisper-small",
        Path("/models/whisper-small"),
        np.zeros(16000, dtype=np.float32),
        TranscriptionOptions(),
    )

    assert result == ""
    devices = [c[1]["device"] for c in mock_whisper_model_cls.call_args_list]
    assert devices == ["cuda", "cpu"]
    assert mock_whisper_model_cls.call_args_list[1][1]["compute_type"] == "int8"
    call_kwargs = cpu_model.transcribe.call_args[1]
    assert call_kwargs["language"] is None
    assert call_kwargs["task"] == "transcribe"


@patch("audioshift.stt.parakeet_engine.ort")
@patch("audioshift.stt.parakeet_engine.onnx_asr")
def test_parakeet_single_slot_and_ignores_options(mock_onnx_asr, mock_ort):
    from audioshift.stt.parakeet_engine import ParakeetEngine

    mock_ort.get_available_providers.return_value = ["CPUExecutionProvider"]
    model = MagicMock()
    model.recognize.return_value = "hello world"
    mock_onnx_asr.load_model.return_value = model

    engine = ParakeetEngine(ParakeetConfig())
    audio = np.zeros(16000, dtype=np.float32)
    text = engine.transcribe("p1", Path("/models/p1"), audio,
                             TranscriptionOptions(language="fr", translate=True))
    engine.load_model("p2", Path("/models/p2"))

    assert text == "hello world"
    mock_onnx_asr.load_model.assert_called_once()
    assert mock_onnx_asr.load_model.call_args[1]["providers"] == ["CPUExecutionProvider"]
    model.recognize.assert_called_once_with(audio, sample_rate=16000)


@patch("audioshift.stt.parakeet_engine.ort")
@patch("audioshift.stt.parakeet_engine.onnx_asr")
def test_parakeet_accelerated_provider_falls_back(mock_onnx_asr, mock_ort):
    from audioshift.stt.parakeet_engine import ParakeetEngine

    mock_ort.get_available_providers.return_value = [
        "CUDAExecutionProvider", "CPUExecutionProvider",
    ]
    model = MagicMock()
    mock_onnx_asr.load_model.side_effect = [RuntimeError("CUDA init failed"), model]

    engine = ParakeetEngine(ParakeetConfig())
    engine.load_model("p1", Path("/models/p1"))

    providers = [c[1]["providers"] for c in mock_onnx_asr.load_model.call_args_list]
    assert providers == [
        ["CUDAExecutionProvider", "CPUExecutionProvider"],
        ["CPUExecutionProvider"],
    ]
    assert engine.loaded_model_id == "p1"
