"""Decoding, downmixing and resampling into 16kHz mono float32.

File decoding favors quality (polyphase resampling); live capture frames go
through a cheap linear interpolation so the audio callback never stalls.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from math import gcd
from pathlib import Path

import ffmpeg
import numpy as np
import soundfile as sf
from scipy.signal import resample_poly

from audioshift.errors import DecodeError

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 16000

MEDIA_EXTENSIONS = frozenset({
    "mp3", "m4a", "ogg", "wav", "flac", "aac", "wma", "opus",
    "mp4", "m4v", "mkv", "webm", "mov",
})

_BLOCK_FRAMES = 65536


@dataclass
class DecodedAudio:
    samples: np.ndarray
    source_rate: int
    duration_secs: float


def is_media_file(path: str | Path) -> bool:
    return Path(path).suffix.lower().lstrip(".") in MEDIA_EXTENSIONS


def downmix(data: np.ndarray, channels: int) -> np.ndarray:
    """Average interleaved (or frames x channels) samples down to mono."""
    data = np.asarray(data, dtype=np.float32)
    if channels <= 1:
        return data.reshape(-1)
    frames = data.reshape(-1, channels)
    return frames.mean(axis=1, dtype=np.float32)


def resample(samples: np.ndarray, from_rate: int, to_rate: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """High-quality polyphase resampling with a fixed rational ratio."""
    samples = np.asarray(samples, dtype=np.float32)
    if from_rate == to_rate or len(samples) == 0:
        return samples
    divisor = gcd(from_rate, to_rate)
    out = resample_poly(samples, to_rate // divisor, from_rate // divisor)
    return out.astype(np.float32, copy=False)


class FrameConverter:
    """Streaming downmix and linear resampling for live capture frames.

    The read position and the last input sample carry over between frames,
    so output length tracks ``total_input * target / source`` without a
    phase reset at each block boundary.
    """

    def __init__(
        self, channels: int, source_rate: int, target_rate: int = TARGET_SAMPLE_RATE
    ) -> None:
        self.channels = channels
        self.source_rate = source_rate
        self.target_rate = target_rate
        self._step = source_rate / target_rate
        self._pos = 0.0
        self._last: np.ndarray | None = None

    def convert(self, raw: np.ndarray) -> np.ndarray:
        mono = downmix(raw, self.channels)
        if self.source_rate == self.target_rate or len(mono) == 0:
            return mono

        if self._last is None:
            x = mono
        else:
            x = np.concatenate((self._last, mono))
        end = len(x) - 1
        if self._pos > end:
            count = 0
        else:
            count = int((end - self._pos) // self._step) + 1

        positions = self._pos + self._step * np.arange(count, dtype=np.float64)
        out = np.interp(positions, np.arange(len(x)), x).astype(np.float32)

        # x[-1] becomes index 0 of the next frame.
        self._pos = self._pos + count * self._step - end
        self._last = x[-1:].copy()
        return out


def decode_file(path: str | Path) -> DecodedAudio:
    """Decode any supported media file to 16kHz mono float32 samples.

    ``duration_secs`` is measured at the source rate, before resampling.
    """
    path = Path(path)
    if not path.exists():
        raise DecodeError(f"Cannot open {path}: file not found")

    try:
        samples, rate = _decode_soundfile(path)
    except sf.LibsndfileError as e:
        logger.debug("libsndfile cannot open %s (%s), trying ffmpeg", path.name, e)
        samples, rate = _decode_ffmpeg(path)

    duration = len(samples) / rate if rate > 0 else 0.0
    mono_16k = resample(samples, rate, TARGET_SAMPLE_RATE)
    logger.info(
        "Decoded %s: %.1fs at %dHz -> %d samples", path.name, duration, rate, len(mono_16k)
    )
    return DecodedAudio(samples=mono_16k, source_rate=rate, duration_secs=duration)


def _decode_soundfile(path: Path) -> tuple[np.ndarray, int]:
    """Block-wise read; a corrupt tail ends the decode instead of failing it."""
    chunks: list[np.ndarray] = []
    with sf.SoundFile(str(path)) as f:
        rate = f.samplerate
        channels = f.channels
        try:
            for block in f.blocks(blocksize=_BLOCK_FRAMES, dtype="float32", always_2d=True):
                chunks.append(downmix(block, channels))
        except sf.LibsndfileError as e:
            if not chunks:
                raise DecodeError(f"Unreadable audio in {path.name}: {e}") from e
            logger.warning("Stopped decoding %s at unreadable block: %s", path.name, e)

    if not chunks:
        return np.empty(0, dtype=np.float32), rate
    return np.concatenate(chunks), rate


def _probe_audio_stream(path: Path) -> tuple[int, int]:
    try:
        info = ffmpeg.probe(str(path))
    except ffmpeg.Error as e:
        stderr = e.stderr.decode(errors="replace") if e.stderr else str(e)
        raise DecodeError(f"Unsupported audio format: {stderr.strip()}") from e

    for stream in info.get("streams", []):
        if stream.get("codec_type") == "audio":
            rate = int(stream.get("sample_rate") or 0)
            channels = int(stream.get("channels") or 1)
            if rate <= 0:
                raise DecodeError(f"Unknown sample rate in {path.name}")
            return rate, channels
    raise DecodeError(f"No audio track found in {path.name}")


def _decode_ffmpeg(path: Path) -> tuple[np.ndarray, int]:
    if shutil.which("ffmpeg") is None:
        raise DecodeError(f"Unsupported audio format: {path.suffix} (ffmpeg not installed)")

    rate, channels = _probe_audio_stream(path)
    try:
        out, _ = (
            ffmpeg.input(str(path))
            .output("pipe:", format="f32le", acodec="pcm_f32le", ac=channels, ar=rate)
            .run(capture_stdout=True, capture_stderr=True, quiet=True)
        )
    except ffmpeg.Error as e:
        out = e.stdout or b""
        if not out:
            stderr = e.stderr.decode(errors="replace") if e.stderr else str(e)
            raise DecodeError(f"Audio decoding failed: {stderr.strip()}") from e
        logger.warning("ffmpeg stopped early on %s, keeping %d bytes", path.name, len(out))

    frame_bytes = 4 * channels
    usable = len(out) - len(out) % frame_bytes
    raw = np.frombuffer(out[:usable], dtype=np.float32)
    return downmix(raw, channels), rate
