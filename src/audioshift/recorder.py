"""Audio capture using sounddevice."""

from __future__ import annotations

import logging
import threading
import time

import numpy as np
import sounddevice as sd

from audioshift.audio import TARGET_SAMPLE_RATE, FrameConverter
from audioshift.config import AudioConfig
from audioshift.errors import DeviceError
from audioshift.events import AUDIO_AMPLITUDE, MONITOR_AMPLITUDE, EventEmitter

logger = logging.getLogger(__name__)


def list_input_devices() -> list[str]:
    try:
        devices = sd.query_devices()
    except sd.PortAudioError:
        logger.exception("Could not enumerate audio devices")
        return []
    return [d["name"] for d in devices if d["max_input_channels"] > 0]


def resolve_input_device(name: str | None) -> int:
    """Index of the input device called *name*, else the system default."""
    if name and name != "default":
        for index, device in enumerate(sd.query_devices()):
            if device["name"] == name and device["max_input_channels"] > 0:
                return index
        logger.warning("Input device %r not found, using system default", name)

    default = sd.default.device[0]
    if default is None or default < 0:
        raise DeviceError("No input device available")
    return int(default)


class SampleBuffer:
    """Lock-protected accumulator of 16kHz mono samples."""

    def __init__(self) -> None:
        self._chunks: list[np.ndarray] = []
        self._count = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return self._count

    def append(self, samples: np.ndarray) -> None:
        with self._lock:
            self._chunks.append(samples)
            self._count += len(samples)

    def clear(self) -> None:
        with self._lock:
            self._chunks = []
            self._count = 0

    def drain(self) -> np.ndarray:
        """Take every buffered sample and leave the buffer empty."""
        with self._lock:
            chunks = self._chunks
            self._chunks = []
            self._count = 0
        if not chunks:
            return np.array([], dtype=np.float32)
        return np.concatenate(chunks)


class _Throttle:
    def __init__(self, interval_sec: float) -> None:
        self._interval = interval_sec
        self._last: float | None = None

    def ready(self) -> bool:
        now = time.monotonic()
        if self._last is not None and now - self._last < self._interval:
            return False
        self._last = now
        return True


def _open_input_stream(device: int, callback) -> tuple[sd.InputStream, int, int]:
    """Open 16kHz mono if the device supports it, else its native format."""
    try:
        sd.check_input_settings(
            device=device, channels=1, samplerate=TARGET_SAMPLE_RATE, dtype="float32"
        )
        rate, channels = TARGET_SAMPLE_RATE, 1
    except sd.PortAudioError:
        info = sd.query_devices(device, "input")
        rate = int(info["default_samplerate"])
        channels = max(1, min(2, int(info["max_input_channels"])))
        logger.info("Device %d cannot capture 16kHz mono, using %dHz x%d", device, rate, channels)

    stream = sd.InputStream(
        device=device,
        samplerate=rate,
        channels=channels,
        dtype="float32",
        callback=callback,
        latency="low",
    )
    return stream, rate, channels


class AudioRecorder:
    """Records normalized samples from the microphone, one stream at a time.

    The realtime callback only downmixes, linearly resamples and appends to
    the buffer; amplitude is reported at most once per configured interval.
    """

    def __init__(self, config: AudioConfig, events: EventEmitter) -> None:
        self._config = config
        self._events = events
        self._buffer = SampleBuffer()
        self._stream: sd.InputStream | None = None
        self._converter = FrameConverter(1, TARGET_SAMPLE_RATE)
        self._max_samples = TARGET_SAMPLE_RATE * config.max_duration_sec
        self._throttle = _Throttle(config.amplitude_interval_ms / 1000)
        self._lock = threading.Lock()

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    def start(self, device_name: str | None = None) -> None:
        """Open the capture stream on *device_name* (or the default) and start buffering."""
        with self._lock:
            if self._stream is not None:
                raise DeviceError("A capture stream is already active")
            device = resolve_input_device(device_name)
            self._buffer.clear()
            try:
                stream, rate, channels = _open_input_stream(device, self._audio_callback)
                self._converter = FrameConverter(channels, rate)
                stream.start()
            except sd.PortAudioError as e:
                raise DeviceError(f"Failed to open input device: {e}") from e
            self._stream = stream
        logger.info("Recording started (device=%d, max=%ds)", device, self._config.max_duration_sec)

    def stop(self) -> np.ndarray:
        """Stop capturing and return the buffered audio."""
        self._close_stream()
        audio = self._buffer.drain()
        if len(audio) == 0:
            logger.warning("No audio frames recorded")
        else:
            duration = len(audio) / TARGET_SAMPLE_RATE
            logger.info("Recording stopped: %.1fs, %d samples", duration, len(audio))
        return audio

    def cancel(self) -> None:
        self._close_stream()
        self._buffer.clear()
        logger.info("Recording cancelled")

    def _close_stream(self) -> None:
        with self._lock:
            stream = self._stream
            self._stream = None
        if stream is not None:
            try:
                stream.abort()
                stream.close()
            except sd.PortAudioError:
                logger.exception("Error closing audio stream")

    def _audio_callback(
        self,
        indata: np.ndarray,
        frames: int,
        time_info: object,
        status: sd.CallbackFlags,
    ) -> None:
        if status:
            logger.warning("Audio callback status: %s", status)
        if len(self._buffer) >= self._max_samples:
            return
        samples = self._converter.convert(indata)
        self._buffer.append(samples)

        if len(samples) and self._throttle.ready():
            amplitude = float(np.abs(samples).mean())
            self._events.emit(AUDIO_AMPLITUDE, amplitude)


class LevelMonitor:
    """Input level preview: a stream that only reports amplitude."""

    def __init__(self, config: AudioConfig, events: EventEmitter) -> None:
        self._events = events
        self._stream: sd.InputStream | None = None
        self._throttle = _Throttle(config.amplitude_interval_ms / 1000)
        self._lock = threading.Lock()

    def start(self, device_name: str | None = None) -> None:
        self.stop()
        device = resolve_input_device(device_name)
        try:
            stream, _, _ = _open_input_stream(device, self._callback)
            stream.start()
        except sd.PortAudioError as e:
            raise DeviceError(f"Failed to open input device: {e}") from e
        with self._lock:
            self._stream = stream

    def stop(self) -> None:
        with self._lock:
            stream = self._stream
            self._stream = None
        if stream is not None:
            try:
                stream.abort()
                stream.close()
            except sd.PortAudioError:
                logger.exception("Error closing monitor stream")

    def _callback(self, indata, frames, time_info, status) -> None:
        if len(indata) and self._throttle.ready():
            self._events.emit(MONITOR_AMPLITUDE, float(np.abs(indata).mean()))
