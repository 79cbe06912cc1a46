"""Exception hierarchy for the audio-to-text pipeline."""

from __future__ import annotations


class AudioShiftError(Exception):
    """Base class for all pipeline errors."""


class DeviceError(AudioShiftError):
    """No usable input device, or the requested one could not be opened."""


class DecodeError(AudioShiftError):
    """A media file could not be decoded into samples."""


class UnsupportedMediaError(AudioShiftError):
    """The file extension is not a recognized media type."""


class DownloadError(AudioShiftError):
    """A model file could not be fetched."""


class ModelError(AudioShiftError):
    """Unknown model id, missing model files or a failed model load."""


class SessionError(AudioShiftError):
    """An operation was called in a state that does not allow it."""


class NoAudioError(SessionError):
    """Recording stopped without capturing any samples."""


class ConcurrencyError(AudioShiftError):
    """A single-flight operation was requested while one is in progress."""


class AlreadyRecordingError(ConcurrencyError):
    pass


class BusyError(ConcurrencyError):
    pass


class AlreadyProcessingError(ConcurrencyError):
    pass
