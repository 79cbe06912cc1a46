"""Tests for model download: progress, single-flight guard and resumption."""

import threading
from pathlib import Path

import pytest
import requests

from audioshift.catalog import EngineKind, ModelCatalog, ModelDefinition, ModelFile
from audioshift.config import DownloadConfig
from audioshift.context import PipelineContext
from audioshift.download import ModelDownloader
from audioshift.errors import DownloadError, ModelError
from audioshift.events import MODEL_DOWNLOAD_PROGRESS, EventEmitter

BASE = "https://example.com/repo/resolve/main"

TEST_MODEL = ModelDefinition(
    id="tiny",
    name="Tiny",
    engine=EngineKind.PARAKEET,
    description="test",
    # Deliberately undershoots the real 3000 bytes.
    approx_bytes=2000,
    files=(
        ModelFile(f"{BASE}/encoder.int8.onnx", "encoder.onnx"),
        ModelFile(f"{BASE}/vocab.txt"),
        ModelFile(f"{BASE}/config.json"),
    ),
)


class FakeResponse:
    def __init__(self, body: bytes, status: int = 200, fail_after: int | None = None):
        self._body = body
        self.status_code = status
        self.headers = {"content-length": str(len(body))}
        self._fail_after = fail_after

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def iter_content(self, chunk_size):
        for i in range(0, len(self._body), 100):
            if self._fail_after is not None and i >= self._fail_after:
                raise requests.ConnectionError("connection reset")
            yield self._body[i:i + 100]


class FakeSession:
    def __init__(self, responses: dict):
        self.responses = responses
        self.calls: list[str] = []

    def get(self, url, stream=False, timeout=None):
        self.calls.append(url)
        response = self.responses[url]
        if callable(response):
            return response()
        return response


def _make(tmp_path: Path, responses: dict):
    catalog = ModelCatalog(tmp_path, models=(TEST_MODEL,))
    context = PipelineContext()
    events = EventEmitter()
    progress = []
    events.subscribe(MODEL_DOWNLOAD_PROGRESS, progress.append)
    session = FakeSession(responses)
    downloader = ModelDownloader(catalog, context, events, DownloadConfig(), session=session)
    return downloader, catalog, context, session, progress


def _ok_responses():
    return {
        f"{BASE}/encoder.int8.onnx": lambda: FakeResponse(b"e" * 1000),
        f"{BASE}/vocab.txt": lambda: FakeResponse(b"v" * 1000),
        f"{BASE}/config.json": lambda: FakeResponse(b"c" * 1000),
    }


def test_ensure_downloads_and_renames(tmp_path: Path):
    downloader, catalog, context, session, progress = _make(tmp_path, _ok_responses())

    downloader.ensure("tiny")

    directory = catalog.model_dir("tiny")
    assert catalog.is_ready("tiny")
    assert (directory / "encoder.onnx").stat().st_size == 1000
    assert not (directory / "encoder.int8.onnx").exists()
    assert not list(directory.glob("*.part"))
    assert context.download.active is False
    assert len(session.calls) == 3


def test_progress_is_monotonic_and_completes_last(tmp_path: Path):
    downloader, catalog, _, _, progress = _make(tmp_path, _ok_responses())

    downloader.ensure("tiny")

    assert progress[0].file == "starting"
    assert progress[-1].file == "complete"
    assert progress[-1].overall_progress == 100
    assert progress[-1].overall_downloaded == 3000

    middle = [p.overall_progress for p in progress[1:-1]]
    assert middle == sorted(middle)
    # The size estimate undershoots, so progress saturates at 99 until the end.
    assert max(middle) == 99
    # Only changes of the rounded percentage are reported.
    assert len(middle) == len(set(middle))


def test_ready_model_skips_network(tmp_path: Path):
    downloader, catalog, _, session, progress = _make(tmp_path, _ok_responses())
    directory = catalog.model_dir("tiny")
    directory.mkdir(parents=True)
    for name in ("encoder.onnx", "vocab.txt", "config.json"):
        (directory / name).write_bytes(b"x")

    downloader.ensure("tiny")

    assert session.calls == []
    assert progress == []


def test_second_ensure_while_downloading_is_noop(tmp_path: Path):
    """A concurrent ensure() returns success without issuing any request."""
    started = threading.Event()
    release = threading.Event()

    def slow_response():
        started.set()
        release.wait(5)
        return FakeResponse(b"e" * 1000)

    responses = _ok_responses()
    responses[f"{BASE}/encoder.int8.onnx"] = slow_response
    downloader, catalog, context, session, _ = _make(tmp_path, responses)

    worker = threading.Thread(target=downloader.ensure, args=("tiny",))
    worker.start()
    assert started.wait(5)

    assert downloader.is_downloading() is True
    downloader.ensure("tiny")
    assert session.calls == [f"{BASE}/encoder.int8.onnx"]

    release.set()
    worker.join(5)
    assert catalog.is_ready("tiny")
    assert len(session.calls) == 3
    assert downloader.is_downloading() is False


def test_failure_releases_guard_and_keeps_completed_files(tmp_path: Path):
    responses = _ok_responses()
    responses[f"{BASE}/vocab.txt"] = lambda: FakeResponse(b"v" * 1000, fail_after=500)
    downloader, catalog, context, session, progress = _make(tmp_path, responses)

    with pytest.raises(DownloadError, match="vocab.txt"):
        downloader.ensure("tiny")

    directory = catalog.model_dir("tiny")
    assert context.download.active is False
    assert (directory / "encoder.onnx").exists()
    assert not (directory / "vocab.txt").exists()
    assert not catalog.is_ready("tiny")
    assert all(p.file != "complete" for p in progress)

    # Retry only fetches what is missing.
    session.responses = _ok_responses()
    session.calls.clear()
    downloader.ensure("tiny")
    assert session.calls == [f"{BASE}/vocab.txt", f"{BASE}/config.json"]
    assert catalog.is_ready("tiny")


def test_http_error_aborts(tmp_path: Path):
    responses = _ok_responses()
    responses[f"{BASE}/encoder.int8.onnx"] = lambda: FakeResponse(b"", status=404)
    downloader, _, context, session, _ = _make(tmp_path, responses)

    with pytest.raises(DownloadError):
        downloader.ensure("tiny")
    assert session.calls == [f"{BASE}/encoder.int8.onnx"]
    assert context.download.active is False


def test_rename_skipped_when_target_exists(tmp_path: Path):
    downloader, catalog, _, _, _ = _make(tmp_path, _ok_responses())
    directory = catalog.model_dir("tiny")
    directory.mkdir(parents=True)
    (directory / "encoder.int8.onnx").write_bytes(b"old")
    (directory / "encoder.onnx").write_bytes(b"keep")

    downloader.ensure("tiny")

    assert (directory / "encoder.onnx").read_bytes() == b"keep"
    assert catalog.is_ready("tiny")


def test_unknown_model(tmp_path: Path):
    downloader, *_ = _make(tmp_path, {})
    with pytest.raises(ModelError, match="Unknown model"):
        downloader.ensure("nope")


def test_delete_removes_directory(tmp_path: Path):
    downloader, catalog, *_ = _make(tmp_path, _ok_responses())
    downloader.ensure("tiny")

    downloader.delete("tiny")

    assert not catalog.model_dir("tiny").exists()
    assert catalog.disk_size("tiny") == 0
