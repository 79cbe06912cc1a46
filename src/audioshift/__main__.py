"""Entry point for AudioShift: python -m audioshift"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from audioshift.app import AudioShiftApp
from audioshift.config import load_config
from audioshift.errors import AudioShiftError
from audioshift.events import (
    FILE_TRANSCRIPTION_STATUS,
    MODEL_DOWNLOAD_PROGRESS,
    DownloadProgress,
    FileTranscriptionStatus,
)

logger = logging.getLogger("audioshift")


def _setup_logging(log_path: Path) -> None:
    """Configure logging. Use file output when stderr is unavailable (pythonw.exe)."""
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    date_format = "%H:%M:%S"

    handlers: list[logging.Handler] = []

    if sys.stderr is not None:
        handlers.append(logging.StreamHandler())

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=logging.INFO,
        format=log_format,
        datefmt=date_format,
        handlers=handlers,
    )


def _print_download_progress(p: DownloadProgress) -> None:
    print(f"\r[{p.model_id}] {p.file}: {p.overall_progress}%", end="", flush=True)
    if p.file == "complete":
        print()


def _print_file_status(s: FileTranscriptionStatus) -> None:
    if s.status == "transcribing":
        print(f"\r{s.file_name}: {s.progress}% ({s.elapsed_secs}s / ~{s.estimated_secs}s)",
              end="", flush=True)
    elif s.status in ("completed", "error"):
        print()


def _cmd_models(app: AudioShiftApp, args: argparse.Namespace) -> int:
    for m in app.models_status():
        mark = "*" if m.ready else " "
        print(f"{mark} {m.id:<28} {m.engine.value:<9} {m.size_label:>8}  {m.name}")
    return 0


def _cmd_download(app: AudioShiftApp, args: argparse.Namespace) -> int:
    app.events.subscribe(MODEL_DOWNLOAD_PROGRESS, _print_download_progress)
    app.downloader.ensure(args.model_id)
    return 0


def _cmd_delete(app: AudioShiftApp, args: argparse.Namespace) -> int:
    app.delete_model(args.model_id)
    return 0


def _cmd_devices(app: AudioShiftApp, args: argparse.Namespace) -> int:
    for name in app.list_input_devices():
        print(name)
    return 0


def _cmd_transcribe(app: AudioShiftApp, args: argparse.Namespace) -> int:
    if args.model:
        app.set_file_model(args.model)
    app.events.subscribe(MODEL_DOWNLOAD_PROGRESS, _print_download_progress)
    app.events.subscribe(FILE_TRANSCRIPTION_STATUS, _print_file_status)
    status = app.transcribe_file(args.path)
    if status.status == "error":
        print(f"Error: {status.error}", file=sys.stderr)
        return 1
    print(status.result_text or "")
    print(f"Saved to {status.output_path}", file=sys.stderr)
    return 0


def _cmd_record(app: AudioShiftApp, args: argparse.Namespace) -> int:
    if args.model:
        app.set_live_model(args.model)
    else:
        app.start()
    app.events.subscribe(MODEL_DOWNLOAD_PROGRESS, _print_download_progress)
    app.start_recording(args.device)
    try:
        input("Recording... press Enter to stop (Ctrl+C to cancel) ")
    except KeyboardInterrupt:
        app.cancel_recording()
        print("\nCancelled", file=sys.stderr)
        return 1
    print(app.stop_recording())
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="audioshift", description="Speech-to-text pipeline")
    parser.add_argument("-c", "--config", type=Path, default=Path("config.yaml"))
    parser.add_argument("--language", help="language code, or 'auto'")
    parser.add_argument("--translate", action="store_true", help="translate to English")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("models", help="list models").set_defaults(func=_cmd_models)
    sub.add_parser("devices", help="list input devices").set_defaults(func=_cmd_devices)

    p = sub.add_parser("download", help="download a model")
    p.add_argument("model_id")
    p.set_defaults(func=_cmd_download)

    p = sub.add_parser("delete", help="delete a downloaded model")
    p.add_argument("model_id")
    p.set_defaults(func=_cmd_delete)

    p = sub.add_parser("transcribe", help="transcribe a media file")
    p.add_argument("path")
    p.add_argument("--model")
    p.set_defaults(func=_cmd_transcribe)

    p = sub.add_parser("record", help="record from the microphone and transcribe")
    p.add_argument("--device")
    p.add_argument("--model")
    p.set_defaults(func=_cmd_record)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    config = load_config(args.config)
    _setup_logging(config.paths.data_dir / "audioshift.log")

    if args.language:
        config.transcription.language = args.language
    if args.translate:
        config.transcription.translate = True

    app = AudioShiftApp(config)
    try:
        return args.func(app, args)
    except (AudioShiftError, FileNotFoundError) as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        app.stop()


if __name__ == "__main__":
    sys.exit(main())
