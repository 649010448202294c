#!/usr/bin/env python3
"""Flipbook Studio command line.

Usage:
    python run_flipbook.py build scans.zip cover.heic --title "Summer 2026"   # process + publish
    python run_flipbook.py build report.pdf --ocr                             # with text extraction
    python run_flipbook.py show <slug>                                        # print album metadata
    python run_flipbook.py serve --port 8000                                  # run the web app
"""
import argparse
import logging
import mimetypes
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from models.events import ProcessingStatus
from models.upload import UploadedFile
from pipeline import stage5_publish
from pipeline.studio import Studio
from settings import Settings
from utils.imaging import from_data_url
from utils.storage import select_store

logger = logging.getLogger("run_flipbook")


def _log_status(status: ProcessingStatus) -> None:
    if status.tone == "error":
        logger.error("%s — %s", status.label, status.sublabel or "")
    elif status.tone == "warning":
        logger.warning("%s — %s", status.label, status.sublabel or "")
    else:
        logger.info("%s%s", status.label, f" — {status.sublabel}" if status.sublabel else "")


def _load_files(paths: list[Path]) -> list[UploadedFile]:
    files: list[UploadedFile] = []
    for path in paths:
        if not path.is_file():
            logger.warning("Not a file, skipping: %s", path)
            continue
        content_type = mimetypes.guess_type(path.name)[0] or ""
        files.append(UploadedFile(name=path.name, content_type=content_type, data=path.read_bytes()))
    return files


def build(settings: Settings, paths: list[Path], title: str, include_ocr: bool) -> int:
    store = select_store(settings)
    studio = Studio(settings, store, include_ocr=include_ocr, on_status=_log_status)
    studio.process(_load_files(paths))
    if studio.state == "error" or not studio.sequence.pages:
        return 1

    result = studio.publish(title)

    settings.qr_dir.mkdir(parents=True, exist_ok=True)
    qr_path = settings.qr_dir / f"{result.slug}.png"
    qr_path.write_bytes(from_data_url(result.qr_png))

    logger.info("=== Published → %s ===", result.share_url)
    logger.info("  QR code: %s", qr_path)
    return 0


def show(settings: Settings, slug: str) -> int:
    record = stage5_publish.read(select_store(settings), slug)
    if record is None:
        logger.error("Album not found: %s", slug)
        return 1
    print(record.metadata().model_dump_json(indent=2))
    return 0


def serve(settings: Settings, host: str, port: int) -> int:
    import uvicorn  # only needed for the server

    from web.app import create_app

    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Build and share digital flipbooks.")
    sub = parser.add_subparsers(dest="command", required=True)

    build_parser = sub.add_parser("build", help="Process files and publish an album")
    build_parser.add_argument("files", nargs="+", type=Path)
    build_parser.add_argument("--title", default="", help="Album title (default: Untitled Album)")
    build_parser.add_argument("--ocr", action="store_true", dest="include_ocr",
                              help="Run text recognition on every page")

    show_parser = sub.add_parser("show", help="Print the metadata of a published album")
    show_parser.add_argument("slug")

    serve_parser = sub.add_parser("serve", help="Run the web application")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()
    settings = Settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.command == "build":
        code = build(settings, args.files, args.title, args.include_ocr)
    elif args.command == "show":
        code = show(settings, args.slug)
    else:
        code = serve(settings, args.host, args.port)
    sys.exit(code)


if __name__ == "__main__":
    main()
