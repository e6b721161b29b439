"""
Note import entry-point.

Thin shell: main() -> run() -> orchestrator.process_note_files().
All business logic lives in ``notelog.pipeline.{orchestrator, file_processor, reconciler}``.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from notelog.exceptions import InvalidBatchRequest
from notelog.pipeline.config import PipelineConfig, load_pipeline_config
from notelog.pipeline.orchestrator import process_note_files
from notelog.pipeline.records import BatchReport
from notelog.pipeline.store import dispose_all_stores
from notelog.services.extract_text import SUPPORTED_EXTENSIONS

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="notelog-import",
        description="Extract vocabulary from note files and merge it into a language log.",
    )
    parser.add_argument("--language", "-l", required=True, help="Language log to import into (e.g. Japanese)")
    parser.add_argument("files", nargs="+", help=f"Note files ({', '.join(SUPPORTED_EXTENSIONS)})")
    parser.add_argument("--log-level", default=None, help="Override NOTELOG_LOG_LEVEL")
    parser.add_argument(
        "--all-extensions",
        action="store_true",
        help="Do not skip files with unsupported extensions",
    )
    return parser.parse_args(argv)


def _select_files(paths: list[str], allow_all: bool) -> list[str]:
    selected = []
    for raw in paths:
        path = Path(raw).expanduser().resolve()
        if not allow_all and path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            logger.warning("Skipping %s: unsupported extension %r", path.name, path.suffix)
            continue
        selected.append(str(path))
    return selected


async def run(language: str, files: list[str], cfg: PipelineConfig) -> BatchReport:
    try:
        return await process_note_files(language, files, config=cfg)
    finally:
        await dispose_all_stores()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    cfg = load_pipeline_config()
    logging.basicConfig(
        level=(args.log_level or cfg.log_level).upper(),
        format=cfg.log_format,
    )

    files = _select_files(args.files, args.all_extensions)
    try:
        report = asyncio.run(run(args.language, files, cfg))
    except InvalidBatchRequest as exc:
        logger.error("Invalid import request: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 2

    print(report.message)
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
