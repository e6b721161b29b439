import asyncio
import logging
import zipfile
from pathlib import Path

from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError

from notelog.exceptions import ExtractionError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".txt", ".md", ".docx")


def is_empty_text(text: str | None) -> bool:
    """Empty or whitespace-only extraction result (not an error; callers short-circuit on it)."""
    return not text or not text.strip()


def _read_docx(path: Path) -> str:
    try:
        doc = DocxDocument(str(path))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ExtractionError(str(path), f"not a readable Word document ({e})") from e
    return "\n".join(paragraph.text for paragraph in doc.paragraphs)


def _read_plain(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ExtractionError(str(path), f"file is not valid UTF-8 text ({e})") from e


def extract_text_sync(file_path: str) -> str:
    """
    Read a note file into raw text.
    .docx -> paragraph text joined by newlines; anything else is read as UTF-8.
    Raises ExtractionError for missing/unreadable files and undecodable content.
    """
    path = Path(file_path)
    if not path.is_file():
        raise ExtractionError(file_path, "file does not exist or is not a regular file")
    try:
        if path.suffix.lower() == ".docx":
            text = _read_docx(path)
            logger.info("Extracted text from DOCX %s (%s KB)", path.name, round(len(text) / 1024))
        else:
            text = _read_plain(path)
            logger.info("Read text from file %s (%s KB)", path.name, round(len(text) / 1024))
    except OSError as e:
        raise ExtractionError(file_path, str(e)) from e
    return text


async def extract_text(file_path: str) -> str:
    """Async wrapper: file IO and docx parsing run off the event loop."""
    return await asyncio.to_thread(extract_text_sync, file_path)
