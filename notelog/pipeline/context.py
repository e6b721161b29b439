"""
File run context.

Run-scoped state for one note file: the store it writes to, the provenance row it
hangs review items off, and the running added/updated/reviewed counters.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from notelog.pipeline.locks import KeyedLocks
from notelog.pipeline.records import FileResult

logger = logging.getLogger(__name__)


@dataclass
class FileRunContext:
    """Holds run-scoped state for one file's processing pass."""

    store: Any  # LanguageStore or anything with the same coroutine methods
    file_path: str
    file_name: str
    language_name: str = ""
    source_note_id: int | None = None
    locks: KeyedLocks | None = None
    review_snippet_chars: int = 1000

    added: int = 0
    updated: int = 0
    reviewed: int = 0
    item_outcomes: list[str] = field(default_factory=list)

    def record_outcome(self, outcome: str) -> None:
        """Bump the counter that matches a reconciliation outcome."""
        if outcome == "added":
            self.added += 1
        elif outcome == "updated":
            self.updated += 1
        elif outcome == "review":
            self.reviewed += 1
        self.item_outcomes.append(outcome)

    def to_result(self, *, error: str | None = None) -> FileResult:
        return FileResult(
            file_name=self.file_name,
            file_path=self.file_path,
            added=self.added,
            updated=self.updated,
            reviewed=self.reviewed,
            error=error,
        )
