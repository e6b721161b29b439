"""
Plain records passed between pipeline stages.

``CandidateItem`` is what the classifier extracted for one note entry; it only
lives for one file's pass. ``FileResult`` and ``BatchReport`` are the per-file and
per-batch outcomes handed back to the caller.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any


def _opt_str(value: Any) -> str | None:
    """Coerce a JSON scalar to str; None/empty containers become None."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def has_text(value: str | None) -> bool:
    return bool(value and value.strip())


@dataclass
class ScriptAnnotation:
    """Per-character annotation, e.g. a furigana reading over one kanji."""

    base_char: str
    annotation: str
    annotation_type: str = "reading"

    @classmethod
    def from_dict(cls, data: dict) -> ScriptAnnotation | None:
        if not isinstance(data, dict):
            return None
        base = _opt_str(data.get("base_char", data.get("char")))
        text = _opt_str(data.get("annotation", data.get("reading")))
        if not has_text(base) or not has_text(text):
            return None
        kind = _opt_str(data.get("annotation_type")) or "reading"
        return cls(base_char=base, annotation=text, annotation_type=kind)

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class CandidateItem:
    """One item extracted by the classifier from a note file."""

    target_text: str | None = None
    native_text: str | None = None
    category_guess: str | None = None
    notes: str | None = None
    example_sentence: str | None = None
    character_form: str | None = None
    reading_form: str | None = None
    romanization: str | None = None
    writing_system_note: str | None = None
    script_annotations: list[ScriptAnnotation] = field(default_factory=list)
    original_snippet: str | None = None
    date_context: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> CandidateItem:
        """Build from classifier JSON. Accepts the older kanji_form/kana_form/furigana_details keys."""
        raw_annotations = data.get("script_annotations")
        if raw_annotations is None:
            raw_annotations = data.get("furigana_details")
        annotations: list[ScriptAnnotation] = []
        if isinstance(raw_annotations, list):
            for raw in raw_annotations:
                ann = ScriptAnnotation.from_dict(raw)
                if ann is not None:
                    annotations.append(ann)
        return cls(
            target_text=_opt_str(data.get("target_text")),
            native_text=_opt_str(data.get("native_text")),
            category_guess=_opt_str(data.get("category_guess")),
            notes=_opt_str(data.get("notes")),
            example_sentence=_opt_str(data.get("example_sentence")),
            character_form=_opt_str(data.get("character_form", data.get("kanji_form"))),
            reading_form=_opt_str(data.get("reading_form", data.get("kana_form"))),
            romanization=_opt_str(data.get("romanization")),
            writing_system_note=_opt_str(data.get("writing_system_note")),
            script_annotations=annotations,
            original_snippet=_opt_str(data.get("original_snippet")),
            date_context=_opt_str(data.get("date_context")),
        )

    def annotations_as_json(self) -> list[dict[str, str]] | None:
        if not self.script_annotations:
            return None
        return [a.to_dict() for a in self.script_annotations]

    def preview(self, limit: int = 400) -> str:
        """Truncated JSON dump, used as a review-item snippet when nothing better exists."""
        data = asdict(self)
        return json.dumps(data, ensure_ascii=False, default=str)[:limit]


@dataclass
class FileResult:
    """Outcome of processing one note file."""

    file_name: str
    file_path: str = ""
    added: int = 0
    updated: int = 0
    reviewed: int = 0
    error: str | None = None
    skipped_due_to_rate_limit: bool = False


@dataclass
class BatchReport:
    """Aggregated outcome of one import batch."""

    success: bool
    message: str
    added: int = 0
    updated: int = 0
    reviewed: int = 0
    rate_limit_skips: int = 0
    files_attempted: int = 0
    files_succeeded: int = 0
    errors: list[str] = field(default_factory=list)
    retried_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
