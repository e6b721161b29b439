"""Unit tests for notelog.pipeline.records and notelog.pipeline.context."""
from __future__ import annotations

import json

from notelog.pipeline.context import FileRunContext
from notelog.pipeline.records import BatchReport, CandidateItem, ScriptAnnotation


def test_candidate_from_dict_current_keys():
    item = CandidateItem.from_dict({
        "target_text": "食べ物",
        "native_text": "food",
        "category_guess": "Noun",
        "character_form": "食べ物",
        "reading_form": "たべもの",
        "romanization": "tabemono",
        "script_annotations": [
            {"base_char": "食", "annotation": "た", "annotation_type": "reading"},
            {"base_char": "物", "annotation": "もの"},
        ],
        "date_context": "2024-05-01",
    })
    assert item.target_text == "食べ物"
    assert item.reading_form == "たべもの"
    assert item.date_context == "2024-05-01"
    assert item.script_annotations == [ScriptAnnotation("食", "た"), ScriptAnnotation("物", "もの")]


def test_candidate_from_dict_legacy_keys():
    item = CandidateItem.from_dict({
        "target_text": "山",
        "kanji_form": "山",
        "kana_form": "やま",
        "furigana_details": [{"char": "山", "reading": "やま"}],
    })
    assert item.character_form == "山"
    assert item.reading_form == "やま"
    assert item.annotations_as_json() == [
        {"base_char": "山", "annotation": "やま", "annotation_type": "reading"},
    ]


def test_candidate_from_dict_tolerates_junk():
    item = CandidateItem.from_dict({
        "target_text": 42,
        "native_text": ["not", "a", "string"],
        "script_annotations": [{"base_char": "", "annotation": "x"}, "nope", None],
    })
    assert item.target_text == "42"
    assert item.native_text is None
    assert item.script_annotations == []
    assert item.annotations_as_json() is None


def test_candidate_preview_is_truncated_json():
    item = CandidateItem(target_text="犬", notes="x" * 500)
    preview = item.preview(50)
    assert len(preview) == 50
    assert preview.startswith('{"target_text": "犬"')
    full = json.loads(item.preview(10_000))
    assert full["notes"] == "x" * 500


def test_file_run_context_counts_outcomes():
    ctx = FileRunContext(store=None, file_path="/n/a.md", file_name="a.md")
    for outcome in ("added", "added", "updated", "review", "unchanged", "failed"):
        ctx.record_outcome(outcome)
    result = ctx.to_result()
    assert (result.added, result.updated, result.reviewed) == (2, 1, 1)
    assert result.error is None
    assert ctx.item_outcomes[-1] == "failed"
    assert ctx.to_result(error="boom").error == "boom"


def test_batch_report_to_dict():
    report = BatchReport(success=True, message="ok", added=2, retried_files=["a.md"])
    data = report.to_dict()
    assert data["success"] is True
    assert data["added"] == 2
    assert data["retried_files"] == ["a.md"]
    assert data["skipped_files"] == []
