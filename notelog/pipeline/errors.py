"""
Review-queue helpers.

Centralises the "build review item -> persist -> log" pattern so the reconciler
and the file processor park problems the same way. Failing to write the review
item itself is logged and swallowed; the caller decides whether to count it.
"""
from __future__ import annotations

import logging
from typing import Any

from notelog.pipeline.context import FileRunContext
from notelog.pipeline.records import CandidateItem

logger = logging.getLogger(__name__)


def candidate_review_fields(item: CandidateItem, target_text: str | None = None) -> dict[str, Any]:
    """Copy a candidate's fields into review-item column names."""
    return {
        "target_text": target_text if target_text is not None else item.target_text,
        "native_text": item.native_text,
        "category_guess": item.category_guess,
        "ai_extracted_character_form": item.character_form,
        "ai_extracted_reading_form": item.reading_form,
        "ai_extracted_romanization": item.romanization,
        "ai_extracted_writing_system_note": item.writing_system_note,
    }


async def record_review_item(
    ctx: FileRunContext,
    review_type: str,
    suggestion: str,
    *,
    snippet: str | None = None,
    item: CandidateItem | None = None,
    target_text: str | None = None,
    related_log_entry_id: int | None = None,
) -> bool:
    """Persist one review item for this file. Returns True if it was written."""
    fields: dict[str, Any] = {
        "review_type": review_type,
        "ai_suggestion": suggestion,
        "original_snippet": (snippet or "")[: ctx.review_snippet_chars] or None,
        "source_note_processed_id": ctx.source_note_id,
        "related_log_entry_id": related_log_entry_id,
    }
    if item is not None:
        fields.update(candidate_review_fields(item, target_text))
    elif target_text is not None:
        fields["target_text"] = target_text

    try:
        review_id = await ctx.store.add_review_item(fields)
    except Exception as exc:
        logger.error(
            "[%s] Failed to add %s review item (%s): %s",
            ctx.file_name, review_type, suggestion[:80], exc, exc_info=True,
        )
        return False
    logger.info("[%s] Review item %s (%s): %s", ctx.file_name, review_id, review_type, suggestion[:120])
    return True
