"""
Item reconciler: decide the fate of one extracted candidate.

For each candidate the reconciler either inserts a new log entry, merges the
candidate's new information into the existing entry with the same target text,
or parks it in the review queue (invalid target text, potential homonym, store
failure). Called sequentially per item by the file processor, so later items in a
file see the writes of earlier ones.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from notelog.exceptions import StoreError
from notelog.pipeline.context import FileRunContext
from notelog.pipeline.errors import record_review_item
from notelog.pipeline.records import CandidateItem, has_text

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Other"

INVALID_TARGET_SUGGESTION = (
    "Item from AI response has invalid target_text (missing or empty after fallbacks)."
)

# (log entry column, candidate attribute) pairs merged with "fill only if empty"
_FILL_IF_EMPTY = (
    ("native_text", "native_text"),
    ("category", "category_guess"),
    ("example_sentence", "example_sentence"),
    ("character_form", "character_form"),
    ("reading_form", "reading_form"),
    ("romanization", "romanization"),
    ("writing_system_note", "writing_system_note"),
)


class ReconcileOutcome(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    REVIEW = "review"
    FAILED = "failed"  # a review item was due but could not be written


def resolve_target_text(item: CandidateItem) -> str:
    """target_text, else character_form, else reading_form, else romanization."""
    for candidate in (item.target_text, item.character_form, item.reading_form, item.romanization):
        if has_text(candidate):
            return candidate.strip()
    return ""


def is_potential_homonym(existing_native: str | None, candidate_native: str | None) -> bool:
    """Both native texts present and different, ignoring case and outer whitespace."""
    if not has_text(existing_native) or not has_text(candidate_native):
        return False
    return existing_native.strip().lower() != candidate_native.strip().lower()


def build_merge_updates(existing: Any, item: CandidateItem) -> dict[str, Any]:
    """Field updates that bring *existing* up to date with *item* without losing data.

    * Plain fields are filled only where the existing value is empty.
    * Notes are replaced when the candidate's notes are longer.
    * Script annotations are one atomic field: filled when empty, replaced when the
      candidate offers a different set that is at least as long. A candidate
      without annotations never clears existing ones.
    """
    updates: dict[str, Any] = {}
    for column, attr in _FILL_IF_EMPTY:
        new_value = getattr(item, attr)
        if not has_text(getattr(existing, column, None)) and has_text(new_value):
            updates[column] = new_value

    current_notes = getattr(existing, "notes", None) or ""
    if has_text(item.notes) and len(item.notes) > len(current_notes):
        updates["notes"] = item.notes

    new_annotations = item.annotations_as_json()
    current_annotations = getattr(existing, "script_annotations", None) or []
    if new_annotations:
        if not current_annotations:
            updates["script_annotations"] = new_annotations
        elif new_annotations != current_annotations and len(new_annotations) >= len(current_annotations):
            updates["script_annotations"] = new_annotations
    return updates


def build_entry_fields(item: CandidateItem, target_text: str) -> dict[str, Any]:
    return {
        "target_text": target_text,
        "native_text": item.native_text,
        "category": item.category_guess if has_text(item.category_guess) else DEFAULT_CATEGORY,
        "notes": item.notes,
        "example_sentence": item.example_sentence,
        "character_form": item.character_form,
        "reading_form": item.reading_form,
        "romanization": item.romanization,
        "writing_system_note": item.writing_system_note,
        "script_annotations": item.annotations_as_json(),
    }


def _review(written: bool) -> ReconcileOutcome:
    return ReconcileOutcome.REVIEW if written else ReconcileOutcome.FAILED


# ---------------------------------------------------------------------------
# Entry point (called by the file processor)
# ---------------------------------------------------------------------------

async def reconcile_item(ctx: FileRunContext, item: CandidateItem) -> ReconcileOutcome:
    """Validate, then insert / merge / park one candidate. Never raises."""
    target = resolve_target_text(item)
    if not target:
        logger.warning(
            "[%s] Item has no usable target_text after fallbacks: %s",
            ctx.file_name, item.preview(200),
        )
        written = await record_review_item(
            ctx,
            "parsing_assist",
            INVALID_TARGET_SUGGESTION,
            snippet=item.original_snippet or f"Raw item data: {item.preview(400)}",
            item=item,
        )
        return _review(written)

    try:
        if ctx.locks is not None:
            async with ctx.locks.hold(target):
                return await _reconcile_resolved(ctx, item, target)
        return await _reconcile_resolved(ctx, item, target)
    except Exception as exc:
        logger.error(
            "[%s] Database error while reconciling %r: %s", ctx.file_name, target, exc, exc_info=True,
        )
        written = await record_review_item(
            ctx,
            "parsing_assist",
            f"DB operation error: {exc}",
            snippet=item.original_snippet or f"Error processing item. Raw: {item.preview(350)}",
            target_text=target,
        )
        return _review(written)


async def _reconcile_resolved(ctx: FileRunContext, item: CandidateItem, target: str) -> ReconcileOutcome:
    existing = await ctx.store.find_by_target_text(target)
    if existing is None:
        return await _insert_new(ctx, item, target)

    if is_potential_homonym(existing.native_text, item.native_text):
        logger.warning(
            "[%s] Potential homonym for %r (existing id %s): %r vs %r",
            ctx.file_name, target, existing.id, existing.native_text, item.native_text,
        )
        suggestion = (
            f'Potential homonym: Existing entry (ID: {existing.id}) for "{target}" has native text: '
            f'"{existing.native_text}". AI proposed a different native text: "{item.native_text}". '
            "Please review."
        )
        written = await record_review_item(
            ctx,
            "duplicate",
            suggestion,
            snippet=item.original_snippet or target[:500],
            item=item,
            target_text=target,
            related_log_entry_id=existing.id,
        )
        return _review(written)

    updates = build_merge_updates(existing, item)
    if not updates:
        logger.info(
            "[%s] Duplicate %r (id %s) adds no new information; skipping.",
            ctx.file_name, target, existing.id,
        )
        return ReconcileOutcome.UNCHANGED

    changed = await ctx.store.update(existing.id, updates)
    if not changed:
        logger.warning("[%s] Merge into id %s changed no rows (entry gone?)", ctx.file_name, existing.id)
        return ReconcileOutcome.UNCHANGED
    logger.info(
        "[%s] Merged into existing entry %s (%r): %s",
        ctx.file_name, existing.id, target, sorted(updates),
    )
    return ReconcileOutcome.UPDATED


async def _insert_new(ctx: FileRunContext, item: CandidateItem, target: str) -> ReconcileOutcome:
    try:
        entry_id = await ctx.store.insert(build_entry_fields(item, target))
    except StoreError as exc:
        logger.error("[%s] Could not add entry %r: %s", ctx.file_name, target, exc)
        written = await record_review_item(
            ctx,
            "parsing_assist",
            f"Failed to add entry: {exc}. AI data: cat='{item.category_guess}', "
            f"charForm='{item.character_form}'",
            snippet=item.original_snippet or target[:500],
            item=item,
            target_text=target,
        )
        return _review(written)
    logger.debug("[%s] Added entry %s (%r)", ctx.file_name, entry_id, target)
    return ReconcileOutcome.ADDED
