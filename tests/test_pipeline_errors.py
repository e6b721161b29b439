"""Unit tests for notelog.pipeline.errors.record_review_item."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from notelog.exceptions import StoreError
from notelog.pipeline.context import FileRunContext
from notelog.pipeline.errors import record_review_item
from notelog.pipeline.records import CandidateItem


def _make_ctx(**kw) -> FileRunContext:
    store = AsyncMock()
    store.add_review_item.return_value = 11
    return FileRunContext(
        store=store, file_path="/notes/a.md", file_name="a.md", source_note_id=3, **kw,
    )


@pytest.mark.asyncio
async def test_review_item_carries_provenance_and_candidate_fields():
    ctx = _make_ctx()
    item = CandidateItem(
        target_text="犬", native_text="dog", category_guess="Noun",
        character_form="犬", reading_form="いぬ", romanization="inu",
    )
    written = await record_review_item(
        ctx, "duplicate", "check this", snippet="- 犬 - dog", item=item, related_log_entry_id=9,
    )
    assert written is True
    fields = ctx.store.add_review_item.call_args[0][0]
    assert fields["review_type"] == "duplicate"
    assert fields["source_note_processed_id"] == 3
    assert fields["related_log_entry_id"] == 9
    assert fields["ai_extracted_reading_form"] == "いぬ"
    assert fields["ai_extracted_romanization"] == "inu"
    assert fields["target_text"] == "犬"


@pytest.mark.asyncio
async def test_review_snippet_is_truncated():
    ctx = _make_ctx(review_snippet_chars=10)
    await record_review_item(ctx, "parsing_assist", "too long", snippet="abcdefghijklmnop")
    fields = ctx.store.add_review_item.call_args[0][0]
    assert fields["original_snippet"] == "abcdefghij"


@pytest.mark.asyncio
async def test_target_text_override_without_item():
    ctx = _make_ctx()
    await record_review_item(ctx, "parsing_assist", "db error", target_text="水")
    fields = ctx.store.add_review_item.call_args[0][0]
    assert fields["target_text"] == "水"
    assert fields["original_snippet"] is None


@pytest.mark.asyncio
async def test_store_failure_is_swallowed():
    ctx = _make_ctx()
    ctx.store.add_review_item.side_effect = StoreError("disk full")
    assert await record_review_item(ctx, "parsing_assist", "x") is False
