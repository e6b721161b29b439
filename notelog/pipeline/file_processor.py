"""
File processor: one note file end-to-end.

extract -> record provenance -> classify -> reconcile each item in order.

Ordinary failures (unreadable file, classifier errors, store errors on single
items) become counts, review items or an ``error`` string on the returned
:class:`FileResult`. Nothing propagates to the orchestrator except a truly
unexpected exception, and even that is caught at this boundary.
"""
from __future__ import annotations

import logging
from pathlib import Path

from notelog.pipeline.config import PipelineConfig
from notelog.pipeline.context import FileRunContext
from notelog.pipeline.errors import record_review_item
from notelog.pipeline.locks import KeyedLocks
from notelog.pipeline.reconciler import reconcile_item
from notelog.pipeline.records import FileResult
from notelog.services.classifier import AnalysisResult, ClassifierClient, ClassifierErrorCode
from notelog.services.extract_text import extract_text, is_empty_text

logger = logging.getLogger(__name__)


async def process_single_file(
    file_path: str,
    store,
    classifier: ClassifierClient,
    *,
    language_name: str = "",
    locks: KeyedLocks | None = None,
    config: PipelineConfig | None = None,
) -> FileResult:
    """Process one file. Returns a FileResult; never raises for ordinary failures."""
    cfg = config or PipelineConfig()
    file_name = Path(file_path).name
    language = language_name or getattr(store, "language_name", "")
    ctx = FileRunContext(
        store=store,
        file_path=file_path,
        file_name=file_name,
        language_name=language,
        locks=locks,
        review_snippet_chars=cfg.review_snippet_chars,
    )
    logger.info("--- Starting %s for language %s ---", file_name, language)

    raw_text = ""
    try:
        # --- Stage 1: Extract ---
        raw_text = await extract_text(file_path)
        if is_empty_text(raw_text):
            logger.warning("[%s] File is empty.", file_name)
            return ctx.to_result(error=f"{file_name} is empty.")

        # --- Stage 2: Provenance (best-effort) ---
        try:
            ctx.source_note_id = await store.add_source_note({
                "source_file": file_path,
                "original_snippet": raw_text[: cfg.source_preview_chars],
            })
        except Exception as exc:
            logger.error("[%s] Failed to record source note: %s", file_name, exc, exc_info=True)

        # --- Stage 3: Classify ---
        logger.info("[%s] Analyzing content (%s KB)...", file_name, round(len(raw_text) / 1024))
        analysis = await classifier.analyze_note_content(raw_text)

        # --- Stage 4: Branch on outcome ---
        if analysis.error is ClassifierErrorCode.RATE_LIMIT_EXCEEDED:
            logger.warning(
                "[%s] Deferred to batch retry due to API rate limit: %s", file_name, analysis.error_details,
            )
            return FileResult(
                file_name=file_name, file_path=file_path, skipped_due_to_rate_limit=True,
            )

        if analysis.error is not None:
            await _park_classifier_failure(ctx, analysis, raw_text)
        elif not analysis.items:
            logger.warning("[%s] AI analysis returned no items.", file_name)
            written = await record_review_item(
                ctx,
                "parsing_assist",
                "AI returned no items. Check content or if the AI prompt needs adjustment.",
                snippet=raw_text,
            )
            if written:
                ctx.reviewed += 1
        else:
            logger.info("[%s] AI analysis returned %s items.", file_name, len(analysis.items))
            for item in analysis.items:
                outcome = await reconcile_item(ctx, item)
                ctx.record_outcome(outcome.value)

        logger.info(
            "--- Finished %s for %s (Added: %s, Updated: %s, Reviewed: %s) ---",
            file_name, language, ctx.added, ctx.updated, ctx.reviewed,
        )
        return ctx.to_result()

    except Exception as exc:
        error_msg = f"Catastrophic failure processing {file_name} for {language}: {exc}"
        logger.error(error_msg, exc_info=True)
        written = await record_review_item(
            ctx,
            "parsing_assist",
            f"File processing error: {exc}",
            snippet=raw_text[: cfg.review_snippet_chars] or file_path,
        )
        if written:
            ctx.reviewed += 1
        return ctx.to_result(error=error_msg)


async def _park_classifier_failure(ctx: FileRunContext, analysis: AnalysisResult, raw_text: str) -> None:
    """Non-retryable classifier failure: log it and leave one review item describing it."""
    logger.error(
        "[%s] AI analysis error (non-retryable): %s. Details: %s",
        ctx.file_name, analysis.error.value, analysis.error_details,
    )
    written = await record_review_item(
        ctx,
        "parsing_assist",
        f"AI analysis failed ({analysis.error.value}): {analysis.error_details}",
        snippet=raw_text,
    )
    if written:
        ctx.reviewed += 1
