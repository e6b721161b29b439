"""
Batch orchestrator.

The single entry point that:
1. Runs the file processor over every file concurrently (capped by a semaphore).
2. Partitions outcomes into successes, rate-limited files and errors.
3. Waits one shared cool-down, then retries the rate-limited files exactly once.
4. Builds the :class:`BatchReport` handed back to the caller.

One file's failure never stops the others: tasks are gathered with
``return_exceptions=True`` and every outcome is folded into the report.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from notelog.exceptions import InvalidBatchRequest
from notelog.pipeline.config import PipelineConfig, load_pipeline_config
from notelog.pipeline.file_processor import process_single_file
from notelog.pipeline.locks import KeyedLocks
from notelog.pipeline.records import BatchReport, FileResult
from notelog.pipeline.store import get_language_store
from notelog.services.classifier import ClassifierClient
from notelog.services.credentials import default_credential_provider

logger = logging.getLogger(__name__)

PERSISTENT_RATE_LIMIT_MARKER = "persistent API rate limits after retry"


@dataclass
class _BatchTally:
    """Running totals across both passes."""

    added: int = 0
    updated: int = 0
    reviewed: int = 0
    succeeded: int = 0
    errors: list[str] = field(default_factory=list)
    retry_queue: list[str] = field(default_factory=list)
    retried_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)

    def add_counts(self, result: FileResult) -> None:
        self.added += result.added
        self.updated += result.updated
        self.reviewed += result.reviewed


async def _run_pass(
    file_paths: list[str],
    run_one: Callable[[str], Any],
    max_concurrent: int,
) -> list[FileResult | BaseException]:
    """Run one pass; results line up with *file_paths*. Exceptions are returned, not raised."""
    semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent > 0 else None

    async def _guarded(path: str) -> FileResult:
        if semaphore is None:
            return await run_one(path)
        async with semaphore:
            return await run_one(path)

    return await asyncio.gather(*(_guarded(p) for p in file_paths), return_exceptions=True)


async def process_note_files(
    language_name: str,
    file_paths: list[str],
    *,
    store=None,
    classifier: ClassifierClient | None = None,
    config: PipelineConfig | None = None,
    sleep: Callable[[float], Any] = asyncio.sleep,
) -> BatchReport:
    """Import a batch of note files into *language_name*'s log.

    Raises InvalidBatchRequest only for a call with no language or no files;
    every other failure is reported inside the returned BatchReport.
    """
    if not language_name or not language_name.strip():
        raise InvalidBatchRequest("A language name is required.")
    if not file_paths:
        raise InvalidBatchRequest("At least one file path is required.")

    cfg = config or load_pipeline_config()
    if store is None:
        store = get_language_store(language_name)
    if classifier is None:
        classifier = ClassifierClient(default_credential_provider(), config=cfg)
    locks = KeyedLocks() if cfg.serialize_target_text else None
    paths = [str(p) for p in file_paths]

    async def run_one(path: str) -> FileResult:
        return await process_single_file(
            path, store, classifier, language_name=language_name, locks=locks, config=cfg,
        )

    tally = _BatchTally()

    # --- Initial pass ---
    logger.info(
        "Starting initial pass for %s files (language %s, max concurrent %s).",
        len(paths), language_name, cfg.max_concurrent_files or "unbounded",
    )
    outcomes = await _run_pass(paths, run_one, cfg.max_concurrent_files)
    for path, outcome in zip(paths, outcomes):
        _fold_initial(tally, path, outcome)
    logger.info(
        "Initial pass complete. Attempted: %s. Queued for rate limit retry: %s. Processed so far: %s.",
        len(paths), len(tally.retry_queue), tally.succeeded,
    )

    # --- Retry pass (once) ---
    if tally.retry_queue:
        delay = cfg.batch_retry_delay_seconds
        logger.info("Waiting %ss before retrying %s rate-limited files...", delay, len(tally.retry_queue))
        await sleep(delay)

        queue = list(tally.retry_queue)
        logger.info("Starting retry pass for %s rate-limited files.", len(queue))
        outcomes = await _run_pass(queue, run_one, cfg.max_concurrent_files)
        for path, outcome in zip(queue, outcomes):
            _fold_retry(tally, path, outcome)
        logger.info(
            "Retry pass complete. Succeeded after retry: %s. Ultimately skipped: %s.",
            len(tally.retried_files), len(tally.skipped_files),
        )

    report = _build_report(language_name, len(paths), tally)
    logger.info("Final batch result: %s", report.message)
    return report


def _fold_initial(tally: _BatchTally, path: str, outcome: FileResult | BaseException) -> None:
    file_name = Path(path).name
    if isinstance(outcome, BaseException):
        msg = f"Catastrophic failure processing {file_name} in initial pass (task raised): {outcome}"
        logger.error(msg, exc_info=outcome)
        tally.errors.append(msg)
        return
    tally.add_counts(outcome)
    if outcome.skipped_due_to_rate_limit:
        logger.warning("%s hit rate limit on initial pass. Queuing for retry.", outcome.file_name)
        tally.retry_queue.append(path)
    elif outcome.error:
        logger.error("Error processing %s in initial pass: %s", outcome.file_name, outcome.error)
        tally.errors.append(outcome.error)
    else:
        tally.succeeded += 1


def _fold_retry(tally: _BatchTally, path: str, outcome: FileResult | BaseException) -> None:
    file_name = Path(path).name
    if isinstance(outcome, BaseException):
        msg = f"Catastrophic failure processing {file_name} in retry pass (task raised): {outcome}"
        logger.error(msg, exc_info=outcome)
        tally.errors.append(msg)
        tally.skipped_files.append(file_name)
        return
    tally.add_counts(outcome)
    if outcome.skipped_due_to_rate_limit:
        logger.warning("%s STILL rate-limited after retry pass.", outcome.file_name)
        tally.skipped_files.append(outcome.file_name)
        tally.errors.append(f"File {outcome.file_name} failed due to {PERSISTENT_RATE_LIMIT_MARKER}.")
    elif outcome.error:
        logger.error("Error processing %s in retry pass: %s", outcome.file_name, outcome.error)
        tally.errors.append(outcome.error)
    else:
        tally.retried_files.append(outcome.file_name)
        tally.succeeded += 1


def _build_report(language_name: str, attempted: int, tally: _BatchTally) -> BatchReport:
    message = (
        f"Batch processing complete for {language_name}. "
        f"Attempted: {attempted} files. Files processed without fatal errors: {tally.succeeded}. "
        f"Total entries added: {tally.added}. Total entries updated/merged: {tally.updated}. "
        f"Total items for review: {tally.reviewed}."
    )
    if tally.retried_files:
        message += (
            f" Of these, {len(tally.retried_files)} files were successfully processed after an "
            f"initial rate limit: ({', '.join(tally.retried_files)})."
        )
    if tally.skipped_files:
        message += (
            " Files ultimately skipped or failed due to persistent API rate limits after all retries: "
            f"{len(tally.skipped_files)} ({', '.join(tally.skipped_files)})."
        )
    other_errors = [e for e in tally.errors if PERSISTENT_RATE_LIMIT_MARKER not in e]
    if other_errors:
        message += (
            f" Other errors encountered for {len(other_errors)} files (see logs for details). "
            f"First error: {other_errors[0]}"
        )

    return BatchReport(
        success=not tally.errors and not tally.skipped_files,
        message=message,
        added=tally.added,
        updated=tally.updated,
        reviewed=tally.reviewed,
        rate_limit_skips=len(tally.skipped_files),
        files_attempted=attempted,
        files_succeeded=tally.succeeded,
        errors=list(tally.errors),
        retried_files=list(tally.retried_files),
        skipped_files=list(tally.skipped_files),
    )


# ---------------------------------------------------------------------------
# Fire-and-forget handle (interactive "cancel" only stops listening)
# ---------------------------------------------------------------------------

class BatchHandle:
    """A running batch whose listener can detach without cancelling the work.

    ``stop_listening()`` suppresses the completion callback; the task still runs
    to completion and its store writes still happen. ``wait()`` returns the report
    regardless.
    """

    def __init__(self, task: asyncio.Task, on_done: Callable[[BatchReport], Any] | None = None):
        self._task = task
        self._on_done = on_done
        self._listening = True
        task.add_done_callback(self._deliver)

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def done(self) -> bool:
        return self._task.done()

    def stop_listening(self) -> None:
        self._listening = False
        logger.info("Batch listener detached; import continues in the background.")

    async def wait(self) -> BatchReport:
        return await asyncio.shield(self._task)

    def _deliver(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Batch task failed: %s", exc, exc_info=exc)
            return
        if self._listening and self._on_done is not None:
            try:
                self._on_done(task.result())
            except Exception as cb_exc:
                logger.error("Batch completion callback failed: %s", cb_exc, exc_info=True)


def start_batch(
    language_name: str,
    file_paths: list[str],
    *,
    on_done: Callable[[BatchReport], Any] | None = None,
    **kwargs,
) -> BatchHandle:
    """Launch process_note_files as a background task (must be called inside a running loop).

    Argument validation happens up front so an invalid call fails before any work starts.
    """
    if not language_name or not language_name.strip():
        raise InvalidBatchRequest("A language name is required.")
    if not file_paths:
        raise InvalidBatchRequest("At least one file path is required.")
    task = asyncio.create_task(process_note_files(language_name, file_paths, **kwargs))
    return BatchHandle(task, on_done)
