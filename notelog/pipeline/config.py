"""
Import pipeline configuration.

Single source of truth for batch-level and classifier-level tunables.
Loaded once at startup; tests construct ``PipelineConfig`` directly.
"""
from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable pipeline configuration."""

    # --- Batch orchestration ---
    max_concurrent_files: int = 4  # 0 = no cap (every file launched at once)
    batch_retry_delay_seconds: float = 60.0
    serialize_target_text: bool = True

    # --- Classifier retry budget ---
    classifier_max_retries: int = 3
    classifier_rate_limit_delay_seconds: float = 30.0
    classifier_initial_backoff_seconds: float = 2.0
    classifier_max_backoff_seconds: float = 60.0

    # --- Provenance / review snippets ---
    source_preview_chars: int = 10000
    review_snippet_chars: int = 1000

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - [NOTELOG] - %(levelname)s - %(message)s"


def load_pipeline_config() -> PipelineConfig:
    """Build PipelineConfig from environment variables (with defaults)."""
    def _float(key: str, default: float) -> float:
        raw = os.getenv(key)
        if raw is None:
            return default
        try:
            return float(raw)
        except (TypeError, ValueError):
            return default

    def _int(key: str, default: int) -> int:
        raw = os.getenv(key)
        if raw is None:
            return default
        try:
            return int(raw)
        except (TypeError, ValueError):
            return default

    def _bool(key: str, default: bool) -> bool:
        raw = os.getenv(key)
        if raw is None:
            return default
        return raw.strip().lower() in ("1", "true", "yes")

    return PipelineConfig(
        max_concurrent_files=max(0, _int("NOTELOG_MAX_CONCURRENT_FILES", 4)),
        batch_retry_delay_seconds=_float("NOTELOG_BATCH_RETRY_DELAY", 60.0),
        serialize_target_text=_bool("NOTELOG_SERIALIZE_TARGET_TEXT", True),
        classifier_max_retries=max(0, _int("NOTELOG_CLASSIFIER_MAX_RETRIES", 3)),
        classifier_rate_limit_delay_seconds=_float("NOTELOG_RATE_LIMIT_DELAY", 30.0),
        classifier_initial_backoff_seconds=_float("NOTELOG_INITIAL_BACKOFF", 2.0),
        classifier_max_backoff_seconds=_float("NOTELOG_MAX_BACKOFF", 60.0),
        source_preview_chars=_int("NOTELOG_SNIPPET_PREVIEW_CHARS", 10000),
        review_snippet_chars=_int("NOTELOG_REVIEW_SNIPPET_CHARS", 1000),
        log_level=os.getenv("NOTELOG_LOG_LEVEL", "INFO"),
        log_format=os.getenv(
            "NOTELOG_LOG_FORMAT",
            "%(asctime)s - [NOTELOG] - %(levelname)s - %(message)s",
        ),
    )
