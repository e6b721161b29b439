"""Pytest fixtures for notelog tests."""
from __future__ import annotations

import pytest

from fakes import FakeStore
from notelog.pipeline.config import PipelineConfig


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fast_config() -> PipelineConfig:
    """No real sleeping, unbounded concurrency."""
    return PipelineConfig(
        max_concurrent_files=0,
        batch_retry_delay_seconds=0.0,
        classifier_rate_limit_delay_seconds=0.0,
        classifier_initial_backoff_seconds=0.0,
    )


@pytest.fixture
def write_note(tmp_path):
    def _write(name: str, content: str) -> str:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return str(path)
    return _write
