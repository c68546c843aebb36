"""Tests for the retry and timeout policy applied at the HTTP edge."""

import asyncio

import pytest

from memory_merge.config import Settings
from memory_merge.errors import EmbeddingError, InvalidRequest, StoreUnavailable
from memory_merge.web.edge import is_retryable, run_with_edge_policy


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        retry_attempts=3,
        retry_backoff_min=0.0,
        retry_backoff_max=0.0,
        request_timeout=1.0,
    )


def _failing(times, error):
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) <= times:
            raise error
        return "ok"

    return operation, calls


def test_is_retryable():
    assert is_retryable(EmbeddingError("down")) is True
    assert is_retryable(StoreUnavailable("down")) is True
    assert is_retryable(InvalidRequest("bad")) is False
    assert is_retryable(RuntimeError("bug")) is False


@pytest.mark.asyncio
async def test_success_first_try(settings):
    operation, calls = _failing(0, EmbeddingError("down"))

    assert await run_with_edge_policy(operation, settings) == "ok"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_transient_errors_retried(settings):
    operation, calls = _failing(2, StoreUnavailable("down"))

    assert await run_with_edge_policy(operation, settings) == "ok"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_gives_up_after_retry_attempts(settings):
    operation, calls = _failing(10, EmbeddingError("down"))

    with pytest.raises(EmbeddingError):
        await run_with_edge_policy(operation, settings)

    assert len(calls) == 4


@pytest.mark.asyncio
async def test_invalid_request_not_retried(settings):
    operation, calls = _failing(10, InvalidRequest("bad"))

    with pytest.raises(InvalidRequest):
        await run_with_edge_policy(operation, settings)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_timeout_bounds_whole_call():
    settings = Settings(_env_file=None, request_timeout=0.05)

    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(asyncio.TimeoutError):
        await run_with_edge_policy(slow, settings)
