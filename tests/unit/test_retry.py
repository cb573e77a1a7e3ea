"""Tests for retrying transient model failures."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from quill.config.schema import ModelConfig
from quill.core.errors import (
    AuthenticationError,
    ModelNotFoundError,
    OverloadedError,
    RateLimitError,
    TransportError,
    TransportTimeoutError,
)
from quill.core.retry import RetryConfig, is_retryable, retry_with_backoff


@pytest.fixture
def no_sleep():
    with patch.object(asyncio, "sleep", new_callable=AsyncMock) as sleep:
        yield sleep


# ─── RetryConfig ──────────────────────────────────────────────


class TestRetryConfig:
    def test_defaults(self):
        cfg = RetryConfig()
        assert (cfg.max_retries, cfg.base_delay, cfg.max_delay) == (2, 1.0, 30.0)
        assert cfg.jitter is True

    def test_frozen(self):
        with pytest.raises(AttributeError):
            RetryConfig().max_retries = 5  # type: ignore[misc]

    def test_from_model_config(self):
        model = ModelConfig(max_retries=0, retry_base_delay=0.5, retry_max_delay=4)
        cfg = RetryConfig.from_model_config(model)
        assert cfg == RetryConfig(max_retries=0, base_delay=0.5, max_delay=4.0)


class TestDelay:
    def test_doubles_each_attempt(self):
        cfg = RetryConfig(base_delay=0.5, jitter=False)
        err = TransportTimeoutError("gemini", "timeout")
        assert [cfg.delay_for(n, err) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_capped(self):
        cfg = RetryConfig(base_delay=10.0, max_delay=15.0, jitter=False)
        assert cfg.delay_for(3, OverloadedError("gemini", "busy")) == 15.0

    def test_retry_after_hint_wins(self):
        cfg = RetryConfig(max_delay=10.0)
        assert cfg.delay_for(2, RateLimitError("gemini", retry_after=3.0)) == 3.0
        assert cfg.delay_for(0, RateLimitError("gemini", retry_after=99.0)) == 10.0

    def test_jitter_scales_delay(self):
        cfg = RetryConfig(base_delay=10.0)
        err = TransportTimeoutError("gemini", "timeout")
        with patch("quill.core.retry.random.uniform", return_value=0.8):
            assert cfg.delay_for(0, err) == pytest.approx(8.0)


# ─── is_retryable ─────────────────────────────────────────────


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (RateLimitError("gemini"), True),
        (TransportTimeoutError("gemini", "timeout"), True),
        (OverloadedError("gemini", "busy"), True),
        (AuthenticationError("gemini", "bad key"), False),
        (ModelNotFoundError("gemini", "nope"), False),
        (TransportError("gemini", "bad request"), False),
        (ValueError("oops"), False),
    ],
)
def test_is_retryable(error: Exception, expected: bool):
    assert is_retryable(error) is expected


# ─── retry_with_backoff ───────────────────────────────────────


class TestRetryWithBackoff:
    async def test_first_try(self):
        fn = AsyncMock(return_value="ok")
        assert await retry_with_backoff(fn) == "ok"
        assert fn.await_count == 1

    async def test_recovers_from_transient_error(self, no_sleep: AsyncMock):
        fn = AsyncMock(side_effect=[OverloadedError("gemini", "busy"), "ok"])
        assert await retry_with_backoff(fn) == "ok"
        assert fn.await_count == 2
        assert no_sleep.await_count == 1

    async def test_permanent_error_not_retried(self, no_sleep: AsyncMock):
        fn = AsyncMock(side_effect=AuthenticationError("gemini", "bad key"))
        with pytest.raises(AuthenticationError):
            await retry_with_backoff(fn)
        assert fn.await_count == 1
        no_sleep.assert_not_awaited()

    async def test_gives_up_after_max_retries(self, no_sleep: AsyncMock):
        err = RateLimitError("gemini")
        fn = AsyncMock(side_effect=err)
        with pytest.raises(RateLimitError) as excinfo:
            await retry_with_backoff(fn, RetryConfig(max_retries=2, jitter=False))
        assert excinfo.value is err
        assert fn.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]

    async def test_zero_retries(self, no_sleep: AsyncMock):
        fn = AsyncMock(side_effect=OverloadedError("gemini", "busy"))
        with pytest.raises(OverloadedError):
            await retry_with_backoff(fn, RetryConfig(max_retries=0))
        assert fn.await_count == 1

    async def test_on_retry_callback(self, no_sleep: AsyncMock):
        err = TransportTimeoutError("gemini", "t")
        fn = AsyncMock(side_effect=[err, err, "ok"])
        callback = MagicMock()
        await retry_with_backoff(
            fn, RetryConfig(max_retries=3, jitter=False), on_retry=callback
        )
        assert callback.call_args_list == [((1, 1.0, err),), ((2, 2.0, err),)]
