# tests/unit/installer/test_unit_retry.py - v1
"""Tests for installer/retry.py - classification and backoff."""

from __future__ import annotations

import httpx
import pytest

from flashinstall.installer.retry import (
    RetryConfig,
    RetryExhausted,
    _compute_delay,
    classify_error,
    with_retry,
)

FAST = {"server_error": RetryConfig(max_retries=2, base_delay_s=0.0, jitter=False)}


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://registry.test/x")
    return httpx.HTTPStatusError("err", request=request, response=httpx.Response(status, request=request))


class TestClassifyError:
    @pytest.mark.parametrize("status,expected", [
        (429, "rate_limit"), (500, "server_error"), (503, "server_error"), (404, "client_error"),
    ])
    def test_status(self, status, expected):
        assert classify_error(_status_error(status)) == expected

    def test_transport(self):
        assert classify_error(httpx.ReadTimeout("slow")) == "timeout"
        assert classify_error(httpx.ConnectError("refused")) == "connection"
        assert classify_error(ValueError("x")) == "unknown"


class TestComputeDelay:
    def test_exponential(self):
        config = RetryConfig(max_retries=3, base_delay_s=1.0, jitter=False)
        assert [_compute_delay(config, a) for a in range(3)] == [1.0, 2.0, 4.0]

    def test_jitter_bounds(self):
        config = RetryConfig(max_retries=3, base_delay_s=1.0)
        assert all(0.5 <= _compute_delay(config, 0) <= 1.5 for _ in range(20))


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_recovers(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise _status_error(503)
            return "ok"

        assert await with_retry(flaky, retry_configs=FAST) == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_exhausted(self):
        async def down():
            raise _status_error(500)

        with pytest.raises(RetryExhausted) as exc_info:
            await with_retry(down, target="left-pad@1.3.0", retry_configs=FAST)
        assert exc_info.value.attempts == 3
        assert exc_info.value.error_type == "server_error"

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        attempts = []

        async def missing():
            attempts.append(1)
            raise _status_error(404)

        with pytest.raises(RetryExhausted):
            await with_retry(missing, retry_configs=FAST)
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        async def broken():
            raise KeyError("k")

        with pytest.raises(KeyError):
            await with_retry(broken, retry_configs=FAST)
