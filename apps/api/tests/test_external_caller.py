import asyncio

import httpx
import pytest

from reben.services.external_caller import call_with_backoff, retryable_status


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://api.example.com/v1/generate")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


class Flaky:
    def __init__(self, failures: list[Exception], result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def _recording_sleep(delays: list[float]):
    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    return sleep


def test_retryable_status() -> None:
    assert retryable_status(_status_error(429)) == 429
    assert retryable_status(_status_error(503)) == 503
    assert retryable_status(_status_error(400)) is None
    assert retryable_status(ValueError("bad json")) is None


def test_rate_limited_calls_back_off_exponentially() -> None:
    delays: list[float] = []
    fn = Flaky([_status_error(429), _status_error(500)], result="done")

    result = asyncio.run(call_with_backoff(fn, max_retries=3, base_delay_ms=1000, sleep=_recording_sleep(delays)))

    assert result == "done"
    assert fn.calls == 3
    assert delays == [1.0, 2.0]


def test_last_retryable_error_propagates() -> None:
    delays: list[float] = []
    fn = Flaky([_status_error(503) for _ in range(3)])

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(call_with_backoff(fn, max_retries=3, base_delay_ms=200, sleep=_recording_sleep(delays)))

    assert fn.calls == 3
    assert delays == [0.2, 0.4]


def test_non_retryable_errors_propagate_immediately() -> None:
    delays: list[float] = []
    fn = Flaky([_status_error(400)])

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(call_with_backoff(fn, sleep=_recording_sleep(delays)))

    assert fn.calls == 1
    assert delays == []
