"""Tests for resilient HTTP requests."""

import asyncio

import httpx
import pytest

from dialogue_foundry.utils.resilient_fetch import (
    ResilientFetchError,
    RetryableStatusError,
    RetryConfig,
    calculate_delay_ms,
    resilient_request,
)


class SleepRecorder:
    """Records requested delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_client(statuses: list[int]) -> tuple[httpx.AsyncClient, list[httpx.Request]]:
    """Client answering each attempt with the next status (the last one repeats)."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        index = min(len(requests) - 1, len(statuses) - 1)
        return httpx.Response(statuses[index], json={"attempt": len(requests)})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


class TestCalculateDelay:
    def test_default_sequence(self):
        config = RetryConfig()
        assert [calculate_delay_ms(i, config) for i in range(3)] == [500, 1000, 2000]

    def test_capped_at_max_delay(self):
        config = RetryConfig(initial_delay_ms=1000, max_delay_ms=3000)
        assert calculate_delay_ms(5, config) == 3000


class TestResilientRequest:
    """Test suite for resilient_request."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self):
        client, requests = make_client([200])
        sleep = SleepRecorder()

        response = await resilient_request(client, "GET", "https://store.test/x", sleep=sleep)

        assert response.status_code == 200
        assert len(requests) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_two_transient_failures(self):
        """Two 503s then success: 500 ms + 1000 ms of backoff."""
        client, requests = make_client([503, 503, 200])
        sleep = SleepRecorder()

        response = await resilient_request(
            client, "GET", "https://store.test/messages/latest", sleep=sleep
        )

        assert response.status_code == 200
        assert response.json() == {"attempt": 3}
        assert sleep.delays == [0.5, 1.0]
        assert sum(sleep.delays) == pytest.approx(1.5)

    @pytest.mark.asyncio
    async def test_retry_bound(self):
        """max_retries=3 makes at most four attempts."""
        client, requests = make_client([503])
        sleep = SleepRecorder()

        with pytest.raises(RetryableStatusError) as exc_info:
            await resilient_request(
                client,
                "GET",
                "https://store.test/x",
                retry_config=RetryConfig(max_retries=3),
                sleep=sleep,
            )

        assert len(requests) == 4
        assert sleep.delays == [0.5, 1.0, 2.0]
        assert exc_info.value.status_code == 503
        assert exc_info.value.attempts == 4

    @pytest.mark.asyncio
    async def test_non_retryable_status_returned(self):
        client, requests = make_client([404])
        sleep = SleepRecorder()

        response = await resilient_request(client, "GET", "https://store.test/x", sleep=sleep)

        assert response.status_code == 404
        assert len(requests) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_transport_error_retried(self):
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        sleep = SleepRecorder()

        response = await resilient_request(client, "POST", "https://store.test/x", sleep=sleep)

        assert response.status_code == 200
        assert attempts == 2
        assert sleep.delays == [0.5]

    @pytest.mark.asyncio
    async def test_transport_errors_exhaust_retries(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        sleep = SleepRecorder()

        with pytest.raises(ResilientFetchError) as exc_info:
            await resilient_request(
                client,
                "GET",
                "https://store.test/x",
                retry_config=RetryConfig(max_retries=1),
                sleep=sleep,
            )

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.original_error, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise ValueError("bad payload")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        sleep = SleepRecorder()

        with pytest.raises(ValueError):
            await resilient_request(client, "GET", "https://store.test/x", sleep=sleep)

        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_hung_attempt_is_aborted_and_retried(self):
        attempts = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                await asyncio.sleep(5)
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        sleep = SleepRecorder()

        response = await resilient_request(
            client,
            "GET",
            "https://store.test/x",
            retry_config=RetryConfig(timeout_ms=50),
            sleep=sleep,
        )

        assert response.status_code == 200
        assert attempts == 2
        assert sleep.delays == [0.5]

    @pytest.mark.asyncio
    async def test_timeouts_exhaust_retries(self):
        attempts = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            await asyncio.sleep(5)
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        sleep = SleepRecorder()

        with pytest.raises(ResilientFetchError) as exc_info:
            await resilient_request(
                client,
                "GET",
                "https://store.test/x",
                retry_config=RetryConfig(max_retries=2, timeout_ms=20),
                sleep=sleep,
            )

        assert attempts == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.original_error, TimeoutError)
        assert sleep.delays == [0.5, 1.0]
