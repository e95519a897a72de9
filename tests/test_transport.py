import asyncio

import aiohttp
import pytest

from transport import PROXY_POLICY, BackoffPolicy, ProxyHttpClient, retry_async
from fakes import SleepRecorder


class FakeResponse:
    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.error:
            raise self.error

    async def json(self, content_type=None):
        return self.payload


class FakeSession:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self):
        self.closed = True


def test_proxy_policy_delays_are_capped():
    assert [PROXY_POLICY.delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_retry_async_recovers_from_connection_errors():
    sleep = SleepRecorder()
    attempts = []

    async def operation():
        attempts.append(1)
        if len(attempts) < 3:
            raise aiohttp.ClientConnectionError("reset")
        return "ok"

    result = asyncio.run(retry_async(operation, PROXY_POLICY, sleep=sleep))
    assert result == "ok"
    assert len(attempts) == 3
    assert sleep.delays == [1.0, 2.0]


def test_retry_async_reraises_after_last_retry():
    sleep = SleepRecorder()
    attempts = []

    async def operation():
        attempts.append(1)
        raise asyncio.TimeoutError()

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(retry_async(operation, BackoffPolicy(max_retries=3), sleep=sleep))
    assert len(attempts) == 4
    assert len(sleep.delays) == 3


def test_retry_async_does_not_retry_other_errors():
    sleep = SleepRecorder()
    attempts = []

    async def operation():
        attempts.append(1)
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        asyncio.run(retry_async(operation, PROXY_POLICY, sleep=sleep))
    assert len(attempts) == 1
    assert sleep.delays == []


def test_post_goes_through_proxy_without_tls_checks():
    session = FakeSession([FakeResponse({"data": {"ok": True}})])
    client = ProxyHttpClient("http://proxy:8080", "user", "secret", session=session)

    result = asyncio.run(client.post("https://indexer/graphql", {"query": "{}"}))

    assert result == {"data": {"ok": True}}
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["proxy"] == "http://proxy:8080"
    assert kwargs["proxy_auth"] == aiohttp.BasicAuth("user", "secret")
    assert kwargs["ssl"] is False
    assert kwargs["json"] == {"query": "{}"}
    assert kwargs["headers"]["Content-Type"] == "application/json"


def test_connection_reset_is_retried_by_client():
    sleep = SleepRecorder()
    session = FakeSession([aiohttp.ClientConnectionError("reset"), FakeResponse({"result": 1})])
    client = ProxyHttpClient("http://proxy:8080", session=session, sleep=sleep)

    assert asyncio.run(client.get("https://rpc")) == {"result": 1}
    assert len(session.calls) == 2
    assert sleep.delays == [1.0]


def test_http_status_error_is_surfaced_immediately():
    sleep = SleepRecorder()
    bad_gateway = aiohttp.ClientResponseError(request_info=None, history=(), status=502)
    session = FakeSession([FakeResponse(error=bad_gateway)])
    client = ProxyHttpClient(session=session, sleep=sleep)

    with pytest.raises(aiohttp.ClientResponseError) as excinfo:
        asyncio.run(client.get("https://rpc"))
    assert excinfo.value.status == 502
    assert len(session.calls) == 1
    assert sleep.delays == []


def test_close_leaves_injected_session_open():
    session = FakeSession([])
    client = ProxyHttpClient(session=session)
    asyncio.run(client.close())
    assert session.closed is False
