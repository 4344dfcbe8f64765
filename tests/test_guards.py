import pytest
from fastapi import HTTPException
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.requests import Request

from tubegrab.core.state import state
from tubegrab.infra.concurrency import (
    ACQUIRE_SLOT_SCRIPT,
    RELEASE_SLOT_SCRIPT,
    concurrency_limiter,
    release_download_slot,
)
from tubegrab.infra.rate_limit import analyze_rate_limiter as rate_limiter


class FakeRedis:
    """Mimics the slot scripts on an in-memory counter and key set"""

    def __init__(self, eval_result=None, error=None, limit=10):
        self.eval_result = eval_result
        self.error = error
        self.limit = limit
        self.count = 0
        self.slots = set()
        self.released = []

    async def eval(self, script, numkeys, *args):
        if self.error is not None:
            raise self.error
        if script == RELEASE_SLOT_SCRIPT:
            slot_key = args[1]
            self.released.append(slot_key)
            if slot_key not in self.slots:
                return 0
            self.slots.discard(slot_key)
            self.count -= 1
            return 1
        if script == ACQUIRE_SLOT_SCRIPT:
            if self.count >= self.limit:
                return 0
            self.count += 1
            self.slots.add(args[1])
            return 1
        return self.eval_result


def make_request(path="/api/download"):
    return Request({
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "server": ("test", 80),
        "path": path,
        "query_string": b"",
        "headers": [],
        "client": ("203.0.113.7", 50000),
    })


@pytest.mark.asyncio
async def test_guards_pass_without_redis(monkeypatch):
    monkeypatch.setattr(state, "redis", None)
    request = make_request()

    assert await rate_limiter(request) is True
    assert await concurrency_limiter(request) is True
    await release_download_slot(request)


@pytest.mark.asyncio
async def test_rate_limit_exceeded(monkeypatch):
    monkeypatch.setattr(state, "redis", FakeRedis(eval_result=[0, 42]))

    with pytest.raises(HTTPException) as exc_info:
        await rate_limiter(make_request("/api/analyze"))

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers["Retry-After"] == "42"


@pytest.mark.asyncio
async def test_guards_fail_open_on_redis_errors(monkeypatch):
    monkeypatch.setattr(state, "redis", FakeRedis(error=RedisConnectionError("down")))
    request = make_request()

    assert await rate_limiter(request) is True
    assert await concurrency_limiter(request) is True


@pytest.mark.asyncio
async def test_server_busy(monkeypatch):
    monkeypatch.setattr(state, "redis", FakeRedis(limit=0))

    with pytest.raises(HTTPException) as exc_info:
        await concurrency_limiter(make_request())

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_slot_is_released_once(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(state, "redis", redis)
    request = make_request()

    await concurrency_limiter(request)
    await release_download_slot(request)
    await release_download_slot(request)

    assert len(redis.released) == 1
    assert redis.count == 0
    assert request.state.transfer_slot is None


@pytest.mark.asyncio
async def test_slots_ignore_client_request_ids(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(state, "redis", redis)
    first, second = make_request(), make_request()
    first.state.request_id = second.state.request_id = "same"

    await concurrency_limiter(first)
    await concurrency_limiter(second)
    assert first.state.transfer_slot != second.state.transfer_slot
    assert redis.count == 2

    await release_download_slot(first)
    await release_download_slot(second)
    assert redis.count == 0
    assert redis.slots == set()
