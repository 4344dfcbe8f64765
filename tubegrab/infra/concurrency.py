import uuid

from fastapi import HTTPException, Request
from redis.exceptions import RedisError

from tubegrab.config.settings import config
from tubegrab.core.logging import log_warning
from tubegrab.i18n import i18n
from tubegrab.infra.redis import ACTIVE_COUNTER_KEY, ACTIVE_SLOT_PREFIX, get_redis

# Claim a slot only while the active count is below the limit. The slot key
# expires on its own so a crashed worker cannot hold capacity forever.
ACQUIRE_SLOT_SCRIPT = """
local count = tonumber(redis.call('GET', KEYS[1]) or "0")
if count >= tonumber(ARGV[1]) then
    return 0
end
redis.call('INCR', KEYS[1])
redis.call('EXPIRE', KEYS[1], ARGV[3])
redis.call('SETEX', KEYS[2], ARGV[2], "1")
return 1
"""

# Only decrement when this request's slot still exists
RELEASE_SLOT_SCRIPT = """
if redis.call('DEL', KEYS[2]) == 1 then
    local count = redis.call('DECR', KEYS[1])
    if count < 0 then
        redis.call('SET', KEYS[1], 0)
    end
    return 1
end
return 0
"""


class TransferSlots:
    """
    Global cap on simultaneous transfers, shared by every worker through Redis.

    Used as a route dependency; the slot belongs to the request and is given
    back by `release()` once the response is closed or fails before the
    first byte. Without Redis every request is admitted.
    """

    async def __call__(self, request: Request) -> bool:
        redis = get_redis()
        if not redis:
            return True

        # One key per acquisition, independent of the client supplied X-Request-ID
        slot_key = f"{ACTIVE_SLOT_PREFIX}{uuid.uuid4().hex}"
        # A slot outlives the longest possible transfer by a minute
        slot_ttl = config.download.timeout_seconds + 60

        try:
            acquired = await redis.eval(
                ACQUIRE_SLOT_SCRIPT,
                2,
                ACTIVE_COUNTER_KEY,
                slot_key,
                config.download.max_concurrent,
                slot_ttl,
                slot_ttl * 2,
            )
        except RedisError as e:
            log_warning(request, f"Transfer slot check skipped: {e}")
            return True

        if not acquired:
            _ = i18n.translator(request.headers.get("accept-language"))
            raise HTTPException(
                status_code=503,
                detail=_("error.server_busy", max=config.download.max_concurrent),
            )

        request.state.transfer_slot = slot_key
        return True

    async def release(self, request: Request) -> None:
        """Give the slot back; later calls for the same request do nothing"""
        slot_key = getattr(request.state, "transfer_slot", None)
        if slot_key is None:
            return
        request.state.transfer_slot = None

        redis = get_redis()
        if not redis:
            return
        try:
            await redis.eval(RELEASE_SLOT_SCRIPT, 2, ACTIVE_COUNTER_KEY, slot_key)
        except RedisError as e:
            log_warning(request, f"Transfer slot {slot_key} not released, it will expire: {e}")


concurrency_limiter = TransferSlots()
release_download_slot = concurrency_limiter.release
