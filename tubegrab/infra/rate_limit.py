from fastapi import HTTPException, Request
from redis.exceptions import RedisError

from tubegrab.config.settings import config
from tubegrab.core.logging import log_warning
from tubegrab.i18n import i18n
from tubegrab.infra.redis import get_redis

# Fixed window: the first hit starts the window, hits past the limit get the
# remaining window length back as the retry delay
FIXED_WINDOW_SCRIPT = """
local hits = redis.call('INCR', KEYS[1])
if hits == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[2])
end
if hits > tonumber(ARGV[1]) then
    return {0, redis.call('TTL', KEYS[1])}
end
return {1, 0}
"""


class RedisRateLimiter:
    """Per-client request budget for one route family"""

    def __init__(self, scope: str):
        self.scope = scope

    def key_for(self, request: Request) -> str:
        client_ip = request.client.host if request.client else "unknown"
        return f"rate:{self.scope}:{client_ip}"

    async def __call__(self, request: Request) -> bool:
        if not config.rate_limit.enabled:
            return True

        redis = get_redis()
        if not redis:
            return True

        try:
            allowed, retry_after = await redis.eval(
                FIXED_WINDOW_SCRIPT,
                1,
                self.key_for(request),
                config.rate_limit.max_requests,
                config.rate_limit.window_seconds,
            )
        except RedisError as e:
            # Fail open: the limiter must not take the API down with it
            log_warning(request, f"Rate limit check skipped: {e}")
            return True

        if not allowed:
            _ = i18n.translator(request.headers.get("accept-language"))
            raise HTTPException(
                status_code=429,
                detail=_("error.rate_limit", seconds=retry_after),
                headers={"Retry-After": str(retry_after)},
            )
        return True


analyze_rate_limiter = RedisRateLimiter("analyze")
download_rate_limiter = RedisRateLimiter("download")
