from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from rich.console import Console

from tubegrab.config.settings import config
from tubegrab.core.state import state

console = Console()

ACTIVE_COUNTER_KEY = "active_transfers_count"
ACTIVE_SLOT_PREFIX = "active_transfer:"


async def count_live_slots(client: aioredis.Redis) -> int:
    """Slots that have not expired yet, from any worker"""
    live = 0
    async for _ in client.scan_iter(match=f"{ACTIVE_SLOT_PREFIX}*", count=100):
        live += 1
    return live


async def init_redis() -> Optional[aioredis.Redis]:
    """
    Connect to Redis for the request guards.
    The transfer counter is rebuilt from live slots, since a previous run may
    have died with transfers in flight. Returns None when Redis is unreachable;
    the guards then admit everything.
    """
    client = aioredis.from_url(
        config.redis.url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=config.redis.socket_timeout,
    )
    try:
        await client.ping()
        live = await count_live_slots(client)
        await client.set(ACTIVE_COUNTER_KEY, live)
    except (RedisError, OSError) as e:
        console.print(f"[yellow]⚠ Redis unavailable, rate limits and transfer slots disabled: {e}[/yellow]")
        await client.aclose()
        return None

    if live:
        console.print(f"[yellow]✓ Redis connected ({live} transfers still in flight)[/yellow]")
    else:
        console.print("[green]✓ Redis connected[/green]")
    return client


def get_redis() -> Optional[aioredis.Redis]:
    return state.redis


async def close_redis() -> None:
    if state.redis:
        await state.redis.aclose()
        state.redis = None
        console.print("[dim]✓ Redis connection closed[/dim]")
