import asyncio
import hashlib
import ipaddress
import re
import socket
from contextlib import suppress
from enum import Enum, auto
from typing import Optional
from urllib.parse import parse_qs, urlparse

from redis.exceptions import RedisError

from tubegrab.config.settings import config
from tubegrab.infra.redis import get_redis

SSRF_CACHE_TTL = 300

VIDEO_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{11}$")
PATH_ID_PREFIXES = ("/embed/", "/shorts/", "/live/", "/v/", "/e/")


class UrlValidationResult(Enum):
    """URL validation result without throwing exceptions"""
    OK = auto()
    BLOCKED = auto()
    INVALID = auto()
    UNSUPPORTED = auto()


def extract_video_id(url: str) -> Optional[str]:
    """Return the 11 character video id of a recognized video URL, else None."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None

    if parsed.scheme not in ("http", "https"):
        return None

    hostname = (parsed.hostname or "").lower()
    if hostname not in config.provider.allowed_hosts:
        return None

    candidate = None
    if hostname == "youtu.be":
        candidate = parsed.path.lstrip("/").split("/")[0]
    elif parsed.path == "/watch":
        candidate = (parse_qs(parsed.query).get("v") or [None])[0]
    else:
        for prefix in PATH_ID_PREFIXES:
            if parsed.path.startswith(prefix):
                candidate = parsed.path[len(prefix):].split("/")[0]
                break

    if candidate and VIDEO_ID_RE.match(candidate):
        return candidate
    return None


class SecurityValidator:
    """
    Validate URL shape and security without throwing exceptions.
    Returns result enum for separation of concerns.
    """

    @staticmethod
    async def validate_url(url: str) -> UrlValidationResult:
        """
        Accept only recognized video URLs, then guard against SSRF.
        Uses async DNS resolution and Redis caching.
        """
        if extract_video_id(url) is None:
            return UrlValidationResult.UNSUPPORTED

        if not config.security.enable_ssrf_protection:
            return UrlValidationResult.OK

        hostname = urlparse(url.strip()).hostname
        if not hostname:
            return UrlValidationResult.INVALID

        redis = get_redis()
        cache_key = f"ssrf:{hashlib.sha256(hostname.encode()).hexdigest()[:16]}"
        if redis:
            try:
                cached = await redis.get(cache_key)
            except RedisError:
                cached = None
            if cached == "ok":
                return UrlValidationResult.OK
            if cached == "blocked":
                return UrlValidationResult.BLOCKED

        try:
            addr_info = await asyncio.to_thread(socket.getaddrinfo, hostname, None)
            ips = [info[4][0] for info in addr_info]
        except socket.gaierror:
            # DNS failed - let the provider report it
            return UrlValidationResult.OK

        is_blocked = False
        for ip_str in ips:
            try:
                ip = ipaddress.ip_address(ip_str)
            except ValueError:
                return UrlValidationResult.INVALID

            if not config.security.allow_localhost and ip.is_loopback:
                is_blocked = True
                break

            if not config.security.allow_private_ips and ip.is_private:
                is_blocked = True
                break

            if ip.is_link_local or ip.is_multicast:
                is_blocked = True
                break

        if redis:
            with suppress(RedisError):
                await redis.setex(cache_key, SSRF_CACHE_TTL, "blocked" if is_blocked else "ok")

        return UrlValidationResult.BLOCKED if is_blocked else UrlValidationResult.OK
