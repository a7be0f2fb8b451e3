"""
rate_limit.py — slowapi limiter for the delay-scan trigger.

The frontend fires POST /api/delays/scan on every window refocus, so one
person with several open tabs can hammer the scan. Limits are therefore
keyed on the signed-in user from the session cookie; anonymous requests
(which require_user will reject anyway) fall back to the client address.

Storage is Redis when CACHE_BACKEND=redis and the server answers a ping,
so counters are shared across workers; otherwise in-process memory.

Called by: main.py (app.state.limiter), routers/delays.py (@limiter.limit)
Depends on: config
"""

from loguru import logger
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from .config import settings


def scan_rate_key(request: Request) -> str:
    """Per-user bucket when a session user exists, per-address otherwise."""
    session = request.scope.get("session") or {}
    uid = session.get("user_id")
    if uid:
        return f"user:{uid}"
    return f"ip:{get_remote_address(request)}"


def _resolve_storage() -> str | None:
    if settings.cache_backend != "redis" or not settings.redis_url:
        return None
    try:
        import redis as redis_lib

        redis_lib.from_url(settings.redis_url, socket_connect_timeout=2).ping()
    except Exception as e:
        logger.warning(f"Scan limiter: Redis unreachable ({e}), counting per worker in memory")
        return None
    logger.info("Scan limiter: counters stored in Redis")
    return settings.redis_url


limiter = Limiter(
    key_func=scan_rate_key,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
    storage_uri=_resolve_storage(),
)
