"""
tests/test_rate_limiting.py — Tests for rate limiting behavior

Covers: slowapi limiter configuration, per-user keying of the scan
trigger, Redis storage resolution with in-memory fallback, and the
manual scan endpoint under the limiter.

Called by: pytest
Depends on: agencyops.rate_limit, routers/delays.py (scan endpoint)
"""

import os
from unittest.mock import MagicMock, patch

import pytest


def _request(session=None, host="10.0.0.7"):
    scope = {"type": "http", "headers": [], "client": (host, 5000)}
    if session is not None:
        scope["session"] = session
    req = MagicMock()
    req.scope = scope
    req.client.host = host
    return req


def test_limiter_keys_on_scan_rate_key():
    from agencyops.rate_limit import limiter, scan_rate_key

    assert limiter._key_func is scan_rate_key


def test_key_uses_session_user():
    from agencyops.rate_limit import scan_rate_key

    assert scan_rate_key(_request(session={"user_id": 42})) == "user:42"


def test_same_user_shares_bucket_across_addresses():
    from agencyops.rate_limit import scan_rate_key

    a = scan_rate_key(_request(session={"user_id": 5}, host="10.0.0.1"))
    b = scan_rate_key(_request(session={"user_id": 5}, host="10.0.0.2"))
    assert a == b


def test_key_falls_back_to_address_without_session():
    from agencyops.rate_limit import scan_rate_key

    assert scan_rate_key(_request()) == "ip:10.0.0.7"
    assert scan_rate_key(_request(session={})) == "ip:10.0.0.7"


def test_rate_limit_disabled_in_test_mode():
    from agencyops.rate_limit import limiter

    assert os.environ.get("RATE_LIMIT_ENABLED") == "false"
    assert limiter.enabled is False


def test_scan_endpoint_not_blocked_when_disabled(client):
    for _ in range(10):
        assert client.post("/api/delays/scan").status_code == 200


def test_resolve_storage_no_redis():
    with patch("agencyops.rate_limit.settings") as mock_settings:
        mock_settings.cache_backend = "memory"
        mock_settings.redis_url = ""
        from agencyops.rate_limit import _resolve_storage

        assert _resolve_storage() is None


def test_resolve_storage_redis_unavailable():
    redis_lib = pytest.importorskip("redis")

    with patch("agencyops.rate_limit.settings") as mock_settings:
        mock_settings.cache_backend = "redis"
        mock_settings.redis_url = "redis://localhost:6379/15"
        with patch.object(redis_lib, "from_url") as mock_from_url:
            mock_from_url.return_value.ping.side_effect = ConnectionError
            from agencyops.rate_limit import _resolve_storage

            assert _resolve_storage() is None


def test_resolve_storage_redis_available():
    redis_lib = pytest.importorskip("redis")

    with patch("agencyops.rate_limit.settings") as mock_settings:
        mock_settings.cache_backend = "redis"
        mock_settings.redis_url = "redis://localhost:6379/15"
        with patch.object(redis_lib, "from_url"):
            from agencyops.rate_limit import _resolve_storage

            assert _resolve_storage() == "redis://localhost:6379/15"
