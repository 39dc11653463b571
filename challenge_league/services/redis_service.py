"""
Redis service providing a centralized Redis client singleton and run locks.

The scheduler's cron passes take a short-lived Redis lock so overlapping
invocations (a retried cron, a manual trigger racing the schedule) do not
process the same leagues twice. When Redis is unreachable the passes still
run; the per-row conditional updates remain the safety net.

Usage:
    from challenge_league.services.redis_service import acquire_lock, release_lock

    token = await acquire_lock("my-lock", ttl_seconds=600)
    if token is False:
        return  # someone else holds it
    try:
        ...
    finally:
        await release_lock("my-lock", token)
"""

import logging
import os
import uuid
from typing import Optional, Union

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Redis configuration from environment
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# Connection settings
SOCKET_CONNECT_TIMEOUT = 2
SOCKET_TIMEOUT = 5
RETRY_ON_TIMEOUT = True

# Only delete the lock if we still own it
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Global Redis client (singleton)
_redis_client: Optional[Redis] = None
_connection_tested: bool = False


async def get_redis_client() -> Optional[Redis]:
    """
    Get or create the Redis client singleton.

    Returns:
        Redis client or None if the connection fails
    """
    global _redis_client, _connection_tested

    # Return existing client if connection was already tested
    if _redis_client is not None and _connection_tested:
        try:
            await _redis_client.ping()
            return _redis_client
        except Exception as e:
            logger.warning(f"Redis connection lost, recreating client: {e}")
            await _close_client()

    try:
        client_kwargs = {
            "host": REDIS_HOST,
            "port": REDIS_PORT,
            "db": REDIS_DB,
            "decode_responses": True,
            "socket_connect_timeout": SOCKET_CONNECT_TIMEOUT,
            "socket_timeout": SOCKET_TIMEOUT,
            "retry_on_timeout": RETRY_ON_TIMEOUT,
        }

        if REDIS_PASSWORD:
            client_kwargs["password"] = REDIS_PASSWORD

        _redis_client = Redis(**client_kwargs)

        # Test connection
        await _redis_client.ping()
        _connection_tested = True
        logger.info(f"Connected to Redis at {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}")
        return _redis_client

    except Exception as e:
        logger.warning(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}: {e}")
        _redis_client = None
        _connection_tested = False
        return None


async def _close_client() -> None:
    """Internal helper to close and reset the client."""
    global _redis_client, _connection_tested

    if _redis_client is not None:
        try:
            await _redis_client.close()
        except Exception:
            pass
        _redis_client = None
    _connection_tested = False


async def close_redis_connection() -> None:
    """
    Close the Redis connection.

    Should be called during application shutdown to cleanly close the connection.
    """
    global _redis_client, _connection_tested

    if _redis_client is not None:
        try:
            await _redis_client.close()
            logger.info("Closed Redis connection")
        except Exception as e:
            logger.warning(f"Error closing Redis connection: {e}")
        finally:
            _redis_client = None
            _connection_tested = False


async def acquire_lock(key: str, ttl_seconds: int) -> Union[str, bool, None]:
    """
    Try to take a named lock with SET NX EX.

    Args:
        key: Lock key
        ttl_seconds: Expiry so a crashed holder cannot block forever

    Returns:
        Owner token (str) if acquired, False if another holder has it,
        None if Redis is unavailable (caller proceeds unlocked)
    """
    client = await get_redis_client()
    if client is None:
        return None

    token = uuid.uuid4().hex
    try:
        acquired = await client.set(key, token, nx=True, ex=ttl_seconds)
    except Exception as e:
        logger.warning(f"Redis lock error for key {key}: {e}")
        return None
    return token if acquired else False


async def release_lock(key: str, token: Optional[str]) -> bool:
    """
    Release a lock taken with acquire_lock().

    Args:
        key: Lock key
        token: Owner token returned by acquire_lock (no-op if falsy)

    Returns:
        True if the lock was released by this call
    """
    if not token:
        return False
    try:
        client = await get_redis_client()
        if client:
            released = await client.eval(_RELEASE_SCRIPT, 1, key, token)
            return bool(released)
    except Exception as e:
        logger.warning(f"Redis lock release error for key {key}: {e}")
    return False
