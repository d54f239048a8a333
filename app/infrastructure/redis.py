"""Redis client and the optional session registry.

Credentials are self-contained and normally cannot be revoked. When
SESSION_REGISTRY_ENABLED is set, the registry stores a per-principal
cut-off time in Redis: every credential issued at or before the cut-off
is treated as revoked. Entries expire with the credential lifetime, after
which nothing issued before the cut-off can still be valid.

For managed Redis:
- Set REDIS_HOST to the instance address
- Set REDIS_PASSWORD if authentication is enabled
"""
import redis
from typing import Optional
from datetime import datetime, timedelta, timezone

from app.core.logging import get_logger
from app.core.config import settings

logger = get_logger(__name__)

# Redis connection pool (lazy initialization)
_redis_pool: Optional[redis.ConnectionPool] = None
_redis_client: Optional[redis.Redis] = None


def get_redis_client(
    host: Optional[str] = None,
    port: Optional[int] = None,
    db: Optional[int] = None,
    password: Optional[str] = None,
    decode_responses: bool = True
) -> Optional[redis.Redis]:
    """Get or create Redis client with connection pooling.

    Uses settings from environment variables if not explicitly provided.
    Returns None if Redis is not available.
    """
    global _redis_pool, _redis_client

    host = host or settings.redis_host
    port = port or settings.redis_port
    db = db if db is not None else settings.redis_db
    password = password or settings.redis_password

    if _redis_client is None:
        logger.info(f"Initializing Redis connection pool: {host}:{port}")

        try:
            _redis_pool = redis.ConnectionPool(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=decode_responses,
                max_connections=50,
                socket_connect_timeout=5,
                socket_timeout=5,
            )

            _redis_client = redis.Redis(connection_pool=_redis_pool)
            _redis_client.ping()
            logger.info("Redis connection established successfully")

        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
            _redis_client = None
            return None

    return _redis_client


class SessionRegistry:
    """Redis-backed invalidation list keyed by issuance time.

    Example:
        >>> registry = SessionRegistry(redis_client=client, ttl_days=7)
        >>> registry.revoke_all("user_123")
        >>> registry.is_revoked("user_123", issued_at=credential.issued_at)
        True
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        ttl_days: int = 7,
        key_prefix: str = "revoked-before:"
    ):
        self.redis = redis_client or get_redis_client()
        self.ttl = timedelta(days=ttl_days)
        self.key_prefix = key_prefix

        logger.info(f"SessionRegistry initialized with {ttl_days} day TTL")

    def _make_key(self, principal_id: str) -> str:
        return f"{self.key_prefix}{principal_id}"

    def revoke_all(self, principal_id: str, before: Optional[datetime] = None) -> bool:
        """Invalidate every credential of ``principal_id`` issued up to ``before``.

        Returns:
            True if the cut-off was stored
        """
        cutoff = before or datetime.now(timezone.utc)
        if self.redis is None:
            logger.warning(
                "Session registry unavailable, revocation not recorded",
                extra={"principal_id": principal_id},
            )
            return False

        try:
            self.redis.setex(
                self._make_key(principal_id),
                self.ttl,
                str(cutoff.timestamp()),
            )
            logger.info("Outstanding credentials revoked", extra={"principal_id": principal_id})
            return True
        except redis.RedisError as e:
            logger.error(f"Error revoking credentials for {principal_id}: {e}", exc_info=True)
            return False

    def revoked_before(self, principal_id: str) -> Optional[datetime]:
        """Return the stored cut-off for ``principal_id``, if any."""
        if self.redis is None:
            return None
        try:
            value = self.redis.get(self._make_key(principal_id))
        except redis.RedisError as e:
            # Fail open: an outage must not lock every user out
            logger.error(f"Error reading revocation for {principal_id}: {e}", exc_info=True)
            return None

        if value is None:
            return None
        return datetime.fromtimestamp(float(value), tz=timezone.utc)

    def is_revoked(self, principal_id: str, issued_at: datetime) -> bool:
        cutoff = self.revoked_before(principal_id)
        return cutoff is not None and issued_at <= cutoff

    def clear(self, principal_id: str) -> bool:
        if self.redis is None:
            return False
        try:
            return bool(self.redis.delete(self._make_key(principal_id)))
        except redis.RedisError as e:
            logger.error(f"Error clearing revocation for {principal_id}: {e}", exc_info=True)
            return False
