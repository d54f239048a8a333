"""FastAPI wiring for authentication and authorization.

The codec, resolver and policy are built once from ``settings`` and
handed to route handlers as dependencies. Handlers call
``get_current_principal`` before any domain logic and the policy before
any mutation.
"""
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, Header

from app.core.config import settings
from app.core.errors import Forbidden
from app.core.logging import get_logger
from app.core.policy import AuthorizationPolicy, default_policy
from app.core.session import SessionResolver
from app.core.tokens import TokenCodec
from app.domain.principal import Principal, Role
from app.infrastructure.redis import SessionRegistry

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_token_codec() -> TokenCodec:
    return TokenCodec.from_settings(settings)


@lru_cache(maxsize=1)
def get_session_registry() -> Optional[SessionRegistry]:
    """The revocation registry, or None when it is disabled."""
    if not settings.session_registry_enabled:
        return None
    return SessionRegistry(ttl_days=settings.token_ttl_days)


@lru_cache(maxsize=1)
def get_session_resolver() -> SessionResolver:
    return SessionResolver(get_token_codec(), get_session_registry())


@lru_cache(maxsize=1)
def get_policy() -> AuthorizationPolicy:
    return default_policy(settings.super_admin_email)


async def get_current_principal(
    authorization: Optional[str] = Header(default=None),
    resolver: SessionResolver = Depends(get_session_resolver),
) -> Principal:
    """FastAPI dependency resolving the Authorization header.

    Raises ``Unauthenticated`` (401) for a missing or invalid credential.

    Example:
        >>> @router.get("/protected")
        >>> def protected_route(principal: Principal = Depends(get_current_principal)):
        ...     return {"id": principal.id}
    """
    return resolver.resolve(authorization)


def require_role(*allowed_roles: Role) -> Callable:
    """Dependency factory admitting only the given roles.

    Example:
        >>> @router.get("/admin/users")
        >>> def users(principal: Principal = Depends(require_role(Role.ADMIN, Role.SUPERADMIN))):
        ...     ...
    """
    allowed = frozenset(allowed_roles)

    async def role_checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            logger.warning(
                "Insufficient permissions",
                extra={"principal_id": principal.id, "role": principal.role.value},
            )
            raise Forbidden("Insufficient permissions")
        return principal

    return role_checker
