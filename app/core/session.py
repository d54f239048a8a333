"""Session resolution: Authorization header -> Principal.

Stateless per request. The credential is self-contained, so no session
store is consulted unless the optional registry is configured.
"""
from typing import Optional

from app.core.errors import InvalidCredential, Unauthenticated
from app.core.logging import get_logger
from app.core.tokens import TokenCodec, extract_from_header
from app.domain.principal import AccountStatus, Principal, SessionCredential
from app.infrastructure.redis import SessionRegistry

logger = get_logger(__name__)


class SessionResolver:
    """Turns a raw header value into an authenticated Principal.

    "No token" and "bad token" raise the same ``Unauthenticated`` error;
    only its ``cause`` attribute, which is never sent to the client,
    tells them apart.
    """

    def __init__(self, codec: TokenCodec, registry: Optional[SessionRegistry] = None):
        self.codec = codec
        self.registry = registry

    def resolve_credential(self, header_value: Optional[str]) -> SessionCredential:
        token = extract_from_header(header_value)
        if token is None:
            logger.debug("No bearer credential presented", extra={"cause": "missing"})
            raise Unauthenticated(cause="missing")

        try:
            credential = self.codec.decode(token)
        except InvalidCredential:
            raise Unauthenticated(cause="invalid")

        claims = credential.claims
        if self.registry is not None and self.registry.is_revoked(claims.sub, credential.issued_at):
            logger.info("Revoked credential presented", extra={"principal_id": claims.sub, "cause": "revoked"})
            raise Unauthenticated(cause="revoked")

        return credential

    def resolve(self, header_value: Optional[str]) -> Principal:
        """Resolve ``header_value`` to the principal named by its credential.

        Raises:
            Unauthenticated: If the credential is missing, invalid, expired
                or revoked
        """
        claims = self.resolve_credential(header_value).claims
        principal = Principal(
            id=claims.sub,
            email=claims.email,
            role=claims.role,
            status=AccountStatus.APPROVED,
        )
        logger.debug(
            "Principal resolved",
            extra={"principal_id": principal.id, "role": principal.role.value},
        )
        return principal
