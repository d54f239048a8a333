"""Signed session credentials (JWT).

A credential binds a principal's id, email and role at issuance and
expires a fixed time later. Claims are never refreshed: a role change
becomes visible only once the holder obtains a new credential.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import ValidationError

from app.core.errors import ConfigurationError, InvalidCredential
from app.core.logging import get_logger
from app.domain.principal import SessionCredential, TokenClaims

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "
DEFAULT_TTL = timedelta(days=7)
REQUIRED_CLAIMS = ["sub", "email", "role", "iat", "exp"]


class TokenCodec:
    """Issues and verifies session credentials with a shared secret.

    Example:
        >>> codec = TokenCodec(secret="s3cret")
        >>> token = codec.issue(TokenClaims(sub="u1", email="a@b.io", role="student"))
        >>> codec.parse(token).sub
        'u1'
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl: timedelta = DEFAULT_TTL,
    ):
        self._secret = secret or ""
        self.algorithm = algorithm
        self.ttl = ttl

    @classmethod
    def from_settings(cls, settings) -> "TokenCodec":
        return cls(
            secret=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            ttl=timedelta(days=settings.token_ttl_days),
        )

    def ensure_configured(self) -> None:
        """Raise ``ConfigurationError`` unless credentials can be signed."""
        if not self._secret:
            logger.error("Refusing to issue credential: signing secret is not configured")
            raise ConfigurationError()

    def issue(self, claims: TokenClaims, now: Optional[datetime] = None) -> str:
        """Sign ``claims`` into a credential valid for ``ttl``.

        Raises:
            ConfigurationError: If no signing secret is configured
        """
        self.ensure_configured()

        issued_at = now or datetime.now(timezone.utc)
        # Sub-second iat keeps revocation cut-offs exact
        payload = {
            "sub": claims.sub,
            "email": claims.email,
            "role": claims.role.value,
            "iat": issued_at.timestamp(),
            "exp": (issued_at + self.ttl).timestamp(),
        }
        token = jwt.encode(payload, self._secret, algorithm=self.algorithm)

        logger.info(
            "Credential issued",
            extra={"principal_id": claims.sub, "role": claims.role.value},
        )
        return token

    def decode(self, token: str) -> SessionCredential:
        """Verify ``token`` and return its claims with the issuance window.

        Raises:
            InvalidCredential: On any failure (malformed, tampered, expired,
                missing claims or unknown role). The cause is only logged.
        """
        if not self._secret:
            logger.warning("Credential rejected: signing secret is not configured")
            raise InvalidCredential()

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
            claims = TokenClaims(
                sub=payload["sub"],
                email=payload["email"],
                role=payload["role"],
            )
            return SessionCredential(
                claims=claims,
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except jwt.ExpiredSignatureError:
            logger.info("Credential rejected: expired")
            raise InvalidCredential()
        except jwt.InvalidTokenError as e:
            logger.warning(f"Credential rejected: {type(e).__name__}")
            raise InvalidCredential()
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(f"Credential rejected: malformed claims ({type(e).__name__})")
            raise InvalidCredential()

    def parse(self, token: str) -> TokenClaims:
        """Verify ``token`` and return the claims it was issued with."""
        return self.decode(token).claims


def extract_from_header(header_value: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` value.

    Absence, any other scheme, or an empty token yields None. Absence of a
    credential is not an error here; the resolver decides what it means.
    """
    if not header_value or not header_value.startswith(BEARER_PREFIX):
        return None
    token = header_value[len(BEARER_PREFIX):].strip()
    return token or None
