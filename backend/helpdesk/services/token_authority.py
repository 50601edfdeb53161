"""Token Authority - issues, verifies, revokes and sweeps bearer credentials.

Credentials are HS256-signed JWTs. The authority keeps a process-local
revocation set keyed by the raw credential string; it persists nothing and
performs no I/O, so a restart forgets every revocation (and, without a
configured secret, invalidates every credential because the signing key is
regenerated).

One instance is created per application and shared by the route guards and
the periodic sweep task. All public methods are safe to call from multiple
threads.
"""

import enum
import secrets
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from helpdesk.models.user import Role

ALGORITHM = "HS256"

DEFAULT_ACCESS_TTL = timedelta(minutes=15)
DEFAULT_REFRESH_TTL = timedelta(days=7)
DEFAULT_REVOCATION_RETENTION = timedelta(hours=24)


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenError(Exception):
    """Base class for credential verification failures."""


class TokenRevokedError(TokenError):
    """Credential was explicitly revoked."""


class TokenSignatureError(TokenError):
    """Signature or algorithm does not match the process key."""


class TokenExpiredError(TokenError):
    """Credential is past its embedded expiry."""


class MalformedTokenError(TokenError):
    """Input is not a well-formed credential."""


class TokenIssueError(Exception):
    """Signing a new credential failed."""


class TokenClaims(BaseModel):
    """Claims of a verified credential."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    subject_id: int = Field(alias="sub", gt=0)
    role: Role
    kind: TokenKind = Field(alias="type")
    issued_at: datetime = Field(alias="iat")
    expires_at: datetime = Field(alias="exp")
    credential_id: str = Field(alias="jti", min_length=1)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenAuthority:
    """Mints and checks signed credentials and tracks revoked ones.

    Args:
        secret: HMAC signing key. When None a random 32-byte key is
            generated and lives only as long as this instance.
        clock: Returns the current time as an aware datetime.
        access_ttl: Lifetime of access credentials.
        refresh_ttl: Lifetime of refresh credentials.
        revocation_retention: How long a revocation entry is kept before
            ``sweep`` may drop it.
    """

    def __init__(
        self,
        secret: bytes | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
        access_ttl: timedelta = DEFAULT_ACCESS_TTL,
        refresh_ttl: timedelta = DEFAULT_REFRESH_TTL,
        revocation_retention: timedelta = DEFAULT_REVOCATION_RETENTION,
    ):
        self.uses_ephemeral_key = not secret
        self._key = secret if secret else secrets.token_bytes(32)
        self._clock = clock
        self._ttl = {TokenKind.ACCESS: access_ttl, TokenKind.REFRESH: refresh_ttl}
        self._retention = revocation_retention
        self._revoked: dict[str, datetime] = {}
        self._lock = threading.Lock()

    @property
    def access_ttl(self) -> timedelta:
        return self._ttl[TokenKind.ACCESS]

    @property
    def refresh_ttl(self) -> timedelta:
        return self._ttl[TokenKind.REFRESH]

    def issue_access(self, subject_id: int, role: Role | str) -> str:
        """Mint a short-lived access credential."""
        return self._issue(subject_id, role, TokenKind.ACCESS)

    def issue_refresh(self, subject_id: int, role: Role | str) -> str:
        """Mint a long-lived refresh credential."""
        return self._issue(subject_id, role, TokenKind.REFRESH)

    def _issue(self, subject_id: int, role: Role | str, kind: TokenKind) -> str:
        issued_at = int(self._clock().timestamp())
        expires_at = issued_at + int(self._ttl[kind].total_seconds())
        payload = {
            "sub": str(subject_id),
            "role": Role(role).value,
            "iat": issued_at,
            "exp": expires_at,
            "jti": secrets.token_hex(16),
            "type": kind.value,
        }
        try:
            return jwt.encode(payload, self._key, algorithm=ALGORITHM)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise TokenIssueError(f"Failed to sign credential: {e}") from e

    def verify(self, raw: str | None) -> TokenClaims:
        """Check a credential and return its claims.

        Checks run in a fixed order: revocation, signature, expiry, claim
        shape. The first failing check determines the error raised.

        Raises:
            TokenRevokedError, TokenSignatureError, TokenExpiredError,
            MalformedTokenError
        """
        if not raw or not isinstance(raw, str):
            raise MalformedTokenError("Credential is missing or malformed")

        with self._lock:
            revoked = raw in self._revoked
        if revoked:
            raise TokenRevokedError("Credential has been revoked")

        if len(raw.split(".")) != 3:
            raise MalformedTokenError("Credential is missing or malformed")

        try:
            payload: dict[str, Any] = jwt.decode(
                raw,
                self._key,
                algorithms=[ALGORITHM],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "verify_sub": False,
                    "verify_jti": False,
                },
            )
        except jwt.PyJWTError as e:
            raise TokenSignatureError("Credential signature is invalid") from e

        exp = payload.get("exp")
        if not isinstance(exp, int) or isinstance(exp, bool):
            raise MalformedTokenError("Credential has no valid expiry")
        if self._clock().timestamp() >= exp:
            raise TokenExpiredError("Credential has expired")

        try:
            return TokenClaims.model_validate(payload)
        except ValidationError as e:
            raise MalformedTokenError("Credential claims are malformed") from e

    def revoke(self, raw: str) -> None:
        """Add a credential to the revocation set (idempotent)."""
        now = self._clock()
        with self._lock:
            self._revoked[raw] = now

    def is_revoked(self, raw: str) -> bool:
        with self._lock:
            return raw in self._revoked

    def sweep(self) -> int:
        """Drop revocation entries older than the retention window.

        Returns:
            Number of entries removed.
        """
        cutoff = self._clock() - self._retention
        with self._lock:
            stale = [raw for raw, revoked_at in self._revoked.items() if revoked_at < cutoff]
            for raw in stale:
                del self._revoked[raw]
        return len(stale)

    @property
    def revoked_count(self) -> int:
        with self._lock:
            return len(self._revoked)
