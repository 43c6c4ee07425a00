"""
auth/tokens.py -- JWT bearer tokens (TokenIssuer).

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the account id (as "sub"), email, username, role, iat and exp.
       Verification returns None on any failure -- the route layer turns that
       into InvalidTokenError. Nothing in verify() is allowed to raise.

  Expiry: 24 hours from issuance unless Settings.token_expire_seconds says
       otherwise. Rotating SECRET_KEY invalidates every outstanding token.

  No revocation list: a validly signed, unexpired token is accepted even if
       the session it was issued with has since been revoked. Token validity
       and session state are separate concerns.

Layer rule: no imports from api/ or core/. The signing key is injected by
auth.directory.build_directory().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

logger = logging.getLogger("authguard.auth")

_ALGORITHM = "HS256"
DEFAULT_EXPIRE_SECONDS = 24 * 3600

_REQUIRED_CLAIMS = ("sub", "email", "username", "role")


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims embedded in a bearer token."""

    id: str
    email: str
    username: str
    role: str
    expires_at: datetime | None = None


class TokenIssuer:
    """Sign and verify bearer tokens with a process-wide secret.

    Usage:
        issuer = TokenIssuer(secret_key)
        token = issuer.issue({"id": "...", "email": "...", "username": "...", "role": "user"})
        claims = issuer.verify(token)  # TokenClaims or None
    """

    def __init__(self, secret_key: str, expire_seconds: int = DEFAULT_EXPIRE_SECONDS) -> None:
        if not secret_key:
            raise ValueError("TokenIssuer requires a non-empty secret key")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, claims: dict, now: datetime | None = None) -> str:
        """Encode a signed JWT for the given identity claims.

        Args:
            claims: Mapping with id, email, username and role.
            now:    Issuance time. Defaults to the current UTC time; tests pass
                    a past value to produce an already-expired token.
        """
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": str(claims["id"]),
            "email": claims["email"],
            "username": claims["username"],
            "role": claims["role"],
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.expire_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims | None:
        """Decode and verify a JWT. Returns TokenClaims, or None on any failure.

        Fails closed: bad signature, malformed structure, missing claims, a
        missing exp and expiry in the past all yield None.
        """
        if not isinstance(token, str) or not token:
            return None
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM], options={"require_exp": True})
        except JWTError as exc:
            logger.debug("Token rejected: %s", exc)
            return None
        except (ValueError, TypeError, KeyError):
            return None
        if any(not isinstance(payload.get(name), str) for name in _REQUIRED_CLAIMS):
            return None
        exp = payload.get("exp")
        # exp is mandatory and must be numeric.
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return None
        return TokenClaims(
            id=payload["sub"],
            email=payload["email"],
            username=payload["username"],
            role=payload["role"],
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )
