"""
Bearer Token Module

Stateless signed credentials: `<payload>.<signature>`, where payload is the
base64url-encoded JSON claims and signature is the base64url-encoded
HMAC-SHA256 of the encoded payload under a server-held secret. Nothing about
issued tokens is stored; a token is valid until it expires or the secret is
rotated.
"""

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, Tuple

from .logging_config import get_logger


logger = get_logger("paywire.tokens")

BEARER_SCHEME = "Bearer "


@dataclass(frozen=True)
class TokenPayload:
    """Claims carried by a token; rebuilt from the token on every request"""
    subject: int
    expires_at: int
    issuer: str = ""
    email: Optional[str] = None

    def to_claims(self) -> Dict[str, Any]:
        claims: Dict[str, Any] = {"sub": self.subject, "exp": self.expires_at}
        if self.issuer:
            claims["iss"] = self.issuer
        if self.email is not None:
            claims["email"] = self.email
        return claims

    @classmethod
    def from_claims(cls, claims: Any) -> Optional['TokenPayload']:
        """Parse decoded JSON claims; None when the shape is wrong"""
        if not isinstance(claims, dict):
            return None
        subject = claims.get("sub")
        expires_at = claims.get("exp")
        issuer = claims.get("iss", "")
        email = claims.get("email")
        if type(subject) is not int or type(expires_at) is not int:
            return None
        if not isinstance(issuer, str) or not (email is None or isinstance(email, str)):
            return None
        return cls(subject=subject, expires_at=expires_at, issuer=issuer, email=email)


@dataclass(frozen=True)
class TokenSettings:
    """
    Construction-time token authority options.

    Attributes:
        secret: HMAC key; changing it invalidates every outstanding token
        ttl_seconds: Lifetime of issued tokens (default 24h)
        issuer: Issuer claim written into tokens and, when non-empty,
            required on validation
        clock: Returns the current time in epoch seconds
    """
    secret: str
    ttl_seconds: int = 24 * 60 * 60
    issuer: str = ""
    clock: Callable[[], float] = field(default=time.time, compare=False)

    def __post_init__(self):
        if not self.secret:
            raise ValueError("Token secret must not be empty")
        if self.ttl_seconds <= 0:
            raise ValueError("Token TTL must be positive")

    @classmethod
    def from_config(cls, config) -> 'TokenSettings':
        """Build settings from a PaywireConfig"""
        return cls(
            secret=config.token_secret,
            ttl_seconds=config.token_ttl_seconds,
            issuer=config.token_issuer,
        )


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


class TokenAuthority:
    """Issues and validates bearer tokens"""

    def __init__(self, settings: TokenSettings):
        self.settings = settings
        self._key = settings.secret.encode("utf-8")

    def with_secret(self, secret: str) -> 'TokenAuthority':
        """New authority with a rotated secret and otherwise identical settings"""
        return TokenAuthority(replace(self.settings, secret=secret))

    def _sign(self, encoded_payload: str) -> str:
        digest = hmac.new(self._key, encoded_payload.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def issue_token(self, subject: int, email: Optional[str] = None) -> str:
        """
        Issue a token for an account

        Args:
            subject: Account ID (positive)
            email: Optional auxiliary claim

        Returns:
            Token string `<payload>.<signature>`
        """
        if subject <= 0:
            raise ValueError("Token subject must be a positive account ID")
        payload = TokenPayload(
            subject=subject,
            expires_at=int(self.settings.clock()) + self.settings.ttl_seconds,
            issuer=self.settings.issuer,
            email=email,
        )
        encoded = _b64encode(
            json.dumps(payload.to_claims(), sort_keys=True, separators=(',', ':')).encode("utf-8")
        )
        return f"{encoded}.{self._sign(encoded)}"

    def validate_token(self, token: str) -> Tuple[Optional[TokenPayload], bool]:
        """
        Validate a token

        Returns:
            (payload, valid). Payload is None when the token is malformed or
            its signature does not match; an expired or foreign-issuer token
            yields its payload with valid=False.
        """
        if not token:
            return None, False
        parts = token.split(".")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            logger.debug("Rejected malformed token")
            return None, False

        encoded, signature = parts
        try:
            expected = self._sign(encoded)
        except UnicodeEncodeError:
            return None, False
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            logger.debug("Rejected token with bad signature")
            return None, False

        try:
            claims = json.loads(_b64decode(encoded).decode("utf-8"))
        except (binascii.Error, ValueError):
            return None, False
        payload = TokenPayload.from_claims(claims)
        if payload is None or payload.subject <= 0:
            return None, False

        if self.settings.clock() > payload.expires_at:
            logger.debug("Rejected expired token for subject %s", payload.subject)
            return payload, False
        if self.settings.issuer and payload.issuer != self.settings.issuer:
            logger.debug("Rejected token from issuer %r", payload.issuer)
            return payload, False
        return payload, True

    def discover_subject(self, token: str) -> Optional[int]:
        """Account ID of a valid token, None otherwise"""
        payload, valid = self.validate_token(token)
        return payload.subject if valid else None


def parse_bearer(header: Optional[str]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header value"""
    if not header or not header.startswith(BEARER_SCHEME):
        return None
    token = header[len(BEARER_SCHEME):].strip()
    return token or None
