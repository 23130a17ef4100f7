"""
Bearer token verification for API callers.

Tokens are ``base64url(json claims) + "." + hex HMAC-SHA256`` signed with the
service's API token secret.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Optional

import structlog

from ..utils.crypto_utils import CryptoUtils

logger = structlog.get_logger(__name__)

ADMIN_ROLE = "admin"


class AuthenticationError(Exception):
    """Token missing, malformed or not signed by this service."""


@dataclass(frozen=True)
class VerifierContext:
    """Identity of the caller performing a verification."""
    uid: str
    org_id: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


class ApiTokenVerifier:
    """Issues and checks signed API tokens."""

    def __init__(self, secret: str, crypto: Optional[CryptoUtils] = None):
        if not secret:
            raise ValueError("API token secret must not be empty")
        self._secret = secret
        self.crypto = crypto or CryptoUtils()

    def issue_token(self, context: VerifierContext) -> str:
        claims = {
            "uid": context.uid,
            "orgId": context.org_id,
            "name": context.name,
            "role": context.role,
        }
        body = _b64encode(json.dumps(claims, separators=(",", ":")).encode("utf-8"))
        return f"{body}.{self.crypto.generate_hmac(body, self._secret)}"

    def verify(self, token: str) -> VerifierContext:
        """
        Verify a token and return the caller it identifies.

        Raises:
            AuthenticationError: If the token is malformed or the signature is wrong
        """
        body, _, signature = token.partition(".")
        if not body or not signature:
            raise AuthenticationError("Malformed token")

        if not self.crypto.verify_hmac(body, self._secret, signature):
            logger.warning("Rejected token with invalid signature")
            raise AuthenticationError("Invalid token signature")

        try:
            claims = json.loads(_b64decode(body).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            raise AuthenticationError("Malformed token claims") from e

        if not isinstance(claims, dict) or not claims.get("uid"):
            raise AuthenticationError("Token has no subject")

        return VerifierContext(
            uid=str(claims["uid"]),
            org_id=claims.get("orgId"),
            name=claims.get("name"),
            role=claims.get("role"),
        )
