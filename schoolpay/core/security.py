# schoolpay/core/security.py - Bearer tokens, password hashing and FedaPay webhook signatures
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional, Union
import hashlib
import hmac
import secrets
import time

import jwt
from passlib.context import CryptContext

from schoolpay.core.config import settings
from schoolpay.core.exceptions import AuthenticationError

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
    bcrypt__ident="2b"
)

RESERVED_CLAIMS = frozenset({"sub", "iat", "exp", "iss", "aud", "type", "jti"})


class SecurityError(Exception):
    """Raised when a token or hash cannot be produced"""


class TokenManager:
    """HS256 access tokens scoped to this API by issuer and audience"""

    def __init__(self):
        self.secret_key = settings.JWT_SECRET
        self.algorithm = settings.JWT_ALGORITHM
        self.issuer = settings.JWT_ISSUER
        self.audience = settings.JWT_AUDIENCE
        self.lifetime = timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    def create_access_token(
        self,
        subject: Union[str, Any],
        expires_delta: Optional[timedelta] = None,
        additional_claims: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Args:
            subject: Identity id placed in ``sub``
            expires_delta: Overrides JWT_ACCESS_TOKEN_EXPIRE_MINUTES
            additional_claims: Extra claims such as ``role``; reserved names are refused

        Raises:
            SecurityError: If a reserved claim is overridden or encoding fails
        """
        clashing = RESERVED_CLAIMS.intersection(additional_claims or {})
        if clashing:
            raise SecurityError(f"Cannot override reserved JWT claim: {', '.join(sorted(clashing))}")

        issued_at = datetime.now(timezone.utc)
        claims = {
            **(additional_claims or {}),
            "sub": str(subject),
            "iat": issued_at,
            "exp": issued_at + (expires_delta or self.lifetime),
            "iss": self.issuer,
            "aud": self.audience,
            "type": "access",
            "jti": secrets.token_hex(16),
        }

        try:
            return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)
        except jwt.PyJWTError as e:
            raise SecurityError(f"Failed to create access token: {e}")

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Raises:
            AuthenticationError: If the token is expired, forged or not an access token
        """
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Unauthorized")

        if claims.get("type") != "access":
            raise AuthenticationError("Invalid token type")
        return claims


class PasswordManager:

    @staticmethod
    def hash_password(password: str) -> str:
        if not password:
            raise SecurityError("Password cannot be empty")
        return pwd_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        if not plain_password or not hashed_password:
            return False
        try:
            return pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError):
            # Unknown or corrupt hash format
            return False


class WebhookSignatureVerifier:
    """
    Verifies FedaPay webhook signatures.

    The X-FEDAPAY-SIGNATURE header carries ``t=<unix ts>,s=<hex digest>`` where
    the digest is HMAC-SHA256 over ``"<t>.<raw body>"`` keyed by the endpoint
    secret. Several ``s=`` entries may be present during secret rotation.
    """

    def __init__(self, secret: str, tolerance_seconds: int = 300):
        self.secret = secret.encode()
        self.tolerance_seconds = tolerance_seconds

    def compute(self, timestamp: Union[int, str], body: bytes) -> str:
        signed_payload = f"{timestamp}.".encode() + body
        return hmac.new(self.secret, signed_payload, hashlib.sha256).hexdigest()

    def verify(self, header: Optional[str], body: bytes, now: Optional[float] = None) -> None:
        """
        Raises:
            AuthenticationError: If the header is missing, stale or does not match
        """
        if not header:
            raise AuthenticationError("Missing webhook signature")

        timestamp = None
        signatures = []
        for part in header.split(","):
            key, _, value = part.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "s":
                signatures.append(value)

        if not timestamp or not signatures:
            raise AuthenticationError("Malformed webhook signature")

        try:
            issued_at = int(timestamp)
        except ValueError:
            raise AuthenticationError("Malformed webhook signature")

        current = now if now is not None else time.time()
        if abs(current - issued_at) > self.tolerance_seconds:
            raise AuthenticationError("Webhook signature timestamp outside tolerance")

        expected = self.compute(timestamp, body)
        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            raise AuthenticationError("Invalid webhook signature")


token_manager = TokenManager()
password_manager = PasswordManager()


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create an access token from a claims dict that carries ``sub``"""
    claims = dict(data)
    subject = claims.pop("sub", None)
    if not subject:
        raise SecurityError("Token data must include 'sub' (subject)")
    return token_manager.create_access_token(subject, expires_delta, claims)


def decode_token(token: str) -> Dict[str, Any]:
    return token_manager.decode_token(token)


def hash_password(password: str) -> str:
    return password_manager.hash_password(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return password_manager.verify_password(plain_password, hashed_password)


__all__ = [
    "TokenManager", "PasswordManager", "WebhookSignatureVerifier",
    "token_manager", "password_manager",
    "create_access_token", "decode_token", "hash_password", "verify_password",
    "SecurityError",
]
