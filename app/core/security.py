import hashlib
import hmac
from typing import Optional

from fastapi.security import HTTPAuthorizationCredentials

from app.core.exceptions import AuthError, SignatureError


def extract_bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if not credentials or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise AuthError("Missing or invalid authorization header")
    return credentials.credentials


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> None:
    """Raise SignatureError unless `signature` is the hex HMAC-SHA256 of the raw body."""
    expected = compute_signature(payload, secret).encode("ascii")
    # Headers arrive latin-1 decoded; compare bytes so non-ASCII input is a mismatch, not a TypeError.
    received = signature.strip().lower().encode("utf-8", "surrogateescape")
    if not hmac.compare_digest(expected, received):
        raise SignatureError("Invalid signature")
