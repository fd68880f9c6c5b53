"""Shared-password gate helpers."""

import base64
import hashlib
import hmac
from typing import Optional


def sha256_base64(value: str) -> str:
    digest = hashlib.sha256(value.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def is_configured(plain: Optional[str], hashed: Optional[str]) -> bool:
    return bool(plain or hashed)


def check_password(candidate: str, plain: Optional[str] = None, hashed: Optional[str] = None) -> bool:
    """Accept a match on either the plain password or its SHA-256 (base64)."""
    if plain and hmac.compare_digest(candidate.encode("utf-8"), plain.encode("utf-8")):
        return True
    if hashed and hmac.compare_digest(sha256_base64(candidate), hashed.strip()):
        return True
    return False
