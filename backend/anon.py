"""
Anonymous visitor identity.

Each browser gets a random id in a signed cookie (`<uuid>.<hmac>`). The id
is stored as `authorId` on comments so a visitor can edit or delete their
own comments without an account. A cookie with a bad signature is treated
as absent and replaced.
"""

from typing import Optional
import base64
import hashlib
import hmac
import uuid

COOKIE_NAME = "anon"
COOKIE_MAX_AGE = 60 * 60 * 24 * 365 * 5  # 5 years


def _sign(secret: str, value: str) -> str:
    digest = hmac.new(secret.encode(), value.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


def pack(secret: str, anon_id: str) -> str:
    return f"{anon_id}.{_sign(secret, anon_id)}"


def unpack(secret: str, raw: Optional[str]) -> Optional[str]:
    """Return the id from a signed cookie value, or None if invalid."""

    if not raw or "." not in raw:
        return None
    anon_id, sig = raw.split(".", 1)
    if not anon_id:
        return None
    # bytes: compare_digest rejects non-ASCII str
    expected = _sign(secret, anon_id).encode()
    if not hmac.compare_digest(sig.encode("utf-8", errors="replace"), expected):
        return None
    return anon_id


def new_id() -> str:
    return str(uuid.uuid4())
