"""Base64url checks for Web Push key material."""

import re

_BASE64URL = re.compile(r"^[A-Za-z0-9_-]+$")
# Characters from the standard alphabet that browsers sometimes leak into keys.
UNSAFE_CHARS = ("/", "+")


def has_unsafe_chars(value: str | None) -> bool:
    return value is None or any(ch in value for ch in UNSAFE_CHARS)


def is_base64url(value: str | None) -> bool:
    """True when `value` is non-empty base64url with at most well-formed padding."""

    if not value or has_unsafe_chars(value):
        return False
    stripped = value.rstrip("=")
    padding = len(value) - len(stripped)
    if not stripped or not _BASE64URL.match(stripped):
        return False
    if padding and len(value) % 4 != 0:
        return False
    if padding > 2:
        return False
    # A single trailing sextet can never encode a whole byte.
    return len(stripped) % 4 != 1
