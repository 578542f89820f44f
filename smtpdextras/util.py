"""Small text helpers shared by the backends."""

from __future__ import annotations

import base64
import binascii

_C_SPACE = " \t\n\v\f\r"
_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)


def strip(s: str) -> str:
    """Remove leading and trailing ASCII whitespace."""
    return s.strip(_C_SPACE)


def lowercase(s: str, size: int) -> str:
    """Return s with ASCII letters lowered.

    The result must fit, with a terminator, in a buffer of ``size``
    characters; ValueError is raised when it does not.
    """
    if size <= 0:
        raise ValueError("buffer size must be positive")
    if len(s) >= size:
        raise ValueError(f"string of length {len(s)} does not fit in {size}")
    return s.translate(_ASCII_LOWER)


def base64_encode(data: bytes) -> str:
    """Encode bytes as standard padded base64 text."""
    return base64.b64encode(bytes(data)).decode("ascii")


def base64_decode(text: str) -> bytes:
    """Decode base64 text, ignoring whitespace; raise ValueError if invalid."""
    compact = "".join(text.split())
    try:
        return base64.b64decode(compact.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"invalid base64 input: {exc}") from None