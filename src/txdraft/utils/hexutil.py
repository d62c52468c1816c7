"""Hex / fixed-width byte helpers shared by models, ledger codec and composers."""

from __future__ import annotations

from txdraft.errors.draft_errors import InvalidArgument

ADDRESS_LENGTH = 20
IDENTIFIER_LENGTH = 32
MAX_AMOUNT = 2**64 - 1


def strip_0x(value: str) -> str:
    """Remove a leading ``0x`` / ``0X`` prefix if present."""
    return value[2:] if value[:2].lower() == "0x" else value


def to_hex(data: bytes, *, prefix: bool = False) -> str:
    """Hex-encode *data*, optionally with a ``0x`` prefix."""
    return ("0x" if prefix else "") + data.hex()


def from_hex(value: str) -> bytes:
    """Decode a hex string with or without ``0x``.

    Raises:
        ValueError: If *value* is not valid hex.
    """
    return bytes.fromhex(strip_0x(value))


def require_length(value: bytes | None, length: int, field: str) -> bytes:
    """Validate that *value* is exactly *length* bytes.

    Raises:
        InvalidArgument: On a missing value or a length mismatch.
    """
    if value is None or len(value) != length:
        got = "none" if value is None else f"{len(value)} bytes"
        msg = f"{field} must be {length} bytes, got {got}"
        raise InvalidArgument(msg, field=field)
    return bytes(value)


def require_address(value: bytes | None, field: str) -> bytes:
    """Validate a 20-byte ledger address."""
    return require_length(value, ADDRESS_LENGTH, field)


def require_identifier(value: bytes | None, field: str) -> bytes:
    """Validate a 32-byte content/state/token identifier."""
    return require_length(value, IDENTIFIER_LENGTH, field)


def require_amount(value: int, field: str = "amount") -> int:
    """Validate a non-zero unsigned 64-bit amount."""
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{field} must be an integer"
        raise InvalidArgument(msg, field=field)
    if value <= 0:
        msg = f"{field} must be greater than 0"
        raise InvalidArgument(msg, field=field)
    if value > MAX_AMOUNT:
        msg = f"{field} exceeds the unsigned 64-bit range"
        raise InvalidArgument(msg, field=field)
    return value


def token_label(token_id: bytes | None) -> str:
    """Human-readable token label (``native`` or hex)."""
    return token_id.hex() if token_id else "native"
