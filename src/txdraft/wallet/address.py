"""Address encoding — Base58Check and hex forms of 20-byte ledger addresses.

The ledger's ``wes_getUTXO`` method takes Base58Check addresses
(version byte ``0x1C``); drafts and parsed transactions carry raw hex.
"""

from __future__ import annotations

from txdraft.utils.crypto import sha256d
from txdraft.utils.hexutil import ADDRESS_LENGTH, strip_0x

# Ledger P2PKH address version byte
ADDRESS_VERSION = b"\x1c"

_B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58_encode(payload: bytes) -> str:
    """Encode raw bytes to Base58 (no checksum)."""
    n = int.from_bytes(payload, "big")
    result: list[int] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_B58_ALPHABET[remainder])
    # Preserve leading zero bytes
    for byte in payload:
        if byte == 0:
            result.append(_B58_ALPHABET[0])
        else:
            break
    return bytes(reversed(result)).decode("ascii")


def base58_decode(s: str) -> bytes:
    """Decode Base58 string to raw bytes (no checksum).

    Raises:
        ValueError: On characters outside the Base58 alphabet.
    """
    n = 0
    for char in s:
        idx = _B58_ALPHABET.find(char.encode("ascii", errors="replace"))
        if idx < 0:
            msg = f"invalid Base58 character: {char!r}"
            raise ValueError(msg)
        n = n * 58 + idx
    result = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    pad_count = len(s) - len(s.lstrip("1"))
    return b"\x00" * pad_count + result


def base58check_encode(payload: bytes) -> str:
    """Encode bytes with a 4-byte SHA256d checksum (Base58Check)."""
    return base58_encode(payload + sha256d(payload)[:4])


def base58check_decode(s: str) -> bytes:
    """Decode a Base58Check string, verifying the checksum.

    Raises:
        ValueError: If the string is too short or the checksum is invalid.
    """
    raw = base58_decode(s)
    if len(raw) < 4:
        msg = "Base58Check string too short"
        raise ValueError(msg)
    payload, checksum = raw[:-4], raw[-4:]
    if checksum != sha256d(payload)[:4]:
        msg = "Base58Check checksum mismatch"
        raise ValueError(msg)
    return payload


def address_to_base58(address: bytes) -> str:
    """Encode a 20-byte address as a Base58Check ledger address.

    Raises:
        ValueError: If *address* is not 20 bytes.
    """
    if len(address) != ADDRESS_LENGTH:
        msg = f"invalid address length: expected {ADDRESS_LENGTH} bytes, got {len(address)}"
        raise ValueError(msg)
    return base58check_encode(ADDRESS_VERSION + address)


def base58_to_address(encoded: str) -> bytes:
    """Decode a Base58Check ledger address to its 20 raw bytes.

    Raises:
        ValueError: On checksum, length or version errors.
    """
    payload = base58check_decode(encoded)
    if len(payload) != ADDRESS_LENGTH + 1:
        msg = f"invalid address payload length: {len(payload)}"
        raise ValueError(msg)
    if payload[:1] != ADDRESS_VERSION:
        msg = f"unexpected address version byte: {payload[0]:#04x}"
        raise ValueError(msg)
    return payload[1:]


def hex_to_address(value: str) -> bytes:
    """Decode a 40-character hex address (``0x`` optional)."""
    raw = bytes.fromhex(strip_0x(value))
    if len(raw) != ADDRESS_LENGTH:
        msg = f"invalid hex address length: expected {ADDRESS_LENGTH} bytes, got {len(raw)}"
        raise ValueError(msg)
    return raw


def validate_address(encoded: str) -> bool:
    """Check if *encoded* is a valid Base58Check ledger address."""
    try:
        base58_to_address(encoded)
    except ValueError:
        return False
    return True
