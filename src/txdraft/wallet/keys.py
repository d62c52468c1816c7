"""Local signer — secp256k1 keys that sign signature hashes, never drafts.

Only ``hash -> signature`` crosses the wallet boundary. Signatures are the
fixed 64-byte ``r || s`` form (low-S) the ledger expects, public keys are the
33-byte SEC compressed encoding.
"""

from __future__ import annotations

import hashlib
from typing import Protocol, Self

from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey
from ecdsa.errors import MalformedPointError
from ecdsa.util import sigdecode_string, sigencode_string_canonize

from txdraft.utils.crypto import sha256
from txdraft.utils.hexutil import ADDRESS_LENGTH, strip_0x

_CURVE = SECP256k1
SIGNATURE_LENGTH = 64
HASH_LENGTH = 32


class Signer(Protocol):
    """What the signing coordinator needs from a wallet."""

    @property
    def address(self) -> bytes: ...

    @property
    def public_key(self) -> bytes: ...

    def sign_hash(self, digest: bytes) -> bytes: ...


def derive_address(public_key: bytes) -> bytes:
    """Derive the 20-byte ledger address from a compressed public key.

    The address is the first 20 bytes of SHA-256 over the compressed key.
    """
    return sha256(public_key)[:ADDRESS_LENGTH]


def verify_hash_signature(public_key: bytes, digest: bytes, signature: bytes) -> bool:
    """Verify a 64-byte ``r || s`` signature over a 32-byte hash."""
    if len(signature) != SIGNATURE_LENGTH:
        return False
    try:
        vk = VerifyingKey.from_string(public_key, curve=_CURVE)
        return vk.verify_digest(signature, digest, sigdecode=sigdecode_string)
    except (BadSignatureError, MalformedPointError, ValueError):
        return False


class Wallet:
    """A single-key wallet.

    Usage::

        wallet = Wallet.generate()
        sig = wallet.sign_hash(hash_bytes)
    """

    def __init__(self, private_key: bytes, *, address: bytes | None = None) -> None:
        """Create a wallet from a 32-byte private scalar.

        Args:
            private_key: 32-byte big-endian private key.
            address: Override for the ledger address (keystores that assign
                addresses externally). Derived from the public key when omitted.

        Raises:
            ValueError: On a malformed key or address.
        """
        if len(private_key) != 32:
            msg = f"invalid private key length: expected 32 bytes, got {len(private_key)}"
            raise ValueError(msg)
        self._sk = SigningKey.from_string(private_key, curve=_CURVE)
        self._public_key = self._sk.get_verifying_key().to_string("compressed")
        if address is not None and len(address) != ADDRESS_LENGTH:
            msg = f"invalid address length: expected {ADDRESS_LENGTH} bytes, got {len(address)}"
            raise ValueError(msg)
        self._address = address if address is not None else derive_address(self._public_key)

    @classmethod
    def generate(cls) -> Self:
        """Create a wallet with a fresh random key."""
        return cls(SigningKey.generate(curve=_CURVE).to_string())

    @classmethod
    def from_hex(cls, private_key_hex: str) -> Self:
        """Create a wallet from a hex-encoded private key (``0x`` optional)."""
        return cls(bytes.fromhex(strip_0x(private_key_hex)))

    @property
    def address(self) -> bytes:
        """The 20-byte ledger address."""
        return self._address

    @property
    def public_key(self) -> bytes:
        """33-byte compressed public key."""
        return self._public_key

    def sign_hash(self, digest: bytes) -> bytes:
        """Sign a 32-byte signature hash.

        Returns:
            64-byte ``r || s`` signature (deterministic, RFC 6979, low-S).

        Raises:
            ValueError: If *digest* is not 32 bytes.
        """
        if len(digest) != HASH_LENGTH:
            msg = f"signature hash must be {HASH_LENGTH} bytes, got {len(digest)}"
            raise ValueError(msg)
        return self._sk.sign_digest_deterministic(
            digest, hashfunc=hashlib.sha256, sigencode=sigencode_string_canonize
        )

    def sign_message(self, message: bytes) -> bytes:
        """Sign SHA-256(*message*)."""
        return self.sign_hash(sha256(message))

    def __repr__(self) -> str:
        return f"<Wallet address={self._address.hex()}>"
