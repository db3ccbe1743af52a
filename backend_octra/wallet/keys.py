"""
Key derivation for Octra wallets.

Fresh wallets: 128-bit entropy → BIP-39 mnemonic → BIP-39 seed →
HMAC-SHA512("Octra seed") → first 32 bytes as the Ed25519 seed.
Imported wallets: 64-hex seed, 128-hex expanded key (first half is the seed),
or 44-char base64 seed.

Address = "oct" + base58(sha256(public_key)). Same input always yields the
same keypair and address, which makes recovery and wallet switching idempotent.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import secrets
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

import base58
import nacl.signing
from mnemonic import Mnemonic

from backend_octra.core.exceptions import InvalidKeyFormat

ADDRESS_PREFIX = "oct"
MASTER_KEY_HMAC_KEY = b"Octra seed"
ENTROPY_BYTES = 16
SEED_BYTES = 32

_HEX_SEED_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_HEX_EXPANDED_RE = re.compile(r"^[0-9a-fA-F]{128}$")
_BASE64_SEED_RE = re.compile(r"^[A-Za-z0-9+/=]{44}$")

_mnemo = Mnemonic("english")


@dataclass(frozen=True)
class Keypair:
    """Ed25519 keypair; the seed is the only secret and is excluded from repr."""

    seed: bytes = field(repr=False)
    public_key: bytes

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        if len(seed) != SEED_BYTES:
            raise InvalidKeyFormat()
        signing_key = nacl.signing.SigningKey(bytes(seed))
        return cls(seed=bytes(seed), public_key=bytes(signing_key.verify_key))

    @property
    def address(self) -> str:
        return address_from_public_key(self.public_key)

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()

    @property
    def public_key_b64(self) -> str:
        return base64.b64encode(self.public_key).decode()

    @property
    def private_key_hex(self) -> str:
        """64-byte expanded secret key (seed ‖ public key), the storage format."""
        return (self.seed + self.public_key).hex()

    def signing_key(self) -> nacl.signing.SigningKey:
        return nacl.signing.SigningKey(self.seed)


@dataclass(frozen=True)
class DerivedWallet:
    mnemonic: str = field(repr=False)
    keypair: Keypair

    @property
    def address(self) -> str:
        return self.keypair.address


def address_from_public_key(public_key: bytes) -> str:
    digest = hashlib.sha256(public_key).digest()
    return ADDRESS_PREFIX + base58.b58encode(digest).decode()


def master_seed_from_phrase(phrase: str) -> bytes:
    bip39_seed = Mnemonic.to_seed(phrase, passphrase="")
    return hmac.new(MASTER_KEY_HMAC_KEY, bip39_seed, hashlib.sha512).digest()[:SEED_BYTES]


def derive_from_mnemonic(entropy: bytes | None = None) -> DerivedWallet:
    """Generate (or reproduce, when entropy is given) a mnemonic-backed wallet."""
    if entropy is None:
        entropy = secrets.token_bytes(ENTROPY_BYTES)
    if len(entropy) != ENTROPY_BYTES:
        raise ValueError(f"entropy must be {ENTROPY_BYTES} bytes")
    phrase = _mnemo.to_mnemonic(entropy)
    return DerivedWallet(mnemonic=phrase, keypair=Keypair.from_seed(master_seed_from_phrase(phrase)))


def derive_from_phrase(phrase: str) -> DerivedWallet:
    """Recover a wallet from an existing mnemonic sentence."""
    normalized = " ".join((phrase or "").split()).lower()
    if not normalized or not _mnemo.check(normalized):
        raise InvalidKeyFormat("Invalid mnemonic phrase")
    return DerivedWallet(mnemonic=normalized, keypair=Keypair.from_seed(master_seed_from_phrase(normalized)))


def extract_seed(material: str) -> bytes:
    """
    Decode externally supplied key material into a 32-byte seed.

    Accepts 64 hex chars, 128 hex chars (first 64 used), or 44-char base64.
    Raises InvalidKeyFormat for any other shape.
    """
    if not isinstance(material, str):
        raise InvalidKeyFormat()
    material = material.strip()
    try:
        if _HEX_SEED_RE.match(material):
            seed = bytes.fromhex(material)
        elif _HEX_EXPANDED_RE.match(material):
            seed = bytes.fromhex(material[:64])
        elif _BASE64_SEED_RE.match(material):
            seed = base64.b64decode(material, validate=True)
        else:
            raise InvalidKeyFormat()
    except (ValueError, binascii.Error) as e:
        raise InvalidKeyFormat() from e
    if len(seed) != SEED_BYTES:
        raise InvalidKeyFormat()
    return seed


def derive_from_private_key(material: str) -> Keypair:
    return Keypair.from_seed(extract_seed(material))


@contextmanager
def open_signing_key(private_key_hex: str) -> Iterator[nacl.signing.SigningKey]:
    """
    Yield a SigningKey for a stored private key, zeroing the decoded buffer on exit.

    The stored format is hex, either the 32-byte seed or the 64-byte expanded key.
    """
    buf = bytearray(extract_seed(private_key_hex))
    try:
        yield nacl.signing.SigningKey(bytes(buf))
    finally:
        for i in range(len(buf)):
            buf[i] = 0
