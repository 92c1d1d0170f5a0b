"""Ed25519 key generation and registry entry signatures.

Private keys are kept in the 64-byte NaCl layout (32-byte seed followed by
the public key) and exchanged as hex strings.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from healthcheck.registry.codec import RegistryEntry, hash_registry_entry

SEED_BYTES = 64
KDF_ITERATIONS = 1000
KEY_BYTES = 32


@dataclass(frozen=True)
class KeyPair:
    seed: str
    public_key: str
    private_key: str


def keypair_from_key(key: bytes) -> tuple[bytes, bytes]:
    """Deterministic Ed25519 key pair (public, private) from a 32-byte key."""
    signer = Ed25519PrivateKey.from_private_bytes(key)
    public = signer.public_key().public_bytes_raw()
    return public, key + public


def derive_key(seed: str) -> bytes:
    """PBKDF2-HMAC-SHA256 of the hex seed with an empty salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=b"",
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(seed.encode("utf-8"))


def keypair_from_seed(seed: str) -> KeyPair:
    public, private = keypair_from_key(derive_key(seed))
    return KeyPair(seed=seed, public_key=public.hex(), private_key=private.hex())


def gen_keypair_and_seed() -> KeyPair:
    """Fresh random seed and the key pair derived from it."""
    return keypair_from_seed(secrets.token_hex(SEED_BYTES))


def sign_registry_entry(private_key: str, entry: RegistryEntry) -> bytes:
    """Detached signature over the entry hash."""
    signer = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(private_key)[:KEY_BYTES])
    return signer.sign(hash_registry_entry(entry))


def verify_registry_entry(public_key: str, entry: RegistryEntry, signature: bytes) -> bool:
    verifier = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key))
    try:
        verifier.verify(bytes(signature), hash_registry_entry(entry))
    except InvalidSignature:
        return False
    return True
