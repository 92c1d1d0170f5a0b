"""Binary encoding and hashing of signed registry entries.

The layout follows the Sia encoding used by the portal's registry: all
integers are little-endian, strings and byte slices carry an 8-byte length
prefix, and hashes are 32-byte Blake2b digests over the concatenated parts.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass

MAX_SAFE_INTEGER = 2**53 - 1
MAX_UINT64 = 2**64 - 1
HASH_SIZE = 32


@dataclass(frozen=True)
class RegistryEntry:
    """A versioned record in the signed key-value registry."""

    data_key: str
    data: bytes
    revision: int


def encode_number(num: int) -> bytes:
    """8-byte little-endian encoding of an integer of up to 53 bits."""
    if not 0 <= num <= MAX_SAFE_INTEGER:
        raise ValueError(f"number {num} is outside the safe integer range")
    return num.to_bytes(8, "little")


def encode_uint64(num: int) -> bytes:
    """8-byte little-endian encoding of an unsigned 64-bit integer."""
    if not 0 <= num <= MAX_UINT64:
        raise ValueError(f"number {num} does not fit in 64 bits")
    return num.to_bytes(8, "little")


def encode_utf8_string(value: str) -> bytes:
    """UTF-8 bytes of ``value`` prefixed by their length."""
    raw = value.encode("utf-8")
    return encode_number(len(raw)) + raw


def encode_prefixed_bytes(data: bytes) -> bytes:
    """``data`` prefixed by its length as u32, zero-padded to an 8-byte slot."""
    return struct.pack("<I4x", len(data)) + bytes(data)


def hash_all(*parts: bytes) -> bytes:
    hasher = hashlib.blake2b(digest_size=HASH_SIZE)
    for part in parts:
        hasher.update(part)
    return hasher.digest()


def hash_data_key(data_key: str) -> bytes:
    return hash_all(encode_utf8_string(data_key))


def hash_registry_entry(entry: RegistryEntry) -> bytes:
    """The digest that gets signed when the entry is written."""
    return hash_all(
        hash_data_key(entry.data_key),
        encode_prefixed_bytes(entry.data),
        encode_uint64(entry.revision),
    )
