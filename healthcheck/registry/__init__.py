"""Signed registry: entry codec, Ed25519 keys and the HTTP client."""

from .client import RegistryClient, RegistryError
from .codec import RegistryEntry, hash_data_key, hash_registry_entry
from .keys import KeyPair, gen_keypair_and_seed, sign_registry_entry, verify_registry_entry
