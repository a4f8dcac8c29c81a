"""Ciphertext substrate: encrypted values, operators and the decryption ACL."""
from cloakid.substrate.base import CiphertextSubstrate, InputProofError
from cloakid.substrate.paillier import (
    PaillierCoprocessor,
    serialize_encrypted,
    deserialize_encrypted,
)

__all__ = [
    "CiphertextSubstrate",
    "InputProofError",
    "PaillierCoprocessor",
    "serialize_encrypted",
    "deserialize_encrypted",
]
