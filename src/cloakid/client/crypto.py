"""
Client-side encryption using LightPHE Paillier.

Clients only ever hold the network public key: they can encrypt their
attributes but cannot decrypt anything. Decryption goes through the
substrate's user_decrypt, which checks the permission grants.
"""
from pathlib import Path
from typing import List, Optional, Tuple, Union

from lightphe import LightPHE
from lightphe.models.Ciphertext import Ciphertext

from cloakid.shared.protocol import EncryptedInput, EncryptedType
from cloakid.substrate.base import CiphertextSubstrate


class CryptoClient:
    """
    Client-side cryptographic operations.

    Responsible for:
    - Loading the network public key
    - Encrypting attribute values
    """

    DEFAULT_KEY_SIZE = 2048  # bits

    def __init__(
        self,
        keys: Optional[dict] = None,
        key_file: Optional[str] = None,
        key_size: int = DEFAULT_KEY_SIZE,
    ):
        """
        Initialize crypto client.

        Args:
            keys: Key dict, normally {"public_key": {...}}
            key_file: Path to load keys from
            key_size: Paillier key size in bits
        """
        self.key_size = key_size
        self._cs = LightPHE(
            algorithm_name="Paillier",
            keys=keys,
            key_file=key_file,
            key_size=key_size,
        )

    @property
    def public_key(self) -> dict:
        keys = self._cs.cs.keys.copy()
        return {"public_key": keys.get("public_key", {})}

    @property
    def has_private_key(self) -> bool:
        """Check if private key is available."""
        return self._cs.cs.keys.get("private_key") is not None

    def encrypt_value(self, value: int, etype: EncryptedType) -> Ciphertext:
        """
        Encrypt one attribute value.

        Args:
            value: Unsigned integer that must fit in etype
            etype: Encrypted type the value is declared as

        Returns:
            LightPHE Ciphertext
        """
        if isinstance(value, bool):
            value = int(value)
        if not isinstance(value, int):
            raise TypeError(f"Expected an integer, got {type(value).__name__}")
        if not 0 <= value < etype.modulus:
            raise ValueError(f"{value} does not fit in {etype.name}")
        return self._cs.encrypt(value)

    @classmethod
    def from_public_key(cls, public_key: dict) -> "CryptoClient":
        """
        Create an encrypt-only client.

        Args:
            public_key: Public key dict, with or without the "public_key" wrapper

        Returns:
            CryptoClient instance without decryption capability
        """
        if "public_key" in public_key:
            keys = public_key
        else:
            keys = {"public_key": public_key}
        return cls(keys=keys)

    @classmethod
    def from_key_file(cls, key_file: Union[str, Path]) -> "CryptoClient":
        """Create client from an exported (public) key file."""
        return cls(key_file=str(key_file))


class EncryptedInputBuilder:
    """
    Collects typed values, encrypts them and obtains an input proof.

    The proof binds the resulting handles to one engine and one principal,
    so the input cannot be replayed by another subject or against another
    engine.
    """

    def __init__(
        self,
        substrate: CiphertextSubstrate,
        crypto: CryptoClient,
        engine: str,
        principal: str,
    ):
        self.substrate = substrate
        self.crypto = crypto
        self.engine = engine
        self.principal = principal
        self._values: List[Tuple[int, EncryptedType]] = []

    def __len__(self) -> int:
        return len(self._values)

    def _add(self, value: int, etype: EncryptedType) -> "EncryptedInputBuilder":
        if not 0 <= int(value) < etype.modulus:
            raise ValueError(f"{value} does not fit in {etype.name}")
        self._values.append((int(value), etype))
        return self

    def add_bool(self, value: bool) -> "EncryptedInputBuilder":
        return self._add(int(bool(value)), EncryptedType.EBOOL)

    def add8(self, value: int) -> "EncryptedInputBuilder":
        return self._add(value, EncryptedType.EUINT8)

    def add32(self, value: int) -> "EncryptedInputBuilder":
        return self._add(value, EncryptedType.EUINT32)

    def add256(self, value: int) -> "EncryptedInputBuilder":
        return self._add(value, EncryptedType.EUINT256)

    def add_address(self, address: str) -> "EncryptedInputBuilder":
        """Add a 0x-prefixed 20-byte hex address."""
        if not (isinstance(address, str) and address.startswith("0x") and len(address) == 42):
            raise ValueError(f"{address!r} is not a 20-byte hex address")
        return self._add(int(address, 16), EncryptedType.EADDRESS)

    def encrypt(self) -> EncryptedInput:
        """Encrypt every value and register them with the substrate."""
        if not self._values:
            raise ValueError("No values added")
        ciphertexts = [(self.crypto.encrypt_value(v, t), t) for v, t in self._values]
        return self.substrate.register_input(ciphertexts, self.engine, self.principal)
