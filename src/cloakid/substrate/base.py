"""
Ciphertext substrate interface.

The engine treats encrypted computation as a capability it calls. A
substrate supplies:
1. Typed encrypted values addressed by opaque handles
2. Arithmetic, comparison and logic over handles (results are new handles)
3. Promotion of plaintext constants into the encrypted domain
4. An ACL of principals allowed to decrypt each handle
"""
from abc import ABC, abstractmethod
from typing import Sequence, Tuple

from cloakid.shared.protocol import EncryptedInput, EncryptedType


class CiphertextSubstrate(ABC):
    """Abstract base class for ciphertext substrates."""

    # Encrypted values

    @abstractmethod
    def as_encrypted(self, value: int, etype: EncryptedType) -> str:
        """Promote a plaintext constant into a fresh ciphertext handle."""
        pass

    @abstractmethod
    def type_of(self, handle: str) -> EncryptedType:
        """Encrypted type of a handle."""
        pass

    @abstractmethod
    def sub(self, lhs: str, rhs: str) -> str:
        """Wrapping subtraction lhs - rhs."""
        pass

    @abstractmethod
    def ge(self, lhs: str, rhs: str) -> str:
        """Encrypted boolean lhs >= rhs."""
        pass

    @abstractmethod
    def eq(self, lhs: str, rhs: str) -> str:
        """Encrypted boolean lhs == rhs."""
        pass

    @abstractmethod
    def and_(self, lhs: str, rhs: str) -> str:
        """Encrypted boolean AND."""
        pass

    @abstractmethod
    def or_(self, lhs: str, rhs: str) -> str:
        """Encrypted boolean OR."""
        pass

    @abstractmethod
    def select(self, condition: str, if_true: str, if_false: str) -> str:
        """Encrypted conditional: if_true when condition holds, else if_false."""
        pass

    # Permissions

    @abstractmethod
    def allow(self, handle: str, principal: str) -> None:
        """Grant principal the right to decrypt handle."""
        pass

    @abstractmethod
    def is_allowed(self, handle: str, principal: str) -> bool:
        """Whether principal may decrypt handle."""
        pass

    @abstractmethod
    def release(self, *handles: str) -> None:
        """
        Drop ciphertexts nobody needs any more, together with their grants.

        Inside a transaction the release takes effect on commit and is
        discarded on rollback.
        """
        pass

    # Input ingestion

    @abstractmethod
    def register_input(
        self,
        ciphertexts: Sequence[Tuple[object, EncryptedType]],
        engine: str,
        principal: str,
    ) -> EncryptedInput:
        """
        Admit client-encrypted values and issue a validity proof.

        The proof binds the new handles to (engine, principal).
        """
        pass

    @abstractmethod
    def verify_input(
        self,
        encrypted_input: EncryptedInput,
        engine: str,
        principal: str,
        expected_types: Sequence[EncryptedType],
    ) -> Tuple[str, ...]:
        """
        Check a validity proof and return the handles it covers.

        Raises InputProofError when the proof does not bind the handles to
        (engine, principal) or the handle types differ from expected_types.
        """
        pass

    # Decryption boundary

    @abstractmethod
    def user_decrypt(self, handle: str, principal: str) -> int:
        """
        Decrypt a handle for a principal holding a grant.

        Raises PermissionDenied otherwise.
        """
        pass

    # Transactions

    @abstractmethod
    def begin(self) -> None:
        """Start journaling grants and new handles."""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Keep everything journaled since begin() and apply deferred releases."""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard grants, handles and releases made since begin()."""
        pass


class InputProofError(Exception):
    """Raised by a substrate when an input proof does not validate."""
