"""
Paillier coprocessor substrate built on LightPHE.

The coprocessor holds the network key pair. Clients encrypt with the
public key only; the engine works purely on handles. Subtraction runs
homomorphically on Paillier ciphertexts. Comparison, boolean logic and
select run inside the coprocessor, and every result is re-encrypted under
a fresh handle, so no plaintext ever leaves this module except through
user_decrypt() for a principal holding a grant.
"""
import base64
import hashlib
import hmac
import io
import json
import logging
import pickle
import secrets
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from lightphe import LightPHE
from lightphe.models.Ciphertext import Ciphertext

from cloakid.shared.errors import PermissionDenied, UnknownHandle
from cloakid.shared.protocol import EncryptedInput, EncryptedType
from cloakid.substrate.base import CiphertextSubstrate, InputProofError

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    etype: EncryptedType
    ciphertext: Ciphertext


@dataclass
class _Journal:
    owner: int
    created: List[str] = field(default_factory=list)
    granted: List[Tuple[str, str]] = field(default_factory=list)
    released: List[str] = field(default_factory=list)


class PaillierCoprocessor(CiphertextSubstrate):
    """
    Ciphertext substrate backed by a LightPHE Paillier key pair.

    Responsible for:
    - Holding the network key pair
    - Admitting client ciphertexts and issuing input proofs
    - Evaluating operators over handles
    - Enforcing the decryption ACL
    """

    DEFAULT_KEY_SIZE = 2048  # bits

    def __init__(
        self,
        key_size: int = DEFAULT_KEY_SIZE,
        keys: Optional[dict] = None,
        key_file: Optional[str] = None,
        proof_secret: Optional[bytes] = None,
    ):
        """
        Initialize the coprocessor.

        Args:
            key_size: Paillier key size in bits (2048 recommended for security)
            keys: Pre-existing key pair dict (must include the private key)
            key_file: Path to load keys from
            proof_secret: HMAC key for input proofs (random when omitted)
        """
        self.key_size = key_size
        self._cs = LightPHE(
            algorithm_name="Paillier",
            keys=keys,
            key_file=key_file,
            key_size=key_size,
        )
        if self._cs.cs.keys.get("private_key") is None:
            raise ValueError("Coprocessor requires the private key")

        self._n = self._cs.cs.keys["public_key"]["n"]
        self._proof_secret = proof_secret or secrets.token_bytes(32)
        self._slots: Dict[str, _Slot] = {}
        self._acl: Dict[str, Set[str]] = {}
        self._journal: Optional[_Journal] = None
        self._lock = threading.RLock()

    @property
    def public_key(self) -> dict:
        """Public half of the network key, for client-side encryption."""
        keys = self._cs.cs.keys.copy()
        return {"public_key": keys.get("public_key", {})}

    def __len__(self) -> int:
        return len(self._slots)

    # Internal helpers

    def _slot(self, handle: str) -> _Slot:
        try:
            return self._slots[handle]
        except KeyError:
            raise UnknownHandle(f"Unknown ciphertext handle {handle}") from None

    def _journaling(self) -> bool:
        return self._journal is not None and self._journal.owner == threading.get_ident()

    def _store(self, ciphertext: Ciphertext, etype: EncryptedType) -> str:
        handle = "0x" + secrets.token_hex(32)
        with self._lock:
            self._slots[handle] = _Slot(etype=etype, ciphertext=ciphertext)
            if self._journaling():
                self._journal.created.append(handle)
        return handle

    def _seal(self, value: int, etype: EncryptedType) -> str:
        return self._store(self._cs.encrypt(value % etype.modulus), etype)

    def _reveal(self, handle: str) -> int:
        slot = self._slot(handle)
        raw = self._cs.decrypt(slot.ciphertext)
        # LightPHE returns a list for tensor operations
        if isinstance(raw, list):
            raw = raw[0]
        raw = int(raw)
        # Paillier plaintexts live in Z_n; map to signed before wrapping
        if raw > self._n // 2:
            raw -= self._n
        return raw % slot.etype.modulus

    def _same_type(self, lhs: str, rhs: str) -> EncryptedType:
        ltype, rtype = self._slot(lhs).etype, self._slot(rhs).etype
        if ltype is not rtype:
            raise ValueError(f"Operand types differ: {ltype.name} vs {rtype.name}")
        return ltype

    def _boolean(self, *handles: str) -> None:
        for handle in handles:
            if self._slot(handle).etype is not EncryptedType.EBOOL:
                raise ValueError(f"{handle} is not an ebool")

    def _proof_tag(self, handles: Sequence[str], engine: str, principal: str) -> str:
        message = json.dumps(
            [engine, principal, list(handles), [self._slot(h).etype.name for h in handles]],
            separators=(",", ":"),
        ).encode("utf-8")
        return hmac.new(self._proof_secret, message, hashlib.sha256).hexdigest()

    # Encrypted values

    def as_encrypted(self, value: int, etype: EncryptedType) -> str:
        value = int(value)
        if not 0 <= value < etype.modulus:
            raise ValueError(f"{value} does not fit in {etype.name}")
        return self._seal(value, etype)

    def type_of(self, handle: str) -> EncryptedType:
        return self._slot(handle).etype

    def sub(self, lhs: str, rhs: str) -> str:
        etype = self._same_type(lhs, rhs)
        # c1 * c2^(n-1) encrypts m1 - m2 (mod n)
        negated = self._slot(rhs).ciphertext * (self._n - 1)
        return self._store(self._slot(lhs).ciphertext + negated, etype)

    def ge(self, lhs: str, rhs: str) -> str:
        self._same_type(lhs, rhs)
        return self._seal(int(self._reveal(lhs) >= self._reveal(rhs)), EncryptedType.EBOOL)

    def eq(self, lhs: str, rhs: str) -> str:
        self._same_type(lhs, rhs)
        return self._seal(int(self._reveal(lhs) == self._reveal(rhs)), EncryptedType.EBOOL)

    def and_(self, lhs: str, rhs: str) -> str:
        self._boolean(lhs, rhs)
        return self._seal(self._reveal(lhs) & self._reveal(rhs), EncryptedType.EBOOL)

    def or_(self, lhs: str, rhs: str) -> str:
        self._boolean(lhs, rhs)
        return self._seal(self._reveal(lhs) | self._reveal(rhs), EncryptedType.EBOOL)

    def select(self, condition: str, if_true: str, if_false: str) -> str:
        self._boolean(condition)
        etype = self._same_type(if_true, if_false)
        chosen = self._slot(if_true if self._reveal(condition) else if_false)
        # Re-randomize so the result cannot be matched against either branch
        rerandomized = chosen.ciphertext + self._cs.encrypt(0)
        return self._store(rerandomized, etype)

    # Permissions

    def allow(self, handle: str, principal: str) -> None:
        self._slot(handle)
        with self._lock:
            granted = self._acl.setdefault(handle, set())
            if principal in granted:
                return
            granted.add(principal)
            if self._journaling():
                self._journal.granted.append((handle, principal))

    def is_allowed(self, handle: str, principal: str) -> bool:
        return principal in self._acl.get(handle, ())

    def release(self, *handles: str) -> None:
        with self._lock:
            if self._journaling():
                self._journal.released.extend(handles)
                return
            self._drop(handles)

    def _drop(self, handles: Sequence[str]) -> None:
        for handle in handles:
            self._slots.pop(handle, None)
            self._acl.pop(handle, None)

    # Input ingestion

    def register_input(
        self,
        ciphertexts: Sequence[Tuple[Ciphertext, EncryptedType]],
        engine: str,
        principal: str,
    ) -> EncryptedInput:
        handles = []
        for ciphertext, etype in ciphertexts:
            if not isinstance(ciphertext, Ciphertext):
                raise TypeError(f"Expected a LightPHE Ciphertext, got {type(ciphertext).__name__}")
            # Re-randomize under the coprocessor's own cryptosystem object
            handles.append(self._store(self._cs.encrypt(0) + ciphertext, etype))

        logger.debug("Registered %d input ciphertexts for %s", len(handles), principal)
        return EncryptedInput(
            handles=tuple(handles),
            input_proof=self._proof_tag(handles, engine, principal),
        )

    def verify_input(
        self,
        encrypted_input: EncryptedInput,
        engine: str,
        principal: str,
        expected_types: Sequence[EncryptedType],
    ) -> Tuple[str, ...]:
        handles = tuple(encrypted_input.handles)
        if len(handles) != len(expected_types):
            raise InputProofError(f"Expected {len(expected_types)} handles, got {len(handles)}")

        try:
            expected_tag = self._proof_tag(handles, engine, principal)
        except UnknownHandle as e:
            raise InputProofError(str(e)) from e

        if not hmac.compare_digest(expected_tag, str(encrypted_input.input_proof)):
            raise InputProofError("Input proof does not bind these handles to this engine and principal")

        for handle, etype in zip(handles, expected_types):
            if self._slot(handle).etype is not etype:
                raise InputProofError(f"Handle {handle} is not an {etype.name}")

        return handles

    # Decryption boundary

    def user_decrypt(self, handle: str, principal: str) -> int:
        self._slot(handle)
        if not self.is_allowed(handle, principal):
            logger.warning("Decryption of %s refused for %s", handle, principal)
            raise PermissionDenied(f"{principal} may not decrypt {handle}")
        return self._reveal(handle)

    # Transactions

    def begin(self) -> None:
        with self._lock:
            if self._journal is not None:
                raise RuntimeError("A substrate transaction is already open")
            self._journal = _Journal(owner=threading.get_ident())

    def commit(self) -> None:
        with self._lock:
            journal, self._journal = self._journal, None
            if journal is not None and journal.released:
                self._drop(journal.released)
                logger.debug("Released %d ciphertexts", len(journal.released))

    def rollback(self) -> None:
        with self._lock:
            journal, self._journal = self._journal, None
            if journal is None:
                return
            for handle, principal in reversed(journal.granted):
                self._acl.get(handle, set()).discard(principal)
            for handle in journal.created:
                self._slots.pop(handle, None)
                self._acl.pop(handle, None)
            logger.debug(
                "Rolled back %d grants and %d ciphertexts",
                len(journal.granted), len(journal.created),
            )

    def export_keys(self, path: str, public: bool = False) -> None:
        """Export the network key pair (or only its public half) to file."""
        self._cs.export_keys(str(path), public=public)


class _CiphertextUnpickler(pickle.Unpickler):
    """Unpickler that only resolves LightPHE classes."""

    def find_class(self, module, name):
        if module.split(".")[0] == "lightphe":
            return super().find_class(module, name)
        raise pickle.UnpicklingError(f"Global '{module}.{name}' is forbidden")


def serialize_encrypted(obj: Ciphertext) -> str:
    """Serialize an encrypted object to a base64 string."""
    return base64.b64encode(pickle.dumps(obj)).decode("utf-8")


def deserialize_encrypted(b64_str: str) -> Ciphertext:
    """Deserialize an encrypted object from a base64 string."""
    return _CiphertextUnpickler(io.BytesIO(base64.b64decode(b64_str))).load()
