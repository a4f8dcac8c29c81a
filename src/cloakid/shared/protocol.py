"""
Protocol definitions shared by the engine, the substrate and clients.
"""
from dataclasses import dataclass
from typing import Optional, Tuple
from enum import Enum


class EncryptedType(Enum):
    """Encrypted value types and their bit widths."""
    EBOOL = 1
    EUINT8 = 8
    EUINT32 = 32
    EADDRESS = 160
    EUINT256 = 256

    @property
    def bits(self) -> int:
        return self.value

    @property
    def modulus(self) -> int:
        return 1 << self.value


@dataclass(frozen=True)
class EncryptedInput:
    """
    Ciphertext handles plus the validity proof that binds them.

    Produced by the substrate's input registration and consumed once by
    the engine on submission.
    """
    handles: Tuple[str, ...]
    input_proof: str


@dataclass(frozen=True)
class IdentityRecord:
    """Encrypted attribute bundle and plaintext attestation metadata."""
    passport: str       # eaddress handle
    birth_year: str     # euint32 handle
    country: str        # euint8 handle
    attested: bool = False
    attested_at: int = 0
    attested_by: Optional[str] = None


@dataclass(frozen=True)
class VerificationStatus:
    """Non-secret attestation view of a subject."""
    attested: bool
    attested_at: int
    attested_by: Optional[str]

    def __iter__(self):
        return iter((self.attested, self.attested_at, self.attested_by))


@dataclass(frozen=True)
class ProjectPolicy:
    """
    Plaintext eligibility rules for one project.

    A project that was never configured reads as the default, inactive
    policy.
    """
    min_age: int = 0
    allowed_countries: Tuple[int, ...] = ()
    requires_passport: bool = False
    active: bool = False
    single_use: bool = False


@dataclass(frozen=True)
class EligibilityResult:
    """Latest encrypted eligibility answer for a (project, subject) pair."""
    eligible: str
    granted_to: Tuple[str, ...]
    evaluated_at: int


@dataclass(frozen=True)
class ProofRecord:
    """Issuance flag for a (subject, project) pair."""
    issued: bool = False
    token: Optional[str] = None
    issued_at: int = 0


# Events carry non-secret fields only.

@dataclass(frozen=True)
class KYCSubmitted:
    user: str
    timestamp: int


@dataclass(frozen=True)
class KYCVerified:
    user: str
    verifier: str
    timestamp: int


@dataclass(frozen=True)
class VerifierAuthorized:
    verifier: str
    authorized: bool


@dataclass(frozen=True)
class ProjectRequirementSet:
    project_id: str
    min_age: int
    requires_passport: bool
    allowed_countries: Tuple[int, ...] = ()
    single_use: bool = False


@dataclass(frozen=True)
class EligibilityChecked:
    user: str
    project_id: str
    eligible: bool  # "a check happened", never the decrypted answer

