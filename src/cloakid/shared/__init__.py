"""Shared utilities, protocol types and the error taxonomy."""
from cloakid.shared.protocol import (
    EncryptedType,
    EncryptedInput,
    IdentityRecord,
    VerificationStatus,
    ProjectPolicy,
    EligibilityResult,
    ProofRecord,
    KYCSubmitted,
    KYCVerified,
    VerifierAuthorized,
    ProjectRequirementSet,
    EligibilityChecked,
)
from cloakid.shared.errors import (
    KYCError,
    InvalidSubmission,
    NoSuchRecord,
    UnauthorizedVerifier,
    OnlyAdmin,
    PolicyInactive,
    UserNotVerified,
    InvalidPolicy,
    PermissionDenied,
    UnknownHandle,
)
from cloakid.shared.utils import (
    project_id,
    utc_year,
    proof_seed,
    unix_now,
    Timer,
)

__all__ = [
    "EncryptedType",
    "EncryptedInput",
    "IdentityRecord",
    "VerificationStatus",
    "ProjectPolicy",
    "EligibilityResult",
    "ProofRecord",
    "KYCSubmitted",
    "KYCVerified",
    "VerifierAuthorized",
    "ProjectRequirementSet",
    "EligibilityChecked",
    "KYCError",
    "InvalidSubmission",
    "NoSuchRecord",
    "UnauthorizedVerifier",
    "OnlyAdmin",
    "PolicyInactive",
    "UserNotVerified",
    "InvalidPolicy",
    "PermissionDenied",
    "UnknownHandle",
    "project_id",
    "utc_year",
    "proof_seed",
    "unix_now",
    "Timer",
]
