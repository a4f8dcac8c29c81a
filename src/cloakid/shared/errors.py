"""
Error taxonomy.

Every failure is local and atomic. None of these are transient: each one
needs an external state change (resubmit, re-attest, re-policy,
re-authorize) before a retry can succeed, so nothing here is retried.
"""


class KYCError(Exception):
    """Base class for every engine and substrate failure."""

    hint = "The request was rejected."

    def __init__(self, message: str = ""):
        super().__init__(message or self.hint)

    @property
    def code(self) -> str:
        return type(self).__name__


class InvalidSubmission(KYCError):
    hint = "Resubmit the encrypted attributes with a valid input proof."


class NoSuchRecord(KYCError):
    hint = "Submit KYC data first."


class UnauthorizedVerifier(KYCError):
    hint = "Contact an administrator to be authorized as a verifier."


class OnlyAdmin(KYCError):
    hint = "Only the administrator can manage verifiers."


class PolicyInactive(KYCError):
    hint = "Ask a verifier to configure requirements for this project."


class UserNotVerified(KYCError):
    hint = "Wait for an authorized verifier to attest the KYC record."


class InvalidPolicy(KYCError, ValueError):
    hint = "Check the minimum age and the allowed country codes."


class PermissionDenied(KYCError):
    hint = "Only principals granted access to a ciphertext can decrypt it."


class UnknownHandle(KYCError, KeyError):
    hint = "The ciphertext handle is not known to the substrate."

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return Exception.__str__(self)
