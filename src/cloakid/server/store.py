"""
Identity record store.

Holds one encrypted attribute bundle per subject. Attributes are stored as
ciphertext handles only; attestation metadata is plaintext and public.
"""
import dataclasses
import logging
from typing import Dict, Optional, Tuple

from cloakid.server.authority import AuthorityTable
from cloakid.shared.errors import InvalidSubmission, NoSuchRecord, UnauthorizedVerifier
from cloakid.shared.protocol import (
    EncryptedInput,
    EncryptedType,
    IdentityRecord,
    KYCSubmitted,
    KYCVerified,
    VerificationStatus,
)
from cloakid.substrate.base import CiphertextSubstrate, InputProofError

logger = logging.getLogger(__name__)

# Slot order of a KYC submission
KYC_INPUT_TYPES = (EncryptedType.EADDRESS, EncryptedType.EUINT32, EncryptedType.EUINT8)


class IdentityRecordStore:
    """Encrypted identity records keyed by subject."""

    def __init__(
        self,
        substrate: CiphertextSubstrate,
        authority: AuthorityTable,
        engine_address: str,
    ):
        self.substrate = substrate
        self.authority = authority
        self.engine_address = engine_address
        self._records: Dict[str, IdentityRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, subject: str) -> bool:
        return subject in self._records

    def submit(self, subject: str, encrypted_input: EncryptedInput, now: int) -> KYCSubmitted:
        """
        Store (or overwrite) a subject's encrypted attributes.

        Resubmission clears any previous attestation: a stale attestation
        must never cover changed attributes.

        Args:
            subject: Submitting principal
            encrypted_input: Passport, birth year and country handles with
                             the proof binding them to subject and this engine
            now: Unix timestamp of the call

        Returns:
            The KYCSubmitted event
        """
        try:
            passport, birth_year, country = self.substrate.verify_input(
                encrypted_input, self.engine_address, subject, KYC_INPUT_TYPES
            )
        except InputProofError as e:
            raise InvalidSubmission(str(e)) from e

        for handle in (passport, birth_year, country):
            self.substrate.allow(handle, self.engine_address)
            self.substrate.allow(handle, subject)

        previous = self._records.get(subject)
        if previous is not None:
            if previous.attested:
                logger.info("Resubmission by %s clears prior attestation", subject)
            replaced = {previous.passport, previous.birth_year, previous.country}
            self.substrate.release(*(replaced - {passport, birth_year, country}))

        self._records[subject] = IdentityRecord(
            passport=passport,
            birth_year=birth_year,
            country=country,
        )
        return KYCSubmitted(user=subject, timestamp=now)

    def attest(self, caller: str, subject: str, now: int) -> KYCVerified:
        """Mark a subject's record as checked by an authorized verifier."""
        if not self.authority.is_authorized(caller):
            raise UnauthorizedVerifier(f"{caller} is not an authorized verifier")

        record = self.get(subject)
        if record is None:
            raise NoSuchRecord(f"{subject} has not submitted KYC data")

        self._records[subject] = dataclasses.replace(
            record, attested=True, attested_at=now, attested_by=caller
        )
        return KYCVerified(user=subject, verifier=caller, timestamp=now)

    def get(self, subject: str) -> Optional[IdentityRecord]:
        return self._records.get(subject)

    def status_of(self, subject: str) -> VerificationStatus:
        record = self._records.get(subject)
        if record is None:
            return VerificationStatus(attested=False, attested_at=0, attested_by=None)
        return VerificationStatus(
            attested=record.attested,
            attested_at=record.attested_at,
            attested_by=record.attested_by,
        )

    def encrypted_data_of(self, subject: str) -> Tuple[str, str, str]:
        """Attribute handles of a subject; decryptable only by ACL holders."""
        record = self._records.get(subject)
        if record is None:
            raise NoSuchRecord(f"{subject} has not submitted KYC data")
        return record.passport, record.birth_year, record.country

    def snapshot(self) -> Dict[str, IdentityRecord]:
        return dict(self._records)

    def restore(self, snapshot: Dict[str, IdentityRecord]) -> None:
        self._records = snapshot
