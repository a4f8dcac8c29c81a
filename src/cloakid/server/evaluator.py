"""
Eligibility evaluator.

Computes, entirely over ciphertexts,

    eligible = age_ok AND country_ok AND passport_ok

for one identity record against one project policy. The evaluator never
decrypts anything, including its own output: callers receive a handle and
decrypt it off-engine through the substrate.
"""
import logging
from typing import Dict, Optional, Tuple

from cloakid.server.policy import PolicyRegistry
from cloakid.server.store import IdentityRecordStore
from cloakid.shared.errors import NoSuchRecord, PolicyInactive, UserNotVerified
from cloakid.shared.protocol import (
    EligibilityResult,
    EncryptedType,
    IdentityRecord,
    ProjectPolicy,
)
from cloakid.shared.utils import Timer, utc_year
from cloakid.substrate.base import CiphertextSubstrate

logger = logging.getLogger(__name__)


class EligibilityEvaluator:
    """
    Homomorphic predicate engine.

    Reads the identity store and the policy registry; its only state is the
    cache of the latest result per (project, subject).
    """

    def __init__(
        self,
        substrate: CiphertextSubstrate,
        store: IdentityRecordStore,
        policies: PolicyRegistry,
    ):
        """
        Initialize evaluator.

        Args:
            substrate: Ciphertext substrate providing encrypted operators
            store: Identity records to read
            policies: Project policies to read
        """
        self.substrate = substrate
        self.store = store
        self.policies = policies
        self._results: Dict[Tuple[str, str], EligibilityResult] = {}

    def age_ok(self, record: IdentityRecord, policy: ProjectPolicy, now: int) -> str:
        """(now_year - birth_year) >= min_age, one sub and one ge."""
        s = self.substrate
        now_year = s.as_encrypted(utc_year(now), EncryptedType.EUINT32)
        age = s.sub(now_year, record.birth_year)
        min_age = s.as_encrypted(policy.min_age, EncryptedType.EUINT32)
        age_ok = s.ge(age, min_age)
        s.release(now_year, age, min_age)
        return age_ok

    def country_ok(self, record: IdentityRecord, policy: ProjectPolicy) -> str:
        """OR-fold of one equality test per allowed country, in registration order."""
        s = self.substrate
        matched = s.as_encrypted(0, EncryptedType.EBOOL)
        for code in policy.allowed_countries:
            code_ct = s.as_encrypted(code, EncryptedType.EUINT8)
            is_code = s.eq(record.country, code_ct)
            folded = s.or_(matched, is_code)
            s.release(code_ct, is_code, matched)
            matched = folded
        return matched

    def passport_ok(self, record: IdentityRecord, policy: ProjectPolicy) -> str:
        """
        Passport requirement.

        A verifier checks the passport when attesting, so the attestation
        flag stands in for passport presence.
        """
        if not policy.requires_passport:
            return self.substrate.as_encrypted(1, EncryptedType.EBOOL)
        return self.substrate.as_encrypted(int(record.attested), EncryptedType.EBOOL)

    def evaluate(self, subject: str, project_id: str, caller: str, now: int) -> str:
        """
        Compute an encrypted eligibility answer.

        Args:
            subject: Principal whose record is checked
            project_id: Project whose policy applies
            caller: Principal that receives decrypt rights with the subject
            now: Unix timestamp of the call

        Returns:
            Ciphertext handle of an ebool
        """
        record = self.store.get(subject)
        if record is None:
            raise NoSuchRecord(f"{subject} has not submitted KYC data")
        if not record.attested:
            raise UserNotVerified(f"{subject} has not been attested")

        policy = self.policies.policy_of(project_id)
        if not policy.active:
            raise PolicyInactive(f"No active policy for project {project_id}")

        s = self.substrate
        with Timer() as t:
            age_ok = self.age_ok(record, policy, now)
            country_ok = self.country_ok(record, policy)
            passport_ok = self.passport_ok(record, policy)
            partial = s.and_(age_ok, country_ok)
            eligible = s.and_(partial, passport_ok)
        s.release(age_ok, country_ok, passport_ok, partial)

        s.allow(eligible, caller)
        s.allow(eligible, subject)

        # Only the latest result per pair stays decryptable
        previous = self._results.get((project_id, subject))
        if previous is not None:
            s.release(previous.eligible)
        self._results[(project_id, subject)] = EligibilityResult(
            eligible=eligible,
            granted_to=tuple(dict.fromkeys((caller, subject))),
            evaluated_at=now,
        )

        if policy.single_use:
            self.policies.deactivate(project_id)

        logger.debug(
            "Evaluated %s for %s over %d countries in %.2fms",
            subject, project_id, len(policy.allowed_countries), t.elapsed_ms,
        )
        return eligible

    def result_of(self, project_id: str, subject: str) -> Optional[EligibilityResult]:
        return self._results.get((project_id, subject))

    def snapshot(self) -> Dict[Tuple[str, str], EligibilityResult]:
        return dict(self._results)

    def restore(self, snapshot: Dict[Tuple[str, str], EligibilityResult]) -> None:
        self._results = snapshot
