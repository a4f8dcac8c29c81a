"""
Policy registry: per-project eligibility rules.
"""
import dataclasses
import logging
from typing import Dict, Iterable, Tuple

from cloakid.server.authority import AuthorityTable
from cloakid.shared.errors import InvalidPolicy, UnauthorizedVerifier
from cloakid.shared.protocol import EncryptedType, ProjectPolicy, ProjectRequirementSet

logger = logging.getLogger(__name__)

_INACTIVE = ProjectPolicy()


class PolicyRegistry:
    """
    Plaintext table of project policies.

    Writes replace a policy wholesale; there are no partial updates.
    """

    def __init__(self, authority: AuthorityTable, max_allowed_countries: int = 32):
        self.authority = authority
        self.max_allowed_countries = max_allowed_countries
        self._policies: Dict[str, ProjectPolicy] = {}

    def _normalize_countries(self, allowed_countries: Iterable[int]) -> Tuple[int, ...]:
        countries = []
        for code in allowed_countries:
            if isinstance(code, bool) or not isinstance(code, int):
                raise InvalidPolicy(f"Country code {code!r} is not an integer")
            if not 0 <= code < EncryptedType.EUINT8.modulus:
                raise InvalidPolicy(f"Country code {code} does not fit in uint8")
            countries.append(code)

        # Registration order, duplicates dropped
        unique = tuple(dict.fromkeys(countries))
        if len(unique) > self.max_allowed_countries:
            raise InvalidPolicy(
                f"{len(unique)} countries exceeds the limit of {self.max_allowed_countries}"
            )
        return unique

    def set_policy(
        self,
        caller: str,
        project_id: str,
        min_age: int,
        allowed_countries: Iterable[int],
        requires_passport: bool,
        single_use: bool = False,
    ) -> ProjectRequirementSet:
        """
        Write the eligibility rules of a project and activate them.

        Args:
            caller: Acting principal (must be an authorized verifier)
            project_id: Content-addressed project identifier
            min_age: Minimum age in whole years
            allowed_countries: Country codes that qualify, in evaluation order
            requires_passport: Whether a checked passport is required
            single_use: Deactivate the policy after its first evaluation

        Returns:
            The ProjectRequirementSet event
        """
        if not self.authority.is_authorized(caller):
            raise UnauthorizedVerifier(f"{caller} is not an authorized verifier")
        if isinstance(min_age, bool) or not isinstance(min_age, int):
            raise InvalidPolicy(f"Minimum age {min_age!r} is not an integer")
        if not 0 <= min_age < EncryptedType.EUINT32.modulus:
            raise InvalidPolicy(f"Minimum age {min_age} does not fit in uint32")

        policy = ProjectPolicy(
            min_age=min_age,
            allowed_countries=self._normalize_countries(allowed_countries),
            requires_passport=bool(requires_passport),
            active=True,
            single_use=bool(single_use),
        )
        self._policies[project_id] = policy
        logger.info(
            "Policy for %s set: min_age=%d countries=%d passport=%s single_use=%s",
            project_id, policy.min_age, len(policy.allowed_countries),
            policy.requires_passport, policy.single_use,
        )
        return ProjectRequirementSet(
            project_id=project_id,
            min_age=policy.min_age,
            requires_passport=policy.requires_passport,
            allowed_countries=policy.allowed_countries,
            single_use=policy.single_use,
        )

    def policy_of(self, project_id: str) -> ProjectPolicy:
        return self._policies.get(project_id, _INACTIVE)

    def allowed_countries_of(self, project_id: str) -> Tuple[int, ...]:
        return self.policy_of(project_id).allowed_countries

    def deactivate(self, project_id: str) -> None:
        """Mark a policy as used up; it must be rewritten to be checked again."""
        policy = self._policies.get(project_id)
        if policy is not None and policy.active:
            self._policies[project_id] = dataclasses.replace(policy, active=False)
            logger.info("Single-use policy for %s deactivated", project_id)

    def snapshot(self) -> Dict[str, ProjectPolicy]:
        return dict(self._policies)

    def restore(self, snapshot: Dict[str, ProjectPolicy]) -> None:
        self._policies = snapshot
