"""
Verifier authority: who may attest records and configure policies.
"""
import logging
from typing import Dict

from cloakid.shared.errors import OnlyAdmin
from cloakid.shared.protocol import VerifierAuthorized

logger = logging.getLogger(__name__)


class AuthorityTable:
    """
    Plaintext ACL of verifiers plus one immutable administrator.

    The administrator is implicitly authorized and cannot be removed.
    """

    def __init__(self, administrator: str):
        if not administrator:
            raise ValueError("administrator must be a non-empty principal")
        self._administrator = administrator
        self._verifiers: Dict[str, bool] = {}

    @property
    def administrator(self) -> str:
        return self._administrator

    def set_verifier(self, caller: str, principal: str, enabled: bool) -> VerifierAuthorized:
        """
        Enable or disable a verifier.

        Args:
            caller: Acting principal (must be the administrator)
            principal: Verifier to change
            enabled: New authorization flag

        Returns:
            The VerifierAuthorized event, emitted even when nothing changed
        """
        if caller != self._administrator:
            raise OnlyAdmin(f"{caller} is not the administrator")

        self._verifiers[principal] = bool(enabled)
        logger.info("Verifier %s %s", principal, "enabled" if enabled else "disabled")
        return VerifierAuthorized(verifier=principal, authorized=bool(enabled))

    def is_authorized(self, principal: str) -> bool:
        return principal == self._administrator or self._verifiers.get(principal, False)

    def snapshot(self) -> Dict[str, bool]:
        return dict(self._verifiers)

    def restore(self, snapshot: Dict[str, bool]) -> None:
        self._verifiers = snapshot
