"""
Proof ledger: one-time eligibility proof tokens.
"""
import logging
from typing import Dict, Optional, Tuple

from cloakid.server.evaluator import EligibilityEvaluator
from cloakid.shared.protocol import EligibilityChecked, EncryptedType, ProofRecord
from cloakid.shared.utils import proof_seed
from cloakid.substrate.base import CiphertextSubstrate

logger = logging.getLogger(__name__)


class ProofLedger:
    """Tracks which (subject, project) pairs were issued a proof token."""

    def __init__(self, substrate: CiphertextSubstrate, evaluator: EligibilityEvaluator):
        self.substrate = substrate
        self.evaluator = evaluator
        self._proofs: Dict[Tuple[str, str], ProofRecord] = {}

    def issue_proof(self, caller: str, project_id: str, now: int) -> Tuple[str, EligibilityChecked]:
        """
        Mint an encrypted proof token for the caller.

        The token is select(eligible, enc(seed), enc(0)): it exists whether
        or not the caller qualifies, so its presence leaks nothing.

        Args:
            caller: Subject requesting the proof
            project_id: Project to prove eligibility for
            now: Unix timestamp of the call

        Returns:
            Tuple of (euint256 token handle, EligibilityChecked event)
        """
        # Always recompute: policy or attributes may have changed
        eligible = self.evaluator.evaluate(caller, project_id, caller, now)

        s = self.substrate
        seed = s.as_encrypted(proof_seed(caller, project_id, now), EncryptedType.EUINT256)
        zero = s.as_encrypted(0, EncryptedType.EUINT256)
        token = s.select(eligible, seed, zero)
        s.allow(token, caller)
        s.release(seed, zero)

        previous = self._proofs.get((caller, project_id))
        if previous is not None and previous.token is not None:
            s.release(previous.token)

        self._proofs[(caller, project_id)] = ProofRecord(issued=True, token=token, issued_at=now)
        logger.info("Proof issued to %s for %s", caller, project_id)
        return token, EligibilityChecked(user=caller, project_id=project_id, eligible=True)

    def has_proof(self, subject: str, project_id: str) -> bool:
        return self._proofs.get((subject, project_id), ProofRecord()).issued

    def proof_of(self, subject: str, project_id: str) -> Optional[ProofRecord]:
        return self._proofs.get((subject, project_id))

    def snapshot(self) -> Dict[Tuple[str, str], ProofRecord]:
        return dict(self._proofs)

    def restore(self, snapshot: Dict[Tuple[str, str], ProofRecord]) -> None:
        self._proofs = snapshot
