"""
KYC engine facade.

Owns one instance of every component and runs each state-mutating call as
a serialized transaction: calls execute one at a time under an engine-wide
lock, and a failing call rolls back every write it made, including
substrate permission grants. Events are published only after commit.
"""
import hashlib
import logging
import secrets
import threading
from contextlib import contextmanager
from typing import Callable, Iterable, List, Optional, Tuple

from cloakid.config import EngineConfig
from cloakid.server.authority import AuthorityTable
from cloakid.server.evaluator import EligibilityEvaluator
from cloakid.server.ledger import ProofLedger
from cloakid.server.policy import PolicyRegistry
from cloakid.server.store import IdentityRecordStore
from cloakid.shared.errors import KYCError
from cloakid.shared.protocol import (
    EligibilityChecked,
    EligibilityResult,
    EncryptedInput,
    ProjectPolicy,
    ProofRecord,
    VerificationStatus,
)
from cloakid.shared.utils import unix_now
from cloakid.substrate.base import CiphertextSubstrate

logger = logging.getLogger(__name__)

Subscriber = Callable[[object], None]


def derive_engine_address(administrator: str, nonce: Optional[str] = None) -> str:
    """
    20-byte address for an engine instance.

    Each call draws a fresh nonce, so engines sharing one substrate never
    share an address and input proofs cannot be replayed between them.
    """
    nonce = nonce or secrets.token_hex(16)
    digest = hashlib.sha3_256(f"{administrator}:{nonce}".encode("utf-8")).hexdigest()
    return "0x" + digest[-40:]


class KYCEngine:
    """
    Encrypted credential eligibility engine.

    Every entry point takes the authenticated caller principal explicitly.
    """

    def __init__(
        self,
        substrate: CiphertextSubstrate,
        administrator: Optional[str] = None,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], int] = unix_now,
    ):
        """
        Initialize engine.

        Args:
            substrate: Ciphertext substrate to compute with
            administrator: Administrator principal (defaults to config's)
            config: Engine settings
            clock: Callable returning the current unix time in seconds
        """
        self.config = config or EngineConfig()
        self.substrate = substrate
        self.clock = clock
        self.address = self.config.engine_address or derive_engine_address(
            administrator or self.config.administrator
        )

        self.authority = AuthorityTable(administrator or self.config.administrator)
        self.store = IdentityRecordStore(substrate, self.authority, self.address)
        self.policies = PolicyRegistry(self.authority, self.config.max_allowed_countries)
        self.evaluator = EligibilityEvaluator(substrate, self.store, self.policies)
        self.ledger = ProofLedger(substrate, self.evaluator)

        self._lock = threading.RLock()
        self._subscribers: List[Subscriber] = []
        self._pending: Optional[List[object]] = None

    @property
    def administrator(self) -> str:
        return self.authority.administrator

    # Events

    def subscribe(self, subscriber: Subscriber) -> None:
        """Register a callable invoked with every committed event, in commit order."""
        with self._lock:
            self._subscribers.append(subscriber)

    def _emit(self, *events: object) -> None:
        self._pending.extend(events)

    def _publish(self, events: Iterable[object]) -> None:
        for event in events:
            for subscriber in self._subscribers:
                try:
                    subscriber(event)
                except Exception:
                    # A failing observer must not undo a committed call
                    logger.exception("Event subscriber failed on %s", type(event).__name__)

    @contextmanager
    def _transaction(self, operation: str):
        with self._lock:
            components = (self.authority, self.store, self.policies, self.evaluator, self.ledger)
            snapshots = [c.snapshot() for c in components]
            self._pending = []
            self.substrate.begin()
            try:
                yield
            except BaseException as e:
                self.substrate.rollback()
                for component, snapshot in zip(components, snapshots):
                    component.restore(snapshot)
                self._pending = None
                if isinstance(e, KYCError):
                    logger.info("%s rejected: %s (%s)", operation, e.code, e)
                raise
            self.substrate.commit()
            events, self._pending = self._pending, None
            # Still under the lock so delivery order matches commit order
            self._publish(events)

    # Identity records

    def submit(self, caller: str, encrypted_input: EncryptedInput) -> None:
        """Store the caller's encrypted passport, birth year and country."""
        with self._transaction("submit"):
            self._emit(self.store.submit(caller, encrypted_input, self.clock()))

    def attest(self, caller: str, subject: str) -> None:
        """Attest a subject's record (authorized verifiers only)."""
        with self._transaction("attest"):
            self._emit(self.store.attest(caller, subject, self.clock()))

    def status_of(self, subject: str) -> VerificationStatus:
        return self.store.status_of(subject)

    def encrypted_data_of(self, subject: str) -> Tuple[str, str, str]:
        return self.store.encrypted_data_of(subject)

    # Verifier authority

    def set_verifier(self, caller: str, principal: str, enabled: bool) -> None:
        with self._transaction("set_verifier"):
            self._emit(self.authority.set_verifier(caller, principal, enabled))

    def is_authorized(self, principal: str) -> bool:
        return self.authority.is_authorized(principal)

    # Policies

    def set_policy(
        self,
        caller: str,
        project_id: str,
        min_age: int,
        allowed_countries: Iterable[int],
        requires_passport: bool,
        single_use: bool = False,
    ) -> None:
        with self._transaction("set_policy"):
            self._emit(self.policies.set_policy(
                caller, project_id, min_age, allowed_countries, requires_passport, single_use
            ))

    def policy_of(self, project_id: str) -> ProjectPolicy:
        return self.policies.policy_of(project_id)

    def allowed_countries_of(self, project_id: str) -> Tuple[int, ...]:
        return self.policies.allowed_countries_of(project_id)

    # Eligibility

    def evaluate(self, caller: str, subject: str, project_id: str) -> str:
        """
        Check a subject against a project's policy.

        Returns an ebool handle that only caller and subject can decrypt.
        """
        with self._transaction("evaluate"):
            eligible = self.evaluator.evaluate(subject, project_id, caller, self.clock())
            self._emit(EligibilityChecked(user=subject, project_id=project_id, eligible=True))
        return eligible

    def result_of(self, project_id: str, subject: str) -> Optional[EligibilityResult]:
        return self.evaluator.result_of(project_id, subject)

    # Proofs

    def issue_proof(self, caller: str, project_id: str) -> str:
        """Mint a euint256 proof token for the caller; only the caller can decrypt it."""
        with self._transaction("issue_proof"):
            token, event = self.ledger.issue_proof(caller, project_id, self.clock())
            self._emit(event)
        return token

    def has_proof(self, subject: str, project_id: str) -> bool:
        return self.ledger.has_proof(subject, project_id)

    def proof_of(self, subject: str, project_id: str) -> Optional[ProofRecord]:
        return self.ledger.proof_of(subject, project_id)
