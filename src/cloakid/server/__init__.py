"""Server-side components of the eligibility engine."""
from cloakid.server.authority import AuthorityTable
from cloakid.server.store import IdentityRecordStore
from cloakid.server.policy import PolicyRegistry
from cloakid.server.evaluator import EligibilityEvaluator
from cloakid.server.ledger import ProofLedger
from cloakid.server.engine import KYCEngine
from cloakid.server.api import app, create_app, run_server

__all__ = [
    "AuthorityTable",
    "IdentityRecordStore",
    "PolicyRegistry",
    "EligibilityEvaluator",
    "ProofLedger",
    "KYCEngine",
    "app",
    "create_app",
    "run_server",
]
