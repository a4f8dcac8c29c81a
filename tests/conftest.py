"""Shared fixtures: one small key pair per session, a fresh engine per test."""
import pytest

from cloakid.client.kyc import KYCClient
from cloakid.server.engine import KYCEngine
from cloakid.shared.utils import project_id, utc_year
from cloakid.substrate.paillier import PaillierCoprocessor

ADMIN = "0xa000000000000000000000000000000000000001"
VERIFIER = "0xa000000000000000000000000000000000000002"
USER1 = "0xb000000000000000000000000000000000000001"
USER2 = "0xb000000000000000000000000000000000000002"
PROJECT = "0xc000000000000000000000000000000000000001"

NOW = 1_760_000_000  # 2025-10-09T08:53:20Z
NOW_YEAR = utc_year(NOW)
TEST_PROJECT = project_id("TestProject")


@pytest.fixture(scope="session")
def network_keys():
    """Use a smaller key for faster tests."""
    return PaillierCoprocessor(key_size=1024)._cs.cs.keys.copy()


@pytest.fixture
def substrate(network_keys):
    return PaillierCoprocessor(key_size=1024, keys=network_keys)


@pytest.fixture
def engine(substrate):
    engine = KYCEngine(substrate, administrator=ADMIN, clock=lambda: NOW)
    engine.set_verifier(ADMIN, VERIFIER, True)
    return engine


@pytest.fixture
def events(engine):
    received = []
    engine.subscribe(received.append)
    return received


def submit(engine, subject, birth_year, country, passport="PASSPORT123456"):
    """Encrypt and submit attributes for subject."""
    KYCClient(engine, subject).submit_kyc(passport, birth_year, country)


def submit_and_attest(engine, subject, birth_year, country, passport="PASSPORT123456"):
    submit(engine, subject, birth_year, country, passport)
    engine.attest(VERIFIER, subject)
