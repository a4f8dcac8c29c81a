"""Tests for engine transactions and event publication."""
import threading

import pytest

from cloakid.config import EngineConfig
from cloakid.server.engine import KYCEngine
from cloakid.client.crypto import CryptoClient, EncryptedInputBuilder
from cloakid.shared.errors import InvalidSubmission, UserNotVerified
from cloakid.shared.protocol import KYCSubmitted, KYCVerified, ProjectRequirementSet

from conftest import ADMIN, NOW, NOW_YEAR, PROJECT, TEST_PROJECT, USER1, USER2, VERIFIER, submit, submit_and_attest


class TestAtomicity:
    """A failed call leaves no trace."""

    def test_substrate_failure_rolls_back_evaluation(self, engine, monkeypatch):
        engine.set_policy(VERIFIER, TEST_PROJECT, 21, [1, 2, 3], True, single_use=True)
        submit_and_attest(engine, USER1, NOW_YEAR - 25, 2)
        handles_before = len(engine.substrate)

        calls = {"n": 0}
        original_or = engine.substrate.or_

        def flaky_or(lhs, rhs):
            calls["n"] += 1
            if calls["n"] == 3:
                raise RuntimeError("coprocessor unavailable")
            return original_or(lhs, rhs)

        monkeypatch.setattr(engine.substrate, "or_", flaky_or)
        with pytest.raises(RuntimeError):
            engine.evaluate(PROJECT, USER1, TEST_PROJECT)

        assert engine.result_of(TEST_PROJECT, USER1) is None
        assert engine.policy_of(TEST_PROJECT).active
        assert len(engine.substrate) == handles_before

    def test_failed_proof_keeps_no_grants(self, engine, monkeypatch):
        engine.set_policy(VERIFIER, TEST_PROJECT, 21, [1], True)
        submit_and_attest(engine, USER1, NOW_YEAR - 25, 1)
        handles_before = len(engine.substrate)

        def broken_select(*args):
            raise RuntimeError("select failed")

        monkeypatch.setattr(engine.substrate, "select", broken_select)
        with pytest.raises(RuntimeError):
            engine.issue_proof(USER1, TEST_PROJECT)

        # evaluate() ran and granted USER1 before select failed
        assert engine.result_of(TEST_PROJECT, USER1) is None
        assert not engine.has_proof(USER1, TEST_PROJECT)
        assert len(engine.substrate) == handles_before

    def test_engine_usable_after_failure(self, engine):
        submit(engine, USER1, NOW_YEAR - 25, 1)
        engine.set_policy(VERIFIER, TEST_PROJECT, 21, [1], True)
        with pytest.raises(UserNotVerified):
            engine.evaluate(PROJECT, USER1, TEST_PROJECT)
        engine.attest(VERIFIER, USER1)
        assert engine.substrate.user_decrypt(engine.evaluate(PROJECT, USER1, TEST_PROJECT), PROJECT) == 1


class TestEvents:
    """Events are published after commit only."""

    def test_event_sequence(self, engine, events):
        engine.set_policy(VERIFIER, TEST_PROJECT, 21, [1], True)
        submit_and_attest(engine, USER1, 1990, 1)
        assert events == [
            ProjectRequirementSet(TEST_PROJECT, 21, True, (1,), False),
            KYCSubmitted(user=USER1, timestamp=NOW),
            KYCVerified(user=USER1, verifier=VERIFIER, timestamp=NOW),
        ]

    def test_events_carry_no_ciphertexts(self, engine, events):
        submit(engine, USER1, 1990, 1)
        handles = set(engine.encrypted_data_of(USER1))
        assert not handles & set(vars(events[-1]).values())

    def test_failing_subscriber_does_not_undo_commit(self, engine, events):
        def broken(event):
            raise ValueError("observer bug")

        engine.subscribe(broken)
        engine.set_verifier(ADMIN, USER2, True)
        assert engine.is_authorized(USER2)
        assert len(events) == 1


class TestEngineConstruction:
    def test_config_administrator_and_address(self, substrate):
        config = EngineConfig(administrator=USER2, engine_address="0x" + "12" * 20)
        engine = KYCEngine(substrate, config=config, clock=lambda: NOW)
        assert engine.administrator == USER2
        assert engine.address == "0x" + "12" * 20
        assert engine.is_authorized(USER2)

    def test_engines_have_distinct_addresses(self, substrate, network_keys):
        from cloakid.substrate.paillier import PaillierCoprocessor

        other = PaillierCoprocessor(key_size=1024, keys=network_keys)
        assert KYCEngine(substrate, ADMIN).address != KYCEngine(other, ADMIN).address

    def test_engines_sharing_substrate_have_distinct_addresses(self, substrate):
        first = KYCEngine(substrate, ADMIN)
        second = KYCEngine(substrate, ADMIN)
        assert first.address != second.address

    def test_input_for_one_engine_rejected_by_another(self, substrate):
        first = KYCEngine(substrate, ADMIN, clock=lambda: NOW)
        second = KYCEngine(substrate, ADMIN, clock=lambda: NOW)
        crypto = CryptoClient.from_public_key(substrate.public_key)
        encrypted = (
            EncryptedInputBuilder(substrate, crypto, first.address, USER1)
            .add_address("0x" + "50" * 20)
            .add32(1990)
            .add8(1)
            .encrypt()
        )

        with pytest.raises(InvalidSubmission):
            second.submit(USER1, encrypted)
        assert USER1 not in second.store

        first.submit(USER1, encrypted)
        assert USER1 in first.store

    def test_config_limits_countries(self, substrate):
        from cloakid.shared.errors import InvalidPolicy

        engine = KYCEngine(substrate, ADMIN, config=EngineConfig(max_allowed_countries=2))
        with pytest.raises(InvalidPolicy):
            engine.set_policy(ADMIN, TEST_PROJECT, 21, [1, 2, 3], True)

    def test_config_from_env(self, monkeypatch):
        monkeypatch.setenv("CLOAKID_ADMIN", ADMIN)
        monkeypatch.setenv("CLOAKID_KEY_SIZE", "1024")
        monkeypatch.setenv("CLOAKID_MAX_ALLOWED_COUNTRIES", "8")
        monkeypatch.setenv("CLOAKID_JSON_LOGS", "false")
        config = EngineConfig.from_env()
        assert config.administrator == ADMIN
        assert config.key_size == 1024
        assert config.max_allowed_countries == 8
        assert config.json_logs is False


class TestSerialization:
    def test_concurrent_submissions(self, engine):
        subjects = [f"0xd{i:039d}" for i in range(4)]
        errors = []

        def worker(subject):
            try:
                submit(engine, subject, 1990, 1)
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(s,)) for s in subjects]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert all(s in engine.store for s in subjects)

    def test_events_delivered_in_commit_order(self, engine):
        subjects = [f"0xd{i:039d}" for i in range(6)]
        delivered = []

        def record(event):
            if isinstance(event, KYCSubmitted):
                delivered.append(len(engine.store))

        engine.subscribe(record)
        threads = [threading.Thread(target=submit, args=(engine, s, 1990, 1)) for s in subjects]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Each delivery sees exactly the records committed up to its own call
        assert delivered == list(range(1, len(subjects) + 1))
