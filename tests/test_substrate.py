"""Tests for the Paillier coprocessor substrate."""
import pytest

from cloakid.client.crypto import CryptoClient, EncryptedInputBuilder
from cloakid.shared.errors import PermissionDenied, UnknownHandle
from cloakid.shared.protocol import EncryptedInput, EncryptedType
from cloakid.substrate.base import InputProofError

ENGINE = "0xe000000000000000000000000000000000000001"
ALICE = "0xb000000000000000000000000000000000000001"
BOB = "0xb000000000000000000000000000000000000002"


def reveal(substrate, handle):
    """Decrypt in the test harness by granting a throwaway principal."""
    substrate.allow(handle, "harness")
    return substrate.user_decrypt(handle, "harness")


class TestOperators:
    """Encrypted arithmetic, comparison and logic."""

    def test_constant_round_trip(self, substrate):
        handle = substrate.as_encrypted(1990, EncryptedType.EUINT32)
        assert substrate.type_of(handle) is EncryptedType.EUINT32
        assert reveal(substrate, handle) == 1990

    def test_constant_out_of_range(self, substrate):
        with pytest.raises(ValueError, match="does not fit"):
            substrate.as_encrypted(256, EncryptedType.EUINT8)

    def test_subtraction(self, substrate):
        a = substrate.as_encrypted(2025, EncryptedType.EUINT32)
        b = substrate.as_encrypted(1990, EncryptedType.EUINT32)
        assert reveal(substrate, substrate.sub(a, b)) == 35

    def test_subtraction_wraps(self, substrate):
        a = substrate.as_encrypted(3, EncryptedType.EUINT8)
        b = substrate.as_encrypted(5, EncryptedType.EUINT8)
        assert reveal(substrate, substrate.sub(a, b)) == 254

    def test_comparisons(self, substrate):
        e = EncryptedType.EUINT32
        ten, twenty = substrate.as_encrypted(10, e), substrate.as_encrypted(20, e)
        assert reveal(substrate, substrate.ge(twenty, ten)) == 1
        assert reveal(substrate, substrate.ge(ten, twenty)) == 0
        assert reveal(substrate, substrate.ge(ten, substrate.as_encrypted(10, e))) == 1
        assert reveal(substrate, substrate.eq(ten, twenty)) == 0
        assert reveal(substrate, substrate.eq(ten, substrate.as_encrypted(10, e))) == 1

    def test_boolean_logic(self, substrate):
        t = substrate.as_encrypted(1, EncryptedType.EBOOL)
        f = substrate.as_encrypted(0, EncryptedType.EBOOL)
        assert reveal(substrate, substrate.and_(t, f)) == 0
        assert reveal(substrate, substrate.and_(t, t)) == 1
        assert reveal(substrate, substrate.or_(f, t)) == 1
        assert reveal(substrate, substrate.or_(f, f)) == 0

    def test_select(self, substrate):
        e = EncryptedType.EUINT256
        big = substrate.as_encrypted(2**255 + 7, e)
        zero = substrate.as_encrypted(0, e)
        t = substrate.as_encrypted(1, EncryptedType.EBOOL)
        f = substrate.as_encrypted(0, EncryptedType.EBOOL)

        chosen = substrate.select(t, big, zero)
        assert chosen not in (big, zero)
        assert reveal(substrate, chosen) == 2**255 + 7
        assert reveal(substrate, substrate.select(f, big, zero)) == 0

    def test_operand_type_mismatch(self, substrate):
        a = substrate.as_encrypted(1, EncryptedType.EUINT8)
        b = substrate.as_encrypted(1, EncryptedType.EUINT32)
        with pytest.raises(ValueError, match="types differ"):
            substrate.eq(a, b)
        with pytest.raises(ValueError, match="not an ebool"):
            substrate.and_(a, a)

    def test_unknown_handle(self, substrate):
        with pytest.raises(UnknownHandle):
            substrate.type_of("0xdeadbeef")


class TestPermissions:
    """Decryption ACL."""

    def test_decrypt_requires_grant(self, substrate):
        handle = substrate.as_encrypted(42, EncryptedType.EUINT32)
        with pytest.raises(PermissionDenied):
            substrate.user_decrypt(handle, ALICE)

        substrate.allow(handle, ALICE)
        assert substrate.is_allowed(handle, ALICE)
        assert not substrate.is_allowed(handle, BOB)
        assert substrate.user_decrypt(handle, ALICE) == 42

    def test_derived_handles_carry_no_grants(self, substrate):
        a = substrate.as_encrypted(5, EncryptedType.EUINT32)
        substrate.allow(a, ALICE)
        derived = substrate.ge(a, substrate.as_encrypted(1, EncryptedType.EUINT32))
        assert not substrate.is_allowed(derived, ALICE)


class TestInputProofs:
    """Input registration and proof verification."""

    @pytest.fixture
    def crypto(self, substrate):
        return CryptoClient.from_public_key(substrate.public_key)

    def test_public_key_client_cannot_decrypt(self, crypto):
        assert not crypto.has_private_key

    def test_verify_binds_engine_and_principal(self, substrate, crypto):
        encrypted = EncryptedInputBuilder(substrate, crypto, ENGINE, ALICE).add32(1990).add8(2).encrypt()
        types = (EncryptedType.EUINT32, EncryptedType.EUINT8)

        handles = substrate.verify_input(encrypted, ENGINE, ALICE, types)
        assert handles == encrypted.handles

        with pytest.raises(InputProofError):
            substrate.verify_input(encrypted, ENGINE, BOB, types)
        with pytest.raises(InputProofError):
            substrate.verify_input(encrypted, "0xe000000000000000000000000000000000000002", ALICE, types)

    def test_verify_rejects_wrong_types(self, substrate, crypto):
        encrypted = EncryptedInputBuilder(substrate, crypto, ENGINE, ALICE).add32(1990).add32(2).encrypt()
        with pytest.raises(InputProofError, match="EUINT8"):
            substrate.verify_input(encrypted, ENGINE, ALICE, (EncryptedType.EUINT32, EncryptedType.EUINT8))

    def test_verify_rejects_forged_proof(self, substrate, crypto):
        encrypted = EncryptedInputBuilder(substrate, crypto, ENGINE, ALICE).add8(1).encrypt()
        forged = EncryptedInput(handles=encrypted.handles, input_proof="00" * 32)
        with pytest.raises(InputProofError):
            substrate.verify_input(forged, ENGINE, ALICE, (EncryptedType.EUINT8,))

    def test_verify_rejects_unknown_handles(self, substrate):
        bogus = EncryptedInput(handles=("0x01",), input_proof="00")
        with pytest.raises(InputProofError):
            substrate.verify_input(bogus, ENGINE, ALICE, (EncryptedType.EUINT8,))

    def test_registered_values_decrypt_after_grant(self, substrate, crypto):
        encrypted = EncryptedInputBuilder(substrate, crypto, ENGINE, ALICE).add32(1990).encrypt()
        assert reveal(substrate, encrypted.handles[0]) == 1990

    def test_register_rejects_non_ciphertexts(self, substrate):
        with pytest.raises(TypeError, match="Ciphertext"):
            substrate.register_input([(1990, EncryptedType.EUINT32)], ENGINE, ALICE)


class TestTransactions:
    """Journaled grants and handles."""

    def test_rollback_discards_grants_and_handles(self, substrate):
        kept = substrate.as_encrypted(1, EncryptedType.EUINT8)
        before = len(substrate)

        substrate.begin()
        created = substrate.as_encrypted(2, EncryptedType.EUINT8)
        substrate.allow(kept, ALICE)
        substrate.rollback()

        assert len(substrate) == before
        assert not substrate.is_allowed(kept, ALICE)
        with pytest.raises(UnknownHandle):
            substrate.type_of(created)

    def test_commit_keeps_changes(self, substrate):
        substrate.begin()
        handle = substrate.as_encrypted(2, EncryptedType.EUINT8)
        substrate.allow(handle, ALICE)
        substrate.commit()
        assert substrate.user_decrypt(handle, ALICE) == 2

    def test_nested_begin_rejected(self, substrate):
        substrate.begin()
        try:
            with pytest.raises(RuntimeError):
                substrate.begin()
        finally:
            substrate.rollback()


class TestRelease:
    """Dropping ciphertexts that are no longer needed."""

    def test_release_outside_transaction(self, substrate):
        handle = substrate.as_encrypted(7, EncryptedType.EUINT8)
        substrate.allow(handle, ALICE)
        before = len(substrate)

        substrate.release(handle)
        assert len(substrate) == before - 1
        assert not substrate.is_allowed(handle, ALICE)
        with pytest.raises(UnknownHandle):
            substrate.user_decrypt(handle, ALICE)

    def test_release_deferred_until_commit(self, substrate):
        handle = substrate.as_encrypted(7, EncryptedType.EUINT8)
        substrate.allow(handle, ALICE)

        substrate.begin()
        substrate.release(handle)
        assert substrate.user_decrypt(handle, ALICE) == 7
        substrate.commit()

        with pytest.raises(UnknownHandle):
            substrate.type_of(handle)

    def test_rollback_keeps_released_handles(self, substrate):
        handle = substrate.as_encrypted(7, EncryptedType.EUINT8)
        substrate.allow(handle, ALICE)

        substrate.begin()
        substrate.release(handle)
        substrate.rollback()

        assert substrate.user_decrypt(handle, ALICE) == 7

    def test_release_unknown_handle_is_noop(self, substrate):
        before = len(substrate)
        substrate.release("0x" + "cd" * 32)
        assert len(substrate) == before
