"""
Shift Trust Encumbrance Test Suite

Critical invariant tested:
    A ONE-TIME KEY AUTHORIZES AT MOST ONE TRANSACTION
"""

import threading
import unittest

from shift_trust import (
    AlreadyExists,
    EncumbranceStatus,
    InvalidDestructionProof,
    InvalidKeyIndex,
    KeyAlreadyEncumbered,
    KeyMismatch,
    KeyNotEncumbered,
    MalformedInput,
    ProofType,
    RecordNotFound,
    TransactionHashMismatch,
    Unauthorized,
    UnauthorizedOwner,
    destruction_proof_data,
    sha256,
)
from shift_trust.hashing import encumbrance_address
from shift_trust.models import ZERO_SIGNATURE, EncumbranceRecord
from shift_trust.store import ENCUMBRANCE

from support import DEVICE_ID, OWNER, ROOT, STRANGER, Harness, ident


class TestEncumberKey(unittest.TestCase):

    def setUp(self):
        self.h = Harness().bootstrap()
        self.h.attest()
        self.keys = self.h.one_time_keys(5)
        self.h.pool(self.keys)

    def test_encumber_and_verify(self):
        tx = self.h.tx()
        record = self.h.encumber(self.keys, 3, tx)

        self.assertEqual(record.status, EncumbranceStatus.ENCUMBERED)
        self.assertEqual(record.public_key, self.keys[3][1])
        self.assertEqual(record.encumbered_at, self.h.clock.now)
        self.assertTrue(self.h.ledger.verify_encumbrance(DEVICE_ID, 3, tx))

        pool = self.h.key_pools.get_key_pool(DEVICE_ID)
        self.assertEqual(pool.used_keys, 1)
        self.assertEqual(pool.available_keys, 4)
        self.assertEqual(pool.encumbered_keys, [3])
        self.assertTrue(pool.check_invariants())
        self.assertEqual(self.h.key_pools.get_authority().total_encumbered_keys, 1)

    def test_second_use_rejected(self):
        tx1, tx2 = self.h.tx("first"), self.h.tx("second")
        self.h.encumber(self.keys, 3, tx1)

        with self.assertRaises(KeyAlreadyEncumbered):
            self.h.encumber(self.keys, 3, tx2)

        pool = self.h.key_pools.get_key_pool(DEVICE_ID)
        self.assertEqual(pool.used_keys, 1)
        self.assertEqual(pool.available_keys, 4)
        self.assertTrue(self.h.ledger.verify_encumbrance(DEVICE_ID, 3, tx1))
        with self.assertRaises(TransactionHashMismatch):
            self.h.ledger.verify_encumbrance(DEVICE_ID, 3, tx2)
        self.assertFalse(self.h.ledger.is_encumbered(DEVICE_ID, 3, tx2))

    def test_used_keys_strictly_increase(self):
        for expected, index in enumerate((4, 0, 2), start=1):
            self.h.encumber(self.keys, index, self.h.tx(f"tx-{index}"))
            pool = self.h.key_pools.get_key_pool(DEVICE_ID)
            self.assertEqual(pool.used_keys, expected)
            self.assertTrue(pool.check_invariants())

    def test_unsigned_proof_rejected(self):
        tx = self.h.tx()
        proof = self.h.proof(self.keys[0], tx, signed=False)
        self.assertEqual(proof.hardware_signature, ZERO_SIGNATURE)

        with self.assertRaises(InvalidDestructionProof):
            self.h.ledger.encumber_key(OWNER, DEVICE_ID, 0, self.keys[0][1], proof, tx)

        pool = self.h.key_pools.get_key_pool(DEVICE_ID)
        self.assertEqual(pool.used_keys, 0)
        self.assertIsNone(self.h.ledger.get_encumbrance(DEVICE_ID, 0))

    def test_key_mismatch(self):
        tx = self.h.tx()
        proof = self.h.proof(self.keys[1], tx)
        with self.assertRaises(KeyMismatch):
            self.h.ledger.encumber_key(OWNER, DEVICE_ID, 0, self.keys[1][1], proof, tx)

    def test_invalid_index(self):
        tx = self.h.tx()
        proof = self.h.proof(self.keys[0], tx)
        for index in (5, 100, -1):
            with self.subTest(index=index):
                with self.assertRaises(InvalidKeyIndex):
                    self.h.ledger.encumber_key(OWNER, DEVICE_ID, index, self.keys[0][1], proof, tx)

    def test_owner_only(self):
        tx = self.h.tx()
        proof = self.h.proof(self.keys[0], tx)
        with self.assertRaises(UnauthorizedOwner):
            self.h.ledger.encumber_key(STRANGER, DEVICE_ID, 0, self.keys[0][1], proof, tx)

    def test_missing_pool(self):
        tx = self.h.tx()
        other = ident("device-without-pool")
        proof = self.h.proof(self.keys[0], tx, device_id=other)
        with self.assertRaises(RecordNotFound):
            self.h.ledger.encumber_key(OWNER, other, 0, self.keys[0][1], proof, tx)

    def test_store_rejects_existing_record(self):
        tx = self.h.tx()
        proof = self.h.proof(self.keys[2], tx)
        stray = EncumbranceRecord(
            device_id=DEVICE_ID,
            key_index=2,
            public_key=self.keys[2][1],
            transaction_hash=ident("earlier-tx"),
            destruction_proof=proof,
            status=EncumbranceStatus.ENCUMBERED,
            encumbered_at=self.h.clock.now,
        )
        self.h.ctx.store.commit([(ENCUMBRANCE, encumbrance_address(DEVICE_ID, 2), stray.to_dict())], [])

        with self.assertRaises(AlreadyExists):
            self.h.ledger.encumber_key(OWNER, DEVICE_ID, 2, self.keys[2][1], proof, tx)

        pool = self.h.key_pools.get_key_pool(DEVICE_ID)
        self.assertEqual(pool.used_keys, 0)
        self.assertEqual(pool.encumbered_keys, [])

    def test_proof_accepted_as_dict(self):
        tx = self.h.tx()
        proof = self.h.proof(self.keys[0], tx).to_dict()
        record = self.h.ledger.encumber_key(
            OWNER, DEVICE_ID.hex(), 0, self.keys[0][1].hex(), proof, tx.hex()
        )
        self.assertEqual(record.transaction_hash, tx)


class TestConcurrentEncumbrance(unittest.TestCase):
    """Many threads race for one key index."""

    THREADS = 16

    def _race(self, h, keys):
        barrier = threading.Barrier(self.THREADS)
        results = []
        lock = threading.Lock()
        proofs = []
        for i in range(self.THREADS):
            tx = h.tx(f"race-{i}")
            proofs.append((tx, h.proof(keys[0], tx)))

        def attempt(tx, proof):
            barrier.wait()
            try:
                h.ledger.encumber_key(OWNER, DEVICE_ID, 0, keys[0][1], proof, tx)
                outcome = "ok"
            except (KeyAlreadyEncumbered, AlreadyExists) as e:
                outcome = e.code.value
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt, args=p) for p in proofs]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_exactly_one_winner(self):
        h = Harness().bootstrap()
        keys = h.one_time_keys(2)
        h.pool(keys)

        results = self._race(h, keys)

        self.assertEqual(len(results), self.THREADS)
        self.assertEqual(results.count("ok"), 1)
        pool = h.key_pools.get_key_pool(DEVICE_ID)
        self.assertEqual(pool.used_keys, 1)
        self.assertEqual(pool.encumbered_keys, [0])
        self.assertEqual(h.key_pools.get_authority().total_encumbered_keys, 1)


class TestDestructionProof(unittest.TestCase):

    def setUp(self):
        self.h = Harness().bootstrap()

    def test_unsigned_proof(self):
        pk_hash, public_key, nonce = ident("pk-hash"), ident("public-key"), ident("nonce")
        proof = self.h.ledger.create_destruction_proof(DEVICE_ID, pk_hash, public_key, nonce)

        self.assertEqual(proof.proof_type, ProofType.ZERO_KNOWLEDGE)
        self.assertEqual(proof.proof_data, destruction_proof_data(DEVICE_ID, pk_hash, public_key, nonce))
        self.assertEqual(proof.timestamp, self.h.clock.now)
        self.assertEqual(proof.nonce, nonce)
        self.assertEqual(proof.hardware_signature, ZERO_SIGNATURE)

    def test_signed_proof_requires_transaction(self):
        sk, vk = self.h.one_time_keys(1)[0]
        with self.assertRaises(MalformedInput):
            self.h.ledger.create_destruction_proof(DEVICE_ID, sha256(sk), vk, ident("nonce"), signing_key=sk)

    def test_proof_type(self):
        proof = self.h.ledger.create_destruction_proof(
            DEVICE_ID, ident("a"), ident("b"), ident("c"), proof_type="HardwareAttestation"
        )
        self.assertEqual(proof.proof_type, ProofType.HARDWARE_ATTESTATION)

    def test_unknown_proof_type(self):
        with self.assertRaises(MalformedInput):
            self.h.ledger.create_destruction_proof(
                DEVICE_ID, ident("a"), ident("b"), ident("c"), proof_type="Quantum"
            )


class TestEd25519Encumbrance(unittest.TestCase):
    """Proofs must carry the consumed key's signature over the transaction."""

    def setUp(self):
        self.h = Harness(verifier="ed25519").bootstrap()
        self.keys = self.h.one_time_keys(3)
        self.h.pool(self.keys)

    def test_signed_proof_accepted(self):
        tx = self.h.tx()
        self.h.encumber(self.keys, 0, tx)
        self.assertTrue(self.h.ledger.verify_encumbrance(DEVICE_ID, 0, tx))

    def test_proof_bound_to_other_transaction(self):
        proof = self.h.proof(self.keys[0], self.h.tx("intended"))
        with self.assertRaises(InvalidDestructionProof):
            self.h.ledger.encumber_key(OWNER, DEVICE_ID, 0, self.keys[0][1], proof, self.h.tx("substituted"))

    def test_proof_signed_by_other_key(self):
        tx = self.h.tx()
        proof = self.h.proof(self.keys[1], tx)
        with self.assertRaises(InvalidDestructionProof):
            self.h.ledger.encumber_key(OWNER, DEVICE_ID, 0, self.keys[0][1], proof, tx)

    def test_proof_timestamp_out_of_range(self):
        tx = self.h.tx()
        proof = self.h.proof(self.keys[0], tx)
        proof.timestamp = 2 ** 63
        with self.assertRaises(InvalidDestructionProof):
            self.h.ledger.encumber_key(OWNER, DEVICE_ID, 0, self.keys[0][1], proof, tx)
        self.assertEqual(self.h.key_pools.get_key_pool(DEVICE_ID).used_keys, 0)


class TestVerifyAndAnnotate(unittest.TestCase):

    def setUp(self):
        self.h = Harness().bootstrap()
        self.keys = self.h.one_time_keys(2)
        self.h.pool(self.keys)
        self.tx = self.h.tx()
        self.h.encumber(self.keys, 1, self.tx)

    def test_unknown_pair(self):
        with self.assertRaises(RecordNotFound):
            self.h.ledger.verify_encumbrance(DEVICE_ID, 0, self.tx)
        with self.assertRaises(RecordNotFound):
            self.h.ledger.verify_encumbrance(ident("other-device"), 1, self.tx)

    def test_dispute(self):
        record = self.h.ledger.annotate_encumbrance(ROOT, DEVICE_ID, 1, EncumbranceStatus.DISPUTED)

        self.assertEqual(record.status, EncumbranceStatus.DISPUTED)
        self.assertEqual(record.transaction_hash, self.tx)
        with self.assertRaises(KeyNotEncumbered):
            self.h.ledger.verify_encumbrance(DEVICE_ID, 1, self.tx)
        with self.assertRaises(KeyAlreadyEncumbered):
            self.h.encumber(self.keys, 1, self.h.tx("retry"))

    def test_annotate_once(self):
        self.h.ledger.annotate_encumbrance(ROOT, DEVICE_ID, 1, "Verified")
        with self.assertRaises(KeyNotEncumbered):
            self.h.ledger.annotate_encumbrance(ROOT, DEVICE_ID, 1, "Disputed")

    def test_annotate_authority_only(self):
        with self.assertRaises(Unauthorized):
            self.h.ledger.annotate_encumbrance(OWNER, DEVICE_ID, 1, EncumbranceStatus.VERIFIED)
        self.assertTrue(self.h.ledger.verify_encumbrance(DEVICE_ID, 1, self.tx))

    def test_annotate_back_to_encumbered_rejected(self):
        with self.assertRaises(MalformedInput):
            self.h.ledger.annotate_encumbrance(ROOT, DEVICE_ID, 1, EncumbranceStatus.ENCUMBERED)

    def test_unknown_status_rejected(self):
        with self.assertRaises(MalformedInput):
            self.h.ledger.annotate_encumbrance(ROOT, DEVICE_ID, 1, "Bogus")
        self.assertTrue(self.h.ledger.verify_encumbrance(DEVICE_ID, 1, self.tx))


if __name__ == "__main__":
    unittest.main()
