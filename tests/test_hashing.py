"""
Shift Trust Hashing Test Suite

Fingerprints, destruction-proof payloads, record addresses and canonical
JSON.
"""

import hashlib
import struct
import unittest

from shift_trust.canonicalization import canonicalize
from shift_trust.hashing import (
    PROOF_DATA_SIZE,
    attestation_address,
    destruction_proof_data,
    destruction_signing_bytes,
    encumbrance_address,
    key_pool_address,
    manufacturer_address,
    p2p_transaction_hash,
    record_address,
    registry_address,
    transaction_hash,
)

from support import ident


class TestTransactionHash(unittest.TestCase):

    def test_matches_field_layout(self):
        sender, recipient = ident("sender"), ident("recipient")
        expected = hashlib.sha256(
            sender + struct.pack("<Q", 500) + recipient + struct.pack("<q", 1_700_000_000)
        ).digest()
        self.assertEqual(transaction_hash(sender, 500, recipient, 1_700_000_000), expected)

    def test_amount_changes_hash(self):
        sender, recipient = ident("sender"), ident("recipient")
        self.assertNotEqual(
            transaction_hash(sender, 500, recipient, 1),
            transaction_hash(sender, 501, recipient, 1),
        )

    def test_p2p_hash_is_tagged(self):
        channel, sender, recipient = ident("channel"), ident("sender"), ident("recipient")
        expected = hashlib.sha256(
            channel + sender + struct.pack("<Q", 7) + recipient + b"SHIFT_P2P_TRANSACTION"
        ).digest()
        self.assertEqual(p2p_transaction_hash(channel, sender, 7, recipient), expected)


class TestDestructionProofData(unittest.TestCase):

    def setUp(self):
        self.args = (ident("device"), ident("pk-hash"), ident("public-key"), ident("nonce"))

    def test_payload_size(self):
        self.assertEqual(len(destruction_proof_data(*self.args)), PROOF_DATA_SIZE)

    def test_deterministic(self):
        self.assertEqual(destruction_proof_data(*self.args), destruction_proof_data(*self.args))

    def test_hash_chain_layout(self):
        device, pk_hash, public_key, nonce = self.args
        seed = hashlib.sha256(
            device + pk_hash + public_key + nonce + b"SHIFT_KEY_DESTRUCTION_PROOF"
        ).digest()
        payload = destruction_proof_data(*self.args)
        for i in range(8):
            block = hashlib.sha256(seed + struct.pack("<Q", i)).digest()
            self.assertEqual(payload[i * 32:(i + 1) * 32], block)

    def test_different_nonce_different_payload(self):
        device, pk_hash, public_key, _ = self.args
        self.assertNotEqual(
            destruction_proof_data(device, pk_hash, public_key, ident("nonce-a")),
            destruction_proof_data(device, pk_hash, public_key, ident("nonce-b")),
        )

    def test_signing_bytes_bind_transaction(self):
        payload = destruction_proof_data(*self.args)
        a = destruction_signing_bytes("ZeroKnowledge", payload, 1, ident("nonce"), ident("tx-a"))
        b = destruction_signing_bytes("ZeroKnowledge", payload, 1, ident("nonce"), ident("tx-b"))
        self.assertNotEqual(a, b)


class TestRecordAddresses(unittest.TestCase):

    def test_deterministic(self):
        device = ident("device")
        self.assertEqual(attestation_address(device), attestation_address(device))
        self.assertEqual(encumbrance_address(device, 3), encumbrance_address(device, 3))

    def test_kinds_do_not_collide(self):
        seed = ident("same-seed")
        addresses = {
            manufacturer_address(seed),
            attestation_address(seed),
            key_pool_address(seed),
            encumbrance_address(seed, 0),
            registry_address(),
        }
        self.assertEqual(len(addresses), 5)

    def test_index_distinguishes_encumbrances(self):
        device = ident("device")
        self.assertNotEqual(encumbrance_address(device, 0), encumbrance_address(device, 1))

    def test_length_prefix_prevents_seed_splitting(self):
        self.assertNotEqual(record_address("k", b"ab", b"c"), record_address("k", b"a", b"bc"))


class TestCanonicalization(unittest.TestCase):

    def test_sorted_compact(self):
        self.assertEqual(canonicalize({"b": 1, "a": [True, None]}), b'{"a":[true,null],"b":1}')

    def test_bytes_render_as_hex(self):
        self.assertEqual(canonicalize({"k": b"\x01\xff"}), b'{"k":"01ff"}')

    def test_floats_rejected(self):
        with self.assertRaises(ValueError):
            canonicalize({"amount": 1.5})

    def test_non_string_keys_rejected(self):
        with self.assertRaises(ValueError):
            canonicalize({1: "x"})


if __name__ == "__main__":
    unittest.main()
