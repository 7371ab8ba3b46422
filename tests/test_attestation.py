"""
Shift Trust Attestation Test Suite

Critical invariants tested:
    At most one attestation per device
    Expiry is evaluated lazily, never stored
    Revocation is terminal
"""

import unittest

from shift_trust import (
    AlreadyExists,
    AttestationExpired,
    AttestationStatus,
    InvalidAttestation,
    InvalidAttestationQuote,
    InvalidDeviceCertificate,
    MalformedInput,
    RecordNotFound,
    RevocationReason,
    Unauthorized,
    UnauthorizedOwner,
    UntrustedManufacturer,
    generate_signing_key,
)

from support import DAY, DEVICE_ID, MANUFACTURER_ID, OWNER, ROOT, STRANGER, Harness, ident

VALIDITY = 30 * DAY


class TestCreateAttestation(unittest.TestCase):

    def setUp(self):
        self.h = Harness().bootstrap()

    def test_attest_and_verify(self):
        record = self.h.attest()

        self.assertEqual(record.status, AttestationStatus.VALID)
        self.assertEqual(record.owner, OWNER)
        self.assertEqual(record.expires_at, self.h.clock.now + VALIDITY)
        self.assertTrue(self.h.attestations.verify_attestation(DEVICE_ID))
        self.assertTrue(self.h.attestations.is_attested(DEVICE_ID))

    def test_counters_incremented(self):
        self.h.attest()
        self.h.attest(ident("device-2"))

        self.assertEqual(self.h.registry.get_manufacturer(MANUFACTURER_ID).devices_attested, 2)
        self.assertEqual(self.h.registry.get_registry().total_attestations, 2)

    def test_second_attestation_rejected(self):
        self.h.attest()
        with self.assertRaises(AlreadyExists):
            self.h.attest()
        self.assertEqual(self.h.registry.get_registry().total_attestations, 1)

    def test_unknown_manufacturer(self):
        with self.assertRaises(UntrustedManufacturer):
            self.h.attestations.create_attestation(
                OWNER, DEVICE_ID, ident("unknown-mfr"), self.h.quote(), self.h.certificate()
            )

    def test_inactive_manufacturer(self):
        self.h.registry.set_manufacturer_active(ROOT, MANUFACTURER_ID, False)
        with self.assertRaises(UntrustedManufacturer):
            self.h.attest()
        self.assertIsNone(self.h.attestations.get_attestation(DEVICE_ID))

    def test_invalid_quote(self):
        cases = [
            self.h.quote(version=0),
            self.h.quote(signature=bytes(64)),
            self.h.quote(timestamp=0),
            self.h.quote(measurements=[]),
        ]
        for quote in cases:
            with self.subTest(quote=quote):
                with self.assertRaises(InvalidAttestationQuote):
                    self.h.attestations.create_attestation(
                        OWNER, DEVICE_ID, MANUFACTURER_ID, quote, self.h.certificate()
                    )
        self.assertIsNone(self.h.attestations.get_attestation(DEVICE_ID))

    def test_invalid_certificate(self):
        for certificate in (b"", bytes(100), b"\x01" * 1025):
            with self.subTest(size=len(certificate)):
                with self.assertRaises(InvalidDeviceCertificate):
                    self.h.attestations.create_attestation(
                        OWNER, DEVICE_ID, MANUFACTURER_ID, self.h.quote(), certificate
                    )

    def test_quote_accepted_as_dict(self):
        record = self.h.attestations.create_attestation(
            OWNER, DEVICE_ID.hex(), MANUFACTURER_ID.hex(),
            self.h.quote().to_dict(), self.h.certificate().hex()
        )
        self.assertEqual(record.device_id, DEVICE_ID)


class TestVerifyAttestation(unittest.TestCase):

    def setUp(self):
        self.h = Harness().bootstrap()

    def test_missing_record(self):
        with self.assertRaises(RecordNotFound):
            self.h.attestations.verify_attestation(DEVICE_ID)
        self.assertFalse(self.h.attestations.is_attested(DEVICE_ID))

    def test_lazy_expiry(self):
        record = self.h.attest()

        self.h.clock.advance(VALIDITY - 1)
        self.assertTrue(self.h.attestations.verify_attestation(DEVICE_ID))

        self.h.clock.advance(1)
        with self.assertRaises(AttestationExpired):
            self.h.attestations.verify_attestation(DEVICE_ID)

        stored = self.h.attestations.get_attestation(DEVICE_ID)
        self.assertEqual(stored.status, AttestationStatus.VALID)
        self.assertEqual(stored.expires_at, record.expires_at)
        self.assertEqual(stored.effective_status(self.h.clock.now), AttestationStatus.EXPIRED)

    def test_deactivation_does_not_cascade(self):
        self.h.attest()
        self.h.registry.set_manufacturer_active(ROOT, MANUFACTURER_ID, False)

        self.assertTrue(self.h.attestations.verify_attestation(DEVICE_ID))
        with self.assertRaises(UntrustedManufacturer):
            self.h.attest(ident("device-2"))


class TestRevokeAttestation(unittest.TestCase):

    def setUp(self):
        self.h = Harness().bootstrap()
        self.h.attest()

    def test_revoke(self):
        record = self.h.attestations.revoke_attestation(ROOT, DEVICE_ID, RevocationReason.COMPROMISED)

        self.assertEqual(record.status, AttestationStatus.REVOKED)
        self.assertEqual(record.revocation_reason, RevocationReason.COMPROMISED)
        self.assertEqual(record.revoked_at, self.h.clock.now)
        with self.assertRaises(InvalidAttestation):
            self.h.attestations.verify_attestation(DEVICE_ID)

    def test_reason_accepted_as_string(self):
        record = self.h.attestations.revoke_attestation(ROOT, DEVICE_ID, "UserRequested")
        self.assertEqual(record.revocation_reason, RevocationReason.USER_REQUESTED)

    def test_unknown_reason_rejected(self):
        with self.assertRaises(MalformedInput):
            self.h.attestations.revoke_attestation(ROOT, DEVICE_ID, "Stolen")
        self.assertTrue(self.h.attestations.verify_attestation(DEVICE_ID))

    def test_revocation_is_terminal(self):
        self.h.attestations.revoke_attestation(ROOT, DEVICE_ID, RevocationReason.COMPROMISED)

        with self.assertRaises(InvalidAttestation):
            self.h.attestations.revoke_attestation(ROOT, DEVICE_ID, RevocationReason.OTHER)
        with self.assertRaises(InvalidAttestation):
            self.h.attestations.refresh_attestation(OWNER, DEVICE_ID, self.h.quote())
        with self.assertRaises(AlreadyExists):
            self.h.attest()

        stored = self.h.attestations.get_attestation(DEVICE_ID)
        self.assertEqual(stored.status, AttestationStatus.REVOKED)
        self.assertEqual(stored.revocation_reason, RevocationReason.COMPROMISED)

    def test_only_authority_revokes(self):
        for caller in (OWNER, STRANGER):
            with self.assertRaises(Unauthorized):
                self.h.attestations.revoke_attestation(caller, DEVICE_ID, RevocationReason.OTHER)
        self.assertTrue(self.h.attestations.is_attested(DEVICE_ID))

    def test_revoke_missing(self):
        with self.assertRaises(RecordNotFound):
            self.h.attestations.revoke_attestation(ROOT, ident("nobody"), RevocationReason.OTHER)


class TestRefreshAttestation(unittest.TestCase):

    def setUp(self):
        self.h = Harness().bootstrap()
        self.h.attest()

    def test_refresh_extends_expiry(self):
        self.h.clock.advance(10 * DAY)
        quote = self.h.quote(nonce=ident("fresh-nonce"))

        record = self.h.attestations.refresh_attestation(OWNER, DEVICE_ID, quote)

        self.assertEqual(record.expires_at, self.h.clock.now + VALIDITY)
        self.assertEqual(record.quote, quote)
        self.assertEqual(self.h.attestations.get_attestation(DEVICE_ID).quote.nonce, ident("fresh-nonce"))

    def test_owner_only(self):
        with self.assertRaises(UnauthorizedOwner):
            self.h.attestations.refresh_attestation(STRANGER, DEVICE_ID, self.h.quote())

    def test_invalid_quote(self):
        before = self.h.attestations.get_attestation(DEVICE_ID)
        with self.assertRaises(InvalidAttestationQuote):
            self.h.attestations.refresh_attestation(OWNER, DEVICE_ID, self.h.quote(version=0))
        self.assertEqual(self.h.attestations.get_attestation(DEVICE_ID), before)

    def test_expired_refresh_rejected(self):
        self.h.clock.advance(VALIDITY)
        with self.assertRaises(AttestationExpired):
            self.h.attestations.refresh_attestation(OWNER, DEVICE_ID, self.h.quote())

    def test_expired_refresh_allowed_when_configured(self):
        h = Harness(allow_expired_refresh=True).bootstrap()
        h.attest()
        h.clock.advance(VALIDITY + DAY)

        record = h.attestations.refresh_attestation(OWNER, DEVICE_ID, h.quote())

        self.assertEqual(record.expires_at, h.clock.now + VALIDITY)
        self.assertTrue(h.attestations.verify_attestation(DEVICE_ID))


class TestEd25519Attestation(unittest.TestCase):
    """Signature-checking verifier."""

    def setUp(self):
        self.h = Harness(verifier="ed25519").bootstrap()

    def test_signed_quote_and_certificate(self):
        self.h.attest()
        self.assertTrue(self.h.attestations.verify_attestation(DEVICE_ID))

    def test_quote_signed_by_other_key(self):
        other_sk, _ = generate_signing_key()
        with self.assertRaises(InvalidAttestationQuote):
            self.h.attestations.create_attestation(
                OWNER, DEVICE_ID, MANUFACTURER_ID,
                self.h.quote(signing_key=other_sk), self.h.certificate()
            )

    def test_quote_bound_to_device(self):
        quote = self.h.quote(device_id=ident("other-device"))
        with self.assertRaises(InvalidAttestationQuote):
            self.h.attestations.create_attestation(
                OWNER, DEVICE_ID, MANUFACTURER_ID, quote, self.h.certificate()
            )

    def test_tampered_certificate(self):
        certificate = bytearray(self.h.certificate())
        certificate[-1] ^= 0x01
        with self.assertRaises(InvalidDeviceCertificate):
            self.h.attestations.create_attestation(
                OWNER, DEVICE_ID, MANUFACTURER_ID, self.h.quote(), bytes(certificate)
            )

    def test_quote_fields_out_of_range(self):
        for field, value in (("version", 2 ** 32), ("timestamp", 2 ** 63)):
            with self.subTest(field=field):
                quote = self.h.quote(signature=bytes([1]) * 64, **{field: value})
                with self.assertRaises(InvalidAttestationQuote):
                    self.h.attestations.create_attestation(
                        OWNER, DEVICE_ID, MANUFACTURER_ID, quote, self.h.certificate()
                    )
        self.assertFalse(self.h.attestations.is_attested(DEVICE_ID))


if __name__ == "__main__":
    unittest.main()
