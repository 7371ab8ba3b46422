"""
Shared builders for the Shift Trust test suites.
"""

import secrets

from shift_trust import (
    AttestationQuote,
    AttestationStore,
    EncumbranceLedger,
    InMemoryRecordStore,
    KeyPoolManager,
    ProtocolConfig,
    ShiftContext,
    TrustRegistryManager,
    generate_signing_key,
    issue_certificate,
    sha256,
    sign_quote,
    transaction_hash,
)

START_TIME = 1_700_000_000
DAY = 86400


def ident(label: str) -> bytes:
    """Deterministic 32-byte identifier."""
    return sha256(label.encode("utf-8"))


ROOT = ident("root-authority")
OWNER = ident("device-owner")
STRANGER = ident("stranger")
MANUFACTURER_ID = ident("manufacturer")
DEVICE_ID = ident("device")


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class Harness:
    """One isolated deployment: context, components and a manufacturer key."""

    def __init__(self, verifier: str = "structural", store=None, **config):
        self.clock = FakeClock()
        self.ctx = ShiftContext(
            store=store or InMemoryRecordStore(),
            config=ProtocolConfig(verifier=verifier, **config),
            clock=self.clock,
        )
        self.registry = TrustRegistryManager(self.ctx)
        self.attestations = AttestationStore(self.ctx)
        self.key_pools = KeyPoolManager(self.ctx)
        self.ledger = EncumbranceLedger(self.ctx)
        self.mfr_sk, self.mfr_vk = generate_signing_key()

    def bootstrap(self) -> "Harness":
        """Registry, one trusted manufacturer and the encumbrance authority."""
        self.registry.initialize(ROOT)
        self.registry.add_manufacturer(ROOT, MANUFACTURER_ID, "Acme Secure Elements", self.mfr_vk)
        self.key_pools.initialize_authority(ROOT)
        return self

    def quote(self, device_id: bytes = DEVICE_ID, signing_key: bytes = None, **overrides) -> AttestationQuote:
        fields = dict(
            version=1,
            signature=bytes(64),
            public_key=ident("attestation-key"),
            nonce=secrets.token_bytes(32),
            timestamp=self.clock.now,
            measurements=[ident("firmware"), ident("bootloader")],
        )
        fields.update(overrides)
        quote = AttestationQuote(**fields)
        if "signature" not in overrides:
            sign_quote(device_id, quote, signing_key or self.mfr_sk)
        return quote

    def certificate(self, device_id: bytes = DEVICE_ID, signing_key: bytes = None) -> bytes:
        return issue_certificate(device_id, b"device-certificate-v1", signing_key or self.mfr_sk)

    def attest(self, device_id: bytes = DEVICE_ID, owner: bytes = OWNER):
        return self.attestations.create_attestation(
            owner, device_id, MANUFACTURER_ID, self.quote(device_id), self.certificate(device_id)
        )

    @staticmethod
    def one_time_keys(count: int):
        return [generate_signing_key() for _ in range(count)]

    def pool(self, keys, device_id: bytes = DEVICE_ID, owner: bytes = OWNER, capacity: int = None):
        return self.key_pools.initialize_key_pool(
            owner, device_id, capacity or max(len(keys), 1), [vk for _, vk in keys]
        )

    def tx(self, label: str = "recipient", amount: int = 1000) -> bytes:
        return transaction_hash(OWNER, amount, ident(label), self.clock.now)

    def proof(self, key, tx: bytes, device_id: bytes = DEVICE_ID, signed: bool = True):
        signing_key, verify_key = key
        return self.ledger.create_destruction_proof(
            device_id,
            sha256(signing_key),
            verify_key,
            secrets.token_bytes(32),
            signing_key=signing_key if signed else None,
            transaction_hash=tx if signed else None,
        )

    def encumber(self, keys, index: int, tx: bytes, device_id: bytes = DEVICE_ID, owner: bytes = OWNER):
        key = keys[index]
        return self.ledger.encumber_key(
            owner, device_id, index, key[1], self.proof(key, tx, device_id), tx
        )
