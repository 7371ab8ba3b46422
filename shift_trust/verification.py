"""
Shift Trust Verifiers

Checks applied to attestation quotes, device certificates and destruction
proofs before they are accepted.

StructuralVerifier is the reference contract: non-zero / well-formed field
checks standing in for real cryptography. Ed25519Verifier runs the same
structural checks and then verifies actual signatures. Both answer the same
questions in the same order, so switching verifiers never changes which error
a malformed input produces.
"""

from abc import ABC, abstractmethod

from .hashing import (
    I64_MAX,
    PROOF_DATA_SIZE,
    U32_MAX,
    destruction_signing_bytes,
    is_zero,
    quote_signing_bytes,
)
from .models import (
    MAX_CERTIFICATE_SIZE,
    MAX_MEASUREMENTS,
    MEASUREMENT_SIZE,
    NONCE_SIZE,
    PUBLIC_KEY_SIZE,
    SIGNATURE_SIZE,
    AttestationQuote,
    DestructionProof,
)
from .signing import sign_data, verify_signature


class Verifier(ABC):
    """Abstract interface for attestation and proof verification."""

    @abstractmethod
    def verify_quote(self, device_id: bytes, quote: AttestationQuote, manufacturer_key: bytes) -> bool:
        pass

    @abstractmethod
    def verify_certificate(self, device_id: bytes, certificate: bytes, manufacturer_key: bytes) -> bool:
        pass

    @abstractmethod
    def verify_destruction_proof(
        self,
        proof: DestructionProof,
        public_key: bytes,
        transaction_hash: bytes
    ) -> bool:
        pass


class StructuralVerifier(Verifier):
    """
    Reference verifier.

    WARNING: performs no cryptography. A quote, certificate or proof with
    arbitrary non-zero bytes passes.
    """

    def verify_quote(self, device_id, quote, manufacturer_key) -> bool:
        if len(quote.signature) != SIGNATURE_SIZE or len(quote.public_key) != PUBLIC_KEY_SIZE:
            return False
        if len(quote.nonce) != NONCE_SIZE or len(quote.measurements) > MAX_MEASUREMENTS:
            return False
        if any(len(m) != MEASUREMENT_SIZE for m in quote.measurements):
            return False
        return (
            0 < quote.version <= U32_MAX
            and not is_zero(quote.signature)
            and 0 < quote.timestamp <= I64_MAX
            and len(quote.measurements) > 0
        )

    def verify_certificate(self, device_id, certificate, manufacturer_key) -> bool:
        if len(certificate) > MAX_CERTIFICATE_SIZE:
            return False
        return not is_zero(certificate) and not is_zero(manufacturer_key)

    def verify_destruction_proof(self, proof, public_key, transaction_hash) -> bool:
        if len(proof.proof_data) != PROOF_DATA_SIZE or len(proof.nonce) != NONCE_SIZE:
            return False
        if len(proof.hardware_signature) != SIGNATURE_SIZE:
            return False
        return (
            0 < proof.timestamp <= I64_MAX
            and not is_zero(proof.nonce)
            and not is_zero(proof.proof_data)
            and not is_zero(proof.hardware_signature)
        )


class Ed25519Verifier(StructuralVerifier):
    """
    Signature-checking verifier.

    - Quote: quote.signature by the manufacturer key over quote_signing_bytes
    - Certificate: first 64 bytes are the manufacturer signature over
      device_id || remaining certificate bytes
    - Destruction proof: hardware_signature by the consumed one-time key over
      destruction_signing_bytes(proof, transaction_hash)
    """

    def verify_quote(self, device_id, quote, manufacturer_key) -> bool:
        if not super().verify_quote(device_id, quote, manufacturer_key):
            return False
        message = quote_signing_bytes(
            device_id, quote.version, quote.public_key, quote.nonce,
            quote.timestamp, quote.measurements
        )
        return verify_signature(message, quote.signature, manufacturer_key)

    def verify_certificate(self, device_id, certificate, manufacturer_key) -> bool:
        if not super().verify_certificate(device_id, certificate, manufacturer_key):
            return False
        if len(certificate) <= SIGNATURE_SIZE:
            return False
        signature, body = certificate[:SIGNATURE_SIZE], certificate[SIGNATURE_SIZE:]
        return verify_signature(device_id + body, signature, manufacturer_key)

    def verify_destruction_proof(self, proof, public_key, transaction_hash) -> bool:
        if not super().verify_destruction_proof(proof, public_key, transaction_hash):
            return False
        message = destruction_signing_bytes(
            proof.proof_type.value, proof.proof_data, proof.timestamp,
            proof.nonce, transaction_hash
        )
        return verify_signature(message, proof.hardware_signature, public_key)


def get_verifier(verifier_type: str = "structural") -> Verifier:
    """Factory for the configured verifier."""
    if verifier_type == "ed25519":
        return Ed25519Verifier()
    if verifier_type == "structural":
        return StructuralVerifier()
    raise ValueError(f"Unknown verifier: {verifier_type}")


def sign_quote(device_id: bytes, quote: AttestationQuote, manufacturer_signing_key: bytes) -> AttestationQuote:
    """Manufacturer side: fill in quote.signature for Ed25519Verifier."""
    message = quote_signing_bytes(
        device_id, quote.version, quote.public_key, quote.nonce,
        quote.timestamp, quote.measurements
    )
    quote.signature = sign_data(message, manufacturer_signing_key)
    return quote


def issue_certificate(device_id: bytes, body: bytes, manufacturer_signing_key: bytes) -> bytes:
    """Manufacturer side: signature over device_id || body, followed by body."""
    return sign_data(device_id + body, manufacturer_signing_key) + body
