"""
Shift Trust Hashing

SHA-256 primitives used across the protocol:

- Deterministic record addresses (one per record kind and key)
- Transaction fingerprints that one-time keys authorize
- The placeholder destruction-proof payload (hash chain)

All multi-byte integers are little-endian.
"""

import hashlib
import struct
from typing import Union

DIGEST_SIZE = 32
PROOF_DATA_SIZE = 256
PROOF_CHAIN_LENGTH = PROOF_DATA_SIZE // DIGEST_SIZE

U32_MAX = 2 ** 32 - 1
I64_MAX = 2 ** 63 - 1

DESTRUCTION_PROOF_TAG = b"SHIFT_KEY_DESTRUCTION_PROOF"
DESTRUCTION_SIGNATURE_TAG = b"SHIFT_KEY_DESTRUCTION_SIGNATURE"
P2P_TRANSACTION_TAG = b"SHIFT_P2P_TRANSACTION"
QUOTE_SIGNATURE_TAG = b"SHIFT_ATTESTATION_QUOTE"

BytesLike = Union[bytes, bytearray]


def sha256(*parts: BytesLike) -> bytes:
    """SHA-256 over the concatenation of parts."""
    hasher = hashlib.sha256()
    for part in parts:
        hasher.update(part)
    return hasher.digest()


def u32_le(value: int) -> bytes:
    return struct.pack("<I", value)


def u64_le(value: int) -> bytes:
    return struct.pack("<Q", value)


def i64_le(value: int) -> bytes:
    return struct.pack("<q", value)


def record_address(kind: str, *seeds: BytesLike) -> str:
    """
    Compute the store address of a record.

    The kind tag and every seed are length-prefixed before hashing, so
    addresses of different kinds (or different seed splits) never collide.
    """
    hasher = hashlib.sha256()
    for part in (kind.encode("utf-8"),) + seeds:
        hasher.update(u32_le(len(part)))
        hasher.update(part)
    return hasher.hexdigest()


def registry_address() -> str:
    return record_address("attestation_authority")


def manufacturer_address(manufacturer_id: bytes) -> str:
    return record_address("manufacturer", manufacturer_id)


def attestation_address(device_id: bytes) -> str:
    return record_address("attestation", device_id)


def encumbrance_authority_address() -> str:
    return record_address("encumbrance_authority")


def key_pool_address(device_id: bytes) -> str:
    return record_address("key_pool", device_id)


def encumbrance_address(device_id: bytes, key_index: int) -> str:
    return record_address("encumbrance", device_id, u32_le(key_index))


def request_address(signer: bytes, nonce: str) -> str:
    return record_address("request", signer, nonce.encode("utf-8"))


def transaction_hash(
    sender: bytes,
    amount: int,
    recipient_device_id: bytes,
    created_at: int
) -> bytes:
    """Fingerprint of a device-to-device transfer."""
    return sha256(sender, u64_le(amount), recipient_device_id, i64_le(created_at))


def p2p_transaction_hash(
    channel_id: bytes,
    sender: bytes,
    amount: int,
    recipient: bytes
) -> bytes:
    """Fingerprint of a payment-channel transfer."""
    return sha256(channel_id, sender, u64_le(amount), recipient, P2P_TRANSACTION_TAG)


def destruction_proof_data(
    device_id: bytes,
    private_key_hash: bytes,
    public_key: bytes,
    nonce: bytes
) -> bytes:
    """
    Derive the fixed-size destruction proof payload.

    seed = SHA-256(device_id || private_key_hash || public_key || nonce || tag)
    payload = SHA-256(seed || u64(0)) || ... || SHA-256(seed || u64(7))

    This is a deterministic stand-in for a zero-knowledge proof of key
    destruction; it is not one.
    """
    seed = sha256(device_id, private_key_hash, public_key, nonce, DESTRUCTION_PROOF_TAG)
    payload = b"".join(sha256(seed, u64_le(i)) for i in range(PROOF_CHAIN_LENGTH))
    return payload


def destruction_signing_bytes(
    proof_type: str,
    proof_data: bytes,
    timestamp: int,
    nonce: bytes,
    transaction_hash: bytes
) -> bytes:
    """Message a device signs to bind a destruction proof to one transaction."""
    return b"".join([
        DESTRUCTION_SIGNATURE_TAG,
        proof_type.encode("utf-8"),
        proof_data,
        i64_le(timestamp),
        nonce,
        transaction_hash,
    ])


def quote_signing_bytes(
    device_id: bytes,
    version: int,
    public_key: bytes,
    nonce: bytes,
    timestamp: int,
    measurements
) -> bytes:
    """Message a manufacturer-rooted attestation key signs for a quote."""
    return b"".join([
        QUOTE_SIGNATURE_TAG,
        device_id,
        u32_le(version),
        public_key,
        nonce,
        i64_le(timestamp),
        u32_le(len(measurements)),
    ] + list(measurements))


def is_zero(data: BytesLike) -> bool:
    """True for empty or all-zero byte strings."""
    return not any(data)
