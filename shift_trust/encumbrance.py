"""
Shift Trust Encumbrance Ledger

Consumes one-time keys. A successful encumber_key writes exactly one
EncumbranceRecord per (device, key_index) and marks the index consumed in the
device's key pool, in the same atomic commit.

A second consumption of the same index is stopped twice over:
1. the pool's consumed-index set (KeyAlreadyEncumbered)
2. the store's unique record address (AlreadyExists)
"""

from typing import Optional, Union

from .context import ShiftContext, audited
from .errors import (
    AlreadyExists,
    DeviceIdMismatch,
    InvalidDestructionProof,
    InvalidKeyIndex,
    KeyAlreadyEncumbered,
    KeyMismatch,
    KeyNotEncumbered,
    MalformedInput,
    RecordNotFound,
    ShiftError,
    TransactionHashMismatch,
    Unauthorized,
    UnauthorizedOwner,
)
from .hashing import (
    DIGEST_SIZE,
    destruction_proof_data,
    destruction_signing_bytes,
    encumbrance_address,
    encumbrance_authority_address,
    key_pool_address,
)
from .key_pool import key_at, load_authority, load_key_pool
from .models import (
    NONCE_SIZE,
    PUBLIC_KEY_SIZE,
    ZERO_SIGNATURE,
    DestructionProof,
    EncumbranceRecord,
    EncumbranceStatus,
    ProofType,
    require_enum,
    require_id,
    require_size,
)
from .signing import sign_data
from .store import ENCUMBRANCE, ENCUMBRANCE_AUTHORITY, KEY_POOL

MAX_KEY_INDEX = 2 ** 32 - 1


def _check_index(key_index: int) -> int:
    if isinstance(key_index, bool) or not isinstance(key_index, int):
        raise InvalidKeyIndex("key_index must be an integer", key_index=key_index)
    if key_index < 0 or key_index > MAX_KEY_INDEX:
        raise InvalidKeyIndex(key_index=key_index)
    return key_index


def _coerce_proof(proof: Union[DestructionProof, dict]) -> DestructionProof:
    if isinstance(proof, DestructionProof):
        return proof
    try:
        return DestructionProof.from_dict(proof)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidDestructionProof(f"Malformed destruction proof: {e}")


class EncumbranceLedger:
    """Key encumbrance operations."""

    def __init__(self, ctx: ShiftContext):
        self.ctx = ctx

    @audited("encumber_key")
    def encumber_key(
        self,
        caller: bytes,
        device_id: bytes,
        key_index: int,
        public_key: bytes,
        destruction_proof: Union[DestructionProof, dict],
        transaction_hash: bytes
    ) -> EncumbranceRecord:
        """
        Consume the key at key_index for one transaction.

        Raises, in check order:
            RecordNotFound: device has no key pool
            UnauthorizedOwner: caller is not the pool owner
            DeviceIdMismatch: stored pool belongs to another device
            InvalidKeyIndex: index beyond the inserted keys
            KeyMismatch: public_key differs from the key stored at key_index
            KeyAlreadyEncumbered: index already consumed
            InvalidDestructionProof: proof rejected by the verifier
            AlreadyExists: an encumbrance record for the pair already exists
        """
        device_id = require_id(device_id, "device_id")
        key_index = _check_index(key_index)
        public_key = require_size(public_key, PUBLIC_KEY_SIZE, "public_key")
        transaction_hash = require_size(transaction_hash, DIGEST_SIZE, "transaction_hash")
        destruction_proof = _coerce_proof(destruction_proof)

        pool_address = key_pool_address(device_id)
        record_address = encumbrance_address(device_id, key_index)
        auth_address = encumbrance_authority_address()

        try:
            with self.ctx.transaction(pool_address, record_address, auth_address) as txn:
                pool = load_key_pool(txn, device_id)
                if caller != pool.owner:
                    raise UnauthorizedOwner("Caller is not the key pool owner")
                if pool.device_id != device_id:
                    raise DeviceIdMismatch()

                stored_key = key_at(pool, key_index)
                if stored_key != public_key:
                    raise KeyMismatch(key_index=key_index)
                if pool.is_consumed(key_index):
                    raise KeyAlreadyEncumbered(key_index=key_index)

                if not self.ctx.verifier.verify_destruction_proof(destruction_proof, public_key, transaction_hash):
                    raise InvalidDestructionProof()

                authority = load_authority(txn)
                record = EncumbranceRecord(
                    device_id=device_id,
                    key_index=key_index,
                    public_key=public_key,
                    transaction_hash=transaction_hash,
                    destruction_proof=destruction_proof,
                    status=EncumbranceStatus.ENCUMBERED,
                    encumbered_at=self.ctx.now(),
                )
                txn.insert(ENCUMBRANCE, record_address, record)

                pool.encumbered_keys.append(key_index)
                pool.used_keys += 1
                pool.available_keys -= 1
                authority.total_encumbered_keys += 1

                txn.update(KEY_POOL, pool_address, pool)
                txn.update(ENCUMBRANCE_AUTHORITY, auth_address, authority)
        except (KeyAlreadyEncumbered, AlreadyExists) as e:
            self.ctx.audit.security_event(
                "key_reuse_attempt",
                severity="high",
                device_id=device_id.hex()[:16],
                key_index=key_index,
                code=e.code.value,
            )
            raise

        self.ctx.audit.key_encumbered(device_id, key_index, transaction_hash)
        return record

    @audited("verify_encumbrance")
    def verify_encumbrance(self, device_id: bytes, key_index: int, transaction_hash: bytes) -> bool:
        """
        Confirm that key_index of device_id was consumed for transaction_hash.

        Returns True or raises RecordNotFound, DeviceIdMismatch,
        InvalidKeyIndex, TransactionHashMismatch or KeyNotEncumbered (status
        other than Encumbered).
        """
        device_id = require_id(device_id, "device_id")
        key_index = _check_index(key_index)
        transaction_hash = require_size(transaction_hash, DIGEST_SIZE, "transaction_hash")

        record = self.ctx.read(ENCUMBRANCE, encumbrance_address(device_id, key_index), EncumbranceRecord)
        if record is None:
            raise RecordNotFound("Encumbrance record not found")

        if record.device_id != device_id:
            raise DeviceIdMismatch()
        if record.key_index != key_index:
            raise InvalidKeyIndex(key_index=key_index)
        if record.transaction_hash != transaction_hash:
            raise TransactionHashMismatch()
        if record.status != EncumbranceStatus.ENCUMBERED:
            raise KeyNotEncumbered(status=record.status.value)

        return True

    def is_encumbered(self, device_id: bytes, key_index: int, transaction_hash: bytes) -> bool:
        """Non-raising form of verify_encumbrance."""
        try:
            return self.verify_encumbrance(device_id, key_index, transaction_hash)
        except ShiftError:
            return False

    def create_destruction_proof(
        self,
        device_id: bytes,
        private_key_hash: bytes,
        public_key: bytes,
        nonce: bytes,
        signing_key: Optional[bytes] = None,
        transaction_hash: Optional[bytes] = None,
        proof_type: ProofType = ProofType.ZERO_KNOWLEDGE
    ) -> DestructionProof:
        """
        Build a destruction proof for a one-time key.

        Pure: reads only the clock. Without signing_key the hardware
        signature is all zeros, and encumber_key will reject the proof.
        With signing_key (the one-time private key, used once here before
        it is destroyed) the proof is bound to transaction_hash.
        """
        device_id = require_id(device_id, "device_id")
        private_key_hash = require_size(private_key_hash, DIGEST_SIZE, "private_key_hash")
        public_key = require_size(public_key, PUBLIC_KEY_SIZE, "public_key")
        nonce = require_size(nonce, NONCE_SIZE, "nonce")
        proof_type = require_enum(ProofType, proof_type, "proof_type")

        proof = DestructionProof(
            proof_type=proof_type,
            proof_data=destruction_proof_data(device_id, private_key_hash, public_key, nonce),
            timestamp=self.ctx.now(),
            nonce=nonce,
            hardware_signature=ZERO_SIGNATURE,
        )
        if signing_key is not None:
            if transaction_hash is None:
                raise MalformedInput("transaction_hash required to sign a destruction proof")
            transaction_hash = require_size(transaction_hash, DIGEST_SIZE, "transaction_hash")
            message = destruction_signing_bytes(
                proof.proof_type.value, proof.proof_data, proof.timestamp,
                proof.nonce, transaction_hash
            )
            proof.hardware_signature = sign_data(message, signing_key)
        return proof

    @audited("annotate_encumbrance")
    def annotate_encumbrance(
        self,
        caller: bytes,
        device_id: bytes,
        key_index: int,
        status: Union[EncumbranceStatus, str]
    ) -> EncumbranceRecord:
        """
        Move an Encumbered record to Verified or Disputed.

        Only the encumbrance authority may annotate. Every other field of the
        record stays immutable.
        """
        device_id = require_id(device_id, "device_id")
        key_index = _check_index(key_index)
        status = require_enum(EncumbranceStatus, status, "status")
        if status == EncumbranceStatus.ENCUMBERED:
            raise MalformedInput("status must be Verified or Disputed", field="status")

        record_address = encumbrance_address(device_id, key_index)
        auth_address = encumbrance_authority_address()

        with self.ctx.transaction(record_address, auth_address) as txn:
            authority = load_authority(txn)
            if caller != authority.authority:
                raise Unauthorized("Caller is not the encumbrance authority")

            record = txn.load(ENCUMBRANCE, record_address, EncumbranceRecord)
            if record is None:
                raise RecordNotFound("Encumbrance record not found")
            if record.status != EncumbranceStatus.ENCUMBERED:
                raise KeyNotEncumbered(f"Record already {record.status.value}")

            record.status = status
            txn.update(ENCUMBRANCE, record_address, record)

        self.ctx.audit.encumbrance_annotated(device_id, key_index, status.value)
        return record

    def get_encumbrance(self, device_id: bytes, key_index: int) -> Optional[EncumbranceRecord]:
        device_id = require_id(device_id, "device_id")
        key_index = _check_index(key_index)
        return self.ctx.read(ENCUMBRANCE, encumbrance_address(device_id, key_index), EncumbranceRecord)
