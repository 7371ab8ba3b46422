"""
Shift Trust Error Model

Every rejected operation raises a typed ShiftError. Errors carry a stable
code (for wire formats and logs) and a category that callers can use to decide
whether a retry makes sense. The core never retries on its own.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Error categories."""
    AUTHORIZATION = "AUTHORIZATION"
    NOT_FOUND = "NOT_FOUND"
    MISMATCH = "MISMATCH"
    STATE_CONFLICT = "STATE_CONFLICT"
    VALIDATION = "VALIDATION"


class ErrorCode(str, Enum):
    """Stable error codes."""
    # Authorization
    UNAUTHORIZED = "Unauthorized"
    UNAUTHORIZED_OWNER = "UnauthorizedOwner"
    INVALID_REQUEST_SIGNATURE = "InvalidRequestSignature"
    REPLAYED_REQUEST = "ReplayedRequest"

    # Not found
    RECORD_NOT_FOUND = "RecordNotFound"

    # Mismatch
    DEVICE_ID_MISMATCH = "DeviceIdMismatch"
    MANUFACTURER_MISMATCH = "ManufacturerMismatch"
    KEY_MISMATCH = "KeyMismatch"
    TRANSACTION_HASH_MISMATCH = "TransactionHashMismatch"
    INVALID_KEY_INDEX = "InvalidKeyIndex"

    # State conflict
    ALREADY_EXISTS = "AlreadyExists"
    ALREADY_INITIALIZED = "AlreadyInitialized"
    UNTRUSTED_MANUFACTURER = "UntrustedManufacturer"
    KEY_ALREADY_ENCUMBERED = "KeyAlreadyEncumbered"
    INVALID_ATTESTATION = "InvalidAttestation"
    ATTESTATION_EXPIRED = "AttestationExpired"
    KEY_NOT_ENCUMBERED = "KeyNotEncumbered"
    POOL_CAPACITY_EXCEEDED = "PoolCapacityExceeded"
    REGISTRY_FULL = "RegistryFull"
    WRITE_CONFLICT = "WriteConflict"

    # Validation
    INVALID_ATTESTATION_QUOTE = "InvalidAttestationQuote"
    INVALID_DEVICE_CERTIFICATE = "InvalidDeviceCertificate"
    INVALID_DESTRUCTION_PROOF = "InvalidDestructionProof"
    INVALID_POOL_SIZE = "InvalidPoolSize"
    DUPLICATE_PUBLIC_KEY = "DuplicatePublicKey"
    MALFORMED_INPUT = "MalformedInput"


class ShiftError(Exception):
    """Base class for all protocol failures."""

    code: ErrorCode = ErrorCode.MALFORMED_INPUT
    category: ErrorCategory = ErrorCategory.VALIDATION
    default_message: str = "Operation rejected"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(f"{self.code.value}: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "error": self.code.value,
            "category": self.category.value,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d


class AuthorizationError(ShiftError):
    category = ErrorCategory.AUTHORIZATION


class NotFoundError(ShiftError):
    category = ErrorCategory.NOT_FOUND


class MismatchError(ShiftError):
    category = ErrorCategory.MISMATCH


class StateConflictError(ShiftError):
    category = ErrorCategory.STATE_CONFLICT


class ValidationError(ShiftError):
    category = ErrorCategory.VALIDATION


# Authorization

class Unauthorized(AuthorizationError):
    code = ErrorCode.UNAUTHORIZED
    default_message = "Caller is not the required authority"


class UnauthorizedOwner(AuthorizationError):
    code = ErrorCode.UNAUTHORIZED_OWNER
    default_message = "Unauthorized owner"


class InvalidRequestSignature(AuthorizationError):
    code = ErrorCode.INVALID_REQUEST_SIGNATURE
    default_message = "Request signature verification failed"


class ReplayedRequest(AuthorizationError):
    code = ErrorCode.REPLAYED_REQUEST
    default_message = "Request nonce already used"


# Not found

class RecordNotFound(NotFoundError):
    code = ErrorCode.RECORD_NOT_FOUND
    default_message = "Record not found"


# Mismatch

class DeviceIdMismatch(MismatchError):
    code = ErrorCode.DEVICE_ID_MISMATCH
    default_message = "Device ID mismatch"


class ManufacturerMismatch(MismatchError):
    code = ErrorCode.MANUFACTURER_MISMATCH
    default_message = "Manufacturer ID mismatch"


class KeyMismatch(MismatchError):
    code = ErrorCode.KEY_MISMATCH
    default_message = "Key mismatch"


class TransactionHashMismatch(MismatchError):
    code = ErrorCode.TRANSACTION_HASH_MISMATCH
    default_message = "Transaction hash mismatch"


class InvalidKeyIndex(MismatchError):
    code = ErrorCode.INVALID_KEY_INDEX
    default_message = "Invalid key index"


# State conflict

class AlreadyExists(StateConflictError):
    code = ErrorCode.ALREADY_EXISTS
    default_message = "Record already exists"


class AlreadyInitialized(StateConflictError):
    code = ErrorCode.ALREADY_INITIALIZED
    default_message = "Already initialized"


class UntrustedManufacturer(StateConflictError):
    code = ErrorCode.UNTRUSTED_MANUFACTURER
    default_message = "Untrusted manufacturer"


class KeyAlreadyEncumbered(StateConflictError):
    code = ErrorCode.KEY_ALREADY_ENCUMBERED
    default_message = "Key already encumbered"


class InvalidAttestation(StateConflictError):
    code = ErrorCode.INVALID_ATTESTATION
    default_message = "Invalid attestation"


class AttestationExpired(StateConflictError):
    code = ErrorCode.ATTESTATION_EXPIRED
    default_message = "Attestation expired"


class KeyNotEncumbered(StateConflictError):
    code = ErrorCode.KEY_NOT_ENCUMBERED
    default_message = "Key not encumbered"


class PoolCapacityExceeded(StateConflictError):
    code = ErrorCode.POOL_CAPACITY_EXCEEDED
    default_message = "Key pool capacity exceeded"


class RegistryFull(StateConflictError):
    code = ErrorCode.REGISTRY_FULL
    default_message = "Trusted manufacturer limit reached"


class WriteConflict(StateConflictError):
    code = ErrorCode.WRITE_CONFLICT
    default_message = "Record changed by a concurrent writer"


# Validation

class InvalidAttestationQuote(ValidationError):
    code = ErrorCode.INVALID_ATTESTATION_QUOTE
    default_message = "Invalid attestation quote"


class InvalidDeviceCertificate(ValidationError):
    code = ErrorCode.INVALID_DEVICE_CERTIFICATE
    default_message = "Invalid device certificate"


class InvalidDestructionProof(ValidationError):
    code = ErrorCode.INVALID_DESTRUCTION_PROOF
    default_message = "Invalid destruction proof"


class InvalidPoolSize(ValidationError):
    code = ErrorCode.INVALID_POOL_SIZE
    default_message = "Invalid pool size"


class DuplicatePublicKey(ValidationError):
    code = ErrorCode.DUPLICATE_PUBLIC_KEY
    default_message = "Public key already present in pool"


class MalformedInput(ValidationError):
    code = ErrorCode.MALFORMED_INPUT
    default_message = "Malformed input"

