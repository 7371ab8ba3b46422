"""
Shift Trust Reference Implementation

Version: 0.1.0

Hardware-rooted trust chain and single-use key lifecycle for peer-to-peer
value transfer.

Two subsystems:
- Attestation: a root authority approves hardware manufacturers,
  manufacturers vouch for devices, devices hold time-bounded attestations.
- Key encumbrance: each device holds a pool of one-time keys. Using a key
  writes an encumbrance record with a destruction proof, so the key can
  never authorize a second transfer.

A transfer is final only when both hold:
    verify_attestation(device) AND verify_encumbrance(device, index, tx_hash)

Usage:
    from shift_trust import ShiftContext, ShiftProtocol, sign_request

    protocol = ShiftProtocol(ShiftContext())
    protocol.submit(sign_request(root_key, "initialize_registry", {}))
    ...
    protocol.authorize_transfer(device_id, key_index, tx_hash)
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"

# Errors
from .errors import (
    ErrorCategory,
    ErrorCode,
    ShiftError,
    AuthorizationError,
    NotFoundError,
    MismatchError,
    StateConflictError,
    ValidationError,
    Unauthorized,
    UnauthorizedOwner,
    InvalidRequestSignature,
    ReplayedRequest,
    RecordNotFound,
    DeviceIdMismatch,
    ManufacturerMismatch,
    KeyMismatch,
    TransactionHashMismatch,
    InvalidKeyIndex,
    AlreadyExists,
    AlreadyInitialized,
    UntrustedManufacturer,
    KeyAlreadyEncumbered,
    InvalidAttestation,
    AttestationExpired,
    KeyNotEncumbered,
    PoolCapacityExceeded,
    RegistryFull,
    WriteConflict,
    InvalidAttestationQuote,
    InvalidDeviceCertificate,
    InvalidDestructionProof,
    InvalidPoolSize,
    DuplicatePublicKey,
    MalformedInput,
)

# Hashing
from .hashing import (
    sha256,
    record_address,
    transaction_hash,
    p2p_transaction_hash,
    destruction_proof_data,
    destruction_signing_bytes,
)

# Records
from .models import (
    AttestationQuote,
    AttestationStatus,
    DestructionProof,
    DeviceAttestation,
    EncumbranceAuthority,
    EncumbranceRecord,
    EncumbranceStatus,
    KeyPool,
    Manufacturer,
    ProofType,
    RevocationReason,
    TrustRegistry,
)

# Storage and context
from .config import ProtocolConfig
from .store import InMemoryRecordStore, SQLiteRecordStore, get_record_store
from .context import ShiftContext

# Components
from .registry import TrustRegistryManager
from .attestation import AttestationStore
from .key_pool import KeyPoolManager
from .encumbrance import EncumbranceLedger
from .protocol import ShiftProtocol

# Verification and signing
from .verification import (
    Verifier,
    StructuralVerifier,
    Ed25519Verifier,
    get_verifier,
    sign_quote,
    issue_certificate,
)
from .signing import (
    SignedRequest,
    authenticate_request,
    generate_signing_key,
    sign_data,
    sign_request,
    verify_signature,
)


__all__ = [
    # Version
    "__version__",

    # Errors
    "ErrorCategory",
    "ErrorCode",
    "ShiftError",
    "AuthorizationError",
    "NotFoundError",
    "MismatchError",
    "StateConflictError",
    "ValidationError",
    "Unauthorized",
    "UnauthorizedOwner",
    "InvalidRequestSignature",
    "ReplayedRequest",
    "RecordNotFound",
    "DeviceIdMismatch",
    "ManufacturerMismatch",
    "KeyMismatch",
    "TransactionHashMismatch",
    "InvalidKeyIndex",
    "AlreadyExists",
    "AlreadyInitialized",
    "UntrustedManufacturer",
    "KeyAlreadyEncumbered",
    "InvalidAttestation",
    "AttestationExpired",
    "KeyNotEncumbered",
    "PoolCapacityExceeded",
    "RegistryFull",
    "WriteConflict",
    "InvalidAttestationQuote",
    "InvalidDeviceCertificate",
    "InvalidDestructionProof",
    "InvalidPoolSize",
    "DuplicatePublicKey",
    "MalformedInput",

    # Hashing
    "sha256",
    "record_address",
    "transaction_hash",
    "p2p_transaction_hash",
    "destruction_proof_data",
    "destruction_signing_bytes",

    # Records
    "AttestationQuote",
    "AttestationStatus",
    "DestructionProof",
    "DeviceAttestation",
    "EncumbranceAuthority",
    "EncumbranceRecord",
    "EncumbranceStatus",
    "KeyPool",
    "Manufacturer",
    "ProofType",
    "RevocationReason",
    "TrustRegistry",

    # Storage and context
    "ProtocolConfig",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "get_record_store",
    "ShiftContext",

    # Components
    "TrustRegistryManager",
    "AttestationStore",
    "KeyPoolManager",
    "EncumbranceLedger",
    "ShiftProtocol",

    # Verification and signing
    "Verifier",
    "StructuralVerifier",
    "Ed25519Verifier",
    "get_verifier",
    "sign_quote",
    "issue_certificate",
    "SignedRequest",
    "authenticate_request",
    "generate_signing_key",
    "sign_data",
    "sign_request",
    "verify_signature",
]
