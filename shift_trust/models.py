"""
Shift Trust Records

Records held by the store and value types passed to the protocol
operations. Byte fields serialize as lowercase hex; every record round-trips
through to_dict() / from_dict().
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import MalformedInput

ID_SIZE = 32
PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64
NONCE_SIZE = 32
MEASUREMENT_SIZE = 32
MAX_MEASUREMENTS = 8
MAX_CERTIFICATE_SIZE = 1024
MAX_MANUFACTURER_NAME = 50

ZERO_SIGNATURE = bytes(SIGNATURE_SIZE)


def to_hex(value: Optional[bytes]) -> Optional[str]:
    return None if value is None else bytes(value).hex()


def from_hex(value: Any, name: str = "value") -> bytes:
    """Accept bytes or a hex string."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return bytes.fromhex(value)
        except ValueError:
            raise MalformedInput(f"{name} must be hex encoded")
    raise MalformedInput(f"{name} must be bytes or hex string")


def require_size(value: Any, size: int, name: str) -> bytes:
    """Coerce value to bytes and check its exact length."""
    data = from_hex(value, name)
    if len(data) != size:
        raise MalformedInput(f"{name} must be {size} bytes, got {len(data)}", field=name)
    return data


def require_id(value: Any, name: str = "id") -> bytes:
    return require_size(value, ID_SIZE, name)


def require_enum(enum_cls, value: Any, name: str):
    """Coerce value to a member of enum_cls."""
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        allowed = ", ".join(m.value for m in enum_cls)
        raise MalformedInput(f"{name} must be one of: {allowed}", field=name)


class AttestationStatus(str, Enum):
    """
    Attestation lifecycle states.

    EXPIRED is never stored; it is derived at read time from expires_at.
    REVOKED is terminal.
    """
    VALID = "Valid"
    EXPIRED = "Expired"
    REVOKED = "Revoked"
    PENDING = "Pending"


class RevocationReason(str, Enum):
    COMPROMISED = "Compromised"
    EXPIRED = "Expired"
    MANUFACTURER_REVOKED = "ManufacturerRevoked"
    USER_REQUESTED = "UserRequested"
    OTHER = "Other"


class ProofType(str, Enum):
    ZERO_KNOWLEDGE = "ZeroKnowledge"
    HARDWARE_ATTESTATION = "HardwareAttestation"
    CRYPTOGRAPHIC_COMMITMENT = "CryptographicCommitment"


class EncumbranceStatus(str, Enum):
    ENCUMBERED = "Encumbered"
    VERIFIED = "Verified"
    DISPUTED = "Disputed"


@dataclass
class TrustRegistry:
    """Root of trust. One per deployment."""
    authority: bytes
    trusted_manufacturers: List[bytes] = field(default_factory=list)
    total_attestations: int = 0
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authority": to_hex(self.authority),
            "trusted_manufacturers": [to_hex(m) for m in self.trusted_manufacturers],
            "total_attestations": self.total_attestations,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrustRegistry':
        return cls(
            authority=from_hex(data["authority"]),
            trusted_manufacturers=[from_hex(m) for m in data.get("trusted_manufacturers", [])],
            total_attestations=int(data.get("total_attestations", 0)),
            created_at=int(data.get("created_at", 0)),
        )


@dataclass
class Manufacturer:
    """A hardware manufacturer approved by the registry authority."""
    manufacturer_id: bytes
    name: str
    public_key: bytes
    is_active: bool = True
    devices_attested: int = 0
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "manufacturer_id": to_hex(self.manufacturer_id),
            "name": self.name,
            "public_key": to_hex(self.public_key),
            "is_active": self.is_active,
            "devices_attested": self.devices_attested,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Manufacturer':
        return cls(
            manufacturer_id=from_hex(data["manufacturer_id"]),
            name=data["name"],
            public_key=from_hex(data["public_key"]),
            is_active=bool(data.get("is_active", True)),
            devices_attested=int(data.get("devices_attested", 0)),
            created_at=int(data.get("created_at", 0)),
        )


@dataclass
class AttestationQuote:
    """
    Hardware attestation quote (TPM/TEE style).

    Fields:
    - version: quote format version, must be positive
    - signature: 64-byte signature over the quote body
    - public_key: 32-byte attestation key of the device
    - nonce: 32-byte freshness nonce
    - timestamp: quote creation time
    - measurements: ordered 32-byte integrity measurements (max 8)
    """
    version: int
    signature: bytes
    public_key: bytes
    nonce: bytes
    timestamp: int
    measurements: List[bytes] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "signature": to_hex(self.signature),
            "public_key": to_hex(self.public_key),
            "nonce": to_hex(self.nonce),
            "timestamp": self.timestamp,
            "measurements": [to_hex(m) for m in self.measurements],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttestationQuote':
        return cls(
            version=int(data["version"]),
            signature=from_hex(data["signature"], "signature"),
            public_key=from_hex(data["public_key"], "public_key"),
            nonce=from_hex(data["nonce"], "nonce"),
            timestamp=int(data["timestamp"]),
            measurements=[from_hex(m, "measurement") for m in data.get("measurements", [])],
        )


@dataclass
class DeviceAttestation:
    """Time-bounded attestation record for one device."""
    device_id: bytes
    manufacturer_id: bytes
    owner: bytes
    quote: AttestationQuote
    certificate: bytes
    status: AttestationStatus
    created_at: int
    expires_at: int
    revoked_at: Optional[int] = None
    revocation_reason: Optional[RevocationReason] = None

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at

    def effective_status(self, now: int) -> AttestationStatus:
        """Stored status with lazy expiry applied."""
        if self.status == AttestationStatus.VALID and self.is_expired(now):
            return AttestationStatus.EXPIRED
        return self.status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": to_hex(self.device_id),
            "manufacturer_id": to_hex(self.manufacturer_id),
            "owner": to_hex(self.owner),
            "quote": self.quote.to_dict(),
            "certificate": to_hex(self.certificate),
            "status": self.status.value,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "revoked_at": self.revoked_at,
            "revocation_reason": self.revocation_reason.value if self.revocation_reason else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeviceAttestation':
        reason = data.get("revocation_reason")
        return cls(
            device_id=from_hex(data["device_id"]),
            manufacturer_id=from_hex(data["manufacturer_id"]),
            owner=from_hex(data["owner"]),
            quote=AttestationQuote.from_dict(data["quote"]),
            certificate=from_hex(data["certificate"]),
            status=AttestationStatus(data["status"]),
            created_at=int(data["created_at"]),
            expires_at=int(data["expires_at"]),
            revoked_at=data.get("revoked_at"),
            revocation_reason=RevocationReason(reason) if reason else None,
        )


@dataclass
class EncumbranceAuthority:
    """Deployment-wide counters for the key encumbrance subsystem."""
    authority: bytes
    total_encumbered_keys: int = 0
    total_devices: int = 0
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authority": to_hex(self.authority),
            "total_encumbered_keys": self.total_encumbered_keys,
            "total_devices": self.total_devices,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EncumbranceAuthority':
        return cls(
            authority=from_hex(data["authority"]),
            total_encumbered_keys=int(data.get("total_encumbered_keys", 0)),
            total_devices=int(data.get("total_devices", 0)),
            created_at=int(data.get("created_at", 0)),
        )


@dataclass
class KeyPool:
    """
    A device's reserve of one-time public keys.

    Index of a key is its insertion position. Invariant:
    available_keys + used_keys == total_keys == len(public_keys)
    """
    device_id: bytes
    owner: bytes
    capacity: int
    total_keys: int
    available_keys: int
    used_keys: int
    public_keys: List[bytes] = field(default_factory=list)
    encumbered_keys: List[int] = field(default_factory=list)
    created_at: int = 0

    def is_consumed(self, key_index: int) -> bool:
        return key_index in self.encumbered_keys

    def check_invariants(self) -> bool:
        return (
            self.available_keys + self.used_keys == self.total_keys == len(self.public_keys)
            and self.used_keys == len(self.encumbered_keys)
            and len(set(self.encumbered_keys)) == len(self.encumbered_keys)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": to_hex(self.device_id),
            "owner": to_hex(self.owner),
            "capacity": self.capacity,
            "total_keys": self.total_keys,
            "available_keys": self.available_keys,
            "used_keys": self.used_keys,
            "public_keys": [to_hex(k) for k in self.public_keys],
            "encumbered_keys": list(self.encumbered_keys),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KeyPool':
        return cls(
            device_id=from_hex(data["device_id"]),
            owner=from_hex(data["owner"]),
            capacity=int(data["capacity"]),
            total_keys=int(data["total_keys"]),
            available_keys=int(data["available_keys"]),
            used_keys=int(data["used_keys"]),
            public_keys=[from_hex(k) for k in data.get("public_keys", [])],
            encumbered_keys=[int(i) for i in data.get("encumbered_keys", [])],
            created_at=int(data.get("created_at", 0)),
        )


@dataclass
class DestructionProof:
    """Proof that a one-time private key was destroyed after signing."""
    proof_type: ProofType
    proof_data: bytes
    timestamp: int
    nonce: bytes
    hardware_signature: bytes = ZERO_SIGNATURE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proof_type": self.proof_type.value,
            "proof_data": to_hex(self.proof_data),
            "timestamp": self.timestamp,
            "nonce": to_hex(self.nonce),
            "hardware_signature": to_hex(self.hardware_signature),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DestructionProof':
        signature = data.get("hardware_signature")
        return cls(
            proof_type=ProofType(data.get("proof_type", ProofType.ZERO_KNOWLEDGE.value)),
            proof_data=from_hex(data["proof_data"], "proof_data"),
            timestamp=int(data["timestamp"]),
            nonce=from_hex(data["nonce"], "nonce"),
            hardware_signature=from_hex(signature, "hardware_signature") if signature else ZERO_SIGNATURE,
        )


@dataclass
class EncumbranceRecord:
    """Ledger entry for one consumed (device, key_index) pair."""
    device_id: bytes
    key_index: int
    public_key: bytes
    transaction_hash: bytes
    destruction_proof: DestructionProof
    status: EncumbranceStatus
    encumbered_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": to_hex(self.device_id),
            "key_index": self.key_index,
            "public_key": to_hex(self.public_key),
            "transaction_hash": to_hex(self.transaction_hash),
            "destruction_proof": self.destruction_proof.to_dict(),
            "status": self.status.value,
            "encumbered_at": self.encumbered_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EncumbranceRecord':
        return cls(
            device_id=from_hex(data["device_id"]),
            key_index=int(data["key_index"]),
            public_key=from_hex(data["public_key"]),
            transaction_hash=from_hex(data["transaction_hash"]),
            destruction_proof=DestructionProof.from_dict(data["destruction_proof"]),
            status=EncumbranceStatus(data["status"]),
            encumbered_at=int(data["encumbered_at"]),
        )



@dataclass
class RequestReceipt:
    """Marks a signed request nonce as spent."""
    signer: bytes
    nonce: str
    operation: str
    issued_at: int
    received_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signer": to_hex(self.signer),
            "nonce": self.nonce,
            "operation": self.operation,
            "issued_at": self.issued_at,
            "received_at": self.received_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RequestReceipt':
        return cls(
            signer=from_hex(data["signer"]),
            nonce=data["nonce"],
            operation=data["operation"],
            issued_at=int(data["issued_at"]),
            received_at=int(data["received_at"]),
        )
