"""
Shift Trust Device Attestation

Lifecycle of per-device attestation records:

    Pending -> Valid -> { Expired (computed), Revoked (terminal) }

Expiry is never written to the store. verify_attestation() compares the
current time with expires_at on every call, so a record whose stored status
is still Valid stops verifying the moment expires_at passes.
"""

from typing import Any, Dict, Optional, Union

from .context import ShiftContext, audited
from .errors import (
    AlreadyExists,
    AttestationExpired,
    DeviceIdMismatch,
    InvalidAttestation,
    InvalidAttestationQuote,
    InvalidDeviceCertificate,
    ManufacturerMismatch,
    RecordNotFound,
    ShiftError,
    UnauthorizedOwner,
    UntrustedManufacturer,
)
from .hashing import attestation_address, manufacturer_address, registry_address
from .models import (
    AttestationQuote,
    AttestationStatus,
    DeviceAttestation,
    Manufacturer,
    RevocationReason,
    from_hex,
    require_enum,
    require_id,
)
from .registry import load_registry, require_registry_authority
from .store import ATTESTATION, MANUFACTURER, REGISTRY

QuoteInput = Union[AttestationQuote, Dict[str, Any]]


def _coerce_quote(quote: QuoteInput) -> AttestationQuote:
    if isinstance(quote, AttestationQuote):
        return quote
    try:
        return AttestationQuote.from_dict(quote)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidAttestationQuote(f"Malformed attestation quote: {e}")


class AttestationStore:
    """Device attestation operations."""

    def __init__(self, ctx: ShiftContext):
        self.ctx = ctx

    @audited("create_attestation")
    def create_attestation(
        self,
        caller: bytes,
        device_id: bytes,
        manufacturer_id: bytes,
        quote: QuoteInput,
        certificate: bytes
    ) -> DeviceAttestation:
        """
        Attest a device under a trusted manufacturer.

        The caller becomes the device owner recorded on the attestation.

        Raises:
            AlreadyExists: device already has an attestation record
            UntrustedManufacturer: manufacturer unknown or inactive
            ManufacturerMismatch: stored manufacturer id disagrees
            InvalidAttestationQuote: quote fails verification
            InvalidDeviceCertificate: certificate fails verification
        """
        device_id = require_id(device_id, "device_id")
        manufacturer_id = require_id(manufacturer_id, "manufacturer_id")
        quote = _coerce_quote(quote)
        certificate = from_hex(certificate, "certificate")

        att_address = attestation_address(device_id)
        mfr_address = manufacturer_address(manufacturer_id)
        reg_address = registry_address()

        with self.ctx.transaction(att_address, mfr_address, reg_address) as txn:
            if txn.get(ATTESTATION, att_address) is not None:
                raise AlreadyExists("Device attestation already exists")

            registry = load_registry(txn)
            manufacturer = txn.load(MANUFACTURER, mfr_address, Manufacturer)
            if manufacturer is None or not manufacturer.is_active:
                raise UntrustedManufacturer()
            if manufacturer.manufacturer_id != manufacturer_id:
                raise ManufacturerMismatch()

            if not self.ctx.verifier.verify_quote(device_id, quote, manufacturer.public_key):
                raise InvalidAttestationQuote()
            if not self.ctx.verifier.verify_certificate(device_id, certificate, manufacturer.public_key):
                raise InvalidDeviceCertificate()

            now = self.ctx.now()
            record = DeviceAttestation(
                device_id=device_id,
                manufacturer_id=manufacturer_id,
                owner=caller,
                quote=quote,
                certificate=certificate,
                status=AttestationStatus.VALID,
                created_at=now,
                expires_at=now + self.ctx.config.attestation_validity_seconds,
            )
            manufacturer.devices_attested += 1
            registry.total_attestations += 1

            txn.insert(ATTESTATION, att_address, record)
            txn.update(MANUFACTURER, mfr_address, manufacturer)
            txn.update(REGISTRY, reg_address, registry)

        self.ctx.audit.attestation_created(device_id, manufacturer_id, record.expires_at)
        return record

    @audited("verify_attestation")
    def verify_attestation(self, device_id: bytes) -> bool:
        """
        Confirm a device is validly attested right now.

        Returns True or raises:
            RecordNotFound, DeviceIdMismatch, InvalidAttestation (status is
            not Valid), AttestationExpired (now >= expires_at)
        """
        device_id = require_id(device_id, "device_id")
        record = self.ctx.read(ATTESTATION, attestation_address(device_id), DeviceAttestation)
        if record is None:
            raise RecordNotFound("Device attestation not found")

        if record.device_id != device_id:
            raise DeviceIdMismatch()
        if record.status != AttestationStatus.VALID:
            raise InvalidAttestation(f"Attestation status is {record.status.value}")
        if record.is_expired(self.ctx.now()):
            raise AttestationExpired(expires_at=record.expires_at)

        return True

    def is_attested(self, device_id: bytes) -> bool:
        """Non-raising form of verify_attestation."""
        try:
            return self.verify_attestation(device_id)
        except ShiftError:
            return False

    @audited("revoke_attestation")
    def revoke_attestation(
        self,
        caller: bytes,
        device_id: bytes,
        reason: Union[RevocationReason, str]
    ) -> DeviceAttestation:
        """
        Revoke a device attestation. Terminal.

        Only the registry authority may revoke. Revoking an already revoked
        record is rejected with InvalidAttestation.
        """
        device_id = require_id(device_id, "device_id")
        reason = require_enum(RevocationReason, reason, "reason")
        att_address = attestation_address(device_id)
        reg_address = registry_address()

        with self.ctx.transaction(att_address, reg_address) as txn:
            registry = load_registry(txn)
            require_registry_authority(registry, caller)

            record = txn.load(ATTESTATION, att_address, DeviceAttestation)
            if record is None:
                raise RecordNotFound("Device attestation not found")
            if record.device_id != device_id:
                raise DeviceIdMismatch()
            if record.status == AttestationStatus.REVOKED:
                raise InvalidAttestation("Attestation already revoked")

            record.status = AttestationStatus.REVOKED
            record.revocation_reason = reason
            record.revoked_at = self.ctx.now()
            txn.update(ATTESTATION, att_address, record)

        self.ctx.audit.attestation_revoked(device_id, reason.value)
        return record

    @audited("refresh_attestation")
    def refresh_attestation(
        self,
        caller: bytes,
        device_id: bytes,
        new_quote: QuoteInput
    ) -> DeviceAttestation:
        """
        Replace the quote and extend expiry by the validity period.

        Raises:
            UnauthorizedOwner: caller is not the device owner
            InvalidAttestation: status is not Valid (revoked, pending)
            AttestationExpired: record already expired, unless the context
                is configured with allow_expired_refresh
            InvalidAttestationQuote: new quote fails verification
        """
        device_id = require_id(device_id, "device_id")
        new_quote = _coerce_quote(new_quote)
        att_address = attestation_address(device_id)

        with self.ctx.transaction(att_address) as txn:
            record = txn.load(ATTESTATION, att_address, DeviceAttestation)
            if record is None:
                raise RecordNotFound("Device attestation not found")
            if record.device_id != device_id:
                raise DeviceIdMismatch()
            if caller != record.owner:
                raise UnauthorizedOwner("Caller is not the device owner")
            if record.status != AttestationStatus.VALID:
                raise InvalidAttestation(f"Attestation status is {record.status.value}")

            now = self.ctx.now()
            if record.is_expired(now) and not self.ctx.config.allow_expired_refresh:
                raise AttestationExpired("Expired attestations must be re-created", expires_at=record.expires_at)

            manufacturer = txn.load(MANUFACTURER, manufacturer_address(record.manufacturer_id), Manufacturer)
            if manufacturer is None:
                raise RecordNotFound("Manufacturer not found")
            if not self.ctx.verifier.verify_quote(device_id, new_quote, manufacturer.public_key):
                raise InvalidAttestationQuote()

            record.quote = new_quote
            record.expires_at = now + self.ctx.config.attestation_validity_seconds
            txn.update(ATTESTATION, att_address, record)

        self.ctx.audit.attestation_refreshed(device_id, record.expires_at)
        return record

    def get_attestation(self, device_id: bytes) -> Optional[DeviceAttestation]:
        device_id = require_id(device_id, "device_id")
        return self.ctx.read(ATTESTATION, attestation_address(device_id), DeviceAttestation)
