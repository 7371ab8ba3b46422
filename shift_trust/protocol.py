"""
Shift Trust Protocol

ShiftProtocol is the single entry point for collaborators. It wires the four
components to one ShiftContext and accepts mutating calls as SignedRequests:
the request signature is checked and the verified signer becomes the caller
identity of the operation. The nonce is spent in the same commit as the
operation's own writes, so a rejected request can be corrected and resent.

Read-only predicates (verify_attestation, verify_encumbrance,
authorize_transfer) need no signature.
"""

from typing import Any, Callable, Dict, Optional, Tuple

from .attestation import AttestationStore
from .context import ShiftContext
from .encumbrance import EncumbranceLedger
from .errors import InvalidRequestSignature, MalformedInput, ReplayedRequest
from .hashing import request_address
from .key_pool import KeyPoolManager
from .models import RequestReceipt
from .registry import TrustRegistryManager
from .signing import SignedRequest, authenticate_request
from .store import (
    ATTESTATION,
    ENCUMBRANCE,
    KEY_POOL,
    MANUFACTURER,
    REQUEST,
)

MAX_NONCE_LENGTH = 128

Handler = Callable[[bytes, Dict[str, Any]], Any]


def _param(params: Dict[str, Any], name: str) -> Any:
    if name not in params:
        raise MalformedInput(f"Missing parameter: {name}", field=name)
    return params[name]


class ShiftProtocol:
    """
    Facade over registry, attestation, key pool and encumbrance operations.

    Usage:
        protocol = ShiftProtocol(ShiftContext())
        protocol.submit(sign_request(owner_key, "encumber_key", {...}))
        protocol.authorize_transfer(device_id, key_index, tx_hash)
    """

    def __init__(self, ctx: Optional[ShiftContext] = None):
        self.ctx = ctx or ShiftContext()
        self.registry = TrustRegistryManager(self.ctx)
        self.attestations = AttestationStore(self.ctx)
        self.key_pools = KeyPoolManager(self.ctx)
        self.ledger = EncumbranceLedger(self.ctx)

        self._handlers: Dict[str, Handler] = {
            "initialize_registry": lambda caller, p: self.registry.initialize(caller),
            "add_trusted_manufacturer": lambda caller, p: self.registry.add_manufacturer(
                caller, _param(p, "manufacturer_id"), _param(p, "name"), _param(p, "public_key")
            ),
            "set_manufacturer_active": lambda caller, p: self.registry.set_manufacturer_active(
                caller, _param(p, "manufacturer_id"), bool(_param(p, "active"))
            ),
            "create_attestation": lambda caller, p: self.attestations.create_attestation(
                caller, _param(p, "device_id"), _param(p, "manufacturer_id"),
                _param(p, "quote"), _param(p, "certificate")
            ),
            "revoke_attestation": lambda caller, p: self.attestations.revoke_attestation(
                caller, _param(p, "device_id"), _param(p, "reason")
            ),
            "refresh_attestation": lambda caller, p: self.attestations.refresh_attestation(
                caller, _param(p, "device_id"), _param(p, "quote")
            ),
            "initialize_encumbrance_authority": lambda caller, p: self.key_pools.initialize_authority(caller),
            "initialize_key_pool": lambda caller, p: self.key_pools.initialize_key_pool(
                caller, _param(p, "device_id"), _param(p, "total_capacity"), _param(p, "initial_keys")
            ),
            "replenish_key_pool": lambda caller, p: self.key_pools.replenish_key_pool(
                caller, _param(p, "device_id"), _param(p, "new_keys")
            ),
            "encumber_key": lambda caller, p: self.ledger.encumber_key(
                caller, _param(p, "device_id"), _param(p, "key_index"), _param(p, "public_key"),
                _param(p, "destruction_proof"), _param(p, "transaction_hash")
            ),
            "annotate_encumbrance": lambda caller, p: self.ledger.annotate_encumbrance(
                caller, _param(p, "device_id"), _param(p, "key_index"), _param(p, "status")
            ),
        }

    @property
    def operations(self):
        return sorted(self._handlers)

    def submit(self, request: SignedRequest) -> Dict[str, Any]:
        """
        Execute a signed request and return the resulting record as a dict.

        Raises:
            InvalidRequestSignature: signature does not verify
            ReplayedRequest: (signer, nonce) was seen before
            MalformedInput: unknown operation or missing parameter
            ShiftError: whatever the operation itself raises
        """
        try:
            caller = authenticate_request(request)
        except InvalidRequestSignature:
            self.ctx.audit.security_event(
                "invalid_request_signature",
                severity="medium",
                operation=request.operation,
                signer=request.signer.hex()[:16],
            )
            raise

        handler = self._handlers.get(request.operation)
        if handler is None:
            raise MalformedInput(f"Unknown operation: {request.operation}", operation=request.operation)

        address, receipt = self._receipt(request)
        try:
            if self.ctx.store.get(REQUEST, address) is not None:
                raise ReplayedRequest(nonce=request.nonce)
            with self.ctx.carrying(REQUEST, address, receipt, ReplayedRequest(nonce=request.nonce)):
                result = handler(caller, request.params)
        except ReplayedRequest:
            self.ctx.audit.security_event(
                "request_replay",
                severity="high",
                operation=request.operation,
                signer=request.signer.hex()[:16],
            )
            raise
        return result.to_dict()

    def _receipt(self, request: SignedRequest) -> Tuple[str, RequestReceipt]:
        """Receipt spending the request nonce; committed with the operation's writes."""
        if not request.nonce or len(request.nonce) > MAX_NONCE_LENGTH:
            raise MalformedInput("Request nonce must be 1..128 characters", field="nonce")
        receipt = RequestReceipt(
            signer=request.signer,
            nonce=request.nonce,
            operation=request.operation,
            issued_at=request.issued_at,
            received_at=self.ctx.now(),
        )
        return request_address(request.signer, request.nonce), receipt

    # ------------------------------------------------------------------
    # Read-only predicates
    # ------------------------------------------------------------------

    def verify_attestation(self, device_id: bytes) -> bool:
        return self.attestations.verify_attestation(device_id)

    def verify_encumbrance(self, device_id: bytes, key_index: int, transaction_hash: bytes) -> bool:
        return self.ledger.verify_encumbrance(device_id, key_index, transaction_hash)

    def create_destruction_proof(self, *args, **kwargs):
        return self.ledger.create_destruction_proof(*args, **kwargs)

    def authorize_transfer(self, device_id: bytes, key_index: int, transaction_hash: bytes) -> bool:
        """
        Final check before a transfer executes.

        The sending device must be validly attested and the key must have
        been consumed for exactly this transaction. Raises on the first
        failing predicate.
        """
        self.verify_attestation(device_id)
        self.verify_encumbrance(device_id, key_index, transaction_hash)
        return True

    def stats(self) -> Dict[str, Any]:
        registry = self.registry.get_registry()
        authority = self.key_pools.get_authority()
        store = self.ctx.store
        return {
            "registry_initialized": registry is not None,
            "encumbrance_authority_initialized": authority is not None,
            "trusted_manufacturers": len(registry.trusted_manufacturers) if registry else 0,
            "total_attestations": registry.total_attestations if registry else 0,
            "total_devices": authority.total_devices if authority else 0,
            "total_encumbered_keys": authority.total_encumbered_keys if authority else 0,
            "records": {
                MANUFACTURER: store.count(MANUFACTURER),
                ATTESTATION: store.count(ATTESTATION),
                KEY_POOL: store.count(KEY_POOL),
                ENCUMBRANCE: store.count(ENCUMBRANCE),
                REQUEST: store.count(REQUEST),
            },
        }
