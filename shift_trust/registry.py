"""
Shift Trust Registry

Root of trust. The registry authority approves hardware manufacturers;
only devices vouched for by an active manufacturer can be attested.
"""

from typing import List, Optional

from .context import ShiftContext, audited
from .errors import (
    AlreadyExists,
    AlreadyInitialized,
    MalformedInput,
    RecordNotFound,
    RegistryFull,
    Unauthorized,
)
from .hashing import is_zero, manufacturer_address, registry_address
from .models import (
    MAX_MANUFACTURER_NAME,
    PUBLIC_KEY_SIZE,
    Manufacturer,
    TrustRegistry,
    require_id,
    require_size,
)
from .store import MANUFACTURER, REGISTRY


def load_registry(txn) -> TrustRegistry:
    registry = txn.load(REGISTRY, registry_address(), TrustRegistry)
    if registry is None:
        raise RecordNotFound("Trust registry not initialized")
    return registry


def require_registry_authority(registry: TrustRegistry, caller: bytes) -> None:
    if caller != registry.authority:
        raise Unauthorized("Caller is not the registry authority")


class TrustRegistryManager:
    """Trust registry operations."""

    def __init__(self, ctx: ShiftContext):
        self.ctx = ctx

    @audited("initialize_registry")
    def initialize(self, authority: bytes) -> TrustRegistry:
        """Create the registry singleton. Fails if it already exists."""
        authority = require_id(authority, "authority")
        address = registry_address()

        with self.ctx.transaction(address) as txn:
            if txn.get(REGISTRY, address) is not None:
                raise AlreadyInitialized("Trust registry already initialized")
            registry = TrustRegistry(authority=authority, created_at=self.ctx.now())
            txn.insert(REGISTRY, address, registry)

        self.ctx.audit.registry_initialized(authority)
        return registry

    @audited("add_trusted_manufacturer")
    def add_manufacturer(
        self,
        caller: bytes,
        manufacturer_id: bytes,
        name: str,
        public_key: bytes
    ) -> Manufacturer:
        """
        Approve a manufacturer.

        Raises:
            Unauthorized: caller is not the registry authority
            AlreadyExists: a record for manufacturer_id exists
            RegistryFull: trusted-manufacturer limit reached
        """
        manufacturer_id = require_id(manufacturer_id, "manufacturer_id")
        public_key = require_size(public_key, PUBLIC_KEY_SIZE, "public_key")
        if not isinstance(name, str) or not name or len(name) > MAX_MANUFACTURER_NAME:
            raise MalformedInput(f"name must be 1..{MAX_MANUFACTURER_NAME} characters", field="name")
        if is_zero(public_key):
            raise MalformedInput("public_key must not be zero", field="public_key")

        reg_address = registry_address()
        mfr_address = manufacturer_address(manufacturer_id)

        with self.ctx.transaction(reg_address, mfr_address) as txn:
            registry = load_registry(txn)
            require_registry_authority(registry, caller)

            if txn.get(MANUFACTURER, mfr_address) is not None:
                raise AlreadyExists("Manufacturer already registered")
            if len(registry.trusted_manufacturers) >= self.ctx.config.max_trusted_manufacturers:
                raise RegistryFull(limit=self.ctx.config.max_trusted_manufacturers)

            manufacturer = Manufacturer(
                manufacturer_id=manufacturer_id,
                name=name,
                public_key=public_key,
                is_active=True,
                devices_attested=0,
                created_at=self.ctx.now(),
            )
            registry.trusted_manufacturers.append(manufacturer_id)

            txn.insert(MANUFACTURER, mfr_address, manufacturer)
            txn.update(REGISTRY, reg_address, registry)

        self.ctx.audit.manufacturer_added(manufacturer_id, name)
        return manufacturer

    @audited("set_manufacturer_active")
    def set_manufacturer_active(self, caller: bytes, manufacturer_id: bytes, active: bool) -> Manufacturer:
        """
        Toggle trust in a manufacturer.

        Deactivation blocks new attestations under the manufacturer; existing
        device attestations are not affected.
        """
        manufacturer_id = require_id(manufacturer_id, "manufacturer_id")
        reg_address = registry_address()
        mfr_address = manufacturer_address(manufacturer_id)

        with self.ctx.transaction(reg_address, mfr_address) as txn:
            registry = load_registry(txn)
            require_registry_authority(registry, caller)

            manufacturer = txn.load(MANUFACTURER, mfr_address, Manufacturer)
            if manufacturer is None:
                raise RecordNotFound("Manufacturer not found")
            manufacturer.is_active = bool(active)
            txn.update(MANUFACTURER, mfr_address, manufacturer)

        self.ctx.audit.manufacturer_status_changed(manufacturer_id, bool(active))
        return manufacturer

    def get_registry(self) -> Optional[TrustRegistry]:
        return self.ctx.read(REGISTRY, registry_address(), TrustRegistry)

    def get_manufacturer(self, manufacturer_id: bytes) -> Optional[Manufacturer]:
        manufacturer_id = require_id(manufacturer_id, "manufacturer_id")
        return self.ctx.read(MANUFACTURER, manufacturer_address(manufacturer_id), Manufacturer)

    def trusted_manufacturers(self) -> List[bytes]:
        registry = self.get_registry()
        return list(registry.trusted_manufacturers) if registry else []
