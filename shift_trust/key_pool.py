"""
Shift Trust Key Pools

Each device holds a pool of one-time public keys. A key's index is its
insertion position and never changes; replenishment only appends. Keys are
consumed exclusively through EncumbranceLedger.encumber_key.
"""

from typing import List, Optional, Sequence

from .context import ShiftContext, audited
from .errors import (
    AlreadyExists,
    AlreadyInitialized,
    DuplicatePublicKey,
    InvalidKeyIndex,
    InvalidPoolSize,
    MalformedInput,
    PoolCapacityExceeded,
    RecordNotFound,
    UnauthorizedOwner,
)
from .hashing import encumbrance_authority_address, key_pool_address
from .models import (
    PUBLIC_KEY_SIZE,
    EncumbranceAuthority,
    KeyPool,
    require_id,
    require_size,
)
from .store import ENCUMBRANCE_AUTHORITY, KEY_POOL


def load_authority(txn) -> EncumbranceAuthority:
    authority = txn.load(ENCUMBRANCE_AUTHORITY, encumbrance_authority_address(), EncumbranceAuthority)
    if authority is None:
        raise RecordNotFound("Encumbrance authority not initialized")
    return authority


def load_key_pool(txn, device_id: bytes) -> KeyPool:
    pool = txn.load(KEY_POOL, key_pool_address(device_id), KeyPool)
    if pool is None:
        raise RecordNotFound("Key pool not found")
    return pool


def key_at(pool: KeyPool, key_index: int) -> bytes:
    """
    Public key stored at key_index.

    Raises InvalidKeyIndex for an index outside the inserted keys.
    """
    if not isinstance(key_index, int) or key_index < 0:
        raise InvalidKeyIndex(key_index=key_index)
    if key_index >= pool.total_keys or key_index >= len(pool.public_keys):
        raise InvalidKeyIndex(key_index=key_index, total_keys=pool.total_keys)
    return pool.public_keys[key_index]


def _require_key_list(keys: Sequence[bytes], name: str) -> List[bytes]:
    if not isinstance(keys, (list, tuple)):
        raise MalformedInput(f"{name} must be a list of public keys", field=name)
    return list(keys)


def _normalize_keys(keys: Sequence[bytes]) -> List[bytes]:
    normalized = [require_size(k, PUBLIC_KEY_SIZE, "public_key") for k in keys]
    if len(set(normalized)) != len(normalized):
        raise DuplicatePublicKey()
    return normalized


class KeyPoolManager:
    """Encumbrance authority and per-device key pool operations."""

    def __init__(self, ctx: ShiftContext):
        self.ctx = ctx

    @audited("initialize_encumbrance_authority")
    def initialize_authority(self, authority: bytes) -> EncumbranceAuthority:
        authority = require_id(authority, "authority")
        address = encumbrance_authority_address()

        with self.ctx.transaction(address) as txn:
            if txn.get(ENCUMBRANCE_AUTHORITY, address) is not None:
                raise AlreadyInitialized("Encumbrance authority already initialized")
            record = EncumbranceAuthority(authority=authority, created_at=self.ctx.now())
            txn.insert(ENCUMBRANCE_AUTHORITY, address, record)

        return record

    @audited("initialize_key_pool")
    def initialize_key_pool(
        self,
        caller: bytes,
        device_id: bytes,
        total_capacity: int,
        initial_keys: Sequence[bytes]
    ) -> KeyPool:
        """
        Create the key pool for a device. The caller becomes the pool owner.

        Raises:
            InvalidPoolSize: capacity outside 1..max_key_pool_size, or more
                initial keys than capacity
            DuplicatePublicKey: initial keys repeat
            AlreadyExists: device already has a pool
        """
        device_id = require_id(device_id, "device_id")
        max_size = self.ctx.config.max_key_pool_size
        initial_keys = _require_key_list(initial_keys, "initial_keys")
        if isinstance(total_capacity, bool) or not isinstance(total_capacity, int):
            raise InvalidPoolSize("Capacity must be an integer", capacity=total_capacity)
        if total_capacity < 1 or total_capacity > max_size:
            raise InvalidPoolSize(f"Capacity must be between 1 and {max_size}", capacity=total_capacity)
        if len(initial_keys) > total_capacity:
            raise InvalidPoolSize("More initial keys than capacity", capacity=total_capacity, keys=len(initial_keys))
        keys = _normalize_keys(initial_keys)

        pool_address = key_pool_address(device_id)
        auth_address = encumbrance_authority_address()

        with self.ctx.transaction(pool_address, auth_address) as txn:
            authority = load_authority(txn)
            if txn.get(KEY_POOL, pool_address) is not None:
                raise AlreadyExists("Key pool already exists")

            pool = KeyPool(
                device_id=device_id,
                owner=caller,
                capacity=total_capacity,
                total_keys=len(keys),
                available_keys=len(keys),
                used_keys=0,
                public_keys=keys,
                encumbered_keys=[],
                created_at=self.ctx.now(),
            )
            authority.total_devices += 1

            txn.insert(KEY_POOL, pool_address, pool)
            txn.update(ENCUMBRANCE_AUTHORITY, auth_address, authority)

        self.ctx.audit.key_pool_initialized(device_id, total_capacity, len(keys))
        return pool

    @audited("replenish_key_pool")
    def replenish_key_pool(self, caller: bytes, device_id: bytes, new_keys: Sequence[bytes]) -> KeyPool:
        """
        Append fresh one-time keys to an existing pool.

        New keys take the next indices; consumed indices are untouched.
        Capacity, total_keys and available_keys all grow by len(new_keys).
        """
        device_id = require_id(device_id, "device_id")
        new_keys = _require_key_list(new_keys, "new_keys")
        if not new_keys:
            raise InvalidPoolSize("Replenishment batch is empty")
        keys = _normalize_keys(new_keys)
        pool_address = key_pool_address(device_id)

        with self.ctx.transaction(pool_address) as txn:
            pool = load_key_pool(txn, device_id)
            if caller != pool.owner:
                raise UnauthorizedOwner("Caller is not the key pool owner")

            limit = self.ctx.config.max_key_pool_size
            if pool.total_keys + len(keys) > limit:
                raise PoolCapacityExceeded(limit=limit, total_keys=pool.total_keys, added=len(keys))
            existing = set(pool.public_keys)
            if any(k in existing for k in keys):
                raise DuplicatePublicKey("Key already present in pool")

            pool.public_keys.extend(keys)
            pool.capacity += len(keys)
            pool.total_keys += len(keys)
            pool.available_keys += len(keys)
            txn.update(KEY_POOL, pool_address, pool)

        self.ctx.audit.key_pool_replenished(device_id, len(keys), pool.total_keys)
        return pool

    def get_key_pool(self, device_id: bytes) -> Optional[KeyPool]:
        device_id = require_id(device_id, "device_id")
        return self.ctx.read(KEY_POOL, key_pool_address(device_id), KeyPool)

    def get_authority(self) -> Optional[EncumbranceAuthority]:
        return self.ctx.read(ENCUMBRANCE_AUTHORITY, encumbrance_authority_address(), EncumbranceAuthority)
