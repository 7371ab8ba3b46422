"""
Shift Trust Context

The explicitly constructed state every protocol operation runs against: the
record store, the clock, protocol limits, the verifier and the audit logger.
The trust registry and encumbrance-authority singletons live inside the store
of one context; tests build as many independent contexts as they need.
"""

import threading
import time
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Iterator, Optional, Type, TypeVar

from . import config as settings
from .config import ProtocolConfig
from .errors import AlreadyExists, ShiftError
from .logging_config import AuditLogger, audit_log
from .store import RecordLocks, RecordStore, Transaction, get_record_store
from .verification import Verifier, get_verifier

T = TypeVar("T")

Clock = Callable[[], int]


def system_clock() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


class ShiftContext:
    """
    Shared state for one deployment.

    Every mutating operation calls transaction() with the addresses of the
    records it reads or writes. Locks on those addresses are held until the
    staged writes are committed (or discarded on error), which makes each
    operation atomic with respect to every other operation naming one of the
    same records.

    carrying() attaches one extra insert to the next transaction opened on
    the calling thread, so a request receipt commits together with the
    operation it authorizes.
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        config: Optional[ProtocolConfig] = None,
        clock: Optional[Clock] = None,
        verifier: Optional[Verifier] = None,
        audit: Optional[AuditLogger] = None
    ):
        self.config = config or ProtocolConfig()
        self.store = store or get_record_store(settings.STORE_TYPE, settings.DB_PATH)
        self.clock = clock or system_clock
        self.verifier = verifier or get_verifier(self.config.verifier)
        self.audit = audit or audit_log
        self._locks = RecordLocks()
        self._local = threading.local()

    def now(self) -> int:
        return int(self.clock())

    @contextmanager
    def transaction(self, *addresses: str) -> Iterator[Transaction]:
        carried = getattr(self._local, "carried", None)
        self._local.carried = None
        if carried is not None:
            addresses += (carried[1],)
        with self._locks.hold(addresses):
            txn = Transaction(self.store)
            if carried is not None:
                kind, address, record, conflict = carried
                try:
                    txn.insert(kind, address, record)
                except AlreadyExists:
                    raise conflict from None
            yield txn
            try:
                txn.commit()
            except AlreadyExists:
                if carried is not None and self.store.get(carried[0], carried[1]) is not None:
                    raise carried[3] from None
                raise

    @contextmanager
    def carrying(self, kind: str, address: str, record: Any, conflict: ShiftError) -> Iterator[None]:
        """
        Commit record at address with the next transaction() on this thread.

        If the address is already taken, conflict is raised instead. A body
        that opens no transaction gets one of its own on normal exit.
        """
        self._local.carried = (kind, address, record, conflict)
        try:
            yield
            if self._local.carried is not None:
                with self.transaction():
                    pass
        finally:
            self._local.carried = None

    def read(self, kind: str, address: str, model: Type[T]) -> Optional[T]:
        """Lock-free read of one committed record."""
        body = self.store.get(kind, address)
        return model.from_dict(body) if body is not None else None

    def close(self) -> None:
        self.store.close()


def audited(operation: str):
    """Log ShiftErrors raised by a component method, then re-raise them."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(self, *args, **kwargs):
            try:
                return fn(self, *args, **kwargs)
            except ShiftError as e:
                self.ctx.audit.operation_rejected(operation, e.code.value, e.message)
                raise
        return wrapper
    return decorator
