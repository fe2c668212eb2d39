"""Entry-point guards for the vault.

- `ReentrancyLock`: one flag per vault, taken for the whole duration of a
  mutating call and released on every exit path.
- `atomic`: snapshot every journaled participant before a call and restore
  them all, in reverse order, if the call raises.
- `Lifecycle`: the one-way ``UNINITIALIZED -> ACTIVE`` transition plus the
  ``ACTIVE <-> PAUSED`` toggle.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Protocol, Sequence, runtime_checkable

from .errors import AlreadyInitializedError, NotInitializedError, ReentrantCallError, VaultPausedError
from .types import VaultStatus

logger = logging.getLogger(__name__)


@runtime_checkable
class Journaled(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, snap: Any) -> None: ...


class LockToken:
    """Proof that the holder acquired the vault lock; invalid once released."""

    __slots__ = ("operation", "released")

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.released = False


class ReentrancyLock:
    def __init__(self) -> None:
        self._held: LockToken | None = None

    @property
    def locked(self) -> bool:
        return self._held is not None

    @contextmanager
    def acquire(self, operation: str) -> Iterator[LockToken]:
        if self._held is not None:
            raise ReentrantCallError(f"{operation} re-entered during {self._held.operation}")
        token = LockToken(operation)
        self._held = token
        try:
            yield token
        finally:
            token.released = True
            self._held = None


@contextmanager
def atomic(participants: Sequence[Journaled], *, label: str = "call") -> Iterator[None]:
    snaps: List[tuple[Journaled, Any]] = [(p, p.snapshot()) for p in participants]
    try:
        yield
    except BaseException as exc:
        for participant, snap in reversed(snaps):
            participant.restore(snap)
        logger.info("%s reverted: %s", label, exc)
        raise


class Lifecycle:
    def __init__(self) -> None:
        self.status = VaultStatus.UNINITIALIZED

    def snapshot(self) -> VaultStatus:
        return self.status

    def restore(self, snap: VaultStatus) -> None:
        self.status = snap

    def initialize(self) -> None:
        if self.status is not VaultStatus.UNINITIALIZED:
            raise AlreadyInitializedError("vault already initialized")
        self.status = VaultStatus.ACTIVE

    def require_initialized(self) -> None:
        if self.status is VaultStatus.UNINITIALIZED:
            raise NotInitializedError("vault not initialized")

    def require_active(self) -> None:
        self.require_initialized()
        if self.status is VaultStatus.PAUSED:
            raise VaultPausedError("vault is paused")

    def set_paused(self, paused: bool) -> None:
        self.require_initialized()
        self.status = VaultStatus.PAUSED if paused else VaultStatus.ACTIVE
