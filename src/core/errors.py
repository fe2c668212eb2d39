"""Exception types for the lending vault.

Every error carries a stable ``code`` naming its failure class.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class for vault failures."""

    code = "VaultError"


class NullAddressError(VaultError):
    """Raised when a zero address is given where a live address is required."""

    code = "NullAddress"


class InvalidAssetError(VaultError):
    """Raised when the lending market has no reserve for the asset."""

    code = "InvalidAsset"


class CapacityExceededError(VaultError):
    """Raised when a requested amount exceeds the current max* figure.

    Recoverable: re-query capacity and retry with a smaller amount.
    """

    code = "CapacityExceeded"

    def __init__(self, operation: str, requested: int, maximum: int) -> None:
        self.operation = operation
        self.requested = requested
        self.maximum = maximum
        super().__init__(f"{operation}: requested {requested} exceeds max {maximum}")


class VaultPausedError(VaultError):
    """Raised when a deposit/mint/withdraw/redeem entry point is called while paused."""

    code = "Paused"


class ReentrantCallError(VaultError):
    """Raised when a mutating entry point is re-entered while the lock is held."""

    code = "ReentrantCall"


class MarketDivestError(VaultError):
    """Raised when the lending market fails or under-delivers on withdraw."""

    code = "MarketDivestFailure"

    def __init__(self, requested: int, returned: int | None = None, reason: str = "") -> None:
        self.requested = requested
        self.returned = returned
        detail = reason or f"market returned {returned} of {requested}"
        super().__init__(f"divest failed: {detail}")


class NotInitializedError(VaultError):
    code = "NotInitialized"


class AlreadyInitializedError(VaultError):
    code = "AlreadyInitialized"


class UnauthorizedError(VaultError):
    code = "Unauthorized"

    def __init__(self, caller: str, action: str) -> None:
        self.caller = caller
        self.action = action
        super().__init__(f"{caller} is not authorized for {action}")
