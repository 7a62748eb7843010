"""
Error taxonomy for the portfolio engine.

Every public operation validates its preconditions before mutating state and
raises the first violated one. Errors carry the offending field name and value
for programmatic inspection; messages are deterministic.

Categories:
- Capability:   Unauthorized
- Validation:   InvalidAmount, InvalidWeights, DuplicateAsset, InvalidAddress, InvalidOwner
- Referential:  NotFound, NotAssigned
- Sufficiency:  InsufficientBalance, InsufficientAllowance, InsufficientFunds
- Upstream:     TransferFailed
"""

from typing import Any


class PortfolioEngineError(Exception):
    """Base class for all engine errors. Never raised directly."""

    def __init__(self, message: str, field_name: str = "", value: Any = None):
        super().__init__(message)
        self.message = message
        self.field_name = field_name
        self.value = value

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(field_name={self.field_name!r}, "
            f"value={self.value!r}, message={self.message!r})"
        )


class Unauthorized(PortfolioEngineError):
    """Caller does not hold the capability required by the operation."""

    def __init__(self, caller: Any, required: Any, operation: str):
        super().__init__(
            f"Unauthorized: {caller!r} may not call {operation} (requires {required!r})",
            field_name="caller",
            value=caller,
        )
        self.required = required
        self.operation = operation


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class InvalidAmount(PortfolioEngineError, ValueError):
    """Amount is zero where a positive amount is required, negative, not an int, or overflows."""

    def __init__(self, value: Any, constraint: str, field_name: str = "amount"):
        super().__init__(
            f"InvalidAmount: {field_name} {constraint}, got {value!r}",
            field_name=field_name,
            value=value,
        )
        self.constraint = constraint


class InvalidWeights(PortfolioEngineError, ValueError):
    """Allocation weights are malformed or do not sum to the basis-point total."""

    def __init__(self, value: Any, constraint: str):
        super().__init__(
            f"InvalidWeights: weights {constraint}, got {value!r}",
            field_name="weights",
            value=value,
        )
        self.constraint = constraint


class DuplicateAsset(PortfolioEngineError, ValueError):
    """The same asset appears more than once in one allocation set."""

    def __init__(self, asset: str):
        super().__init__(
            f"DuplicateAsset: asset {asset!r} appears more than once",
            field_name="asset",
            value=asset,
        )


class InvalidAddress(PortfolioEngineError, ValueError):
    """Identity is empty, not a string, or the zero sentinel."""

    def __init__(self, value: Any, field_name: str = "address"):
        super().__init__(
            f"{self.__class__.__name__}: {field_name} must be a non-zero identity, got {value!r}",
            field_name=field_name,
            value=value,
        )


class InvalidOwner(InvalidAddress):
    """Ownership cannot be handed to the zero or empty identity."""

    def __init__(self, value: Any):
        super().__init__(value, field_name="new_owner")


# ---------------------------------------------------------------------------
# Referential integrity
# ---------------------------------------------------------------------------

class NotFound(PortfolioEngineError, LookupError):
    """A referenced template or asset does not exist."""

    def __init__(self, kind: str, key: Any):
        super().__init__(f"NotFound: unknown {kind} {key!r}", field_name=kind, value=key)
        self.kind = kind


class NotAssigned(PortfolioEngineError, LookupError):
    """The investor has no model portfolio assigned."""

    def __init__(self, investor: str):
        super().__init__(
            f"NotAssigned: investor {investor!r} has no model portfolio assigned",
            field_name="investor",
            value=investor,
        )


# ---------------------------------------------------------------------------
# Resource sufficiency
# ---------------------------------------------------------------------------

class _Shortfall(PortfolioEngineError):

    label = "balance"

    def __init__(self, holder: str, available: int, requested: int):
        super().__init__(
            f"{self.__class__.__name__}: {holder!r} has {self.label} {available}, "
            f"requested {requested}",
            field_name="amount",
            value=requested,
        )
        self.holder = holder
        self.available = available
        self.requested = requested


class InsufficientBalance(_Shortfall):
    label = "balance"


class InsufficientAllowance(_Shortfall):
    label = "allowance"


class InsufficientFunds(_Shortfall):
    label = "portfolio value"


# ---------------------------------------------------------------------------
# Upstream dependency
# ---------------------------------------------------------------------------

class TransferFailed(PortfolioEngineError):
    """A token movement the operation depends on did not succeed."""

    def __init__(self, asset: str, reason: str):
        super().__init__(
            f"TransferFailed: {asset!r} transfer did not succeed: {reason}",
            field_name="asset",
            value=asset,
        )
        self.reason = reason


__all__ = [
    "PortfolioEngineError",
    "Unauthorized",
    "InvalidAmount",
    "InvalidWeights",
    "DuplicateAsset",
    "InvalidAddress",
    "InvalidOwner",
    "NotFound",
    "NotAssigned",
    "InsufficientBalance",
    "InsufficientAllowance",
    "InsufficientFunds",
    "TransferFailed",
]
