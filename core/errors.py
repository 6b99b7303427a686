"""
SLICEPOOL Errors
One exception class per failure class so callers can tell rules apart.
"""


class PoolError(Exception):
    """Ledger error with code."""

    # Authorization
    UNAUTHORIZED = -1

    # Invalid input
    INVALID_AMOUNT = -8
    INSUFFICIENT_SLICES = -9

    # Not found
    POOL_NOT_FOUND = -5
    SALE_NOT_FOUND = -6
    GROUP_BUYING_NOT_FOUND = -7

    # State conflict
    STATE_CONFLICT = -25

    # Token layer
    INSUFFICIENT_FUNDS = -4
    INSUFFICIENT_ALLOWANCE = -13

    # Collaborators
    SUBSIDY_SOURCE_ERROR = -20

    code = -32603

    def __init__(self, message: str, code: int = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {'code': self.code, 'message': self.message}


class UnauthorizedError(PoolError):
    """Caller does not hold the title (or is not the seller)."""
    code = PoolError.UNAUTHORIZED


class InvalidAmountError(PoolError):
    """Zero, negative, oversized or unchanged amount."""
    code = PoolError.INVALID_AMOUNT


class InsufficientSlicesError(PoolError):
    """Holder does not have enough spendable slices."""
    code = PoolError.INSUFFICIENT_SLICES


class PoolNotFoundError(PoolError):
    code = PoolError.POOL_NOT_FOUND


class SaleNotFoundError(PoolError):
    code = PoolError.SALE_NOT_FOUND


class GroupBuyingNotFoundError(PoolError):
    code = PoolError.GROUP_BUYING_NOT_FOUND


class StateConflictError(PoolError):
    """Operation not allowed in the current state."""
    code = PoolError.STATE_CONFLICT


class GroupBuyingClosedError(StateConflictError):
    """Round already completed."""


class InsufficientFundsError(PoolError):
    code = PoolError.INSUFFICIENT_FUNDS


class InsufficientAllowanceError(PoolError):
    code = PoolError.INSUFFICIENT_ALLOWANCE


class SubsidySourceError(PoolError):
    """Remote subsidy source failure."""
    code = PoolError.SUBSIDY_SOURCE_ERROR


def require_positive(value, what: str):
    """Raise InvalidAmountError unless value is a positive integer."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidAmountError(f"{what} must be a positive integer, got {value!r}")
