"""
SLICEPOOL Core Module
Contains the token, subsidy schedule, chain clock, events and errors.
"""

from .errors import (
    PoolError,
    UnauthorizedError,
    InvalidAmountError,
    InsufficientSlicesError,
    PoolNotFoundError,
    SaleNotFoundError,
    GroupBuyingNotFoundError,
    StateConflictError,
    GroupBuyingClosedError,
    InsufficientFundsError,
    InsufficientAllowanceError,
    SubsidySourceError,
)
from .subsidy import SubsidySource, HalvingSchedule
from .token import Token, VirtualToken
from .chain import Chain
from .events import Event, EventLog
from .remote import RemoteSubsidySource, RemoteChain

__all__ = [
    'PoolError',
    'UnauthorizedError',
    'InvalidAmountError',
    'InsufficientSlicesError',
    'PoolNotFoundError',
    'SaleNotFoundError',
    'GroupBuyingNotFoundError',
    'StateConflictError',
    'GroupBuyingClosedError',
    'InsufficientFundsError',
    'InsufficientAllowanceError',
    'SubsidySourceError',
    'SubsidySource',
    'HalvingSchedule',
    'Token',
    'VirtualToken',
    'Chain',
    'Event',
    'EventLog',
    'RemoteSubsidySource',
    'RemoteChain',
]
