"""
SLICEPOOL Pool Engine
"""

from .engine import PoolEngine
from .ledger import Pool, PoolLedger
from .rewards import RewardAccrual
from .slices import SliceBook, SlicePosition
from .market import Listing, Marketplace
from .group_buying import GroupBuying, GroupBuyingAggregator, RoundState

__all__ = [
    'PoolEngine',
    'Pool',
    'PoolLedger',
    'RewardAccrual',
    'SliceBook',
    'SlicePosition',
    'Listing',
    'Marketplace',
    'GroupBuying',
    'GroupBuyingAggregator',
    'RoundState',
]
