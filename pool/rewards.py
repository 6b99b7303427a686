"""
Reward Accrual for SLICEPOOL
Lazy, point-in-time settlement of each pool's share of the issuance.

Settlement cost does not depend on how many blocks passed: the subsidy of
the elapsed window comes from a closed-form range sum, and the pool's share
is taken with the total power read at settlement time. Power changes
elsewhere between two settlements of a pool are therefore not replayed
block by block.
"""

from typing import Optional, Tuple
import logging

import config
from core.subsidy import SubsidySource

logger = logging.getLogger(__name__)


class RewardAccrual:
    """Settles pools and pays holders out of the subsidy source."""

    def __init__(
        self,
        subsidy: SubsidySource,
        reserved_power: int = None,
        precision: int = None,
    ):
        self.subsidy = subsidy
        self.reserved_power = config.RESERVED_POWER if reserved_power is None else reserved_power
        self.precision = precision or config.REWARD_PRECISION

        # Pool share apportioned so far, per title id
        self.apportioned = {}

    def _window(self, pool, pool_power_total: int, height: int) -> Tuple[int, int]:
        """(pool share, new accumulator) for settling pool up to height."""
        if height <= pool.last_settled_height:
            return 0, pool.acc_reward_per_slice

        total_power = pool_power_total + self.reserved_power
        if pool.power == 0 or pool.total_slices == 0 or total_power == 0:
            return 0, pool.acc_reward_per_slice

        elapsed = self.subsidy.cumulative_subsidy(pool.last_settled_height + 1, height)
        share = elapsed * pool.power // total_power
        acc = pool.acc_reward_per_slice + share * self.precision // pool.total_slices
        return share, acc

    def settle(self, pool, pool_power_total: int, height: int) -> int:
        """
        Bring pool's accumulator up to height.

        Args:
            pool: Live pool
            pool_power_total: Sum of power over all live pools
            height: Current block height

        Returns:
            Subsidy apportioned to the pool by this call
        """
        if height <= pool.last_settled_height:
            return 0

        share, acc = self._window(pool, pool_power_total, height)
        logger.debug(
            f"Settle pool #{pool.pool_id} {pool.last_settled_height}->{height}: "
            f"share {share}, acc {pool.acc_reward_per_slice}->{acc}"
        )
        pool.acc_reward_per_slice = acc
        pool.last_settled_height = height
        if share:
            self.apportioned[pool.title_id] = self.apportioned.get(pool.title_id, 0) + share
        return share

    def pending(self, pool, holder: str, pool_power_total: int, height: int) -> int:
        """Reward holder could claim at height, without settling."""
        _, acc = self._window(pool, pool_power_total, height)
        return pool.slices.pending(holder, acc)

    def pay(self, pool, holder: str, limit: Optional[int] = None) -> int:
        """
        Pay holder's reward against the pool's current accumulator.

        The pool must already be settled.
        """
        amount = pool.slices.take_reward(holder, pool.acc_reward_per_slice, limit)
        if amount:
            try:
                self.subsidy.claim(holder, amount)
            except Exception:
                pool.slices.position(holder).unclaimed += amount
                raise
            logger.info(f"Paid {amount / config.COIN_UNIT:.8f} to {holder} from pool #{pool.pool_id}")
        return amount
