"""
Pool Ledger for SLICEPOOL
Pool storage, titles, and the create/change/delete lifecycle.

Pools live in a slot arena: deleting a pool frees its slot for the next
pool created. Titles are numbered by a separate counter that never goes
back, so a title id always names exactly one pool, live or deleted.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Iterator
import logging

import config
from core import events as ev
from core.errors import (
    UnauthorizedError,
    InvalidAmountError,
    InsufficientSlicesError,
    PoolNotFoundError,
    require_positive,
)
from core.events import EventLog
from core.token import Token
from .rewards import RewardAccrual
from .slices import SliceBook

logger = logging.getLogger(__name__)


@dataclass
class Pool:
    """A mining-power allocation whose reward stream is split into slices."""
    pool_id: int
    title_id: int
    title_holder: str
    power: int
    last_settled_height: int
    slices_per_power: int = config.SLICES_PER_POWER
    acc_reward_per_slice: int = 0
    created_height: int = 0
    deleted: bool = False
    slices: SliceBook = field(default_factory=SliceBook)

    @property
    def total_slices(self) -> int:
        return self.power * self.slices_per_power

    @property
    def stake(self) -> int:
        """Token units collateralizing the pool (one per slice)."""
        return self.total_slices

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pool_id': self.pool_id,
            'title_id': self.title_id,
            'title_holder': self.title_holder,
            'power': self.power,
            'total_slices': self.total_slices,
            'last_settled_height': self.last_settled_height,
            'acc_reward_per_slice': self.acc_reward_per_slice,
            'created_height': self.created_height,
            'deleted': self.deleted,
            'slices': self.slices.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], slices_per_power: int = None, precision: int = None) -> 'Pool':
        return cls(
            pool_id=data['pool_id'],
            title_id=data['title_id'],
            title_holder=data['title_holder'],
            power=data['power'],
            last_settled_height=data['last_settled_height'],
            slices_per_power=slices_per_power or config.SLICES_PER_POWER,
            acc_reward_per_slice=data.get('acc_reward_per_slice', 0),
            created_height=data.get('created_height', 0),
            deleted=data.get('deleted', False),
            slices=SliceBook.from_dict(data.get('slices', {}), precision),
        )


class PoolLedger:
    """Owns every pool, their power and their titles."""

    def __init__(
        self,
        token: Token,
        rewards: RewardAccrual,
        events: EventLog,
        account: str = None,
        slices_per_power: int = None,
    ):
        self.token = token
        self.rewards = rewards
        self.events = events
        self.account = account or config.ENGINE_ACCOUNT
        self.slices_per_power = slices_per_power or config.SLICES_PER_POWER

        self.slots: List[Optional[Pool]] = []
        self.free_slots: List[int] = []
        self.titles: Dict[int, int] = {}     # title id -> slot of live pool
        self.retired: Dict[int, Pool] = {}   # title id -> deleted pool
        self.total_power = 0
        self._next_title_id = 1

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, pool_id: int) -> Pool:
        """Live pool in slot pool_id."""
        if not isinstance(pool_id, int) or pool_id < 0 or pool_id >= len(self.slots):
            raise PoolNotFoundError(f"Pool #{pool_id} does not exist")
        pool = self.slots[pool_id]
        if pool is None:
            raise PoolNotFoundError(f"Pool #{pool_id} does not exist")
        return pool

    def get_retired(self, title_id: int) -> Pool:
        pool = self.retired.get(title_id)
        if pool is None:
            raise PoolNotFoundError(f"No deleted pool with title #{title_id}")
        return pool

    def pool_of_title(self, title_id: int) -> int:
        if title_id not in self.titles:
            raise PoolNotFoundError(f"Title #{title_id} has no live pool")
        return self.titles[title_id]

    def live_pools(self) -> Iterator[Pool]:
        return (p for p in self.slots if p is not None)

    def check_title(self, pool: Pool, caller: str):
        if caller != pool.title_holder:
            raise UnauthorizedError(f"{caller} does not hold the title of pool #{pool.pool_id}")

    def settle(self, pool: Pool, height: int) -> int:
        return self.rewards.settle(pool, self.total_power, height)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open_pool(self, owner: str, power: int, height: int, holders: Dict[str, int]) -> Pool:
        """
        Allocate a pool and mint its slices to holders.

        Shared by direct creation and group-buying completion. The stake must
        already be held by the engine account.
        """
        require_positive(power, "Power")
        if sum(holders.values()) != power * self.slices_per_power:
            raise InvalidAmountError("Minted slices must equal the pool's total slices")

        if self.free_slots:
            pool_id = self.free_slots.pop()
        else:
            pool_id = len(self.slots)
            self.slots.append(None)

        title_id = self._next_title_id
        self._next_title_id += 1

        pool = Pool(
            pool_id=pool_id,
            title_id=title_id,
            title_holder=owner,
            power=power,
            last_settled_height=height,
            slices_per_power=self.slices_per_power,
            created_height=height,
            slices=SliceBook(self.rewards.precision),
        )
        for holder, amount in holders.items():
            if amount > 0:
                pool.slices.mint(holder, amount, 0)

        self.slots[pool_id] = pool
        self.titles[title_id] = pool_id
        self.total_power += power

        self.events.emit(ev.CREATE_POOL, height,
                         pool_id=pool_id, owner=owner, title_id=title_id, power=power)
        logger.info(f"Pool #{pool_id} created: title #{title_id}, power {power}, owner {owner}")
        return pool

    def create_pool(self, caller: str, power: int, height: int) -> int:
        """Stake power * SLICES_PER_POWER tokens and open a pool titled to caller."""
        require_positive(power, "Power")
        stake = power * self.slices_per_power

        self.token.transfer_from(self.account, caller, self.account, stake)
        pool = self.open_pool(caller, power, height, {caller: stake})
        return pool.pool_id

    def change_pool(self, caller: str, pool_id: int, new_power: int, height: int):
        """Resize a pool; rewards stay pending."""
        pool = self.get(pool_id)
        self.check_title(pool, caller)
        require_positive(new_power, "Power")
        if new_power == pool.power:
            raise InvalidAmountError(f"Pool #{pool_id} already has power {new_power}")

        delta = new_power - pool.power
        slices_delta = abs(delta) * self.slices_per_power

        if delta < 0 and pool.slices.balance_of(caller) < slices_delta:
            raise InsufficientSlicesError(
                f"{caller} holds {pool.slices.balance_of(caller)} spendable slices, "
                f"shrinking pool #{pool_id} burns {slices_delta}"
            )

        self.settle(pool, height)
        if delta > 0:
            self.token.transfer_from(self.account, caller, self.account, slices_delta)

        acc = pool.acc_reward_per_slice
        if delta > 0:
            pool.slices.mint(caller, slices_delta, acc)
        else:
            pool.slices.burn(caller, slices_delta, acc)

        pool.power = new_power
        self.total_power += delta

        if delta < 0:
            self.token.transfer(self.account, caller, slices_delta)

        self.events.emit(ev.CHANGE_POOL, height, pool_id=pool_id, power=new_power)
        logger.info(f"Pool #{pool_id} power changed by {delta:+d} to {new_power}")

    def delete_pool(self, caller: str, pool_id: int, height: int) -> int:
        """
        Close a pool, refunding its stake and paying the caller's reward.

        Other holders keep their pending reward against the retired pool.

        Returns:
            Reward paid to the caller
        """
        pool = self.get(pool_id)
        self.check_title(pool, caller)

        self.settle(pool, height)
        reward = self.rewards.pay(pool, caller)

        acc = pool.acc_reward_per_slice
        own = pool.slices.balance_of(caller)
        if own:
            pool.slices.burn(caller, own, acc)
        escrowed = pool.slices.escrowed_of(caller)
        if escrowed:
            pool.slices.release(caller, escrowed, acc)
            pool.slices.burn(caller, escrowed, acc)

        stake = pool.stake
        self.total_power -= pool.power
        pool.power = 0
        pool.deleted = True

        self.slots[pool_id] = None
        self.free_slots.append(pool_id)
        del self.titles[pool.title_id]
        if pool.slices.has_claims():
            self.retired[pool.title_id] = pool

        self.token.transfer(self.account, caller, stake)

        self.events.emit(ev.DELETE_POOL, height, pool_id=pool_id, title_id=pool.title_id)
        logger.info(f"Pool #{pool_id} (title #{pool.title_id}) deleted, refunded {stake} to {caller}")
        return reward

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            'slots': [p.pool_id if p else None for p in self.slots],
            'pools': [p.to_dict() for p in self.live_pools()],
            'retired': [p.to_dict() for p in self.retired.values()],
            'free_slots': list(self.free_slots),
            'next_title_id': self._next_title_id,
        }

    def load_dict(self, data: Dict[str, Any]):
        precision = self.rewards.precision
        self.slots = [None] * len(data.get('slots', []))
        self.titles = {}
        self.total_power = 0
        for item in data.get('pools', []):
            pool = Pool.from_dict(item, self.slices_per_power, precision)
            self.slots[pool.pool_id] = pool
            self.titles[pool.title_id] = pool.pool_id
            self.total_power += pool.power
        self.retired = {}
        for item in data.get('retired', []):
            pool = Pool.from_dict(item, self.slices_per_power, precision)
            self.retired[pool.title_id] = pool
        self.free_slots = list(data.get('free_slots', []))
        self._next_title_id = data.get('next_title_id', 1)
