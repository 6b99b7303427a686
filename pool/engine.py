"""
SLICEPOOL Engine
Single entry point to the pool ledger, marketplace and group buying.

Every public call runs under one lock and samples the chain height once,
so operations are applied one at a time and each sees a single height.
"""

import json
import os
import threading
from typing import Dict, List, Optional, Any
import logging

import config
from core import events as ev
from core.chain import Chain
from core.errors import InvalidAmountError
from core.events import EventLog
from core.subsidy import SubsidySource, HalvingSchedule
from core.token import Token, VirtualToken
from .group_buying import GroupBuyingAggregator
from .ledger import PoolLedger
from .market import Marketplace
from .rewards import RewardAccrual

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class PoolEngine:
    """Pooled mining-reward accounting engine."""

    def __init__(
        self,
        token: Token,
        subsidy: SubsidySource = None,
        chain: Chain = None,
        account: str = None,
        slices_per_power: int = None,
        reward_precision: int = None,
        reserved_power: int = None,
    ):
        """
        Initialize the engine.

        Args:
            token: Token used for stakes and trades
            subsidy: Issuance source (defaults to token)
            chain: Height source
            account: Account holding stakes and crowdfunded titles
            slices_per_power: Slices minted per unit of power
            reward_precision: Fixed-point scale of the reward accumulator
            reserved_power: Power outside the engine sharing the subsidy
        """
        if subsidy is None:
            if not isinstance(token, SubsidySource):
                raise ValueError("A subsidy source is required when the token has no schedule")
            subsidy = token

        self.token = token
        self.subsidy = subsidy
        self.chain = chain or Chain()
        self.account = account or config.ENGINE_ACCOUNT
        self.lock = threading.RLock()

        self.events = EventLog()
        self.rewards = RewardAccrual(subsidy, reserved_power, reward_precision)
        self.ledger = PoolLedger(token, self.rewards, self.events, self.account, slices_per_power)
        self.market = Marketplace(self.ledger, token, self.events, self.account)
        self.group_buying = GroupBuyingAggregator(self.ledger, token, self.events, self.account)

    @classmethod
    def from_config(cls, config_file: str = None, token: Token = None, chain: Chain = None) -> 'PoolEngine':
        """Build an engine (and a VirtualToken if none is given) from a config file."""
        settings = config.load_settings(config_file)
        if token is None:
            token = VirtualToken(HalvingSchedule(
                initial=settings['INITIAL_BLOCK_REWARD'],
                interval=settings['HALVING_INTERVAL'],
                minimum=settings['MIN_BLOCK_REWARD'],
            ))
        return cls(
            token,
            chain=chain,
            account=settings['ENGINE_ACCOUNT'],
            slices_per_power=settings['SLICES_PER_POWER'],
            reward_precision=settings['REWARD_PRECISION'],
            reserved_power=settings['RESERVED_POWER'],
        )

    @property
    def height(self) -> int:
        return self.chain.height

    @property
    def slices_per_power(self) -> int:
        return self.ledger.slices_per_power

    # ------------------------------------------------------------------
    # Pools
    # ------------------------------------------------------------------

    def create_pool(self, caller: str, power: int) -> int:
        with self.lock:
            return self.ledger.create_pool(caller, power, self.height)

    def change_pool(self, caller: str, pool_id: int, new_power: int):
        with self.lock:
            self.ledger.change_pool(caller, pool_id, new_power, self.height)

    def delete_pool(self, caller: str, pool_id: int) -> int:
        """Delete a pool; returns the reward paid to the title holder."""
        with self.lock:
            height = self.height
            pool = self.ledger.get(pool_id)
            self.ledger.check_title(pool, caller)
            self.ledger.settle(pool, height)
            reward = self.rewards.pay(pool, caller)
            self.market.cancel_pool_listings(pool, height)
            return reward + self.ledger.delete_pool(caller, pool_id, height)

    def settle(self, pool_id: int) -> int:
        """Settle a pool up to the current height; returns the subsidy apportioned."""
        with self.lock:
            pool = self.ledger.get(pool_id)
            return self.ledger.settle(pool, self.height)

    def mine(self, caller: str, pool_id: int, limit: Optional[int] = None) -> int:
        """
        Claim caller's reward from a pool.

        Args:
            caller: Claiming holder
            pool_id: Live pool
            limit: Most to pay out now (None = everything)

        Returns:
            Amount paid
        """
        self._check_limit(limit)
        with self.lock:
            height = self.height
            pool = self.ledger.get(pool_id)
            self.ledger.settle(pool, height)
            amount = self.rewards.pay(pool, caller, limit)
            if amount:
                self.events.emit(ev.MINE, height, pool_id=pool_id, holder=caller, amount=amount)
            return amount

    def mine_retired(self, caller: str, title_id: int, limit: Optional[int] = None) -> int:
        """Claim reward left on a deleted pool, addressed by its title."""
        self._check_limit(limit)
        with self.lock:
            pool = self.ledger.get_retired(title_id)
            amount = self.rewards.pay(pool, caller, limit)
            if amount:
                self.events.emit(ev.MINE, self.height, pool_id=pool.pool_id,
                                 holder=caller, amount=amount, title_id=title_id)
            return amount

    @staticmethod
    def _check_limit(limit: Optional[int]):
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
            raise InvalidAmountError(f"Limit must be a non-negative integer or None, got {limit!r}")

    # ------------------------------------------------------------------
    # Marketplace
    # ------------------------------------------------------------------

    def sell(self, caller: str, pool_id: int, slice_amount: int, price: int) -> int:
        with self.lock:
            return self.market.sell(caller, pool_id, slice_amount, price, self.height)

    def cancel_sale(self, caller: str, sale_id: int):
        with self.lock:
            self.market.cancel_sale(caller, sale_id, self.height)

    def buy(self, caller: str, sale_id: int, slice_amount: int) -> int:
        with self.lock:
            return self.market.buy(caller, sale_id, slice_amount, self.height)

    # ------------------------------------------------------------------
    # Group buying
    # ------------------------------------------------------------------

    def suggest_group_buying(self, caller: str, target_power: int, first_contribution: int) -> int:
        with self.lock:
            return self.group_buying.suggest_group_buying(caller, target_power, first_contribution, self.height)

    def participate_in_group_buying(self, caller: str, group_buying_id: int, amount: int) -> Optional[int]:
        with self.lock:
            return self.group_buying.participate_in_group_buying(caller, group_buying_id, amount, self.height)

    def withdraw_group_buying(self, caller: str, group_buying_id: int, amount: int):
        with self.lock:
            self.group_buying.withdraw_group_buying(caller, group_buying_id, amount, self.height)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def pools(self, pool_id: int) -> Dict[str, Any]:
        with self.lock:
            info = self.ledger.get(pool_id).to_dict()
            del info['slices']
            return info

    def pool_of_title(self, title_id: int) -> int:
        with self.lock:
            return self.ledger.pool_of_title(title_id)

    def title_holder(self, pool_id: int) -> str:
        with self.lock:
            return self.ledger.get(pool_id).title_holder

    @property
    def total_power(self) -> int:
        return self.ledger.total_power

    def slices(self, pool_id: int, holder: str) -> int:
        """Slices attributed to holder, including those escrowed in listings."""
        with self.lock:
            return self.ledger.get(pool_id).slices.held_by(holder)

    def spendable_slices(self, pool_id: int, holder: str) -> int:
        with self.lock:
            return self.ledger.get(pool_id).slices.balance_of(holder)

    def escrowed_slices(self, pool_id: int, holder: str) -> int:
        with self.lock:
            return self.ledger.get(pool_id).slices.escrowed_of(holder)

    def pending_reward(self, pool_id: int, holder: str) -> int:
        """Reward holder could claim right now."""
        with self.lock:
            pool = self.ledger.get(pool_id)
            return self.rewards.pending(pool, holder, self.ledger.total_power, self.height)

    def retired_pending_reward(self, title_id: int, holder: str) -> int:
        with self.lock:
            pool = self.ledger.get_retired(title_id)
            return pool.slices.pending(holder, pool.acc_reward_per_slice)

    def sales(self, sale_id: int) -> Dict[str, Any]:
        with self.lock:
            return self.market.get(sale_id).to_dict()

    def group_buyings(self, group_buying_id: int) -> Dict[str, Any]:
        with self.lock:
            return self.group_buying.get(group_buying_id).to_dict()

    def group_buying_slices(self, group_buying_id: int, holder: str) -> int:
        with self.lock:
            return self.group_buying.get(group_buying_id).contribution_of(holder)

    def apportioned_reward(self, pool_id: int) -> int:
        """Subsidy apportioned to a live pool since it was created."""
        with self.lock:
            pool = self.ledger.get(pool_id)
            return self.rewards.apportioned.get(pool.title_id, 0)

    def audit(self) -> List[str]:
        """
        Check slice conservation and listing consistency.

        Returns:
            List of violations (empty when the ledger is consistent)
        """
        problems = []
        with self.lock:
            for pool in self.ledger.live_pools():
                held = pool.slices.total
                if held != pool.total_slices:
                    problems.append(
                        f"Pool #{pool.pool_id}: holders have {held} slices, expected {pool.total_slices}"
                    )
                listed = sum(l.slice_amount for l in self.market.active_listings(pool.pool_id))
                escrowed = sum(p.escrowed for p in pool.slices.positions.values())
                if listed != escrowed:
                    problems.append(
                        f"Pool #{pool.pool_id}: {listed} slices listed but {escrowed} escrowed"
                    )
            for listing in self.market.listings.values():
                if listing.removed != (listing.slice_amount == 0):
                    problems.append(f"Sale #{listing.sale_id}: removed flag disagrees with amount")
        return problems

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        with self.lock:
            return {
                'version': STATE_VERSION,
                'ledger': self.ledger.to_dict(),
                'market': self.market.to_dict(),
                'group_buying': self.group_buying.to_dict(),
                'apportioned': {str(k): v for k, v in self.rewards.apportioned.items()},
            }

    def load_dict(self, data: Dict[str, Any]):
        if data.get('version') != STATE_VERSION:
            raise ValueError(f"Unsupported state version: {data.get('version')}")
        with self.lock:
            self.ledger.load_dict(data.get('ledger', {}))
            self.market.load_dict(data.get('market', {}))
            self.group_buying.load_dict(data.get('group_buying', {}))
            self.rewards.apportioned = {int(k): v for k, v in data.get('apportioned', {}).items()}

    def save_state(self, path: str = None):
        """Write the whole ledger to a JSON file."""
        if path is None:
            path = os.path.join(config.get_data_dir(), config.STATE_FILENAME)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        data = self.to_dict()
        tmp_path = f"{path}.tmp"
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
        logger.info(f"💾 Ledger saved to {path}")

    def load_state(self, path: str = None) -> bool:
        """Load the ledger from a JSON file; returns False if there is none."""
        if path is None:
            path = os.path.join(config.get_data_dir(), config.STATE_FILENAME)
        if not os.path.exists(path):
            return False

        with open(path, 'r') as f:
            data = json.load(f)
        self.load_dict(data)
        logger.info(f"📊 Ledger loaded from {path}: {len(list(self.ledger.live_pools()))} pools")
        return True
