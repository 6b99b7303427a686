"""
Group Buying for SLICEPOOL
Crowdfunding rounds that turn into a pool once fully funded.

Contributions are counted in slices (one token each). When the last slice
of a round is funded, the pool is opened in the same call and every
contributor receives exactly the slices they paid for. The pool's title
goes to the engine account, so no contributor can resize or delete it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Any
import logging

import config
from core import events as ev
from core.errors import (
    InvalidAmountError,
    GroupBuyingNotFoundError,
    GroupBuyingClosedError,
    require_positive,
)
from core.events import EventLog
from core.token import Token
from .ledger import PoolLedger

logger = logging.getLogger(__name__)


class RoundState(Enum):
    """Group buying states."""
    OPEN = "open"
    COMPLETED = "completed"


@dataclass
class GroupBuying:
    """One crowdfunding round."""
    group_buying_id: int
    target_power: int
    slices_left: int
    suggester: str
    contributions: Dict[str, int] = field(default_factory=dict)
    pool_id: Optional[int] = None
    title_id: Optional[int] = None
    created_height: int = 0
    completed_height: Optional[int] = None

    @property
    def state(self) -> RoundState:
        return RoundState.COMPLETED if self.slices_left == 0 else RoundState.OPEN

    @property
    def is_open(self) -> bool:
        return self.state == RoundState.OPEN

    def contribution_of(self, holder: str) -> int:
        return self.contributions.get(holder, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'group_buying_id': self.group_buying_id,
            'target_power': self.target_power,
            'slices_left': self.slices_left,
            'suggester': self.suggester,
            'contributions': dict(self.contributions),
            'pool_id': self.pool_id,
            'title_id': self.title_id,
            'state': self.state.value,
            'created_height': self.created_height,
            'completed_height': self.completed_height,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GroupBuying':
        return cls(
            group_buying_id=data['group_buying_id'],
            target_power=data['target_power'],
            slices_left=data['slices_left'],
            suggester=data['suggester'],
            contributions=dict(data.get('contributions', {})),
            pool_id=data.get('pool_id'),
            title_id=data.get('title_id'),
            created_height=data.get('created_height', 0),
            completed_height=data.get('completed_height'),
        )


class GroupBuyingAggregator:
    """Open rounds, contributions, and their conversion into pools."""

    def __init__(
        self,
        ledger: PoolLedger,
        token: Token,
        events: EventLog,
        account: str = None,
    ):
        self.ledger = ledger
        self.token = token
        self.events = events
        self.account = account or config.ENGINE_ACCOUNT
        self.slices_per_power = ledger.slices_per_power

        self.rounds: Dict[int, GroupBuying] = {}
        self._next_id = 0

    def get(self, group_buying_id: int) -> GroupBuying:
        gb = self.rounds.get(group_buying_id)
        if gb is None:
            raise GroupBuyingNotFoundError(f"Group buying #{group_buying_id} does not exist")
        return gb

    def _get_open(self, group_buying_id: int) -> GroupBuying:
        gb = self.get(group_buying_id)
        if not gb.is_open:
            raise GroupBuyingClosedError("Already started")
        return gb

    def suggest_group_buying(self, caller: str, target_power: int, first_contribution: int, height: int) -> int:
        """Open a round for target_power, contributing first_contribution slices."""
        require_positive(target_power, "Target power")
        require_positive(first_contribution, "Contribution")
        capacity = target_power * self.slices_per_power
        if first_contribution > capacity:
            raise InvalidAmountError(
                f"Contribution {first_contribution} exceeds the {capacity} slices of the round"
            )

        self.token.transfer_from(self.account, caller, self.account, first_contribution)

        group_buying_id = self._next_id
        self._next_id += 1
        gb = GroupBuying(
            group_buying_id=group_buying_id,
            target_power=target_power,
            slices_left=capacity - first_contribution,
            suggester=caller,
            contributions={caller: first_contribution},
            created_height=height,
        )
        self.rounds[group_buying_id] = gb

        self.events.emit(ev.SUGGEST_GROUP_BUYING, height,
                         suggester=caller, group_buying_id=group_buying_id, amount=first_contribution)
        logger.info(f"Group buying #{group_buying_id} suggested by {caller}: "
                    f"power {target_power}, {gb.slices_left} slices left")

        if gb.slices_left == 0:
            self._complete(gb, height)
        return group_buying_id

    def participate_in_group_buying(self, caller: str, group_buying_id: int, amount: int, height: int) -> Optional[int]:
        """
        Contribute to an open round.

        Returns:
            Id of the pool created if this contribution completed the round
        """
        gb = self._get_open(group_buying_id)
        require_positive(amount, "Contribution")
        if amount > gb.slices_left:
            raise InvalidAmountError(
                f"Group buying #{group_buying_id} has {gb.slices_left} slices left, cannot take {amount}"
            )

        self.token.transfer_from(self.account, caller, self.account, amount)

        gb.contributions[caller] = gb.contribution_of(caller) + amount
        gb.slices_left -= amount

        self.events.emit(ev.UPDATE_GROUP_BUYING, height,
                         user=caller, group_buying_id=group_buying_id, amount=gb.contributions[caller])
        logger.info(f"Group buying #{group_buying_id}: {caller} now contributes "
                    f"{gb.contributions[caller]}, {gb.slices_left} slices left")

        if gb.slices_left == 0:
            return self._complete(gb, height)
        return None

    def withdraw_group_buying(self, caller: str, group_buying_id: int, amount: int, height: int):
        """Take back part of a contribution while the round is open."""
        gb = self._get_open(group_buying_id)
        require_positive(amount, "Withdrawal")
        contributed = gb.contribution_of(caller)
        if amount > contributed:
            raise InvalidAmountError(
                f"{caller} contributed {contributed} to group buying #{group_buying_id}, cannot withdraw {amount}"
            )

        remaining = contributed - amount
        if remaining:
            gb.contributions[caller] = remaining
        else:
            del gb.contributions[caller]
        gb.slices_left += amount

        self.token.transfer(self.account, caller, amount)

        self.events.emit(ev.UPDATE_GROUP_BUYING, height,
                         user=caller, group_buying_id=group_buying_id, amount=remaining)
        logger.info(f"Group buying #{group_buying_id}: {caller} withdrew {amount}, "
                    f"{gb.slices_left} slices left")

    def _complete(self, gb: GroupBuying, height: int) -> int:
        pool = self.ledger.open_pool(self.account, gb.target_power, height, gb.contributions)
        gb.pool_id = pool.pool_id
        gb.title_id = pool.title_id
        gb.completed_height = height
        logger.info(f"🎉 Group buying #{gb.group_buying_id} completed: pool #{pool.pool_id} "
                    f"for {len(gb.contributions)} contributors")
        return pool.pool_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rounds': [gb.to_dict() for gb in self.rounds.values()],
            'next_id': self._next_id,
        }

    def load_dict(self, data: Dict[str, Any]):
        self.rounds = {}
        for item in data.get('rounds', []):
            gb = GroupBuying.from_dict(item)
            self.rounds[gb.group_buying_id] = gb
        self._next_id = data.get('next_id', 0)
