"""
Slice Ledger for SLICEPOOL
Per-pool holder balances with reward debt bookkeeping.

Every balance change first rolls the holder's pending reward into
`unclaimed` using the holding *before* the change, then resets the debt to
the current accumulator. A holder therefore never earns for slices they did
not hold, and never loses what they earned on slices they gave away.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Any
import logging

import config
from core.errors import InsufficientSlicesError, InvalidAmountError

logger = logging.getLogger(__name__)


@dataclass
class SlicePosition:
    """One holder's slices in one pool."""
    balance: int = 0        # spendable
    escrowed: int = 0       # locked in open listings, still earning
    reward_debt: int = 0    # accumulator snapshot at last reconcile
    unclaimed: int = 0      # reward rolled forward, not yet paid

    @property
    def held(self) -> int:
        return self.balance + self.escrowed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'balance': self.balance,
            'escrowed': self.escrowed,
            'reward_debt': self.reward_debt,
            'unclaimed': self.unclaimed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SlicePosition':
        return cls(
            balance=data.get('balance', 0),
            escrowed=data.get('escrowed', 0),
            reward_debt=data.get('reward_debt', 0),
            unclaimed=data.get('unclaimed', 0),
        )


class SliceBook:
    """Holder -> position mapping of a single pool."""

    def __init__(self, precision: int = None):
        self.precision = precision or config.REWARD_PRECISION
        self.positions: Dict[str, SlicePosition] = {}

    def position(self, holder: str) -> SlicePosition:
        """Position of holder, created empty on first use."""
        pos = self.positions.get(holder)
        if pos is None:
            pos = SlicePosition()
            self.positions[holder] = pos
        return pos

    def get(self, holder: str) -> Optional[SlicePosition]:
        return self.positions.get(holder)

    def balance_of(self, holder: str) -> int:
        pos = self.positions.get(holder)
        return pos.balance if pos else 0

    def escrowed_of(self, holder: str) -> int:
        pos = self.positions.get(holder)
        return pos.escrowed if pos else 0

    def held_by(self, holder: str) -> int:
        pos = self.positions.get(holder)
        return pos.held if pos else 0

    @property
    def total(self) -> int:
        """Sum of all balances and escrow."""
        return sum(p.held for p in self.positions.values())

    def has_claims(self) -> bool:
        """True while any holder still has slices or unclaimed reward."""
        return any(p.held or p.unclaimed for p in self.positions.values())

    def pending(self, holder: str, acc: int) -> int:
        """Reward owed to holder at accumulator value acc."""
        pos = self.positions.get(holder)
        if pos is None:
            return 0
        return pos.unclaimed + pos.held * (acc - pos.reward_debt) // self.precision

    def reconcile(self, holder: str, acc: int) -> SlicePosition:
        pos = self.position(holder)
        if pos.held:
            pos.unclaimed += pos.held * (acc - pos.reward_debt) // self.precision
        pos.reward_debt = acc
        return pos

    def mint(self, holder: str, amount: int, acc: int):
        if amount <= 0:
            raise InvalidAmountError("Mint amount must be positive")
        pos = self.reconcile(holder, acc)
        pos.balance += amount

    def burn(self, holder: str, amount: int, acc: int):
        pos = self.positions.get(holder)
        if amount <= 0:
            raise InvalidAmountError("Burn amount must be positive")
        if pos is None or pos.balance < amount:
            raise InsufficientSlicesError(
                f"{holder} holds {pos.balance if pos else 0} spendable slices, cannot burn {amount}"
            )
        pos = self.reconcile(holder, acc)
        pos.balance -= amount

    def escrow(self, holder: str, amount: int, acc: int):
        """Lock spendable slices for a listing; they keep earning for holder."""
        pos = self.positions.get(holder)
        if amount <= 0:
            raise InvalidAmountError("Escrow amount must be positive")
        if pos is None or pos.balance < amount:
            raise InsufficientSlicesError(
                f"{holder} holds {pos.balance if pos else 0} spendable slices, cannot list {amount}"
            )
        pos = self.reconcile(holder, acc)
        pos.balance -= amount
        pos.escrowed += amount

    def release(self, holder: str, amount: int, acc: int):
        """Return escrowed slices to the spendable balance."""
        pos = self.reconcile(holder, acc)
        if pos.escrowed < amount:
            raise InsufficientSlicesError(f"{holder} has only {pos.escrowed} slices in escrow")
        pos.escrowed -= amount
        pos.balance += amount

    def transfer_escrowed(self, seller: str, buyer: str, amount: int, acc: int):
        """Move escrowed slices of seller to buyer's spendable balance."""
        seller_pos = self.positions.get(seller)
        if seller_pos is None or seller_pos.escrowed < amount:
            raise InsufficientSlicesError(f"{seller} has too few slices in escrow")
        seller_pos = self.reconcile(seller, acc)
        buyer_pos = self.reconcile(buyer, acc)
        seller_pos.escrowed -= amount
        buyer_pos.balance += amount

    def take_reward(self, holder: str, acc: int, limit: Optional[int] = None) -> int:
        """
        Reconcile holder and remove up to `limit` of their reward.

        Returns the amount taken; the rest stays in `unclaimed`.
        """
        if holder not in self.positions:
            return 0
        pos = self.reconcile(holder, acc)
        amount = pos.unclaimed if limit is None else min(pos.unclaimed, max(limit, 0))
        pos.unclaimed -= amount
        return amount

    def to_dict(self) -> Dict[str, Any]:
        return {holder: pos.to_dict() for holder, pos in self.positions.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], precision: int = None) -> 'SliceBook':
        book = cls(precision)
        for holder, pos in data.items():
            book.positions[holder] = SlicePosition.from_dict(pos)
        return book
