"""
Slice Marketplace for SLICEPOOL
Fixed-price listings that fill partially at a pro-rata price.
"""

from dataclasses import dataclass
from typing import Dict, List, Any
import logging

import config
from core import events as ev
from core.errors import (
    UnauthorizedError,
    InvalidAmountError,
    InsufficientSlicesError,
    SaleNotFoundError,
    StateConflictError,
    require_positive,
)
from core.events import EventLog
from core.token import Token
from .ledger import Pool, PoolLedger

logger = logging.getLogger(__name__)


@dataclass
class Listing:
    """An offer to sell escrowed slices of one pool."""
    sale_id: int
    pool_id: int
    title_id: int
    seller: str
    slice_amount: int   # remaining
    price: int          # remaining total price
    created_height: int = 0
    removed: bool = False

    @property
    def active(self) -> bool:
        return not self.removed

    def quote(self, slice_amount: int) -> int:
        """Price of slice_amount slices against the current remainder."""
        return self.price * slice_amount // self.slice_amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sale_id': self.sale_id,
            'pool_id': self.pool_id,
            'title_id': self.title_id,
            'seller': self.seller,
            'slice_amount': self.slice_amount,
            'price': self.price,
            'created_height': self.created_height,
            'removed': self.removed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Listing':
        return cls(
            sale_id=data['sale_id'],
            pool_id=data['pool_id'],
            title_id=data['title_id'],
            seller=data['seller'],
            slice_amount=data['slice_amount'],
            price=data['price'],
            created_height=data.get('created_height', 0),
            removed=data.get('removed', False),
        )


class Marketplace:
    """Listings of escrowed slices, paid for in tokens."""

    def __init__(self, ledger: PoolLedger, token: Token, events: EventLog, account: str = None):
        self.ledger = ledger
        self.token = token
        self.events = events
        self.account = account or config.ENGINE_ACCOUNT

        self.listings: Dict[int, Listing] = {}
        self._next_sale_id = 0

    def get(self, sale_id: int) -> Listing:
        """Listing by id, removed or not."""
        listing = self.listings.get(sale_id)
        if listing is None:
            raise SaleNotFoundError(f"Sale #{sale_id} does not exist")
        return listing

    def get_active(self, sale_id: int) -> Listing:
        listing = self.get(sale_id)
        if listing.removed:
            raise SaleNotFoundError(f"Sale #{sale_id} was removed")
        return listing

    def active_listings(self, pool_id: int = None) -> List[Listing]:
        return [
            l for l in self.listings.values()
            if l.active and (pool_id is None or l.pool_id == pool_id)
        ]

    def _pool_of(self, listing: Listing) -> Pool:
        pool = self.ledger.get(listing.pool_id)
        if pool.title_id != listing.title_id:
            raise StateConflictError(f"Pool of sale #{listing.sale_id} no longer exists")
        return pool

    def _remove(self, listing: Listing):
        listing.slice_amount = 0
        listing.price = 0
        listing.removed = True

    def sell(self, caller: str, pool_id: int, slice_amount: int, price: int, height: int) -> int:
        """List slice_amount of caller's slices for a total price."""
        pool = self.ledger.get(pool_id)
        require_positive(slice_amount, "Slice amount")
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            raise InvalidAmountError(f"Price must be a non-negative integer, got {price!r}")
        if pool.slices.balance_of(caller) < slice_amount:
            raise InsufficientSlicesError(
                f"{caller} holds {pool.slices.balance_of(caller)} spendable slices, cannot list {slice_amount}"
            )

        self.ledger.settle(pool, height)
        pool.slices.escrow(caller, slice_amount, pool.acc_reward_per_slice)

        sale_id = self._next_sale_id
        self._next_sale_id += 1
        self.listings[sale_id] = Listing(
            sale_id=sale_id,
            pool_id=pool_id,
            title_id=pool.title_id,
            seller=caller,
            slice_amount=slice_amount,
            price=price,
            created_height=height,
        )

        self.events.emit(ev.SELL, height, sale_id=sale_id, seller=caller,
                         pool_id=pool_id, slice_amount=slice_amount, price=price)
        logger.info(f"Sale #{sale_id}: {caller} lists {slice_amount} slices of pool #{pool_id} for {price}")
        return sale_id

    def cancel_sale(self, caller: str, sale_id: int, height: int):
        listing = self.get_active(sale_id)
        if caller != listing.seller:
            raise UnauthorizedError(f"Only the seller can cancel sale #{sale_id}")

        pool = self._pool_of(listing)
        self.ledger.settle(pool, height)
        pool.slices.release(listing.seller, listing.slice_amount, pool.acc_reward_per_slice)
        self._remove(listing)

        self.events.emit(ev.CANCEL_SALE, height, sale_id=sale_id)
        logger.info(f"Sale #{sale_id} cancelled")

    def cancel_pool_listings(self, pool: Pool, height: int):
        """Return every open listing of pool to its seller."""
        for listing in self.active_listings(pool.pool_id):
            if listing.title_id != pool.title_id:
                continue
            pool.slices.release(listing.seller, listing.slice_amount, pool.acc_reward_per_slice)
            self._remove(listing)
            self.events.emit(ev.CANCEL_SALE, height, sale_id=listing.sale_id)
            logger.info(f"Sale #{listing.sale_id} cancelled with pool #{pool.pool_id}")

    def buy(self, caller: str, sale_id: int, slice_amount: int, height: int) -> int:
        """
        Buy part or all of a listing.

        The cost is pro-rata against what is left, so a full fill always
        pays exactly the remaining price.

        Returns:
            Tokens paid to the seller
        """
        listing = self.get_active(sale_id)
        require_positive(slice_amount, "Slice amount")
        if slice_amount > listing.slice_amount:
            raise InvalidAmountError(
                f"Sale #{sale_id} has {listing.slice_amount} slices left, cannot buy {slice_amount}"
            )
        if caller == listing.seller:
            raise StateConflictError(f"Seller cannot buy own sale #{sale_id}")

        pool = self._pool_of(listing)
        cost = listing.quote(slice_amount)

        self.ledger.settle(pool, height)
        self.token.transfer_from(self.account, caller, listing.seller, cost)

        pool.slices.transfer_escrowed(listing.seller, caller, slice_amount, pool.acc_reward_per_slice)
        listing.slice_amount -= slice_amount
        listing.price -= cost

        self.events.emit(ev.BUY, height, sale_id=sale_id, buyer=caller,
                         slice_amount=slice_amount, price=cost)
        logger.info(f"Sale #{sale_id}: {caller} bought {slice_amount} slices for {cost}")

        if listing.slice_amount == 0:
            self._remove(listing)
            self.events.emit(ev.REMOVE_SALE, height, sale_id=sale_id)
            logger.info(f"Sale #{sale_id} filled and removed")

        return cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            'listings': [l.to_dict() for l in self.listings.values()],
            'next_sale_id': self._next_sale_id,
        }

    def load_dict(self, data: Dict[str, Any]):
        self.listings = {}
        for item in data.get('listings', []):
            listing = Listing.from_dict(item)
            self.listings[listing.sale_id] = listing
        self._next_sale_id = data.get('next_sale_id', 0)
