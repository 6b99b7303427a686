"""
SLICEPOOL Token
In-memory fungible token with allowances and a halving issuance schedule.
"""

import threading
from typing import Dict, Tuple, Optional
import logging

from .errors import InsufficientFundsError, InsufficientAllowanceError, InvalidAmountError
from .subsidy import SubsidySource, HalvingSchedule

logger = logging.getLogger(__name__)


class Token:
    """Balances, transfers and allowances of a fungible token."""

    def __init__(self):
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}  # (owner, spender) -> amount
        self.total_supply = 0
        self.lock = threading.RLock()

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> Optional[int]:
        return self.allowances.get((owner, spender), 0)

    def approve(self, owner: str, spender: str, amount: Optional[int] = None):
        """Allow spender to move owner's coins (None = unlimited)."""
        if amount is not None and amount < 0:
            raise InvalidAmountError("Negative allowance")
        with self.lock:
            self.allowances[(owner, spender)] = amount

    def mint(self, to: str, amount: int):
        if amount < 0:
            raise InvalidAmountError("Negative mint")
        with self.lock:
            self.balances[to] = self.balance_of(to) + amount
            self.total_supply += amount

    def transfer(self, sender: str, to: str, amount: int):
        if amount < 0:
            raise InvalidAmountError("Negative transfer")
        with self.lock:
            balance = self.balance_of(sender)
            if balance < amount:
                raise InsufficientFundsError(
                    f"{sender} has {balance}, needs {amount}"
                )
            self.balances[sender] = balance - amount
            self.balances[to] = self.balance_of(to) + amount

    def transfer_from(self, spender: str, owner: str, to: str, amount: int):
        """Move owner's coins on behalf of spender, consuming allowance."""
        with self.lock:
            self.check_transfer_from(spender, owner, amount)
            allowed = self.allowances.get((owner, spender), 0)
            if allowed is not None:
                self.allowances[(owner, spender)] = allowed - amount
            self.transfer(owner, to, amount)

    def check_transfer_from(self, spender: str, owner: str, amount: int):
        """Raise if transfer_from would fail, without moving anything."""
        if amount < 0:
            raise InvalidAmountError("Negative transfer")
        allowed = self.allowances.get((owner, spender), 0)
        if allowed is not None and allowed < amount:
            raise InsufficientAllowanceError(
                f"{spender} may move {allowed} of {owner}'s coins, needs {amount}"
            )
        balance = self.balance_of(owner)
        if balance < amount:
            raise InsufficientFundsError(f"{owner} has {balance}, needs {amount}")


class VirtualToken(Token, SubsidySource):
    """
    Token whose issuance follows a halving schedule.

    Issued coins enter circulation only when claimed, which is how the
    pool engine pays rewards out.
    """

    def __init__(
        self,
        schedule: HalvingSchedule = None,
        genesis_holder: str = None,
        genesis_supply: int = 0,
    ):
        super().__init__()
        self.schedule = schedule or HalvingSchedule()
        self.total_claimed = 0

        if genesis_holder and genesis_supply:
            self.mint(genesis_holder, genesis_supply)

    def subsidy_at(self, height: int) -> int:
        return self.schedule.subsidy_at(height)

    def cumulative_subsidy(self, start: int, end: int) -> int:
        return self.schedule.cumulative_subsidy(start, end)

    def claim(self, to: str, amount: int):
        if amount <= 0:
            return
        with self.lock:
            self.mint(to, amount)
            self.total_claimed += amount
        logger.debug(f"Issued {amount} to {to}")
