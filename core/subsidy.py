"""
SLICEPOOL Subsidy Source
Per-height issuance schedule consumed by the reward accrual engine.
"""

from typing import List, Dict, Any

import config


class SubsidySource:
    """
    Interface of the issuance collaborator.

    The engine only needs the per-height amount, the total over a height
    range and a way to claim issued coins for a recipient.
    """

    def subsidy_at(self, height: int) -> int:
        raise NotImplementedError

    def cumulative_subsidy(self, start: int, end: int) -> int:
        """Total subsidy over heights start..end (inclusive)."""
        if end < start:
            return 0
        return sum(self.subsidy_at(h) for h in range(start, end + 1))

    def claim(self, to: str, amount: int):
        raise NotImplementedError


class HalvingSchedule(SubsidySource):
    """
    Bitcoin-style halving schedule with a closed-form range sum.

    Reward Schedule:
    - Blocks 0 - interval-1:           initial
    - Blocks interval - 2*interval-1:  initial / 2
    - And so on... (halves every interval blocks, floored at minimum)
    """

    def __init__(
        self,
        initial: int = None,
        interval: int = None,
        minimum: int = None,
    ):
        self.initial = config.INITIAL_BLOCK_REWARD if initial is None else initial
        self.interval = config.HALVING_INTERVAL if interval is None else interval
        self.minimum = config.MIN_BLOCK_REWARD if minimum is None else minimum

        if self.interval <= 0:
            raise ValueError("Halving interval must be positive")

    def subsidy_at(self, height: int) -> int:
        if height < 0:
            return 0
        halvings = height // self.interval
        if halvings >= self.initial.bit_length():
            return self.minimum
        return max(self.initial >> halvings, self.minimum)

    def cumulative_subsidy(self, start: int, end: int) -> int:
        """
        Sum the subsidy over start..end one halving era at a time.

        Cost is bounded by the number of eras crossed, not by the number
        of blocks.
        """
        start = max(start, 0)
        if end < start:
            return 0

        total = 0
        height = start
        while height <= end:
            reward = self.subsidy_at(height)
            if reward <= self.minimum:
                # Floor reached: flat for the rest of the range
                total += self.minimum * (end - height + 1)
                break
            era_end = min((height // self.interval + 1) * self.interval - 1, end)
            total += reward * (era_end - height + 1)
            height = era_end + 1

        return total

    def claim(self, to: str, amount: int):
        raise NotImplementedError("HalvingSchedule does not hold balances")

    def get_schedule(self) -> List[Dict[str, Any]]:
        """
        Get full reward schedule showing halving milestones.

        Returns:
            List of {start_block, end_block, reward} dicts
        """
        schedule = []
        reward = self.initial
        start = 0

        while reward > self.minimum:
            end = start + self.interval - 1
            schedule.append({
                'start_block': start,
                'end_block': end,
                'reward': reward,
                'total': self.interval * reward,
            })
            start = end + 1
            reward = reward >> 1

        schedule.append({
            'start_block': start,
            'end_block': None,
            'reward': self.minimum,
            'total': None,
        })

        return schedule
