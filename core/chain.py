"""
SLICEPOOL Chain Clock
Block height as an external input; the engine samples it, never pushes it.
"""

import threading
import logging

logger = logging.getLogger(__name__)


class Chain:
    """Current block height of the underlying chain."""

    def __init__(self, height: int = 0):
        if height < 0:
            raise ValueError("Height cannot be negative")
        self._height = height
        self.lock = threading.Lock()

    @property
    def height(self) -> int:
        return self._height

    def mine(self, blocks: int = 1) -> int:
        """Advance by a number of blocks."""
        if blocks < 0:
            raise ValueError("Cannot mine a negative number of blocks")
        with self.lock:
            self._height += blocks
            return self._height

    def mine_to(self, height: int) -> int:
        """Advance to an absolute height (never backwards)."""
        with self.lock:
            if height < self._height:
                raise ValueError(f"Chain is already at {self._height}, cannot go back to {height}")
            self._height = height
            logger.debug(f"Chain at height {height}")
            return self._height
