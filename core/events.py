"""
SLICEPOOL Events
Records emitted for observers and indexers.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Any, Callable, Optional
import logging

logger = logging.getLogger(__name__)

# Event names
CREATE_POOL = "CreatePool"
CHANGE_POOL = "ChangePool"
DELETE_POOL = "DeletePool"
MINE = "Mine"
SELL = "Sell"
CANCEL_SALE = "CancelSale"
BUY = "Buy"
REMOVE_SALE = "RemoveSale"
SUGGEST_GROUP_BUYING = "SuggestGroupBuying"
UPDATE_GROUP_BUYING = "UpdateGroupBuying"


@dataclass
class Event:
    """A single ledger event."""
    name: str
    height: int
    args: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.args[key]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'height': self.height,
            'args': dict(self.args),
        }


class EventLog:
    """Append-only event log with synchronous subscribers."""

    def __init__(self):
        self.events: List[Event] = []
        self.subscribers: List[Callable[[Event], None]] = []
        self.lock = threading.RLock()

    def emit(self, name: str, height: int, **args) -> Event:
        event = Event(name=name, height=height, args=args)
        with self.lock:
            self.events.append(event)
            subscribers = list(self.subscribers)
        logger.debug(f"{name} @ {height}: {args}")
        for callback in subscribers:
            callback(event)
        return event

    def subscribe(self, callback: Callable[[Event], None]):
        with self.lock:
            self.subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[Event], None]):
        with self.lock:
            if callback in self.subscribers:
                self.subscribers.remove(callback)

    def filter(self, name: str = None, since: int = 0) -> List[Event]:
        """Events with the given name (all names if None) from index `since` on."""
        with self.lock:
            events = self.events[since:]
        if name is None:
            return events
        return [e for e in events if e.name == name]

    def last(self, name: str = None) -> Optional[Event]:
        events = self.filter(name)
        return events[-1] if events else None

    def __len__(self) -> int:
        return len(self.events)
