"""
Event System Module

Ledger notifications and the sinks that receive them. The ledger publishes a
Transfer or Approval notification synchronously with every successful
mutation; sinks are anything with a ``publish(event)`` method.
"""

from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Hashable, Iterator, List, Optional, Protocol, Union
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging
from threading import RLock

# Origin of the creation notification
NULL_ACCOUNT = None


class LedgerEventType(Enum):
    """Notification kinds emitted by the ledger"""
    TRANSFER = "Transfer"
    APPROVAL = "Approval"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Transfer:
    """
    Tokens moved from one account to another.
    ``from_account`` is NULL_ACCOUNT for the creation notification.
    """
    from_account: Optional[Hashable]
    to_account: Hashable
    amount: int
    timestamp: datetime = field(default_factory=_now, compare=False)
    event_id: str = field(default_factory=_new_id, compare=False)

    event_type: ClassVar[LedgerEventType] = LedgerEventType.TRANSFER

    @property
    def args(self) -> tuple:
        return (self.from_account, self.to_account, self.amount)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'event_type': self.event_type.value,
            'from': self.from_account,
            'to': self.to_account,
            'amount': self.amount,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }


@dataclass(frozen=True)
class Approval:
    """An owner set the amount a spender may move on its behalf"""
    owner: Hashable
    spender: Hashable
    amount: int
    timestamp: datetime = field(default_factory=_now, compare=False)
    event_id: str = field(default_factory=_new_id, compare=False)

    event_type: ClassVar[LedgerEventType] = LedgerEventType.APPROVAL

    @property
    def args(self) -> tuple:
        return (self.owner, self.spender, self.amount)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'event_type': self.event_type.value,
            'owner': self.owner,
            'spender': self.spender,
            'amount': self.amount,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }


LedgerEvent = Union[Transfer, Approval]


class EventSink(Protocol):
    """Anything the ledger can publish notifications to"""

    def publish(self, event: LedgerEvent) -> None:
        ...


class EventLog:
    """Sink that records every notification in publication order"""

    def __init__(self):
        self._events: List[LedgerEvent] = []
        self._lock = RLock()

    def publish(self, event: LedgerEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[LedgerEvent]:
        with self._lock:
            return list(self._events)

    def transfers(self) -> List[Transfer]:
        with self._lock:
            return [e for e in self._events if isinstance(e, Transfer)]

    def approvals(self) -> List[Approval]:
        with self._lock:
            return [e for e in self._events if isinstance(e, Approval)]

    def last(self) -> Optional[LedgerEvent]:
        with self._lock:
            return self._events[-1] if self._events else None

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __iter__(self) -> Iterator[LedgerEvent]:
        return iter(self.events)


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__name__", repr(handler))


class EventDispatcher:
    """Central event dispatcher: publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[LedgerEventType, List[Callable]] = {}
        self._global_handlers: List[Callable] = []  # catch-all handlers
        self._lock = RLock()
        self.logger = logging.getLogger("token_ledger.events")

    def subscribe(self, event_type: LedgerEventType, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {_handler_name(handler)} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to ALL events"""
        with self._lock:
            self._global_handlers.append(handler)
            self.logger.debug(f"Subscribed global handler {_handler_name(handler)}")

    def unsubscribe(self, event_type: LedgerEventType, handler: Callable) -> None:
        """Unsubscribe from a specific event type"""
        with self._lock:
            try:
                self._handlers.get(event_type, []).remove(handler)
                self.logger.debug(f"Unsubscribed handler {_handler_name(handler)} from {event_type.value}")
            except ValueError:
                self.logger.warning(f"Handler {_handler_name(handler)} was not subscribed to {event_type.value}")

    def unsubscribe_all(self, handler: Callable) -> None:
        """Unsubscribe a catch-all handler"""
        with self._lock:
            try:
                self._global_handlers.remove(handler)
                self.logger.debug(f"Unsubscribed global handler {_handler_name(handler)}")
            except ValueError:
                self.logger.warning(f"Global handler {_handler_name(handler)} was not subscribed")

    def publish(self, event: LedgerEvent) -> None:
        """Publish event to all subscribers"""
        with self._lock:
            self.logger.debug(f"Publishing {event.event_type.value} {event.args}")
            handlers = list(self._handlers.get(event.event_type, [])) + list(self._global_handlers)

            for handler in handlers:
                try:
                    handler(event)
                except Exception:
                    # A failing subscriber must not undo a committed ledger mutation
                    self.logger.exception(
                        f"Error in event handler {_handler_name(handler)} for {event.event_type.value}"
                    )

    def clear(self) -> None:
        """Clear all handlers"""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()
            self.logger.info("All event handlers cleared")

    def get_handler_count(self, event_type: Optional[LedgerEventType] = None) -> int:
        """Get count of handlers for a specific event type or all"""
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            total = sum(len(handlers) for handlers in self._handlers.values())
            return total + len(self._global_handlers)
