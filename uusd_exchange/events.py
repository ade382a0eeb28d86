"""Typed transaction events and a listener registry."""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

from .errors import ClassifiedError
from .interfaces.events import EventListener
from .models import Operation, Receipt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionStarted:
    operation: Operation


@dataclass(frozen=True)
class TransactionSubmitted:
    operation: Operation
    tx_hash: str


@dataclass(frozen=True)
class TransactionSucceeded:
    operation: Operation
    tx_hash: str
    receipt: Receipt


@dataclass(frozen=True)
class TransactionPending:
    """Broadcast but not mined within the configured receipt timeout."""

    operation: Operation
    tx_hash: str


@dataclass(frozen=True)
class TransactionFailed:
    operation: Operation
    error: ClassifiedError


@dataclass(frozen=True)
class ApprovalNeeded:
    token: str
    symbol: str
    spender: str


@dataclass(frozen=True)
class ApprovalCompleted:
    token: str
    symbol: str
    tx_hash: str


@dataclass(frozen=True)
class WalletConnected:
    account: str


@dataclass(frozen=True)
class WalletDisconnected:
    pass


Event = (
    TransactionStarted
    | TransactionSubmitted
    | TransactionSucceeded
    | TransactionPending
    | TransactionFailed
    | ApprovalNeeded
    | ApprovalCompleted
    | WalletConnected
    | WalletDisconnected
)


class EventBus:
    """Delivers events to listeners registered per event type.

    Listeners subscribed to ``object`` receive every event. A failing
    listener is logged and does not stop delivery to the rest.
    """

    def __init__(self) -> None:
        self._listeners: dict[type, list[EventListener]] = defaultdict(list)

    def subscribe(self, event_type: type, listener: EventListener) -> Callable[[], None]:
        self._listeners[event_type].append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event_type, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def subscribe_all(self, listener: EventListener) -> Callable[[], None]:
        return self.subscribe(object, listener)

    def emit(self, event: Any) -> None:
        targets = list(self._listeners.get(type(event), ())) + list(
            self._listeners.get(object, ())
        )
        for listener in targets:
            try:
                listener(event)
            except Exception as e:
                logger.error("Listener for %s failed: %s", type(event).__name__, e)
