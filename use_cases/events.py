"""Typed publish/subscribe bus for cross-component account events."""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Any, Callable, ClassVar, DefaultDict, Dict, List, Type

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountEvent:
    name: ClassVar[str] = "AccountEvent"

    def payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UserAuthenticated(AccountEvent):
    """Follow-list sync and other per-user subsystems start on this."""

    name: ClassVar[str] = "UserAuthenticated"
    username: str


@dataclass(frozen=True)
class HeaderStatsReady(AccountEvent):
    name: ClassVar[str] = "HeaderStatsReady"
    username: str


Handler = Callable[[AccountEvent], None]


class EventBus:
    def __init__(self):
        self._handlers: DefaultDict[Type[AccountEvent], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[AccountEvent], handler: Handler) -> Callable[[], None]:
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def publish(self, event: AccountEvent) -> None:
        handlers = list(self._handlers.get(type(event), ()))
        log.debug(f"Publishing {event.name} {event.payload()} to {len(handlers)} handler(s)")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                # Subscribers are a side channel; one failing must not break the publisher.
                log.error(f"Handler for {event.name} failed: {e}", exc_info=True)
