"""
Vault event log.

Events are notifications for off-system observers. They are recorded in
order and fanned out to subscribers; a failing subscriber is logged and
does not affect the operation that emitted the event.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

SCHEDULE_CREATED = "ScheduleCreated"
TOKENS_CLAIMED = "TokensClaimed"
TOKENS_RECOVERED = "TokensRecovered"
RECOVERY_ACCOUNT_CHANGED = "RecoveryAccountChanged"
ADMINISTRATOR_CHANGED = "AdministratorChanged"


@dataclass
class VaultEvent:
    """Represents a vault event."""

    event_type: str
    payload: Dict[str, Any]
    timestamp: float = field(default_factory=time.time)
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "payload": dict(self.payload),
            "timestamp": self.timestamp,
            "sequence": self.sequence,
        }


class EventLog:
    """In-order event record with subscriber fan-out."""

    def __init__(self) -> None:
        self.events: List[VaultEvent] = []
        self._subscribers: List[Callable[[VaultEvent], None]] = []

    def subscribe(self, callback: Callable[[VaultEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[VaultEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, event_type: str, **payload: Any) -> VaultEvent:
        event = VaultEvent(
            event_type=event_type,
            payload=payload,
            sequence=len(self.events),
        )
        self.events.append(event)

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as exc:  # subscribers are untrusted observers
                logger.error(
                    "Event subscriber failed",
                    extra={
                        "event": "vault.subscriber_failed",
                        "event_type": event_type,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                    exc_info=True,
                )
        return event

    def of_type(self, event_type: str) -> List[VaultEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def __len__(self) -> int:
        return len(self.events)
