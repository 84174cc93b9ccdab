"""Port interfaces (Hexagonal Architecture)."""

from commit_relay.ports.outbound import (
    CommitSourcePort,
    CursorStorePort,
    DeliveryResult,
    NotificationPort,
)

__all__ = [
    "CommitSourcePort",
    "CursorStorePort",
    "DeliveryResult",
    "NotificationPort",
]
