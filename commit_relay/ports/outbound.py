"""Outbound ports: interfaces for external system adapters."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, runtime_checkable

from commit_relay.domain.models import (
    Commit,
    CommitDetails,
    Cursor,
    NotificationPayload,
    RepositoryTarget,
)


@dataclass
class DeliveryResult:
    """Unified result type for delivery operations."""

    success: bool
    message_id: Optional[int] = None
    error: Optional[str] = None
    retry_as_text: bool = False  # structured form rejected, plain text may still go through


@runtime_checkable
class CommitSourcePort(Protocol):
    """Interface for a commit-history source."""

    async def fetch_latest_commits(self, target: RepositoryTarget, limit: int) -> List[Commit]: ...

    async def fetch_commit_details(self, target: RepositoryTarget, commit_id: str) -> CommitDetails: ...


@runtime_checkable
class CursorStorePort(Protocol):
    """Interface for persisted per-repository cursors."""

    def get(self, repo_key: str) -> Optional[str]: ...
    def set(self, repo_key: str, commit_id: str, metadata: Optional[Dict[str, str]] = None) -> None: ...
    def get_info(self, repo_key: str) -> Optional[Cursor]: ...
    def reset(self, repo_key: str) -> bool: ...


@runtime_checkable
class NotificationPort(Protocol):
    """Interface for sending notifications to channels."""

    async def send_embed(self, channel_id: int, payload: NotificationPayload) -> DeliveryResult: ...
    async def send_text(self, channel_id: int, text: str) -> DeliveryResult: ...
    async def last_delivered_commit(self, channel_id: int) -> Optional[str]: ...
