"""Domain layer: pure Python, no framework dependencies."""

from commit_relay.domain.models import (
    Commit,
    CommitAuthor,
    CommitDetails,
    CommitStats,
    Cursor,
    CycleResult,
    DetectionResult,
    EmbedAuthor,
    EmbedField,
    NotificationPayload,
    RepositoryTarget,
)
from commit_relay.domain.detector import ChangeDetector, select_new_commits
from commit_relay.domain.enricher import DetailEnricher
from commit_relay.domain.formatter import create_commit_embed, create_push_embed, create_simple_commit_message
from commit_relay.domain.poller import CommitPoller, PollScheduler

__all__ = [
    "Commit",
    "CommitAuthor",
    "CommitDetails",
    "CommitStats",
    "Cursor",
    "CycleResult",
    "DetectionResult",
    "EmbedAuthor",
    "EmbedField",
    "NotificationPayload",
    "RepositoryTarget",
    "ChangeDetector",
    "select_new_commits",
    "DetailEnricher",
    "create_commit_embed",
    "create_push_embed",
    "create_simple_commit_message",
    "CommitPoller",
    "PollScheduler",
]
