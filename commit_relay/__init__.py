"""Commit Relay: GitHub commit notifications for Discord channels."""

from commit_relay.config import CONFIG, AppConfig, parse_repo_targets
from commit_relay.exceptions import CommitRelayError, ConfigError, CursorWriteError, GitHubAPIError
from commit_relay.domain.models import Commit, CycleResult, NotificationPayload, RepositoryTarget
from commit_relay.domain.poller import CommitPoller, PollScheduler

__all__ = [
    "CONFIG",
    "AppConfig",
    "parse_repo_targets",
    "CommitRelayError",
    "ConfigError",
    "CursorWriteError",
    "GitHubAPIError",
    "Commit",
    "CycleResult",
    "NotificationPayload",
    "RepositoryTarget",
    "CommitPoller",
    "PollScheduler",
]
