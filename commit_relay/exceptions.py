"""Exceptions raised across the relay pipeline."""

from typing import Optional


class CommitRelayError(Exception):
    """Base error for the commit relay."""


class ConfigError(CommitRelayError):
    """Invalid or incomplete configuration."""


class GitHubAPIError(CommitRelayError):
    """Error from the GitHub REST API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        rate_limit_reset: Optional[int] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.rate_limit_reset = rate_limit_reset  # Unix timestamp when the limit resets
        super().__init__(message)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code in (403, 429) and self.rate_limit_reset is not None


class CursorWriteError(CommitRelayError):
    """Persisting a cursor failed. Already-delivered notifications stand."""

    def __init__(self, repo_key: str, commit_id: str, reason: str):
        self.repo_key = repo_key
        self.commit_id = commit_id
        self.reason = reason
        super().__init__(f"cursor write failed for {repo_key} at {commit_id[:7]}: {reason}")
