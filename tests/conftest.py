"""Shared fixtures: commits, targets, in-memory port fakes."""

import tempfile
from typing import Dict, List, Optional

import pytest

from commit_relay.domain.models import (
    Commit,
    CommitAuthor,
    CommitDetails,
    RepositoryTarget,
)
from commit_relay.exceptions import GitHubAPIError
from commit_relay.ports.outbound import DeliveryResult


def build_commit(
    sha: str,
    message: str = "Update things",
    added=None,
    modified=None,
    removed=None,
    timestamp: str = "2025-01-15T09:30:00Z",
) -> Commit:
    full = (sha * 40)[:40] if len(sha) < 40 else sha
    return Commit(
        id=full,
        message=message,
        author=CommitAuthor(name="Ada", email="ada@example.com", avatar_url="https://avatars.example/ada.png"),
        timestamp=timestamp,
        url=f"https://github.com/acme/widgets/commit/{full}",
        added=list(added or []),
        modified=list(modified or []),
        removed=list(removed or []),
    )


class FakeSource:
    """CommitSourcePort fake returning a fixed newest-first window."""

    def __init__(self, window: List[Commit], details: Optional[Dict[str, CommitDetails]] = None):
        self.window = window
        self.details = details or {}
        self.failing_details: set = set()
        self.window_error: Optional[Exception] = None
        self.window_calls = 0
        self.detail_calls: List[str] = []

    async def fetch_latest_commits(self, target, limit):
        self.window_calls += 1
        if self.window_error:
            raise self.window_error
        return list(self.window[:limit])

    async def fetch_commit_details(self, target, commit_id):
        self.detail_calls.append(commit_id)
        if commit_id in self.failing_details:
            raise GitHubAPIError("HTTP 502 on detail", status_code=502)
        return self.details.get(commit_id, CommitDetails())


class FakeNotifier:
    """NotificationPort fake recording what was sent."""

    def __init__(self):
        self.embeds = []
        self.texts = []
        self.embed_result = DeliveryResult(success=True, message_id=1)
        self.text_result = DeliveryResult(success=True, message_id=2)
        self.fail_on_call: Optional[int] = None  # raise on the Nth send_embed (1-based)
        self.history_ref: Optional[str] = None

    async def send_embed(self, channel_id, payload):
        if self.fail_on_call is not None and len(self.embeds) + 1 == self.fail_on_call:
            raise RuntimeError("gateway hiccup")
        self.embeds.append((channel_id, payload))
        return self.embed_result

    async def send_text(self, channel_id, text):
        self.texts.append((channel_id, text))
        return self.text_result

    async def last_delivered_commit(self, channel_id):
        return self.history_ref


@pytest.fixture
def tmp_dir():
    """Create a temporary directory for cursor storage."""
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def target():
    return RepositoryTarget(owner="acme", name="widgets", channel_id=4242, display_name="Widgets")


@pytest.fixture
def window():
    """Newest-first window c5..c1."""
    return [build_commit(f"c{i}", message=f"commit {i}") for i in range(5, 0, -1)]
