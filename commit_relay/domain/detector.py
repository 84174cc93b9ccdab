"""Change detection: which commits in the recent window are new."""

import sys
from typing import List, Optional, Sequence

from commit_relay.domain.models import Commit, DetectionResult, RepositoryTarget
from commit_relay.ports.outbound import CommitSourcePort

DEFAULT_WINDOW_SIZE = 20


def _log(msg: str):
    print(msg, file=sys.stderr)


def select_new_commits(window: Sequence[Commit], cursor: Optional[str]) -> DetectionResult:
    """Pick the commits newer than ``cursor`` from a newest-first window.

    Returns them oldest-first. Without a cursor, or when the cursor has
    fallen out of the window, only the newest commit is returned.
    """
    if not window:
        return DetectionResult()

    if not cursor:
        return DetectionResult(commits=[window[0]])

    index = next((i for i, c in enumerate(window) if c.id == cursor), -1)
    if index == -1:
        return DetectionResult(commits=[window[0]], anomaly=True)

    newer = list(window[:index])
    newer.reverse()
    return DetectionResult(commits=newer)


def resolve_short_id(window: Sequence[Commit], short_id: str) -> Optional[str]:
    """Map an abbreviated commit id to a full id by unique prefix match."""
    if not short_id:
        return None
    matches = [c.id for c in window if c.id.startswith(short_id)]
    if len(matches) != 1:
        return None
    return matches[0]


class ChangeDetector:
    """Fetches the recent window for a repository and applies select_new_commits."""

    def __init__(self, source: CommitSourcePort, window_size: int = DEFAULT_WINDOW_SIZE):
        self._source = source
        self._window_size = window_size

    async def fetch_window(self, target: RepositoryTarget) -> List[Commit]:
        return await self._source.fetch_latest_commits(target, self._window_size)

    async def detect(
        self,
        target: RepositoryTarget,
        cursor: Optional[str],
        window: Optional[List[Commit]] = None,
    ) -> DetectionResult:
        """Return new commits for ``target`` in chronological order.

        Source errors propagate to the caller.
        """
        if window is None:
            window = await self.fetch_window(target)
        result = select_new_commits(window, cursor)

        if not cursor and result.commits:
            _log(f"[detector:{target.key}] no cursor, seeding with latest {result.commits[0].short_id}")
        elif result.anomaly:
            _log(
                f"[detector:{target.key}] cursor {cursor[:7]} not in last {len(window)} commits "
                f"(history rewritten or window too small), resuming at {result.commits[0].short_id}"
            )
        else:
            _log(f"[detector:{target.key}] {len(result.commits)} new commit(s)")
        return result
