"""Poll cycles and their scheduling.

CommitPoller runs one detect → enrich → format → deliver → persist cycle.
PollScheduler fires cycles per repository on staggered repeating timers and
contains every cycle failure at the cycle boundary.
"""

import asyncio
import sys
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from commit_relay.domain.detector import ChangeDetector, resolve_short_id
from commit_relay.domain.enricher import DetailEnricher
from commit_relay.domain.formatter import (
    create_commit_embed,
    create_simple_commit_message,
    format_commit_title,
)
from commit_relay.domain.models import Commit, CycleResult, RepositoryTarget
from commit_relay.exceptions import GitHubAPIError
from commit_relay.ports.outbound import CursorStorePort, NotificationPort


def _log(msg: str):
    print(msg, file=sys.stderr)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CommitPoller:
    """Executes poll cycles against explicit source, store and sink handles."""

    def __init__(
        self,
        detector: ChangeDetector,
        enricher: DetailEnricher,
        store: CursorStorePort,
        notifier: NotificationPort,
        history_fallback: bool = False,
    ):
        self._detector = detector
        self._enricher = enricher
        self._store = store
        self._notifier = notifier
        self._history_fallback = history_fallback
        self._branches: Dict[str, str] = {}

    def remember_branch(self, repo_key: str, branch: str) -> None:
        """Branch label shown in notifications for ``repo_key``."""
        if branch:
            self._branches[repo_key] = branch

    async def _fallback_cursor(self, target: RepositoryTarget, window: List[Commit]) -> Optional[str]:
        """Recover a cursor from the channel's last delivered notification."""
        try:
            ref = await self._notifier.last_delivered_commit(target.channel_id)
        except Exception as e:
            _log(f"[poller:{target.key}] channel history unavailable: {e}")
            return None
        if not ref:
            return None
        resolved = resolve_short_id(window, ref)
        if resolved:
            _log(f"[poller:{target.key}] recovered cursor {resolved[:7]} from channel history")
        return resolved

    async def _deliver(self, target: RepositoryTarget, commit: Commit) -> bool:
        """Send one commit. Returns False when the destination is unavailable.

        Transport errors propagate.
        """
        payload = create_commit_embed(commit, target, branch=self._branches.get(target.key))
        result = await self._notifier.send_embed(target.channel_id, payload)
        if not result.success and result.retry_as_text:
            result = await self._notifier.send_text(
                target.channel_id, create_simple_commit_message(commit, target)
            )
        if not result.success:
            _log(
                f"[poller:{target.key}] destination {target.channel_id} unavailable "
                f"for {commit.short_id}: {result.error} (check channel configuration)"
            )
            return False
        return True

    def _advance(self, target: RepositoryTarget, commit: Commit, current: Optional[str]) -> None:
        if commit.id == current:
            return
        self._store.set(
            target.key,
            commit.id,
            {
                "author": commit.author.name,
                "message": format_commit_title(commit.message),
                "timestamp": commit.timestamp,
            },
        )

    async def run_cycle(self, target: RepositoryTarget) -> CycleResult:
        """One cycle for ``target``.

        Source errors, cursor write errors and delivery transport errors
        propagate; the scheduler turns them into failed results. The cursor
        is left at the last commit handled before the error.
        """
        cursor = self._store.get(target.key)
        window = await self._detector.fetch_window(target)
        if cursor is None and self._history_fallback:
            cursor = await self._fallback_cursor(target, window)

        detection = await self._detector.detect(target, cursor, window)
        if not detection.commits:
            return CycleResult(
                repo_key=target.key,
                success=True,
                cursor=cursor,
                anomaly=detection.anomaly,
                finished_at=_now_iso(),
            )

        commits = await self._enricher.enrich_all(target, detection.commits)

        delivered = 0
        for commit in commits:
            if await self._deliver(target, commit):
                delivered += 1
            # Cursor follows each handled commit; an unavailable destination counts as handled
            self._advance(target, commit, cursor)
            cursor = commit.id

        _log(f"[poller:{target.key}] delivered {delivered}/{len(commits)} notification(s)")
        return CycleResult(
            repo_key=target.key,
            success=True,
            detected=len(commits),
            delivered=delivered,
            cursor=cursor,
            anomaly=detection.anomaly,
            finished_at=_now_iso(),
        )


class PollScheduler:
    """Staggered repeating timers, one per repository.

    Each tick runs a supervised cycle. A repository whose previous cycle is
    still running skips the tick.
    """

    def __init__(
        self,
        targets: Sequence[RepositoryTarget],
        poller: CommitPoller,
        interval_seconds: float = 180.0,
        initial_delay_seconds: float = 5.0,
        stagger_seconds: float = 10.0,
        cycle_timeout: float = 0.0,
    ):
        self._targets = list(targets)
        self._poller = poller
        self._interval = interval_seconds
        self._initial_delay = initial_delay_seconds
        self._stagger = stagger_seconds
        self._cycle_timeout = cycle_timeout
        self._timers: Dict[str, asyncio.Task] = {}
        self._cycle_tasks: set = set()  # track in-flight cycle tasks for cleanup
        self._in_flight: set = set()  # repo keys currently running a cycle
        self._last_results: Dict[str, CycleResult] = {}

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._timers.values())

    @property
    def targets(self) -> List[RepositoryTarget]:
        return list(self._targets)

    def first_delay(self, index: int) -> float:
        return self._initial_delay + index * self._stagger

    def start(self) -> None:
        """Create one timer task per repository. Calling it twice is a no-op."""
        if self.running:
            return
        for index, target in enumerate(self._targets):
            self._timers[target.key] = asyncio.create_task(
                self._timer(target, self.first_delay(index))
            )
        _log(f"[scheduler] watching {len(self._targets)} repo(s), every {self._interval:g}s")

    async def stop(self) -> None:
        tasks = list(self._timers.values()) + list(self._cycle_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        self._cycle_tasks.clear()
        _log("[scheduler] stopped")

    async def _timer(self, target: RepositoryTarget, first_delay: float) -> None:
        await asyncio.sleep(first_delay)
        while True:
            task = asyncio.create_task(self.run_once(target))
            self._cycle_tasks.add(task)
            task.add_done_callback(self._cycle_tasks.discard)
            await asyncio.sleep(self._interval)

    async def run_once(self, target: RepositoryTarget) -> CycleResult:
        """Run a supervised cycle. Never raises (except on cancellation)."""
        if target.key in self._in_flight:
            _log(f"[scheduler:{target.key}] previous cycle still running, skipping tick")
            return CycleResult(repo_key=target.key, success=True, skipped=True, finished_at=_now_iso())

        self._in_flight.add(target.key)
        try:
            if self._cycle_timeout > 0:
                result = await asyncio.wait_for(self._poller.run_cycle(target), self._cycle_timeout)
            else:
                result = await self._poller.run_cycle(target)
        except asyncio.TimeoutError:
            _log(f"[scheduler:{target.key}] cycle timed out after {self._cycle_timeout:g}s, retrying next tick")
            result = CycleResult(
                repo_key=target.key, success=False, error="cycle timed out", finished_at=_now_iso()
            )
        except GitHubAPIError as e:
            if e.is_rate_limited:
                _log(f"[scheduler:{target.key}] GitHub rate limit hit, resets at {e.rate_limit_reset}; retrying next tick")
            else:
                _log(f"[scheduler:{target.key}] cycle failed ({e}), retrying next tick")
            result = CycleResult(
                repo_key=target.key, success=False, error=f"{type(e).__name__}: {e}", finished_at=_now_iso()
            )
        except Exception as e:
            _log(f"[scheduler:{target.key}] cycle failed ({type(e).__name__}: {e}), retrying next tick")
            result = CycleResult(
                repo_key=target.key, success=False, error=f"{type(e).__name__}: {e}", finished_at=_now_iso()
            )
        finally:
            self._in_flight.discard(target.key)

        self._last_results[target.key] = result
        return result

    def status(self) -> Dict[str, Optional[CycleResult]]:
        """Last cycle result per repository key (None before the first cycle)."""
        return {t.key: self._last_results.get(t.key) for t in self._targets}
