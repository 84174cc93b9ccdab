"""Commit enrichment: file-level change sets and stats per commit."""

import sys
from dataclasses import replace
from typing import List

from commit_relay.domain.models import Commit, CommitStats, RepositoryTarget
from commit_relay.ports.outbound import CommitSourcePort


def _log(msg: str):
    print(msg, file=sys.stderr)


class DetailEnricher:
    """Adds per-file changes to commits, degrading to empty details on failure.

    Enrichment is a secondary call: a failure here must never drop the
    commit or fail the cycle.
    """

    def __init__(self, source: CommitSourcePort):
        self._source = source

    async def enrich(self, target: RepositoryTarget, commit: Commit) -> Commit:
        try:
            details = await self._source.fetch_commit_details(target, commit.id)
        except Exception as e:
            _log(f"[enricher:{target.key}] details for {commit.short_id} unavailable: {e}")
            return replace(commit, added=[], modified=[], removed=[], stats=CommitStats())

        return replace(
            commit,
            added=list(details.added),
            modified=list(details.modified),
            removed=list(details.removed),
            stats=details.stats,
        )

    async def enrich_all(self, target: RepositoryTarget, commits: List[Commit]) -> List[Commit]:
        """Enrich in order, one request at a time."""
        return [await self.enrich(target, c) for c in commits]
