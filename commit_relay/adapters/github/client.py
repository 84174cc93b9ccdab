"""GitHub REST client using aiohttp: implements CommitSourcePort."""

import asyncio
import sys
from typing import Any, List, Optional

import aiohttp
from pydantic import ValidationError

from commit_relay.adapters.github.schemas import (
    GitHubCommitDetail,
    GitHubCommitSummary,
    GitHubRepository,
)
from commit_relay.domain.models import Commit, CommitDetails, RepositoryTarget
from commit_relay.exceptions import GitHubAPIError

GITHUB_API_BASE = "https://api.github.com"


def _log(msg: str):
    print(msg, file=sys.stderr)


class GitHubClient:
    """Async GitHub API client.

    One instance is shared by every poller; it owns a single
    aiohttp.ClientSession unless one is passed in.
    """

    def __init__(
        self,
        token: str = "",
        user_agent: str = "commit-relay",
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
        max_retries: int = 3,
    ):
        self._token = token
        self._user_agent = user_agent
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._max_retries = max(1, max_retries)

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    def _headers(self) -> dict:
        headers = {
            "User-Agent": self._user_agent,
            "Accept": "application/vnd.github+json",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_json(self, path: str, params: Optional[dict] = None) -> Any:
        url = f"{GITHUB_API_BASE}{path}"
        for attempt in range(self._max_retries):
            last_attempt = attempt == self._max_retries - 1
            try:
                session = self._get_session()
                async with session.get(url, headers=self._headers(), params=params) as resp:
                    remaining = resp.headers.get("X-RateLimit-Remaining")
                    reset = resp.headers.get("X-RateLimit-Reset")
                    if resp.status == 429 or (resp.status == 403 and remaining == "0"):
                        if resp.status == 429 and not last_attempt:
                            await asyncio.sleep(min(2 ** attempt, 30))
                            continue
                        raise GitHubAPIError(
                            f"Rate limited ({resp.status}) on {path}",
                            status_code=resp.status,
                            rate_limit_reset=int(reset) if reset and reset.isdigit() else None,
                        )

                    if resp.status >= 400:
                        body = await resp.text()
                        raise GitHubAPIError(f"HTTP {resp.status} on {path}: {body[:200]}", status_code=resp.status)

                    return await resp.json()

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if last_attempt:
                    raise GitHubAPIError(f"Request to {path} failed: {e or type(e).__name__}") from e
                await asyncio.sleep(min(2 ** attempt, 30))

        raise GitHubAPIError(f"Max retries exceeded for {path}")

    async def fetch_latest_commits(self, target: RepositoryTarget, limit: int = 20) -> List[Commit]:
        """Most recent commits on the default branch, newest-first."""
        data = await self._get_json(
            f"/repos/{target.owner}/{target.name}/commits",
            params={"per_page": str(min(limit, 100)), "page": "1"},
        )
        if not isinstance(data, list):
            raise GitHubAPIError(f"Unexpected commit list payload for {target.key}")
        try:
            commits = [GitHubCommitSummary.model_validate(item).to_commit() for item in data]
        except ValidationError as e:
            raise GitHubAPIError(f"Malformed commit list for {target.key}: {e.error_count()} error(s)") from e
        _log(f"[github:{target.key}] fetched {len(commits)} commit(s)")
        return commits

    async def fetch_commit_details(self, target: RepositoryTarget, commit_id: str) -> CommitDetails:
        data = await self._get_json(f"/repos/{target.owner}/{target.name}/commits/{commit_id}")
        try:
            detail = GitHubCommitDetail.model_validate(data)
        except ValidationError as e:
            raise GitHubAPIError(f"Malformed commit detail for {commit_id[:7]}: {e.error_count()} error(s)") from e
        return detail.to_details()

    async def get_repository_info(self, target: RepositoryTarget) -> GitHubRepository:
        """Repository metadata, or a static stand-in when GitHub is unreachable."""
        try:
            data = await self._get_json(f"/repos/{target.owner}/{target.name}")
            return GitHubRepository.model_validate(data)
        except (GitHubAPIError, ValidationError) as e:
            _log(f"[github:{target.key}] repository info unavailable: {e}")
            return GitHubRepository(
                name=target.name,
                full_name=target.key,
                description=target.label,
                html_url=f"https://github.com/{target.key}",
                default_branch="main",
            )
