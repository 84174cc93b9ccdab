"""Pydantic models for the GitHub REST responses the relay consumes.

External JSON is validated here, then converted to domain dataclasses.
"""

from typing import List, Optional

from pydantic import BaseModel

from commit_relay.domain.models import Commit, CommitAuthor, CommitDetails, CommitStats


class GitHubGitActor(BaseModel):
    name: str = "unknown"
    email: str = ""
    date: str = ""


class GitHubGitCommit(BaseModel):
    message: str = ""
    author: Optional[GitHubGitActor] = None


class GitHubUser(BaseModel):
    login: str = ""
    avatar_url: Optional[str] = None


class GitHubCommitSummary(BaseModel):
    sha: str
    html_url: str = ""
    commit: GitHubGitCommit
    author: Optional[GitHubUser] = None  # null when the email maps to no GitHub account

    def to_commit(self) -> Commit:
        actor = self.commit.author or GitHubGitActor()
        return Commit(
            id=self.sha,
            message=self.commit.message,
            author=CommitAuthor(
                name=actor.name,
                email=actor.email,
                avatar_url=self.author.avatar_url if self.author else None,
            ),
            timestamp=actor.date,
            url=self.html_url,
        )


class GitHubCommitFile(BaseModel):
    filename: str
    status: str = "modified"


class GitHubCommitStats(BaseModel):
    additions: int = 0
    deletions: int = 0
    total: int = 0


class GitHubCommitDetail(BaseModel):
    sha: str = ""
    files: List[GitHubCommitFile] = []
    stats: Optional[GitHubCommitStats] = None

    def to_details(self) -> CommitDetails:
        details = CommitDetails()
        for f in self.files:
            if f.status in ("added", "copied"):
                details.added.append(f.filename)
            elif f.status == "removed":
                details.removed.append(f.filename)
            else:
                # modified, renamed, changed
                details.modified.append(f.filename)
        stats = self.stats or GitHubCommitStats()
        details.stats = CommitStats(
            additions=stats.additions,
            deletions=stats.deletions,
            total=stats.total,
        )
        return details


class GitHubRepository(BaseModel):
    name: str
    full_name: str
    description: Optional[str] = None
    html_url: str = ""
    default_branch: str = "main"
