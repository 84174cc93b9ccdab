"""Request/response models for the webhook and status routes."""

from typing import Dict, List, Optional

from pydantic import BaseModel

from commit_relay.domain.models import Commit, CommitAuthor


class PushAuthor(BaseModel):
    name: str = "unknown"
    email: str = ""
    username: Optional[str] = None


class PushCommit(BaseModel):
    id: str
    message: str = ""
    timestamp: str = ""
    url: str = ""
    author: PushAuthor = PushAuthor()
    added: List[str] = []
    modified: List[str] = []
    removed: List[str] = []

    def to_commit(self) -> Commit:
        return Commit(
            id=self.id,
            message=self.message,
            author=CommitAuthor(name=self.author.name, email=self.author.email),
            timestamp=self.timestamp,
            url=self.url,
            added=list(self.added),
            modified=list(self.modified),
            removed=list(self.removed),
        )


class PushRepository(BaseModel):
    name: str
    full_name: Optional[str] = None


class PushEvent(BaseModel):
    """Subset of GitHub's push event payload."""

    ref: Optional[str] = None
    repository: PushRepository
    commits: List[PushCommit] = []

    @property
    def branch(self) -> str:
        if not self.ref:
            return "unknown"
        return self.ref.replace("refs/heads/", "", 1)


class WebhookResponse(BaseModel):
    delivered: bool
    commits: int = 0
    error: Optional[str] = None


class CursorStatus(BaseModel):
    last_commit_id: str
    last_updated: str
    metadata: Dict[str, str] = {}


class CycleStatus(BaseModel):
    success: bool
    skipped: bool = False
    detected: int = 0
    delivered: int = 0
    anomaly: bool = False
    error: Optional[str] = None
    finished_at: str = ""


class RepoStatus(BaseModel):
    repo: str
    display_name: str
    channel_id: int
    cursor: Optional[CursorStatus] = None
    last_cycle: Optional[CycleStatus] = None


class StatusResponse(BaseModel):
    scheduler_running: bool
    repos: List[RepoStatus]
