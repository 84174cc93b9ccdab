"""Domain data models: pure Python dataclasses."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class RepositoryTarget:
    """A watched repository and the channel its notifications go to."""

    owner: str
    name: str
    channel_id: int
    display_name: str = ""

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def label(self) -> str:
        return self.display_name or self.name


@dataclass
class CommitAuthor:
    name: str
    email: str = ""
    avatar_url: Optional[str] = None


@dataclass
class CommitStats:
    additions: int = 0
    deletions: int = 0
    total: int = 0


@dataclass
class Commit:
    id: str
    message: str
    author: CommitAuthor
    timestamp: str  # ISO 8601 as reported by the source
    url: str = ""
    added: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    stats: CommitStats = field(default_factory=CommitStats)

    @property
    def short_id(self) -> str:
        return self.id[:7]


@dataclass
class CommitDetails:
    """File-level change data for a single commit."""

    added: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    stats: CommitStats = field(default_factory=CommitStats)


@dataclass
class Cursor:
    """Last notified commit for a repository."""

    repo_key: str
    last_commit_id: str
    last_updated: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class EmbedField:
    name: str
    value: str
    inline: bool = False


@dataclass
class EmbedAuthor:
    name: str
    icon_url: Optional[str] = None


@dataclass
class NotificationPayload:
    """Structured notification, independent of the chat platform.

    ``commit_id`` carries the full id of the newest commit the payload
    describes. It is never rendered.
    """

    color: int
    title: str
    description: str
    footer: str
    timestamp: str
    url: Optional[str] = None
    author: Optional[EmbedAuthor] = None
    fields: List[EmbedField] = field(default_factory=list)
    commit_id: Optional[str] = None


@dataclass
class DetectionResult:
    commits: List[Commit] = field(default_factory=list)
    anomaly: bool = False


@dataclass
class CycleResult:
    """Outcome of one poll cycle for one repository."""

    repo_key: str
    success: bool
    detected: int = 0
    delivered: int = 0
    cursor: Optional[str] = None
    anomaly: bool = False
    skipped: bool = False
    error: Optional[str] = None
    finished_at: str = ""
