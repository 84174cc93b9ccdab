"""Commit notification formatting.

Pure functions: Commit (or a batch of commits) → NotificationPayload /
plain text. No I/O, no platform types.
"""

import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from commit_relay.domain.models import (
    Commit,
    EmbedAuthor,
    EmbedField,
    NotificationPayload,
    RepositoryTarget,
)

TITLE_LIMIT = 100
MAX_FILE_LINES = 10
MAX_COMMIT_LINES = 10
FIELD_VALUE_LIMIT = 1024  # Discord rejects longer embed field values
LINE_LIMIT = 120
FOOTER_SEPARATOR = " • "

_DIFF_OPEN = "```diff\n"
_DIFF_CLOSE = "```"

COLOR_ADDITIONS = 0x28A745  # green
COLOR_DELETIONS = 0xDC3545  # red
COLOR_MIXED = 0xFFC107  # amber
COLOR_MODIFIED = 0x6F42C1  # violet

NO_CHANGES = "No changes"
NO_FILES = "No files changed"

_FOOTER_RE = re.compile(r"^([0-9a-fA-F]{7,40})" + re.escape(FOOTER_SEPARATOR))


def format_commit_title(message: str) -> str:
    """First line of the commit message, capped at 100 characters."""
    title = (message or "").split("\n", 1)[0].rstrip("\r")
    if len(title) > TITLE_LIMIT:
        return title[: TITLE_LIMIT - 3] + "..."
    return title


def calculate_total_changes(commits: Sequence[Commit]) -> Dict[str, int]:
    """File counts by change type across ``commits``."""
    added = sum(len(c.added) for c in commits)
    removed = sum(len(c.removed) for c in commits)
    modified = sum(len(c.modified) for c in commits)
    return {
        "added": added,
        "removed": removed,
        "modified": modified,
        "total": added + removed + modified,
    }


def format_change_stats(added: int, removed: int, modified: int) -> str:
    parts = []
    if added > 0:
        parts.append(f"+{added}")
    if removed > 0:
        parts.append(f"-{removed}")
    if modified > 0:
        parts.append(f"~{modified}")
    return " ".join(parts) if parts else NO_CHANGES


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def format_file_lines(commit: Commit, budget: int = FIELD_VALUE_LIMIT) -> List[str]:
    """``+``/``~``/``-`` prefixed paths, truncated to 10 entries plus a tail line.

    Fewer entries are shown when the joined lines would exceed ``budget``.
    """
    entries = (
        [f"+ {p}" for p in commit.added]
        + [f"~ {p}" for p in commit.modified]
        + [f"- {p}" for p in commit.removed]
    )
    shown = [_clip(e, LINE_LIMIT) for e in entries[:MAX_FILE_LINES]]
    while True:
        remaining = len(entries) - len(shown)
        lines = shown + ([f"... and {remaining} more"] if remaining else [])
        if not shown or len("\n".join(lines)) <= budget:
            return lines
        shown.pop()


def format_file_changes(commit: Commit) -> str:
    lines = format_file_lines(commit, FIELD_VALUE_LIMIT - len(_DIFF_OPEN) - len(_DIFF_CLOSE))
    if not lines:
        return NO_FILES
    return _DIFF_OPEN + "\n".join(lines) + _DIFF_CLOSE


def get_commit_color(commit: Commit) -> int:
    """Pick a color from which change types are present, not how many."""
    has_additions = bool(commit.added)
    has_deletions = bool(commit.removed)
    if has_additions and not has_deletions:
        return COLOR_ADDITIONS
    if has_deletions and not has_additions:
        return COLOR_DELETIONS
    if has_additions and has_deletions:
        return COLOR_MIXED
    return COLOR_MODIFIED


def format_timestamp(timestamp: str) -> str:
    """Render an ISO 8601 timestamp as ``YYYY-MM-DD HH:MM UTC``."""
    try:
        dt = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return timestamp or "unknown time"
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def format_footer(commit: Commit) -> str:
    return f"{commit.short_id}{FOOTER_SEPARATOR}{format_timestamp(commit.timestamp)}"


def parse_footer_commit_id(footer: str) -> Optional[str]:
    """Extract the abbreviated commit id from a rendered footer."""
    m = _FOOTER_RE.match(footer or "")
    return m.group(1).lower() if m else None


def _author_block(commit: Commit) -> Optional[EmbedAuthor]:
    if not commit.author.name:
        return None
    return EmbedAuthor(name=commit.author.name, icon_url=commit.author.avatar_url)


def create_commit_embed(
    commit: Commit,
    target: RepositoryTarget,
    branch: Optional[str] = None,
) -> NotificationPayload:
    """Payload for a single commit."""
    fields = []
    if branch:
        fields.append(EmbedField(name="🌿 Branch", value=f"`{_clip(branch, LINE_LIMIT)}`", inline=True))
    fields.append(
        EmbedField(
            name="📊 Changes",
            value=format_change_stats(len(commit.added), len(commit.removed), len(commit.modified)),
            inline=True,
        )
    )
    if commit.stats.total:
        fields.append(
            EmbedField(
                name="📈 Lines",
                value=f"+{commit.stats.additions} / -{commit.stats.deletions}",
                inline=True,
            )
        )
    fields.append(EmbedField(name="🔧 Files", value=format_file_changes(commit), inline=False))

    return NotificationPayload(
        color=get_commit_color(commit),
        title=f"📝 New commit to {target.label}",
        url=commit.url or None,
        author=_author_block(commit),
        description=format_commit_title(commit.message),
        fields=fields,
        footer=format_footer(commit),
        timestamp=commit.timestamp,
        commit_id=commit.id,
    )


def format_commit_list(commits: Sequence[Commit]) -> str:
    """Newest ``MAX_COMMIT_LINES`` commits as ``short title`` lines, oldest-first.

    Older commits are dropped first when the list would exceed the field limit.
    """
    shown = list(commits[-MAX_COMMIT_LINES:])
    while True:
        hidden = len(commits) - len(shown)
        lines = [f"... {hidden} earlier"] if hidden else []
        lines += [f"`{c.short_id}` {format_commit_title(c.message)}" for c in shown]
        value = "\n".join(lines)
        if len(shown) <= 1 or len(value) <= FIELD_VALUE_LIMIT:
            return value
        shown.pop(0)


def create_push_embed(
    commits: Sequence[Commit],
    target: RepositoryTarget,
    branch: Optional[str] = None,
) -> Optional[NotificationPayload]:
    """Aggregate payload for a batch of commits, ordered oldest-first.

    Returns None for an empty batch.
    """
    if not commits:
        return None
    latest = commits[-1]
    totals = calculate_total_changes(commits)

    fields = [
        EmbedField(name="🌿 Branch", value=f"`{_clip(branch or 'unknown', LINE_LIMIT)}`", inline=True),
        EmbedField(
            name="📊 Changes",
            value=format_change_stats(totals["added"], totals["removed"], totals["modified"]),
            inline=True,
        ),
        EmbedField(name="🔧 Files", value=format_file_changes(latest), inline=False),
    ]
    if len(commits) > 1:
        fields.append(
            EmbedField(name=f"🧾 Commits ({len(commits)})", value=format_commit_list(commits), inline=False)
        )

    return NotificationPayload(
        color=get_commit_color(latest),
        title=f"📝 New commit to {target.label}",
        url=latest.url or None,
        author=_author_block(latest),
        description=format_commit_title(latest.message),
        fields=fields,
        footer=format_footer(latest),
        timestamp=latest.timestamp,
        commit_id=latest.id,
    )


def create_simple_commit_message(commit: Optional[Commit], target: RepositoryTarget) -> str:
    """Plain-text fallback when a structured payload cannot be sent."""
    if commit is None:
        return "New activity on repository (no commit details)"
    title = format_commit_title(commit.message)
    return f"🔨 **{commit.author.name}** pushed to **{target.label}**:\n\"{title}\"\n{commit.url}"
