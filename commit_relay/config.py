"""Configuration and watched repository targets."""

__version__ = "0.1.0"

import os
import sys
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

from commit_relay.domain.models import RepositoryTarget
from commit_relay.exceptions import ConfigError

load_dotenv()

_stderr_print = lambda *a, **kw: print(*a, **kw, file=sys.stderr)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        _stderr_print(f"Invalid {name}={raw!r}, falling back to {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _stderr_print(f"Invalid {name}={raw!r}, falling back to {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


MIN_POLL_INTERVAL_SECONDS = 10.0

CONFIG = {
    "port": _env_int("PORT", 3000),
    # Discord
    "discord_token": os.getenv("DISCORD_TOKEN", ""),
    "discord_channel_id": _env_int("DISCORD_CHANNEL_ID", 0),
    # GitHub
    "watch_repos": os.getenv("WATCH_REPOS", ""),
    "github_token": os.getenv("GITHUB_TOKEN", ""),
    "github_user_agent": os.getenv("GITHUB_USER_AGENT", "commit-relay"),
    "github_request_timeout": _env_float("GITHUB_REQUEST_TIMEOUT", 30.0),
    "github_webhook_secret": os.getenv("GITHUB_WEBHOOK_SECRET", ""),
    "commit_window_size": _env_int("COMMIT_WINDOW_SIZE", 20),
    # Polling
    "poll_interval_seconds": _env_float("POLL_INTERVAL_SECONDS", 180.0),
    "poll_initial_delay_seconds": _env_float("POLL_INITIAL_DELAY_SECONDS", 5.0),
    "poll_stagger_seconds": _env_float("POLL_STAGGER_SECONDS", 10.0),
    "poll_cycle_timeout": _env_float("POLL_CYCLE_TIMEOUT", 0.0),
    # Cursor storage
    "cursor_state_dir": os.getenv("CURSOR_STATE_DIR", "data"),
    "cursor_history_fallback": _env_bool("CURSOR_HISTORY_FALLBACK", False),
}


def parse_repo_targets(entries: str, default_channel_id: int = 0) -> List[RepositoryTarget]:
    """Parse ``owner/name[@channel][=Display Name]`` entries separated by commas.

    Raises ConfigError for malformed entries or a missing channel.
    """
    targets: List[RepositoryTarget] = []
    seen = set()
    for raw in entries.split(","):
        entry = raw.strip()
        if not entry:
            continue

        display_name = ""
        if "=" in entry:
            entry, display_name = (part.strip() for part in entry.split("=", 1))

        channel_id = default_channel_id
        if "@" in entry:
            entry, channel_raw = (part.strip() for part in entry.split("@", 1))
            try:
                channel_id = int(channel_raw)
            except ValueError:
                raise ConfigError(f"Invalid channel id in WATCH_REPOS entry: {raw.strip()!r}")

        owner, sep, name = entry.partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ConfigError(f"Expected owner/name in WATCH_REPOS entry: {raw.strip()!r}")
        if not channel_id:
            raise ConfigError(f"No destination channel for {entry!r} (set DISCORD_CHANNEL_ID)")

        target = RepositoryTarget(
            owner=owner,
            name=name,
            channel_id=channel_id,
            display_name=display_name or name,
        )
        if target.key in seen:
            raise ConfigError(f"Repository listed twice in WATCH_REPOS: {target.key}")
        seen.add(target.key)
        targets.append(target)
    return targets


# ── Typed config ────────────────────────────────────────────


@dataclass
class GitHubConfig:
    token: str = ""
    user_agent: str = "commit-relay"
    request_timeout: float = 30.0
    window_size: int = 20
    webhook_secret: str = ""  # empty = accept unsigned webhook deliveries


@dataclass
class PollingConfig:
    interval_seconds: float = 180.0
    initial_delay_seconds: float = 5.0
    stagger_seconds: float = 10.0
    cycle_timeout: float = 0.0  # 0 = no timeout beyond the transport's own
    history_fallback: bool = False


@dataclass
class DiscordConfig:
    token: str = ""
    default_channel_id: int = 0


@dataclass
class AppConfig:
    """Typed configuration built from CONFIG."""

    port: int = 3000
    state_dir: str = "data"
    targets: List[RepositoryTarget] = field(default_factory=list)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create AppConfig from environment variables."""
        return cls(
            port=CONFIG["port"],
            state_dir=CONFIG["cursor_state_dir"],
            targets=parse_repo_targets(CONFIG["watch_repos"], CONFIG["discord_channel_id"]),
            github=GitHubConfig(
                token=CONFIG["github_token"],
                user_agent=CONFIG["github_user_agent"],
                request_timeout=CONFIG["github_request_timeout"],
                window_size=max(1, CONFIG["commit_window_size"]),
                webhook_secret=CONFIG["github_webhook_secret"],
            ),
            polling=PollingConfig(
                interval_seconds=max(MIN_POLL_INTERVAL_SECONDS, CONFIG["poll_interval_seconds"]),
                initial_delay_seconds=max(0.0, CONFIG["poll_initial_delay_seconds"]),
                stagger_seconds=max(0.0, CONFIG["poll_stagger_seconds"]),
                cycle_timeout=max(0.0, CONFIG["poll_cycle_timeout"]),
                history_fallback=CONFIG["cursor_history_fallback"],
            ),
            discord=DiscordConfig(
                token=CONFIG["discord_token"],
                default_channel_id=CONFIG["discord_channel_id"],
            ),
        )
