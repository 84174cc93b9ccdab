"""JSON file-based cursor storage: implements CursorStorePort."""

import json
import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from commit_relay.domain.models import Cursor
from commit_relay.exceptions import CursorWriteError


def _log(msg: str):
    print(msg, file=sys.stderr)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JsonCursorStore:
    """One JSON record per repository, keyed by ``owner/name``.

    Reads never raise: a missing or unreadable record means "no cursor".
    Writes are atomic and raise CursorWriteError on failure.
    """

    def __init__(self, storage_dir: str = "data"):
        self._storage_dir = Path(storage_dir)

    def _ensure_dir(self) -> None:
        self._storage_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, repo_key: str) -> Path:
        safe = repo_key.replace("/", "__")
        return self._storage_dir / f"{safe}.json"

    def _read(self, repo_key: str) -> Optional[dict]:
        path = self._path(repo_key)
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            _log(f"[cursor:{repo_key}] unreadable state ({e}), treating as first run")
            return None
        if not isinstance(raw, dict):
            _log(f"[cursor:{repo_key}] unexpected state shape, treating as first run")
            return None
        return raw

    def get(self, repo_key: str) -> Optional[str]:
        """Return the last notified commit id, or None if there is none."""
        raw = self._read(repo_key)
        if raw is None:
            return None
        sha = raw.get("lastCommitSha")
        if not isinstance(sha, str) or not sha:
            return None
        return sha

    def get_info(self, repo_key: str) -> Optional[Cursor]:
        raw = self._read(repo_key)
        if raw is None or not raw.get("lastCommitSha"):
            return None
        metadata = raw.get("metadata")
        return Cursor(
            repo_key=repo_key,
            last_commit_id=str(raw["lastCommitSha"]),
            last_updated=str(raw.get("lastUpdated", "")),
            metadata={k: str(v) for k, v in metadata.items()} if isinstance(metadata, dict) else {},
        )

    def set(self, repo_key: str, commit_id: str, metadata: Optional[Dict[str, str]] = None) -> None:
        """Persist ``commit_id`` as the cursor for ``repo_key``."""
        metadata = metadata or {}
        record = {
            "repo": repo_key,
            "lastCommitSha": commit_id,
            "lastUpdated": _now_iso(),
            "metadata": {
                "author": metadata.get("author") or "unknown",
                "message": metadata.get("message") or "unknown",
                "timestamp": metadata.get("timestamp") or _now_iso(),
            },
        }
        content = json.dumps(record, ensure_ascii=False, indent=2)
        try:
            self._ensure_dir()
            path = self._path(repo_key)
            # Atomic write
            fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.replace(tmp_path, str(path))
            except BaseException:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
        except OSError as e:
            raise CursorWriteError(repo_key, commit_id, str(e)) from e
        _log(f"[cursor:{repo_key}] advanced to {commit_id[:7]}")

    def reset(self, repo_key: str) -> bool:
        """Delete the stored cursor. Returns True if one existed."""
        try:
            self._path(repo_key).unlink()
        except FileNotFoundError:
            return False
        _log(f"[cursor:{repo_key}] tracking reset")
        return True
