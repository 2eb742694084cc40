from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ..config import DEFAULT_KEEP, BackupConfig
from ..lib.fsops import safe_remove
from . import manifest
from .errors import BackupError, NoSessionsFound, SessionNotFound
from .manifest import ManifestEntry
from .session import SESSION_ID_RE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    directory: Path
    created_at: Optional[str]
    has_manifest: bool
    entry_count: int = 0


@dataclass(frozen=True)
class SessionInfo:
    session_id: str
    directory: Path
    created_at: str
    dotfiles_dir: str
    os: str
    arch: str
    entries: List[ManifestEntry] = field(default_factory=list)


def sort_key(session_id: str) -> Tuple[str, int, str]:
    """Order by embedded timestamp, then collision sequence, then name.

    Labels are ignored so an ``update_...`` session made after an
    ``install_...`` one is still the newer of the two.
    """
    m = SESSION_ID_RE.match(session_id)
    if not m:
        return ("", 0, session_id)
    return (m.group("ts"), int(m.group("seq") or 0), session_id)


class SessionRegistry:
    """Read-only view over the session directories under the registry root."""

    def __init__(self, config: BackupConfig) -> None:
        self.config = config
        self.root = config.registry_root

    def session_ids(self) -> List[str]:
        """Session ids oldest first. Directories not named like a session are ignored."""
        if not self.root.is_dir():
            return []
        ids = [
            p.name
            for p in self.root.iterdir()
            if p.is_dir() and not p.is_symlink() and SESSION_ID_RE.match(p.name)
        ]
        return sorted(ids, key=sort_key)

    def list_sessions(self) -> List[SessionSummary]:
        out: List[SessionSummary] = []
        for sid in self.session_ids():
            directory = self.config.session_dir(sid)
            try:
                doc = manifest.read_document(sid, self.config)
            except BackupError as e:
                logger.debug("Session %s has no readable manifest: %s", sid, e)
                out.append(SessionSummary(session_id=sid, directory=directory, created_at=None, has_manifest=False))
                continue
            out.append(
                SessionSummary(
                    session_id=sid,
                    directory=directory,
                    created_at=str(doc.get("created_at") or "") or None,
                    has_manifest=True,
                    entry_count=len(doc.get("backups") or []),
                )
            )
        return out

    def latest(self) -> str:
        if not self.root.is_dir():
            raise NoSessionsFound(f"No backup directory found: {self.root}")
        ids = self.session_ids()
        if not ids:
            raise NoSessionsFound(f"No backup sessions found in {self.root}")
        return ids[-1]

    def resolve(self, session_id: Optional[str] = None) -> str:
        """Return ``session_id`` if it exists on disk, else the latest session."""
        if not session_id:
            return self.latest()
        if not SESSION_ID_RE.match(session_id) or not self.config.session_dir(session_id).is_dir():
            raise SessionNotFound(f"Backup session not found: {session_id}")
        return session_id

    def expire_old_sessions(self, keep: int = DEFAULT_KEEP) -> List[str]:
        """Delete all but the ``keep`` newest sessions. Returns the removed ids."""
        if keep < 0:
            raise ValueError(f"keep must be >= 0, got {keep}")

        ids = self.session_ids()
        if len(ids) <= keep:
            logger.debug("No old backups to clean up (%d sessions, keeping %d)", len(ids), keep)
            return []

        doomed = ids[: len(ids) - keep]
        logger.info("Cleaning up %d old backup session(s)...", len(doomed))
        for sid in doomed:
            if self.config.dry_run:
                logger.info("Would remove old backup %s", sid)
                continue
            safe_remove(self.config.session_dir(sid))
            logger.info("Removed old backup session: %s", sid)
        return doomed

    def remove_session(self, session_id: str) -> None:
        directory = self.config.session_dir(session_id)
        if not directory.is_dir() or not SESSION_ID_RE.match(session_id):
            raise SessionNotFound(f"Session not found: {session_id}")

        if self.config.dry_run:
            logger.info("Would remove backup session %s", session_id)
            return

        safe_remove(directory)
        logger.info("Removed backup session: %s", session_id)

    def session_info(self, session_id: Optional[str] = None) -> SessionInfo:
        sid = self.resolve(session_id)
        doc = manifest.read_document(sid, self.config)
        return SessionInfo(
            session_id=sid,
            directory=self.config.session_dir(sid),
            created_at=str(doc.get("created_at") or ""),
            dotfiles_dir=str(doc.get("dotfiles_dir") or ""),
            os=str(doc.get("os") or ""),
            arch=str(doc.get("arch") or ""),
            entries=manifest.read_all(sid, self.config),
        )
