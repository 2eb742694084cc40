from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..config import BackupConfig
from ..lib.fsops import lexists, safe_remove
from ..lib.hostinfo import detect_arch, detect_os, get_dotfiles_dir
from . import manifest
from .errors import ManifestError, ManifestUninitialized, NothingToBackUp, SessionNotFound, SnapshotFailed
from .manifest import EntryType, SessionContext
from .snapshot import classify, snapshot

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
FALLBACK_SUFFIX = ".backup."

# <label>_<YYYYmmdd>_<HHMMSS>[_<seq>]
SESSION_ID_RE = re.compile(r"^(?P<label>[^/\\]+?)_(?P<ts>\d{8}_\d{6})(?:_(?P<seq>\d+))?$")


def sanitize_label(value: str) -> str:
    cleaned = "".join(ch for ch in value if ch.isalnum() or ch in ("-", "_"))
    return cleaned or "install"


@dataclass(frozen=True)
class BackupSession:
    session_id: str
    directory: Path
    context: SessionContext

    @property
    def created_at(self) -> str:
        return self.context.created_at


class BackupOutcome(str, enum.Enum):
    BACKED_UP = "backed_up"
    NOTHING_TO_BACK_UP = "nothing_to_back_up"
    FAILED = "failed"


@dataclass(frozen=True)
class BackupResult:
    outcome: BackupOutcome
    path: Path
    backup: Optional[Path] = None
    type: Optional[EntryType] = None
    reason: Optional[str] = None
    registered: bool = True

    @property
    def ok(self) -> bool:
        return self.outcome is not BackupOutcome.FAILED


def make_session_id(label: str, now: datetime, config: BackupConfig) -> str:
    base = f"{sanitize_label(label)}_{now.strftime(TIMESTAMP_FORMAT)}"
    session_id = base
    seq = 1
    while config.session_dir(session_id).exists():
        session_id = f"{base}_{seq}"
        seq += 1
    return session_id


def capture_context(config: BackupConfig, now: datetime) -> SessionContext:
    return SessionContext(
        os=detect_os(),
        arch=detect_arch(),
        dotfiles_dir=str(get_dotfiles_dir(config.dotfiles_dir)),
        created_at=now.isoformat(timespec="seconds"),
    )


def begin(label: str, config: BackupConfig, *, now: Optional[datetime] = None) -> BackupSession:
    """Start a backup session for one installer run."""

    now = now or datetime.now().astimezone()
    session_id = make_session_id(label, now, config)
    context = capture_context(config, now)

    manifest.initialize(session_id, context, config)
    session = BackupSession(session_id=session_id, directory=config.session_dir(session_id), context=context)
    logger.info("Backup session %s started (%s)", session_id, session.directory)
    return session


def open_session(session_id: str, config: BackupConfig) -> BackupSession:
    """Rehydrate a session started by an earlier process."""

    directory = config.session_dir(session_id)
    if not directory.is_dir():
        if config.dry_run:
            # begin() in dry-run never created it; keep reporting against the id.
            ctx = SessionContext(os=detect_os(), arch=detect_arch(), dotfiles_dir="", created_at="")
            return BackupSession(session_id=session_id, directory=directory, context=ctx)
        raise SessionNotFound(f"Backup session not found: {session_id}")

    return BackupSession(
        session_id=session_id,
        directory=directory,
        context=manifest.read_context(session_id, config),
    )


def register_backup(session: BackupSession, path: Path, config: BackupConfig) -> BackupResult:
    """Snapshot ``path`` into the session and record it in the manifest.

    Snapshot and manifest errors are reported in the result so the calling
    installer step can carry on. A missing manifest is a programming error
    and propagates.
    """

    p = Path(path).expanduser().absolute()
    if not config.dry_run and not manifest.exists(session.session_id, config):
        raise ManifestUninitialized(
            f"No backup session initialized for {session.session_id}. Call begin() first."
        )

    try:
        snap = snapshot(p, session.directory, home=config.home, dry_run=config.dry_run)
    except NothingToBackUp:
        logger.debug("Nothing to back up (doesn't exist): %s", p)
        return BackupResult(outcome=BackupOutcome.NOTHING_TO_BACK_UP, path=p)
    except SnapshotFailed as e:
        return BackupResult(outcome=BackupOutcome.FAILED, path=p, reason=str(e))

    try:
        manifest.append(session.session_id, str(snap.original), str(snap.backup), snap.type, config)
    except (ManifestError, OSError) as e:
        logger.error("Failed to register backup of %s: %s", p, e)
        # An unregistered artifact is never restored; don't leave it behind.
        try:
            safe_remove(snap.backup)
        except OSError:
            logger.warning("Could not remove unregistered snapshot %s", snap.backup)
        return BackupResult(outcome=BackupOutcome.FAILED, path=p, type=snap.type, reason=str(e))

    if not config.dry_run:
        logger.info("Backed up: %s", p)
    return BackupResult(outcome=BackupOutcome.BACKED_UP, path=p, backup=snap.backup, type=snap.type)


def backup_if_exists(path: Path, config: BackupConfig, *, now: Optional[datetime] = None) -> BackupResult:
    """Registry-less fallback: rename ``path`` to ``<path>.backup.<timestamp>``.

    The renamed item is not in any manifest, so rollback cannot restore it.
    """

    p = Path(path).expanduser()
    if not lexists(p):
        logger.debug("Nothing to back up (doesn't exist): %s", p)
        return BackupResult(outcome=BackupOutcome.NOTHING_TO_BACK_UP, path=p, registered=False)

    kind = classify(p)
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    dest = p.with_name(f"{p.name}{FALLBACK_SUFFIX}{stamp}")

    if config.dry_run:
        logger.info("Would back up %s -> %s", p, dest)
        return BackupResult(outcome=BackupOutcome.BACKED_UP, path=p, backup=dest, type=kind, registered=False)

    try:
        p.rename(dest)
    except OSError as e:
        logger.error("Failed to create backup of %s. Check permissions. (%s)", p, e)
        return BackupResult(outcome=BackupOutcome.FAILED, path=p, type=kind, reason=str(e), registered=False)

    logger.info("Backup created: %s", dest)
    return BackupResult(outcome=BackupOutcome.BACKED_UP, path=p, backup=dest, type=kind, registered=False)


def backup_with_registry(
    path: Path,
    session: Optional[BackupSession],
    config: BackupConfig,
) -> BackupResult:
    """Back up ``path`` into ``session``; rename in place when there is none."""

    if session is None:
        logger.warning("No backup session initialized, using simple backup for %s", path)
        return backup_if_exists(path, config)
    return register_backup(session, path, config)
