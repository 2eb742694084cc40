from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..config import BackupConfig
from ..lib.fsops import copy_tree, safe_copy, safe_remove, safe_symlink
from ..lib.prompt import confirm as prompt_confirm
from . import manifest
from .errors import RestoreFailed
from .manifest import EntryType, ManifestEntry
from .registry import SessionRegistry
from .snapshot import read_link_target

logger = logging.getLogger(__name__)


class RollbackState(str, enum.Enum):
    REQUESTED = "requested"
    PREVIEWED = "previewed"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    RESTORING = "restoring"
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    ABORTED = "aborted"


@dataclass(frozen=True)
class RestoreResult:
    original: str
    type: EntryType
    ok: bool
    error: Optional[str] = None


@dataclass
class RollbackReport:
    session_id: str
    state: RollbackState = RollbackState.REQUESTED
    preview: List[str] = field(default_factory=list)
    results: List[RestoreResult] = field(default_factory=list)
    history: List[RollbackState] = field(default_factory=lambda: [RollbackState.REQUESTED])

    def advance(self, state: RollbackState) -> None:
        self.state = state
        self.history.append(state)

    @property
    def ok(self) -> bool:
        return self.state is RollbackState.COMPLETED

    @property
    def restored(self) -> List[str]:
        return [r.original for r in self.results if r.ok]

    @property
    def failed(self) -> List[str]:
        return [r.original for r in self.results if not r.ok]


def _default_confirm(question: str) -> bool:
    return prompt_confirm(question, default=False)


class RollbackEngine:
    """Restore every path recorded in a session's manifest.

    Each entry is restored on its own; a failure is recorded and the loop
    moves on to the next entry.
    """

    def __init__(
        self,
        config: BackupConfig,
        *,
        confirm: Optional[Callable[[str], bool]] = None,
        registry: Optional[SessionRegistry] = None,
    ) -> None:
        self.config = config
        self.confirm = confirm or _default_confirm
        self.registry = registry or SessionRegistry(config)

    def preview(self, session_id: str) -> List[str]:
        return [e.original for e in manifest.read_all(session_id, self.config)]

    def restore_all(self, session_id: Optional[str] = None) -> RollbackReport:
        sid = self.registry.resolve(session_id)
        report = RollbackReport(session_id=sid)

        entries = manifest.read_all(sid, self.config)
        report.preview = [e.original for e in entries]
        report.advance(RollbackState.PREVIEWED)

        logger.info("Rollback session: %s", sid)
        if not entries:
            logger.info("No backups in this session")
            report.advance(RollbackState.COMPLETED)
            return report

        logger.info("The following items will be restored:")
        for original in report.preview:
            logger.info("  - %s", original)

        if not (self.config.dry_run or self.config.assume_yes):
            if not self.confirm("Proceed with rollback?"):
                logger.info("Rollback cancelled")
                report.advance(RollbackState.DECLINED)
                report.advance(RollbackState.ABORTED)
                return report
        report.advance(RollbackState.CONFIRMED)

        report.advance(RollbackState.RESTORING)
        for entry in entries:
            report.results.append(self.restore_entry(entry))

        if report.failed:
            logger.warning("Rollback completed with %d error(s): %s", len(report.failed), ", ".join(report.failed))
            report.advance(RollbackState.PARTIAL_FAILURE)
        else:
            logger.info("Rollback completed successfully!")
            report.advance(RollbackState.COMPLETED)
        return report

    def restore_entry(self, entry: ManifestEntry) -> RestoreResult:
        logger.info("Restoring: %s", entry.original)
        try:
            self._restore(entry)
        except (RestoreFailed, OSError, UnicodeError) as e:
            logger.error("Failed to restore %s %s: %s", entry.type.value, entry.original, e)
            return RestoreResult(original=entry.original, type=entry.type, ok=False, error=str(e))
        return RestoreResult(original=entry.original, type=entry.type, ok=True)

    def _restore(self, entry: ManifestEntry) -> None:
        original = Path(entry.original)
        backup = Path(entry.backup)
        dry_run = self.config.dry_run
        verb = "Would restore" if dry_run else "Restored"

        # Validate the snapshot before touching whatever is at `original` now.
        if entry.type is EntryType.DIRECTORY:
            if not backup.is_dir() or backup.is_symlink():
                raise RestoreFailed(f"Snapshot directory missing for {original}: {backup}")
        elif not backup.is_file():
            raise RestoreFailed(f"Snapshot missing for {original}: {backup}")

        if entry.type is EntryType.SYMLINK:
            target = read_link_target(backup)
            safe_remove(original, dry_run=dry_run)
            safe_symlink(target, original, dry_run=dry_run)
            logger.info("%s symlink: %s -> %s", verb, original, target)
            return

        safe_remove(original, dry_run=dry_run)
        if entry.type is EntryType.DIRECTORY:
            copy_tree(backup, original, dry_run=dry_run)
            logger.info("%s directory: %s", verb, original)
        else:
            safe_copy(backup, original, dry_run=dry_run)
            logger.info("%s file: %s", verb, original)
