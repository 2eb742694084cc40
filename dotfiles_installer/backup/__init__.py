from .errors import (
    BackupError,
    ExitCode,
    ManifestError,
    ManifestUninitialized,
    NoSessionsFound,
    NothingToBackUp,
    RestoreFailed,
    SessionNotFound,
    SnapshotFailed,
)
from .manifest import EntryType, ManifestEntry, SessionContext
from .registry import SessionInfo, SessionRegistry, SessionSummary
from .rollback import RestoreResult, RollbackEngine, RollbackReport, RollbackState
from .session import (
    BackupOutcome,
    BackupResult,
    BackupSession,
    backup_if_exists,
    backup_with_registry,
    begin,
    open_session,
    register_backup,
)
from .snapshot import Snapshot, snapshot

__all__ = [
    "BackupError",
    "ExitCode",
    "ManifestError",
    "ManifestUninitialized",
    "NoSessionsFound",
    "NothingToBackUp",
    "RestoreFailed",
    "SessionNotFound",
    "SnapshotFailed",
    "EntryType",
    "ManifestEntry",
    "SessionContext",
    "SessionInfo",
    "SessionRegistry",
    "SessionSummary",
    "RestoreResult",
    "RollbackEngine",
    "RollbackReport",
    "RollbackState",
    "BackupOutcome",
    "BackupResult",
    "BackupSession",
    "backup_if_exists",
    "backup_with_registry",
    "begin",
    "open_session",
    "register_backup",
    "Snapshot",
    "snapshot",
]
