from __future__ import annotations

import enum


class BackupError(RuntimeError):
    """Base class for backup registry errors."""


class NothingToBackUp(BackupError):
    """The source path does not exist; callers treat this as a no-op."""


class SnapshotFailed(BackupError):
    pass


class ManifestError(BackupError, ValueError):
    """A manifest exists but is unreadable or malformed."""


class ManifestUninitialized(BackupError):
    """Append called before initialize: a bug in the calling installer step."""


class SessionNotFound(BackupError):
    pass


class NoSessionsFound(BackupError):
    pass


class RestoreFailed(BackupError):
    pass


class ExitCode(enum.IntEnum):
    OK = 0
    NOTHING_TO_BACK_UP = 1
    FAILED = 2
    NO_SESSIONS_FOUND = 3
    PARTIAL_FAILURE = 4
    ABORTED = 5
    INTERRUPTED = 130
