"""Per-session manifest store.

One JSON document per session at ``<registry_root>/<session_id>/manifest.json``::

    {
      "session_id": "install_20261017_101500",
      "created_at": "2026-10-17T10:15:00+02:00",
      "dotfiles_dir": "/home/me/dotfiles",
      "os": "Linux",
      "arch": "x86_64",
      "backups": [{"original": ..., "backup": ..., "type": "file"}]
    }

Every write replaces the whole document atomically, so an interrupted append
leaves the previous entries intact.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from ..config import BackupConfig
from ..lib.fsops import atomic_write_text, safe_mkdir
from .errors import ManifestError, ManifestUninitialized

logger = logging.getLogger(__name__)


class EntryType(str, enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


@dataclass(frozen=True)
class SessionContext:
    """Host details captured for display. Restore logic never reads them."""

    os: str
    arch: str
    dotfiles_dir: str
    created_at: str


@dataclass(frozen=True)
class ManifestEntry:
    original: str
    backup: str
    type: EntryType

    def to_dict(self) -> Dict[str, str]:
        return {"original": self.original, "backup": self.backup, "type": self.type.value}

    @classmethod
    def from_dict(cls, raw: Any) -> "ManifestEntry":
        if not isinstance(raw, dict):
            raise ManifestError(f"manifest entry must be an object, got {type(raw).__name__}")
        try:
            return cls(
                original=str(raw["original"]),
                backup=str(raw["backup"]),
                type=EntryType(raw.get("type", EntryType.FILE.value)),
            )
        except KeyError as e:
            raise ManifestError(f"manifest entry missing field {e}") from e
        except ValueError as e:
            raise ManifestError(f"unknown manifest entry type: {raw.get('type')!r}") from e


def _dump(doc: Dict[str, Any]) -> str:
    return json.dumps(doc, indent=2) + "\n"


def read_document(session_id: str, config: BackupConfig) -> Dict[str, Any]:
    """Load the raw manifest document. Raises ManifestUninitialized if absent."""
    p = config.manifest_path(session_id)
    if not p.is_file():
        raise ManifestUninitialized(f"No manifest for session {session_id}: {p}")

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ManifestError(f"Unreadable manifest {p}: {e}") from e

    if not isinstance(data, dict):
        raise ManifestError(f"Manifest must be an object/dict, got {type(data).__name__}: {p}")
    if not isinstance(data.get("backups", []), list):
        raise ManifestError(f"Manifest 'backups' must be a list: {p}")
    return data


def initialize(session_id: str, context: SessionContext, config: BackupConfig) -> None:
    """Create the session directory and an empty manifest. Once per session."""
    p = config.manifest_path(session_id)

    if config.dry_run:
        logger.info("Would create backup session %s at %s", session_id, p.parent)
        return

    if p.exists():
        raise ManifestError(f"Manifest already initialized for session {session_id}")

    safe_mkdir(p.parent)
    doc: Dict[str, Any] = {
        "session_id": session_id,
        "created_at": context.created_at,
        "dotfiles_dir": context.dotfiles_dir,
        "os": context.os,
        "arch": context.arch,
        "backups": [],
    }
    atomic_write_text(p, _dump(doc))
    logger.debug("Initialized backup session: %s (%s)", session_id, p.parent)


def append(
    session_id: str,
    original: str,
    backup: str,
    entry_type: EntryType,
    config: BackupConfig,
) -> ManifestEntry:
    """Add one entry at the end of the session's ``backups`` list.

    Repeated calls for the same original add repeated entries.
    """
    entry = ManifestEntry(original=original, backup=backup, type=EntryType(entry_type))

    if config.dry_run:
        logger.info("Would register backup %s -> %s (%s)", original, backup, entry.type.value)
        return entry

    doc = read_document(session_id, config)
    doc.setdefault("backups", []).append(entry.to_dict())
    atomic_write_text(config.manifest_path(session_id), _dump(doc))
    logger.debug("Registered backup: %s -> %s", original, backup)
    return entry


def read_all(session_id: str, config: BackupConfig) -> List[ManifestEntry]:
    doc = read_document(session_id, config)
    return [ManifestEntry.from_dict(raw) for raw in doc.get("backups") or []]


def read_context(session_id: str, config: BackupConfig) -> SessionContext:
    doc = read_document(session_id, config)
    return SessionContext(
        os=str(doc.get("os") or ""),
        arch=str(doc.get("arch") or ""),
        dotfiles_dir=str(doc.get("dotfiles_dir") or ""),
        created_at=str(doc.get("created_at") or ""),
    )


def exists(session_id: str, config: BackupConfig) -> bool:
    return config.manifest_path(session_id).is_file()
