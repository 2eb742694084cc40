from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..lib.fsops import atomic_write_bytes, copy_tree, lexists, safe_copy, safe_remove
from .errors import NothingToBackUp, SnapshotFailed
from .manifest import EntryType

logger = logging.getLogger(__name__)

_DIGEST_LEN = 10


@dataclass(frozen=True)
class Snapshot:
    original: Path
    backup: Path
    type: EntryType


def classify(path: Path) -> EntryType:
    """Symlink first: a link to a directory is recorded as a link."""
    if path.is_symlink():
        return EntryType.SYMLINK
    if path.is_dir():
        return EntryType.DIRECTORY
    return EntryType.FILE


def artifact_name(original: Path, home: Optional[Path] = None) -> str:
    """Flat, collision-free file name for the snapshot of ``original``.

    ``/home/me/.config/nvim`` -> ``.config__nvim.<digest>``. The digest is
    taken over the full absolute path, so two originals that mangle to the
    same readable prefix still get different names.
    """
    text = str(original)
    readable = text
    if home is not None:
        try:
            readable = str(original.relative_to(home))
        except ValueError:
            pass
    readable = readable.strip("/").replace("/", "__") or "root"
    digest = hashlib.sha256(text.encode("utf-8", "surrogateescape")).hexdigest()[:_DIGEST_LEN]
    return f"{readable}.{digest}"


def unique_artifact_path(dest_dir: Path, name: str) -> Path:
    candidate = dest_dir / name
    n = 1
    while lexists(candidate):
        candidate = dest_dir / f"{name}~{n}"
        n += 1
    return candidate


def snapshot(
    path: Path,
    dest_dir: Path,
    *,
    home: Optional[Path] = None,
    dry_run: bool = False,
) -> Snapshot:
    """Capture the current state of ``path`` as one artifact inside ``dest_dir``.

    - symlink: a file holding the raw link target bytes (not the pointed-to data)
    - directory: a recursive copy
    - file: a byte-for-byte copy

    Raises NothingToBackUp if the path is absent and SnapshotFailed if the
    copy fails. The source is never modified.
    """

    src = Path(path)
    if not lexists(src):
        raise NothingToBackUp(f"Nothing to back up (doesn't exist): {src}")

    kind = classify(src)
    dest = unique_artifact_path(dest_dir, artifact_name(src, home))

    if dry_run:
        logger.info("Would back up (%s) %s -> %s", kind.value, src, dest)
        return Snapshot(original=src, backup=dest, type=kind)

    try:
        if kind is EntryType.SYMLINK:
            atomic_write_bytes(dest, os.fsencode(os.readlink(src)))
        elif kind is EntryType.DIRECTORY:
            copy_tree(src, dest)
        else:
            safe_copy(src, dest)
    except (OSError, UnicodeError) as e:
        logger.error("Failed to back up %s %s: %s", kind.value, src, e)
        try:
            safe_remove(dest)
        except OSError:
            logger.warning("Could not clean up partial snapshot %s", dest)
        raise SnapshotFailed(f"Failed to back up {kind.value} {src}: {e}") from e

    return Snapshot(original=src, backup=dest, type=kind)


def read_link_target(artifact: Path) -> str:
    """Link target stored by ``snapshot``, decoded the way ``os.readlink`` would."""
    return os.fsdecode(artifact.read_bytes())
