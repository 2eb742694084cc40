from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def lexists(path: PathLike) -> bool:
    """True if something is at ``path``, including a dangling symlink."""
    return os.path.lexists(path)


def safe_mkdir(path: PathLike, *, dry_run: bool = False) -> None:
    d = Path(path)
    if d.is_dir():
        logger.debug("Directory already exists: %s", d)
        return

    if dry_run:
        logger.info("Would create directory %s", d)
        return

    d.mkdir(parents=True, exist_ok=True)
    logger.debug("Created directory: %s", d)


def safe_copy(src: PathLike, dst: PathLike, *, dry_run: bool = False) -> None:
    """Copy a single file, creating the destination's parent directories."""
    s = Path(src)
    d = Path(dst)
    if not s.exists():
        raise FileNotFoundError(str(s))

    if dry_run:
        logger.info("Would copy %s -> %s", s, d)
        return

    safe_mkdir(d.parent)
    shutil.copy2(s, d)
    logger.debug("Copied: %s -> %s", s, d)


def copy_tree(src: PathLike, dst: PathLike, *, dry_run: bool = False) -> None:
    """Recursively copy a directory. Symlinks inside the tree stay symlinks."""
    s = Path(src)
    d = Path(dst)
    if not s.is_dir():
        raise NotADirectoryError(str(s))

    if dry_run:
        logger.info("Would copy tree %s -> %s", s, d)
        return

    safe_mkdir(d.parent)
    shutil.copytree(s, d, symlinks=True)
    logger.debug("Copied tree: %s -> %s", s, d)


def safe_remove(path: PathLike, *, dry_run: bool = False) -> bool:
    """Remove a file, symlink or directory tree.

    Symlinks are unlinked, never followed. Returns False when there was
    nothing to remove.
    """
    p = Path(path)
    if not lexists(p):
        logger.debug("Path does not exist (nothing to remove): %s", p)
        return False

    if dry_run:
        logger.info("Would remove %s", p)
        return True

    if p.is_symlink() or not p.is_dir():
        p.unlink()
    else:
        shutil.rmtree(p)
    logger.debug("Removed: %s", p)
    return True


def safe_symlink(target: str, link: PathLike, *, dry_run: bool = False) -> None:
    """Create ``link`` pointing at ``target``.

    ``target`` is stored verbatim (relative targets stay relative) and does not
    need to exist.
    """
    lnk = Path(link)

    if dry_run:
        logger.info("Would symlink %s -> %s", lnk, target)
        return

    if lnk.is_symlink() or lnk.is_file():
        lnk.unlink()
    safe_mkdir(lnk.parent)
    os.symlink(target, lnk)
    logger.debug("Created symlink: %s -> %s", lnk, target)


def atomic_write_bytes(path: PathLike, data: bytes) -> None:
    """Write ``data`` to a temp file next to ``path`` and rename it into place.

    Readers see either the old file or the new one, never a partial write.
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, p)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def atomic_write_text(path: PathLike, content: str) -> None:
    atomic_write_bytes(path, content.encode("utf-8"))
