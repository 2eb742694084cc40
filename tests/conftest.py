import hashlib
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from dotfiles_installer.config import BackupConfig

T0 = datetime(2026, 10, 17, 10, 15, 0, tzinfo=timezone.utc)


def tree_digest(root: Path) -> str:
    """Hash names, types, file contents and link targets under ``root``."""
    h = hashlib.sha256()
    if not os.path.lexists(root):
        return "absent"
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames.sort()
        rel_dir = os.path.relpath(dirpath, root)
        h.update(f"D {rel_dir}\n".encode())
        for name in sorted(filenames + [d for d in dirnames if os.path.islink(os.path.join(dirpath, d))]):
            full = os.path.join(dirpath, name)
            rel = os.path.join(rel_dir, name)
            if os.path.islink(full):
                h.update(f"L {rel} {os.readlink(full)}\n".encode())
            else:
                h.update(f"F {rel}\n".encode())
                with open(full, "rb") as f:
                    h.update(f.read())
    return h.hexdigest()


def at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


@pytest.fixture
def home(tmp_path: Path) -> Path:
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def cfg(tmp_path: Path, home: Path) -> BackupConfig:
    return BackupConfig(
        registry_root=tmp_path / "backups",
        home=home,
        dotfiles_dir=tmp_path / "dotfiles",
    )


@pytest.fixture
def dry_cfg(cfg: BackupConfig) -> BackupConfig:
    return cfg.with_overrides(dry_run=True)
