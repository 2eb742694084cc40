from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

DEFAULT_REGISTRY_ROOT = "~/.dotfiles-backups"
DEFAULT_CONFIG_PATH = "~/.config/dotfiles-installer/config.yaml"
DEFAULT_KEEP = 5

_TRUE = {"1", "true", "yes", "on"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE


@dataclass(frozen=True)
class BackupConfig:
    """Settings threaded through every backup/rollback operation.

    Nothing in this package writes these values back; they are read once per
    process and passed explicitly.
    """

    registry_root: Path = field(default_factory=lambda: Path(DEFAULT_REGISTRY_ROOT).expanduser())
    dry_run: bool = False
    assume_yes: bool = False
    keep: int = DEFAULT_KEEP
    dotfiles_dir: Optional[Path] = None
    home: Path = field(default_factory=Path.home)

    def session_dir(self, session_id: str) -> Path:
        return self.registry_root / session_id

    def manifest_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / "manifest.json"

    def with_overrides(self, **changes: Any) -> "BackupConfig":
        """Return a copy with the non-None keyword arguments applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _load_yaml(path: Path) -> Dict[str, Any]:
    if path.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError(f"config file must be YAML: {path}")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the installer config") from e

    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping/object")
    return raw


def load_config(
    path: Optional[str] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> BackupConfig:
    """Build a BackupConfig from (lowest to highest precedence) defaults, the
    optional YAML file and environment variables.

    An explicitly passed ``path`` must exist; the default location is optional.
    CLI flags are applied afterwards by the caller via ``with_overrides``.
    """

    env = os.environ if env is None else env
    home = Path(env.get("HOME") or Path.home()).expanduser()

    if path is not None:
        p = Path(path).expanduser()
        if not p.exists():
            raise FileNotFoundError(path)
        raw = _load_yaml(p)
    else:
        p = home / DEFAULT_CONFIG_PATH.replace("~/", "", 1)
        raw = _load_yaml(p) if p.exists() else {}

    root = env.get("BACKUP_BASE_DIR") or raw.get("registry_root") or str(home / ".dotfiles-backups")
    dry_run = env.get("DRY_RUN") if env.get("DRY_RUN") is not None else raw.get("dry_run", False)
    dotfiles_dir = env.get("DOTFILES_DIR") or raw.get("dotfiles_dir")

    keep = int(raw.get("keep", DEFAULT_KEEP))
    if keep < 0:
        raise ValueError(f"keep must be >= 0, got {keep}")

    return BackupConfig(
        registry_root=Path(str(root)).expanduser(),
        dry_run=_as_bool(dry_run),
        assume_yes=_as_bool(raw.get("assume_yes", False)),
        keep=keep,
        dotfiles_dir=Path(str(dotfiles_dir)).expanduser() if dotfiles_dir else None,
        home=home,
    )
