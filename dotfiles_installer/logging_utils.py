from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

DEFAULT_LOG_PATH = str(Path("~/.local/state/dotfiles-installer/installer.log").expanduser())
FALLBACK_LOG_NAME = "dotfiles-installer.log"

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

# Handlers we install carry these names; that is how a second call finds them.
_FILE_HANDLER = "dotfiles-installer.file"
_CONSOLE_HANDLER = "dotfiles-installer.console"


def _ours(root: logging.Logger) -> List[logging.Handler]:
    return [h for h in root.handlers if h.get_name() in (_FILE_HANDLER, _CONSOLE_HANDLER)]


def _file_path(handlers: List[logging.Handler]) -> Optional[str]:
    for h in handlers:
        if h.get_name() == _FILE_HANDLER:
            return getattr(h, "baseFilename", None)
    return None


def _open_file_handler(log_path: str) -> logging.FileHandler:
    """FileHandler for ``log_path``, or for the cwd fallback if that can't be opened.

    Paths and link targets may not be valid UTF-8; they are escaped rather
    than dropped.
    """
    target = Path(log_path).expanduser()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(target, encoding="utf-8", errors="backslashreplace")
    except OSError:
        handler = logging.FileHandler(
            Path.cwd() / FALLBACK_LOG_NAME, encoding="utf-8", errors="backslashreplace"
        )
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    handler.set_name(_FILE_HANDLER)
    return handler


def configure_logging(
    log_path: Optional[str] = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> Optional[str]:
    """Attach the installer's file and console handlers to the root logger.

    The log file lives outside the backup registry root, so expiring or
    removing sessions never deletes it. ``log_path=None`` logs to the console
    only. Calling this again only updates the level.

    Returns the file actually written to, if any.
    """

    root = logging.getLogger()
    root.setLevel(level)

    existing = _ours(root)
    if existing:
        return _file_path(existing)

    if log_path:
        root.addHandler(_open_file_handler(log_path))

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console.set_name(_CONSOLE_HANDLER)
        root.addHandler(console)

    actual = _file_path(_ours(root))
    logging.getLogger(__name__).debug("Logging to %s (requested %s)", actual or "console", log_path)
    return actual


def reset_logging() -> None:
    """Detach and close the handlers ``configure_logging`` installed."""
    root = logging.getLogger()
    for h in _ours(root):
        root.removeHandler(h)
        h.close()
