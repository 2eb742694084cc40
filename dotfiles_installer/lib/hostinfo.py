from __future__ import annotations

import logging
import platform
import sys
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def normalize_arch(machine: str) -> str:
    m = machine.lower()
    return {
        "x86_64": "x86_64",
        "amd64": "x86_64",
        "aarch64": "arm64",
        "arm64": "arm64",
        "armv7l": "arm32",
        "armhf": "arm32",
    }.get(m, m)


def detect_arch() -> str:
    return normalize_arch(platform.machine())


def detect_os(sys_platform: Optional[str] = None) -> str:
    plat = sys_platform if sys_platform is not None else sys.platform
    if plat.startswith("linux"):
        return "Linux"
    if plat == "darwin":
        return "macOS"
    logger.warning("Unsupported OS detected: %s. Some features may not work properly.", plat)
    return "Unknown"


def get_dotfiles_dir(configured: Optional[Path] = None) -> Path:
    """Repository root holding the dotfiles.

    Falls back to the checkout this package lives in when nothing is configured.
    """
    if configured is not None:
        return configured.expanduser()
    # dotfiles_installer/lib/hostinfo.py -> dotfiles_installer -> repo root
    return Path(__file__).resolve().parents[2]
