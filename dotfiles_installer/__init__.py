"""Dotfiles installer backup registry.

Core design goals:
- Every overwritten file, directory or symlink is snapshotted first
- One manifest per installer run (session)
- Rollback restores entries independently and reports per item
- Dry-run is an explicit config value, never a global
- Centralized logging
"""

__all__ = []
