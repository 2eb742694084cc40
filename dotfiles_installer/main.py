from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from .backup import (
    BackupError,
    BackupOutcome,
    ExitCode,
    NoSessionsFound,
    RollbackEngine,
    RollbackState,
    SessionRegistry,
    backup_with_registry,
    begin,
    open_session,
)
from .config import BackupConfig, load_config
from .logging_utils import DEFAULT_LOG_PATH, configure_logging

logger = logging.getLogger(__name__)


def _config_from_args(args: argparse.Namespace) -> BackupConfig:
    cfg = load_config(args.config)
    return cfg.with_overrides(
        registry_root=Path(args.root).expanduser() if args.root else None,
        dry_run=True if args.dry_run else None,
        assume_yes=True if args.yes else None,
    )


def cmd_begin(args: argparse.Namespace, cfg: BackupConfig) -> int:
    session = begin(args.label, cfg)
    print(session.session_id)
    return ExitCode.OK


def cmd_backup(args: argparse.Namespace, cfg: BackupConfig) -> int:
    session = open_session(args.session, cfg) if args.session else None

    worst = ExitCode.OK
    for raw in args.paths:
        res = backup_with_registry(Path(raw), session, cfg)
        if res.outcome is BackupOutcome.FAILED:
            print(f"FAILED: {res.path}: {res.reason}")
            worst = ExitCode.FAILED
        elif res.outcome is BackupOutcome.NOTHING_TO_BACK_UP:
            print(f"nothing to back up: {res.path}")
            if worst is ExitCode.OK:
                worst = ExitCode.NOTHING_TO_BACK_UP
        else:
            print(f"backed up ({res.type.value if res.type else '?'}): {res.path} -> {res.backup}")
    return worst


def cmd_rollback(args: argparse.Namespace, cfg: BackupConfig) -> int:
    report = RollbackEngine(cfg).restore_all(args.session)

    if report.state is RollbackState.ABORTED:
        print("Rollback cancelled")
        return ExitCode.ABORTED

    for r in report.results:
        status = "ok" if r.ok else f"FAILED: {r.error}"
        print(f"  {r.original} ({r.type.value}): {status}")

    if report.state is RollbackState.PARTIAL_FAILURE:
        print(f"Rollback of {report.session_id} completed with {len(report.failed)} error(s)")
        return ExitCode.PARTIAL_FAILURE

    print(f"Rollback of {report.session_id} completed ({len(report.restored)} restored)")
    return ExitCode.OK


def cmd_list(args: argparse.Namespace, cfg: BackupConfig) -> int:
    sessions = SessionRegistry(cfg).list_sessions()
    if not sessions:
        print(f"No backup sessions in {cfg.registry_root}")
        return ExitCode.OK

    print("Available backup sessions:")
    for s in sessions:
        if s.has_manifest:
            print(f"  - {s.session_id} (created: {s.created_at}, {s.entry_count} item(s))")
        else:
            print(f"  - {s.session_id} (no manifest)")
    return ExitCode.OK


def cmd_latest(args: argparse.Namespace, cfg: BackupConfig) -> int:
    print(SessionRegistry(cfg).latest())
    return ExitCode.OK


def cmd_expire(args: argparse.Namespace, cfg: BackupConfig) -> int:
    keep = cfg.keep if args.keep is None else args.keep
    removed = SessionRegistry(cfg).expire_old_sessions(keep)
    for sid in removed:
        print(f"{'would remove' if cfg.dry_run else 'removed'}: {sid}")
    return ExitCode.OK


def cmd_info(args: argparse.Namespace, cfg: BackupConfig) -> int:
    info = SessionRegistry(cfg).session_info(args.session)
    print(f"Session: {info.session_id}")
    print(f"Directory: {info.directory}")
    print()
    print(f"  created_at: {info.created_at}")
    print(f"  dotfiles_dir: {info.dotfiles_dir}")
    print(f"  os: {info.os}")
    print(f"  arch: {info.arch}")
    print()
    print("Backups:")
    for e in info.entries:
        print(f"  - {e.original} ({e.type.value})")
    return ExitCode.OK


def cmd_remove(args: argparse.Namespace, cfg: BackupConfig) -> int:
    SessionRegistry(cfg).remove_session(args.session)
    return ExitCode.OK


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dotfiles-backup", description="Backup registry and rollback for the dotfiles installer")
    p.add_argument("--root", default=None, help="Registry root (default: $BACKUP_BASE_DIR or ~/.dotfiles-backups)")
    p.add_argument("--config", default=None, help="YAML config file (default: ~/.config/dotfiles-installer/config.yaml if present)")
    p.add_argument("--dry-run", action="store_true", help="Show what would be done without making changes")
    p.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation before rollback")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to the log file")
    p.add_argument("--no-log-file", action="store_true", help="Log to the console only")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = p.add_subparsers(dest="subcmd", required=True)

    sp = sub.add_parser("begin", help="Start a backup session and print its id")
    sp.add_argument("label", nargs="?", default="install")
    sp.set_defaults(func=cmd_begin)

    sp = sub.add_parser("backup", help="Back up paths into a session")
    sp.add_argument("--session", default=None, help="Session id from 'begin' (without it, paths are renamed in place)")
    sp.add_argument("paths", nargs="+")
    sp.set_defaults(func=cmd_backup)

    sp = sub.add_parser("rollback", help="Restore everything recorded in a session (latest by default)")
    sp.add_argument("session", nargs="?", default=None)
    sp.set_defaults(func=cmd_rollback)

    sp = sub.add_parser("list", help="List backup sessions")
    sp.set_defaults(func=cmd_list)

    sp = sub.add_parser("latest", help="Print the most recent session id")
    sp.set_defaults(func=cmd_latest)

    sp = sub.add_parser("expire", help="Remove all but the newest sessions")
    sp.add_argument("--keep", type=int, default=None, help="Sessions to keep (default: 5)")
    sp.set_defaults(func=cmd_expire)

    sp = sub.add_parser("info", help="Show a session's manifest (latest by default)")
    sp.add_argument("session", nargs="?", default=None)
    sp.set_defaults(func=cmd_info)

    sp = sub.add_parser("remove", help="Delete one session")
    sp.add_argument("session")
    sp.set_defaults(func=cmd_remove)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    configure_logging(
        log_path=None if args.no_log_file else args.log,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    try:
        cfg = _config_from_args(args)
        return int(args.func(args, cfg))
    except KeyboardInterrupt:
        return ExitCode.INTERRUPTED
    except NoSessionsFound as e:
        logger.error("%s", e)
        return ExitCode.NO_SESSIONS_FOUND
    except (BackupError, FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return ExitCode.FAILED
    except Exception:
        logger.exception("dotfiles-backup %s failed", args.subcmd)
        raise


if __name__ == "__main__":
    raise SystemExit(main())
