import json
import os
import random
import shutil
from pathlib import Path

import pytest

from conftest import T0, at, tree_digest
from dotfiles_installer.backup import manifest
from dotfiles_installer.backup.errors import NoSessionsFound
from dotfiles_installer.backup.manifest import EntryType
from dotfiles_installer.backup.rollback import RollbackEngine, RollbackState
from dotfiles_installer.backup.session import begin, register_backup


def _yes(_question):
    return True


def _populate(home: Path):
    """One of each kind, as an installer would find them before linking."""
    (home / ".zshrc").write_text("old zshrc")
    nvim = home / ".config" / "nvim"
    (nvim / "lua").mkdir(parents=True)
    (nvim / "init.lua").write_text("-- old init")
    (nvim / "lua" / "plugins.lua").write_text("return {}")
    os.symlink("/opt/old-dotfiles/alacritty.yml", home / ".alacritty.yml")
    return [home / ".zshrc", nvim, home / ".alacritty.yml"]


def _clobber(home: Path, dotfiles: Path):
    """What the installer does after backing things up."""
    dotfiles.mkdir(parents=True, exist_ok=True)
    (dotfiles / "zshrc").write_text("new zshrc")
    (home / ".zshrc").unlink()
    os.symlink(dotfiles / "zshrc", home / ".zshrc")
    shutil.rmtree(home / ".config" / "nvim")
    (home / ".config" / "nvim").write_text("now a file")
    os.unlink(home / ".alacritty.yml")
    os.symlink(dotfiles / "alacritty.yml", home / ".alacritty.yml")


def _assert_original_state(home: Path):
    zshrc = home / ".zshrc"
    assert not zshrc.is_symlink()
    assert zshrc.read_text() == "old zshrc"
    nvim = home / ".config" / "nvim"
    assert nvim.is_dir() and not nvim.is_symlink()
    assert (nvim / "init.lua").read_text() == "-- old init"
    assert (nvim / "lua" / "plugins.lua").read_text() == "return {}"
    assert os.readlink(home / ".alacritty.yml") == "/opt/old-dotfiles/alacritty.yml"


def test_zshrc_scenario(cfg, home):
    session = begin("install", cfg, now=T0)
    zshrc = home / ".zshrc"
    zshrc.write_text("old")
    register_backup(session, zshrc, cfg)
    zshrc.write_text("new")

    report = RollbackEngine(cfg, confirm=_yes).restore_all()

    assert zshrc.read_text() == "old"
    assert report.state is RollbackState.COMPLETED
    assert report.ok
    assert report.restored == [str(zshrc)]
    assert report.failed == []


@pytest.mark.parametrize("kind", ["file", "directory", "symlink"])
def test_round_trip_after_deletion(cfg, home, kind):
    paths = dict(zip(["file", "directory", "symlink"], _populate(home)))
    target = paths[kind]
    before = tree_digest(home)
    session = begin("install", cfg, now=T0)
    register_backup(session, target, cfg)

    if target.is_dir() and not target.is_symlink():
        shutil.rmtree(target)
    else:
        target.unlink()

    report = RollbackEngine(cfg, confirm=_yes).restore_all(session.session_id)

    assert report.ok
    assert tree_digest(home) == before


def test_restores_every_kind_over_installer_changes(cfg, home, tmp_path):
    session = begin("install", cfg, now=T0)
    for p in _populate(home):
        register_backup(session, p, cfg)
    _clobber(home, tmp_path / "dotfiles")

    report = RollbackEngine(cfg, confirm=_yes).restore_all()

    assert report.ok
    assert [r.type for r in report.results] == [EntryType.FILE, EntryType.DIRECTORY, EntryType.SYMLINK]
    _assert_original_state(home)


def test_restore_order_is_irrelevant(cfg, home, tmp_path):
    session = begin("install", cfg, now=T0)
    for p in _populate(home):
        register_backup(session, p, cfg)
    expected = tree_digest(home)

    mpath = cfg.manifest_path(session.session_id)
    original_doc = json.loads(mpath.read_text())
    rng = random.Random(7)
    for _ in range(3):
        doc = dict(original_doc)
        doc["backups"] = rng.sample(original_doc["backups"], k=len(original_doc["backups"]))
        mpath.write_text(json.dumps(doc))
        _clobber(home, tmp_path / "dotfiles")

        assert RollbackEngine(cfg, confirm=_yes).restore_all(session.session_id).ok
        assert tree_digest(home) == expected


def test_partial_failure_is_contained(cfg, home, tmp_path):
    session = begin("install", cfg, now=T0)
    results = [register_backup(session, p, cfg) for p in _populate(home)]
    _clobber(home, tmp_path / "dotfiles")
    # Lose the directory snapshot (entry 2 of 3).
    shutil.rmtree(results[1].backup)

    report = RollbackEngine(cfg, confirm=_yes).restore_all(session.session_id)

    assert report.state is RollbackState.PARTIAL_FAILURE
    assert not report.ok
    assert report.failed == [str(home / ".config" / "nvim")]
    assert report.restored == [str(home / ".zshrc"), str(home / ".alacritty.yml")]
    assert "missing" in report.results[1].error
    assert (home / ".zshrc").read_text() == "old zshrc"
    assert os.readlink(home / ".alacritty.yml") == "/opt/old-dotfiles/alacritty.yml"
    # The failed entry's current content was left alone.
    assert (home / ".config" / "nvim").read_text() == "now a file"


def test_restore_error_does_not_stop_the_loop(cfg, home, tmp_path, monkeypatch):
    session = begin("install", cfg, now=T0)
    for p in _populate(home):
        register_backup(session, p, cfg)
    _clobber(home, tmp_path / "dotfiles")

    real_copytree = shutil.copytree

    def read_only_fs(src, dst, symlinks=False):
        raise PermissionError(f"Permission denied: {dst}")

    monkeypatch.setattr(shutil, "copytree", read_only_fs)
    report = RollbackEngine(cfg, confirm=_yes).restore_all(session.session_id)
    monkeypatch.setattr(shutil, "copytree", real_copytree)

    assert [r.ok for r in report.results] == [True, False, True]
    assert report.state is RollbackState.PARTIAL_FAILURE


def test_declined_confirmation_aborts_without_changes(cfg, home, tmp_path):
    session = begin("install", cfg, now=T0)
    for p in _populate(home):
        register_backup(session, p, cfg)
    _clobber(home, tmp_path / "dotfiles")
    before = tree_digest(home)
    asked = []

    def no(question):
        asked.append(question)
        return False

    report = RollbackEngine(cfg, confirm=no).restore_all()

    assert asked == ["Proceed with rollback?"]
    assert report.state is RollbackState.ABORTED
    assert report.history == [
        RollbackState.REQUESTED,
        RollbackState.PREVIEWED,
        RollbackState.DECLINED,
        RollbackState.ABORTED,
    ]
    assert report.results == []
    assert tree_digest(home) == before


def test_default_confirmation_is_no_when_not_interactive(cfg, home, monkeypatch):
    import io

    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    session = begin("install", cfg, now=T0)
    (home / ".zshrc").write_text("old")
    register_backup(session, home / ".zshrc", cfg)
    (home / ".zshrc").write_text("new")

    report = RollbackEngine(cfg).restore_all()

    assert report.state is RollbackState.ABORTED
    assert (home / ".zshrc").read_text() == "new"


def test_assume_yes_skips_prompt(cfg, home):
    session = begin("install", cfg, now=T0)
    (home / ".zshrc").write_text("old")
    register_backup(session, home / ".zshrc", cfg)
    (home / ".zshrc").write_text("new")

    def never(_q):
        raise AssertionError("should not ask")

    report = RollbackEngine(cfg.with_overrides(assume_yes=True), confirm=never).restore_all()

    assert report.history == [
        RollbackState.REQUESTED,
        RollbackState.PREVIEWED,
        RollbackState.CONFIRMED,
        RollbackState.RESTORING,
        RollbackState.COMPLETED,
    ]
    assert (home / ".zshrc").read_text() == "old"


def test_dry_run_rollback_is_pure_and_reports_same_outcomes(cfg, home, tmp_path):
    session = begin("install", cfg, now=T0)
    results = [register_backup(session, p, cfg) for p in _populate(home)]
    _clobber(home, tmp_path / "dotfiles")
    shutil.rmtree(results[1].backup)
    before = tree_digest(tmp_path)

    def never(_q):
        raise AssertionError("dry-run must not prompt")

    dry = RollbackEngine(cfg.with_overrides(dry_run=True), confirm=never).restore_all(session.session_id)

    assert tree_digest(tmp_path) == before
    real = RollbackEngine(cfg, confirm=_yes).restore_all(session.session_id)
    assert [r.ok for r in dry.results] == [r.ok for r in real.results] == [True, False, True]
    assert dry.state is real.state is RollbackState.PARTIAL_FAILURE


def test_preview_lists_originals_in_order(cfg, home):
    session = begin("install", cfg, now=T0)
    paths = _populate(home)
    for p in paths:
        register_backup(session, p, cfg)

    assert RollbackEngine(cfg).preview(session.session_id) == [str(p) for p in paths]


def test_rollback_uses_latest_session(cfg, home):
    older = begin("install", cfg, now=at(0))
    (home / ".zshrc").write_text("from older")
    register_backup(older, home / ".zshrc", cfg)
    newer = begin("update", cfg, now=at(1))
    (home / ".bashrc").write_text("from newer")
    register_backup(newer, home / ".bashrc", cfg)
    (home / ".zshrc").write_text("changed")
    (home / ".bashrc").write_text("changed")

    report = RollbackEngine(cfg, confirm=_yes).restore_all()

    assert report.session_id == newer.session_id
    assert (home / ".bashrc").read_text() == "from newer"
    assert (home / ".zshrc").read_text() == "changed"


def test_empty_session_completes_without_prompt(cfg):
    session = begin("install", cfg, now=T0)

    def never(_q):
        raise AssertionError("nothing to confirm")

    report = RollbackEngine(cfg, confirm=never).restore_all(session.session_id)

    assert report.state is RollbackState.COMPLETED
    assert report.results == []
    assert manifest.read_all(session.session_id, cfg) == []


def test_no_sessions(cfg):
    with pytest.raises(NoSessionsFound):
        RollbackEngine(cfg, confirm=_yes).restore_all()


def test_file_restore_recreates_parent_directories(cfg, home):
    session = begin("install", cfg, now=T0)
    deep = home / ".config" / "alacritty" / "alacritty.yml"
    deep.parent.mkdir(parents=True)
    deep.write_text("font: 12")
    register_backup(session, deep, cfg)
    shutil.rmtree(home / ".config")

    assert RollbackEngine(cfg, confirm=_yes).restore_all().ok
    assert deep.read_text() == "font: 12"


@pytest.mark.parametrize("target", [b"/opt/a\rb", b"/opt/a\r\nb", b"/opt/caf\xe9/alacritty.yml"])
def test_symlink_target_round_trips_exactly(cfg, home, target):
    link = home / ".alacritty.yml"
    os.symlink(target, os.fsencode(link))
    session = begin("install", cfg, now=T0)
    register_backup(session, link, cfg)
    link.unlink()

    report = RollbackEngine(cfg, confirm=_yes).restore_all(session.session_id)

    assert report.ok
    assert os.readlink(os.fsencode(link)) == target
