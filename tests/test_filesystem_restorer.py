from __future__ import annotations

import glob
import logging
import os
import shutil

import pytest

from stackrestore.core.errors import AssetError, ConfigError
from stackrestore.core.restore.paths import StagedArchive
from stackrestore.core.restore.restorers.filesystem import AssetsRestorer, ConfigFilesRestorer, snapshot_name
from tests.helpers.archives import build_tree


def _read(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def test_existing_asset_dir_is_snapshotted_then_replaced(tmp_path, workspace):
    live = workspace["live"]
    os.makedirs(os.path.join(live, "public"))
    with open(os.path.join(live, "public", "old.txt"), "w", encoding="utf-8") as f:
        f.write("old")
    staged = StagedArchive(root=build_tree(str(tmp_path / "b"), components={"assets": True}, assets={"public": {"new.txt": "new"}}))

    res = AssetsRestorer(live).restore(staged)

    snaps = glob.glob(os.path.join(live, "public.bak.*"))
    assert len(snaps) == 1
    assert _read(os.path.join(snaps[0], "old.txt")) == "old"
    assert _read(os.path.join(live, "public", "new.txt")) == "new"
    assert not os.path.exists(os.path.join(live, "public", "old.txt"))
    assert res.items_ok == 1


def test_only_known_asset_dirs_are_restored(tmp_path, workspace):
    staged = StagedArchive(
        root=build_tree(
            str(tmp_path / "b"),
            components={"assets": True},
            assets={"images": {"a.png": "a"}, "uploads": {"u.bin": "u"}, "node_modules": {"x.js": "x"}},
        )
    )
    res = AssetsRestorer(workspace["live"]).restore(staged)
    assert sorted(os.listdir(workspace["live"])) == ["images", "uploads"]
    assert res.detail == "2 asset directories restored"


def test_config_files_allow_list(tmp_path, workspace):
    live = workspace["live"]
    with open(os.path.join(live, "firebase.json"), "w", encoding="utf-8") as f:
        f.write('{"old": true}')
    staged = StagedArchive(
        root=build_tree(
            str(tmp_path / "b"),
            components={"config": True},
            config={"firebase.json": '{"new": true}', "next.config.js": "module.exports = {}", ".env.local": "SECRET=1"},
        )
    )
    res = ConfigFilesRestorer(live).restore(staged)
    assert _read(os.path.join(live, "firebase.json")) == '{"new": true}'
    assert _read(os.path.join(live, "next.config.js")) == "module.exports = {}"
    assert not os.path.exists(os.path.join(live, ".env.local"))
    assert len(glob.glob(os.path.join(live, "firebase.json.bak.*"))) == 1
    assert res.items_ok == 2


def test_copy_failure_raises_asset_error(tmp_path, workspace, monkeypatch):
    staged = StagedArchive(root=build_tree(str(tmp_path / "b"), components={"assets": True}, assets={"public": {"a": "a"}}))

    def broken_copytree(*a, **kw):
        raise OSError("disk full")

    monkeypatch.setattr(shutil, "copytree", broken_copytree)
    with pytest.raises(AssetError) as ei:
        AssetsRestorer(workspace["live"]).restore(staged)
    assert ei.value.fatal is True
    assert ei.value.context["path"] == "public"


def test_copy_failure_raises_config_error(tmp_path, workspace, monkeypatch):
    staged = StagedArchive(root=build_tree(str(tmp_path / "b"), components={"config": True}, config={"vercel.json": "{}"}))

    def broken_copy2(*a, **kw):
        raise OSError("read-only filesystem")

    monkeypatch.setattr(shutil, "copy2", broken_copy2)
    with pytest.raises(ConfigError):
        ConfigFilesRestorer(workspace["live"]).restore(staged)


def test_snapshot_name_avoids_collisions(tmp_path):
    p = str(tmp_path / "public")
    assert snapshot_name(p, now_ms=1700000000000) == f"{p}.bak.1700000000000"
    os.makedirs(f"{p}.bak.1700000000000")
    assert snapshot_name(p, now_ms=1700000000000) == f"{p}.bak.1700000000000.1"


def test_snapshot_failure_is_logged_and_copy_still_happens(tmp_path, workspace, monkeypatch, caplog):
    from stackrestore.core.restore.restorers import filesystem as fsmod

    live = workspace["live"]
    with open(os.path.join(live, "vercel.json"), "w", encoding="utf-8") as f:
        f.write("old")
    staged = StagedArchive(root=build_tree(str(tmp_path / "b"), components={"config": True}, config={"vercel.json": "new"}))

    def busy(*a, **kw):
        raise OSError("busy")

    monkeypatch.setattr(fsmod.os, "replace", busy)
    with caplog.at_level(logging.WARNING):
        res = ConfigFilesRestorer(live).restore(staged)

    assert res.status == "ok"
    assert res.items_ok == 1
    assert _read(os.path.join(live, "vercel.json")) == "new"
    assert glob.glob(os.path.join(live, "vercel.json.bak.*")) == []
    assert any("could not snapshot" in r.getMessage() for r in caplog.records)
