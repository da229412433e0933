from __future__ import annotations

import json

from quill.adapters.permission_store import FILENAME, PermissionStore


def test_project_and_global_are_merged(tmp_path):
    store = PermissionStore(project_dir=tmp_path / "vault", global_dir=tmp_path / "home")
    store.add_project("editFile")
    store.add_global("write")

    assert store.load() == {"editFile", "write"}
    assert json.loads((tmp_path / "vault" / FILENAME).read_text()) == ["editFile"]
    assert json.loads((tmp_path / "home" / FILENAME).read_text()) == ["write"]


def test_project_without_vault_falls_back_to_global(tmp_path):
    store = PermissionStore(global_dir=tmp_path / "home")
    store.add_project("list")
    assert json.loads((tmp_path / "home" / FILENAME).read_text()) == ["list"]


def test_remove_forgets_both_levels(tmp_path):
    store = PermissionStore(project_dir=tmp_path / "vault", global_dir=tmp_path / "home")
    store.add_project("write")
    store.add_global("write")
    store.remove("write")
    assert store.load() == set()


def test_corrupt_file_is_ignored(tmp_path, caplog):
    (tmp_path / "home").mkdir()
    (tmp_path / "home" / FILENAME).write_text("{not json", encoding="utf-8")
    store = PermissionStore(global_dir=tmp_path / "home")
    assert store.load() == set()
    assert "Failed to load" in caplog.text
