from __future__ import annotations

import pytest

from quill.engine.errors import ResourceIOError, ResourceNotFoundError
from quill.shared.services.vault import (
    ChildEntry,
    LocalVaultStore,
    normalize_vault_path,
    walk_files,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("notes/a.md", "notes/a.md"),
        ("/notes/a.md", "notes/a.md"),
        ("notes\\sub\\a.md", "notes/sub/a.md"),
        ("notes/./sub/../a.md", "notes/a.md"),
        ("", ""),
        ("/", ""),
        (".", ""),
    ],
)
def test_normalize_vault_path(raw: str, expected: str) -> None:
    assert normalize_vault_path(raw) == expected


def test_normalize_strips_vault_root_prefix() -> None:
    assert normalize_vault_path("/home/me/vault/notes/a.md", "/home/me/vault") == "notes/a.md"
    assert normalize_vault_path("/home/me/vault", "/home/me/vault") == ""
    # Same prefix but a different folder is not the vault.
    assert normalize_vault_path("/home/me/vault2/a.md", "/home/me/vault") == "home/me/vault2/a.md"


@pytest.mark.parametrize("raw", ["..", "../outside.md", "notes/../../outside.md"])
def test_normalize_rejects_escapes(raw: str) -> None:
    with pytest.raises(ValueError):
        normalize_vault_path(raw)


@pytest.mark.asyncio
async def test_create_requires_parent_folder(vault) -> None:
    store = LocalVaultStore(vault)
    with pytest.raises(ResourceIOError, match="parent folder does not exist"):
        await store.create("missing/a.md", "x")

    await store.mkdir_recursive_if_missing("missing")
    await store.create("missing/a.md", "x")
    assert (vault / "missing" / "a.md").read_text(encoding="utf-8") == "x"


@pytest.mark.asyncio
async def test_create_refuses_existing(vault) -> None:
    (vault / "a.md").write_text("old", encoding="utf-8")
    store = LocalVaultStore(vault)
    with pytest.raises(ResourceIOError, match="already exists"):
        await store.create("a.md", "new")
    assert (vault / "a.md").read_text(encoding="utf-8") == "old"


@pytest.mark.asyncio
async def test_write_requires_existing_note(vault) -> None:
    store = LocalVaultStore(vault)
    with pytest.raises(ResourceNotFoundError):
        await store.write("nope.md", "x")
    assert not (vault / "nope.md").exists()


@pytest.mark.asyncio
async def test_read_missing_is_not_found(vault) -> None:
    store = LocalVaultStore(vault)
    with pytest.raises(ResourceNotFoundError) as excinfo:
        await store.read("nope.md")
    assert excinfo.value.error_type == "not_found"


@pytest.mark.asyncio
async def test_list_children_sorted(vault) -> None:
    (vault / "b.md").write_text("", encoding="utf-8")
    (vault / "a").mkdir()
    (vault / "c.md").write_text("", encoding="utf-8")
    store = LocalVaultStore(vault)

    assert await store.list_children("") == [
        ChildEntry("a", True),
        ChildEntry("b.md", False),
        ChildEntry("c.md", False),
    ]


@pytest.mark.asyncio
async def test_list_children_of_missing_folder(vault) -> None:
    store = LocalVaultStore(vault)
    with pytest.raises(ResourceNotFoundError):
        await store.list_children("ghost")


@pytest.mark.asyncio
async def test_delete_folder_and_refuse_root(vault) -> None:
    (vault / "old" / "deep").mkdir(parents=True)
    (vault / "old" / "deep" / "x.md").write_text("x", encoding="utf-8")
    store = LocalVaultStore(vault)

    await store.delete("old")
    assert not (vault / "old").exists()

    with pytest.raises(ResourceIOError, match="vault root"):
        await store.delete("")


@pytest.mark.asyncio
async def test_paths_outside_vault_are_refused(vault) -> None:
    store = LocalVaultStore(vault)
    with pytest.raises(ResourceIOError, match="escapes the vault"):
        await store.read("../secret.md")
    with pytest.raises(ResourceIOError):
        await store.exists("notes/../../secret.md")


@pytest.mark.asyncio
async def test_walk_files_depth_first_with_skip(vault) -> None:
    (vault / ".obsidian").mkdir()
    (vault / ".obsidian" / "config.md").write_text("", encoding="utf-8")
    (vault / "notes" / "sub").mkdir(parents=True)
    (vault / "notes" / "sub" / "z.md").write_text("", encoding="utf-8")
    (vault / "notes" / "a.md").write_text("", encoding="utf-8")
    (vault / "top.md").write_text("", encoding="utf-8")
    store = LocalVaultStore(vault)

    paths = [p async for p in walk_files(store, skip=lambda name: name.startswith("."))]
    assert paths == ["notes/a.md", "notes/sub/z.md", "top.md"]
