"""Vault access: the resource store the engine reads and mutates.

``ResourceStore`` is the async interface every component depends on.
``LocalVaultStore`` implements it over a directory on disk, running the
blocking file calls in worker threads so the event loop only suspends on
awaited I/O.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Protocol, TypeVar

from quill.engine.errors import ResourceIOError, ResourceNotFoundError
from quill.shared.services.durable_write import atomic_write_text

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ChildEntry:
    name: str
    is_container: bool


class ResourceStore(Protocol):
    """Async document store keyed by vault-relative paths."""

    async def exists(self, path: str) -> bool: ...

    async def read(self, path: str) -> str: ...

    async def write(self, path: str, content: str) -> None: ...

    async def create(self, path: str, content: str) -> None: ...

    async def delete(self, path: str) -> None: ...

    async def mkdir_recursive_if_missing(self, path: str) -> None: ...

    async def list_children(self, path: str) -> list[ChildEntry]: ...


def normalize_vault_path(path: str, vault_root: str | Path | None = None) -> str:
    """Turn a model-supplied path into a clean vault-relative path.

    Backslashes become slashes, an absolute prefix matching the vault root
    is stripped, as are leading slashes. ``""`` is the vault root. Raises
    ``ValueError`` for paths that climb out of the vault.
    """
    text = (path or "").strip().replace("\\", "/")
    if vault_root:
        root = str(vault_root).replace("\\", "/").rstrip("/")
        if root and (text == root or text.startswith(root + "/")):
            text = text[len(root):]
    text = text.lstrip("/")
    if not text:
        return ""
    normalized = posixpath.normpath(text)
    if normalized == ".":
        return ""
    if normalized == ".." or normalized.startswith("../"):
        raise ValueError(f"path escapes the vault: {path}")
    return normalized


def parent_path(path: str) -> str:
    return posixpath.dirname(path)


async def walk_files(
    store: ResourceStore,
    root: str = "",
    *,
    skip: Callable[[str], bool] | None = None,
) -> AsyncIterator[str]:
    """Yield every file path under ``root``, depth first, in name order.

    Entries whose name satisfies ``skip`` are not visited.
    """
    children = await store.list_children(root)
    for child in sorted(children, key=lambda c: c.name):
        if skip is not None and skip(child.name):
            continue
        child_path = f"{root}/{child.name}" if root else child.name
        if child.is_container:
            async for nested in walk_files(store, child_path, skip=skip):
                yield nested
        else:
            yield child_path


class LocalVaultStore:
    """``ResourceStore`` over a local directory."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser().resolve()

    def __repr__(self) -> str:
        return f"LocalVaultStore({str(self.root)!r})"

    def _resolve(self, path: str, operation: str) -> Path:
        try:
            rel = normalize_vault_path(path, self.root)
        except ValueError as exc:
            raise ResourceIOError(path, operation, str(exc)) from None
        full = (self.root / rel).resolve() if rel else self.root
        if full != self.root and not full.is_relative_to(self.root):
            raise ResourceIOError(path, operation, "path escapes the vault")
        return full

    async def _run(self, path: str, operation: str, fn: Callable[..., T], *args) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except FileNotFoundError:
            raise ResourceNotFoundError(path, operation) from None
        except OSError as exc:
            raise ResourceIOError(path, operation, exc.strerror or str(exc)) from exc

    async def exists(self, path: str) -> bool:
        full = self._resolve(path, "stat")
        return await asyncio.to_thread(full.exists)

    async def read(self, path: str) -> str:
        full = self._resolve(path, "read")
        return await self._run(path, "read", full.read_text, "utf-8")

    async def write(self, path: str, content: str) -> None:
        full = self._resolve(path, "write")

        def _write() -> None:
            if not full.is_file():
                raise ResourceNotFoundError(path, "write")
            atomic_write_text(full, content)

        await self._run(path, "write", _write)
        logger.debug("Wrote %s (%d chars)", path, len(content))

    async def create(self, path: str, content: str) -> None:
        full = self._resolve(path, "create")

        def _create() -> None:
            if not full.parent.is_dir():
                raise ResourceIOError(path, "create", "parent folder does not exist")
            with open(full, "x", encoding="utf-8") as f:
                f.write(content)

        try:
            await self._run(path, "create", _create)
        except ResourceIOError as exc:
            if isinstance(exc.__cause__, FileExistsError):
                raise ResourceIOError(path, "create", "already exists") from exc.__cause__
            raise
        logger.debug("Created %s (%d chars)", path, len(content))

    async def delete(self, path: str) -> None:
        full = self._resolve(path, "delete")
        if full == self.root:
            raise ResourceIOError(path, "delete", "refusing to delete the vault root")

        def _delete() -> None:
            if full.is_dir():
                shutil.rmtree(full)
            else:
                full.unlink()

        await self._run(path, "delete", _delete)
        logger.debug("Deleted %s", path)

    async def mkdir_recursive_if_missing(self, path: str) -> None:
        full = self._resolve(path, "mkdir")
        await self._run(path, "mkdir", lambda: full.mkdir(parents=True, exist_ok=True))

    async def list_children(self, path: str) -> list[ChildEntry]:
        full = self._resolve(path, "list")

        def _list() -> list[ChildEntry]:
            if not full.is_dir():
                if full.exists():
                    raise NotADirectoryError(20, "not a folder", str(full))
                raise FileNotFoundError(str(full))
            return [
                ChildEntry(name=child.name, is_container=child.is_dir())
                for child in sorted(full.iterdir(), key=lambda p: p.name)
            ]

        return await self._run(path, "list", _list)
