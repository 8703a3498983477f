from __future__ import annotations

import pytest

from pubimport.errors import (
    DuplicateFilingError,
    EmptyNameError,
    FolderCycleError,
    FolderNotFoundError,
    LibraryRequestError,
    NotFiledError,
    RedundantMoveError,
)
from pubimport.models import LibraryFolder, LibrarySnapshot
from pubimport.services.library import FolderTree


class RecordingBackend:
    """In-memory backend that records every call it receives."""

    def __init__(self, snapshot: LibrarySnapshot | None = None, fail_toggle: bool = False) -> None:
        self.snapshot = snapshot or LibrarySnapshot()
        self.fail_toggle = fail_toggle
        self.calls: list[tuple] = []
        self._counter = 0

    async def fetch(self) -> LibrarySnapshot:
        self.calls.append(("fetch",))
        return self.snapshot

    async def create_folder(self, name: str, parent_id: str | None) -> LibraryFolder:
        self._counter += 1
        self.calls.append(("create", name, parent_id))
        return LibraryFolder(id=f"new{self._counter}", name=name, parent=parent_id)

    async def rename_folder(self, folder_id: str, name: str) -> LibraryFolder:
        self.calls.append(("rename", folder_id, name))
        return LibraryFolder(id=folder_id, name=name)

    async def move_folder(self, folder_id: str, parent_id: str | None) -> LibraryFolder:
        self.calls.append(("move", folder_id, parent_id))
        return LibraryFolder(id=folder_id, name="", parent=parent_id)

    async def toggle_expanded(self, folder_id: str) -> LibraryFolder:
        self.calls.append(("toggle", folder_id))
        if self.fail_toggle:
            raise LibraryRequestError("Failed to update folder", status_code=500)
        return LibraryFolder(id=folder_id, name="")

    async def delete_folder(self, folder_id: str) -> None:
        self.calls.append(("delete", folder_id))

    async def add_publication(self, folder_id: str, publication_id: str) -> None:
        self.calls.append(("add", folder_id, publication_id))

    async def remove_publication(self, folder_id: str, publication_id: str) -> None:
        self.calls.append(("remove", folder_id, publication_id))

    async def move_publication(self, publication_id: str, source_folder_id: str, target_folder_id: str) -> None:
        self.calls.append(("move_pub", publication_id, source_folder_id, target_folder_id))


def _snapshot() -> LibrarySnapshot:
    # root ─ a ─ b ─ c
    #      └ d
    return LibrarySnapshot(
        folders=[
            LibraryFolder(id="a", name="Alpha", expanded=True),
            LibraryFolder(id="b", name="Beta", parent="a"),
            LibraryFolder(id="c", name="Gamma", parent="b"),
            LibraryFolder(id="d", name="Delta"),
        ],
        folder_publications={"a": ["p1"], "c": ["p2", "p3"], "d": ["p2"]},
    )


async def _tree(**kwargs) -> tuple[FolderTree, RecordingBackend]:
    backend = RecordingBackend(_snapshot(), **kwargs)
    tree = FolderTree(backend)
    await tree.load()
    return tree, backend


@pytest.mark.asyncio
async def test_load_builds_hierarchy() -> None:
    tree, _ = await _tree()
    assert [folder.id for folder in tree.children()] == ["a", "d"]
    assert tree.descendants("a") == {"b", "c"}
    assert tree.ancestors("c") == ["b", "a"]
    assert tree.path("c") == "Alpha / Beta / Gamma"
    assert [(depth, folder.id) for depth, folder in tree.walk()] == [(0, "a"), (1, "b"), (2, "c"), (0, "d")]
    assert tree.folders_containing("p2") == ["c", "d"]


@pytest.mark.asyncio
async def test_move_into_self_or_descendant_is_rejected() -> None:
    tree, backend = await _tree()
    for target in ("a", "b", "c"):
        assert not tree.can_move("a", target)
        with pytest.raises(FolderCycleError):
            await tree.move("a", target)
    assert not any(call[0] == "move" for call in backend.calls)


@pytest.mark.asyncio
async def test_redundant_move_is_rejected() -> None:
    tree, _ = await _tree()
    with pytest.raises(RedundantMoveError):
        await tree.move("b", "a")
    with pytest.raises(RedundantMoveError):
        await tree.move("d", None)


@pytest.mark.asyncio
async def test_accepted_move_updates_parent() -> None:
    tree, backend = await _tree()
    assert tree.can_move("c", "d")
    moved = await tree.move("c", "d")
    assert moved.parent == "d"
    assert tree.get("c").parent == "d"
    assert tree.descendants("a") == {"b"}
    assert ("move", "c", "d") in backend.calls
    await tree.move("c", None)
    assert [folder.id for folder in tree.children()] == ["a", "c", "d"]


@pytest.mark.asyncio
async def test_delete_cascades_to_descendants_and_filings() -> None:
    tree, backend = await _tree()
    removed = await tree.delete("a")
    assert removed == {"a", "b", "c"}
    assert [folder.id for folder in tree.folders] == ["d"]
    snapshot = tree.snapshot()
    assert set(snapshot.folder_publications) == {"d"}
    assert backend.calls[-1] == ("delete", "a")
    with pytest.raises(FolderNotFoundError):
        tree.get("b")


@pytest.mark.asyncio
async def test_create_folder_rejects_blank_and_keeps_backend_expanded() -> None:
    tree, backend = await _tree()
    with pytest.raises(EmptyNameError):
        await tree.create_folder("   ")
    child = await tree.create_folder("  Reviews ", "a")
    assert child.name == "Reviews"
    assert child.expanded is False
    assert child in tree.children("a")
    root = await tree.create_folder("Inbox")
    assert root.expanded is False
    assert ("create", "Reviews", "a") in backend.calls
    await tree.flush()
    assert not any(call[0] == "toggle" for call in backend.calls)
    with pytest.raises(FolderNotFoundError):
        await tree.create_folder("Orphan", "missing")


@pytest.mark.asyncio
async def test_create_under_collapsed_parent_expands_it_through_backend() -> None:
    tree, backend = await _tree()
    assert tree.get("d").expanded is False
    await tree.create_folder("Sub", "d")
    assert tree.get("d").expanded is True
    await tree.flush()
    assert backend.calls.count(("toggle", "d")) == 1


@pytest.mark.asyncio
async def test_rename_trims_name() -> None:
    tree, _ = await _tree()
    renamed = await tree.rename("d", "  Dee  ")
    assert renamed.name == "Dee"
    with pytest.raises(EmptyNameError):
        await tree.rename("d", "")


@pytest.mark.asyncio
async def test_toggle_is_optimistic_and_survives_backend_failure() -> None:
    tree, backend = await _tree(fail_toggle=True)
    toggled = tree.toggle_expanded("a")
    assert toggled.expanded is False
    await tree.flush()
    assert ("toggle", "a") in backend.calls
    assert tree.get("a").expanded is False


@pytest.mark.asyncio
async def test_move_publication_into_folder_that_has_it_is_refused() -> None:
    tree, backend = await _tree()
    assert not tree.can_move_publication("p2", "c", "d")
    with pytest.raises(DuplicateFilingError):
        await tree.move_publication("p2", "c", "d")
    assert tree.publications_in("c") == {"p2", "p3"}
    assert tree.publications_in("d") == {"p2"}
    assert not any(call[0] == "move_pub" for call in backend.calls)


@pytest.mark.asyncio
async def test_move_publication_requires_source_filing() -> None:
    tree, _ = await _tree()
    with pytest.raises(NotFiledError):
        await tree.move_publication("p9", "a", "d")


@pytest.mark.asyncio
async def test_filing_copy_and_move() -> None:
    tree, backend = await _tree()
    assert tree.can_move_publication("p3", "c", "d")
    await tree.move_publication("p3", "c", "d")
    assert tree.publications_in("c") == {"p2"}
    assert tree.publications_in("d") == {"p2", "p3"}

    await tree.copy_publication("p1", "d")
    assert tree.folders_containing("p1") == ["a", "d"]
    await tree.remove_publication("a", "p1")
    assert tree.folders_containing("p1") == ["d"]
    assert ("add", "d", "p1") in backend.calls
