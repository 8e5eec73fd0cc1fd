"""
Team Structure Engine - algorithms over a team's ``items`` tree.

Every function works on the list it is given (a team's root ``items``) and
holds no state of its own. Callers load the tree from the config document,
apply one of these operations and persist the document again.

Tree invariants relied on here:
    * an id appears at most once in a team's tree
    * no folder is its own ancestor
    * the root is a plain list, not an implicit folder
"""

from __future__ import annotations

from typing import Callable, Optional, TypeVar, Union
from uuid import uuid4

from analysis_worker.core.errors import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
)
from analysis_worker.teams.models import (
    AnalysisRef,
    FindItemResult,
    Folder,
    MoveItemResult,
)

T = TypeVar("T")

Item = Union[AnalysisRef, Folder]
Visitor = Callable[[Item, Optional[Folder], int], Optional[T]]


def traverse_tree(
    items: list[Item],
    visitor: Visitor[T],
    parent: Folder | None = None,
) -> T | None:
    """Depth-first, pre-order walk that stops at the first non-None visitor result.

    The visitor receives ``(item, parent, index)``; ``parent`` is None for
    root-level items and ``index`` is the position in the parent's list.
    """
    for index, item in enumerate(items):
        result = visitor(item, parent, index)
        if result is not None:
            return result
        if item.type == "folder":
            found = traverse_tree(item.items, visitor, item)
            if found is not None:
                return found
    return None


def find_item_by_id(items: list[Item], item_id: str) -> Item | None:
    return traverse_tree(items, lambda item, _parent, _index: item if item.id == item_id else None)


def find_item_with_parent(items: list[Item], item_id: str) -> FindItemResult:
    result = traverse_tree(
        items,
        lambda item, parent, index: (
            FindItemResult(parent=parent, item=item, index=index)
            if item.id == item_id
            else None
        ),
    )
    return result or FindItemResult(parent=None, item=None, index=-1)


def _container(items: list[Item], parent: Folder | None) -> list[Item]:
    return parent.items if parent is not None else items


def _require_folder(items: list[Item], folder_id: str, label: str = "Folder") -> Folder:
    folder = find_item_by_id(items, folder_id)
    if folder is None or folder.type != "folder":
        raise NotFoundError(f"{label} {folder_id} not found")
    return folder


def new_folder(name: str, expanded: bool = False) -> Folder:
    return Folder(id=str(uuid4()), name=name, expanded=expanded, items=[])


def add_item(items: list[Item], item: Item, parent_id: str | None = None) -> Item:
    """Append ``item`` to the root or to the folder ``parent_id``."""
    if find_item_by_id(items, item.id) is not None:
        raise ConflictError(f"Item {item.id} already exists in team structure")
    if parent_id:
        _require_folder(items, parent_id, "Parent folder").items.append(item)
    else:
        items.append(item)
    return item


def remove_analysis_ref(items: list[Item], analysis_id: str) -> bool:
    """Splice out the analysis reference wherever it lives. Returns True if found."""

    def _remove(item: Item, parent: Folder | None, index: int) -> bool | None:
        if item.type == "analysis" and item.id == analysis_id:
            del _container(items, parent)[index]
            return True
        return None

    return traverse_tree(items, _remove) is True


def update_folder(
    items: list[Item],
    folder_id: str,
    name: str | None = None,
    expanded: bool | None = None,
) -> Folder:
    folder = _require_folder(items, folder_id)
    if name is not None:
        folder.name = name
    if expanded is not None:
        folder.expanded = expanded
    return folder


def delete_folder(items: list[Item], folder_id: str) -> int:
    """Remove a folder, promoting its direct children into its former slot.

    Returns the number of children moved.
    """
    found = find_item_with_parent(items, folder_id)
    if found.item is None or found.item.type != "folder":
        raise NotFoundError(f"Folder {folder_id} not found")
    children = list(found.item.items)
    container = _container(items, found.parent)
    container[found.index : found.index + 1] = children
    return len(children)


def move_item(
    items: list[Item],
    item_id: str,
    target_folder_id: str | None,
    position: int,
) -> MoveItemResult:
    """Move an item to ``position`` inside the target folder (None = root)."""
    found = find_item_with_parent(items, item_id)
    item = found.item
    if item is None:
        raise NotFoundError(f"Item {item_id} not found")

    if target_folder_id and target_folder_id == item_id:
        raise InvalidOperationError("Cannot move folder into itself")

    if item.type == "folder" and target_folder_id:
        inside = traverse_tree(
            item.items,
            lambda child, _parent, _index: True if child.id == target_folder_id else None,
        )
        if inside:
            raise InvalidOperationError("Cannot move folder into its own descendant")

    if target_folder_id:
        target = find_item_by_id(items, target_folder_id)
        if target is None:
            raise NotFoundError(f"Target folder {target_folder_id} not found")
        if target.type != "folder":
            raise InvalidOperationError("Target parent must be a folder")
        destination = target.items
    else:
        destination = items

    del _container(items, found.parent)[found.index]
    position = max(0, min(position, len(destination)))
    destination.insert(position, item)
    return MoveItemResult(moved=item_id, to=target_folder_id or "root")


def collect_ids(items: list[Item]) -> list[str]:
    ids: list[str] = []
    traverse_tree(items, lambda item, _parent, _index: ids.append(item.id))
    return ids


def collect_analysis_ids(items: list[Item]) -> list[str]:
    ids: list[str] = []

    def _collect(item: Item, _parent: Folder | None, _index: int) -> None:
        if item.type == "analysis":
            ids.append(item.id)

    traverse_tree(items, _collect)
    return ids
