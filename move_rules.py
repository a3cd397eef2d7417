"""
move_rules.py - Move validation for the vocabulary tree

Decides whether an item may be dropped into a folder, and which
destinations the "Move to..." picker should offer.

Rules (checked in order):
1. An item cannot be moved onto itself
2. A folder cannot be moved into one of its own descendants
3. Subfolders hold cards only - a folder cannot go into a subfolder
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple

from tree_manager_base import CategoryItem, TreeItem, descendant_ids, find_item


MSG_SELF_MOVE = "Cannot move an item into itself"
MSG_CYCLE = "Cannot move a folder into its own subfolder"
MSG_SUBFOLDER = ("Subfolders cannot contain other folders. "
                 "Please select a top-level folder or category.")
MSG_NOT_FOLDER = "Can only move items into folders"
MSG_NO_DESTINATION = "Please select a destination"
MSG_TARGET_MISSING = "Target folder not found"
MSG_CATEGORY_MISSING = "Target category not found"


def is_subfolder(node: TreeItem) -> bool:
    return node.parent_id is not None


def check_move(dragged: TreeItem, target: TreeItem,
               descendants: Optional[Set[int]] = None) -> Tuple[bool, str]:
    """
    Check if `dragged` can be moved into folder `target`.

    `descendants` may carry a precomputed descendant_ids(dragged) so hot
    paths (drag-over) don't walk the subtree on every event.

    Returns:
        (can_move: bool, reason: str)
    """
    if dragged.id == target.id:
        return (False, MSG_SELF_MOVE)

    if descendants is None:
        descendants = descendant_ids(dragged)
    if target.id in descendants:
        return (False, MSG_CYCLE)

    if dragged.is_folder and target.is_folder and is_subfolder(target):
        return (False, MSG_SUBFOLDER)

    return (True, "")


def can_move(dragged: TreeItem, target: TreeItem,
             descendants: Optional[Set[int]] = None) -> bool:
    return check_move(dragged, target, descendants)[0]


def check_drop_target(dragged: TreeItem, target: TreeItem,
                      descendants: Optional[Set[int]] = None) -> Tuple[bool, str]:
    """Like check_move(), but also rejects cards as drop targets"""
    if not target.is_folder:
        return (False, MSG_NOT_FOLDER)
    return check_move(dragged, target, descendants)


def _find_in_forest(categories: Iterable[CategoryItem], item_id: int) -> Optional[TreeItem]:
    for category in categories:
        found = find_item(category.children, item_id)
        if found is not None:
            return found
    return None


def check_destination(categories: Iterable[CategoryItem], item: TreeItem,
                      folder_id: Optional[int] = None,
                      category_id: Optional[int] = None) -> Tuple[bool, str]:
    """
    Validate a "Move to..." selection.

    A category root is always a legal destination. A folder goes through
    check_drop_target() after being looked up in the current forest, since
    the picker may have been opened before the tree last changed.
    """
    categories = tuple(categories)
    if folder_id is not None:
        target = _find_in_forest(categories, folder_id)
        if target is None:
            return (False, MSG_TARGET_MISSING)
        return check_drop_target(item, target)

    if category_id is not None:
        if not any(category.id == category_id for category in categories):
            return (False, MSG_CATEGORY_MISSING)
        return (True, "")

    return (False, MSG_NO_DESTINATION)


@dataclass
class Destination:
    """One row in the "Move to..." picker"""
    category_id: int
    folder_id: Optional[int]
    name: str
    depth: int
    selectable: bool
    reason: str = ""


def list_destinations(categories: Iterable[CategoryItem], item: TreeItem) -> List[Destination]:
    """
    Every category root and folder, in tree order, flagged selectable or not.
    """
    rows: List[Destination] = []
    descendants = descendant_ids(item)

    def walk(category_id, folders, depth):
        for folder in folders:
            if not folder.is_folder:
                continue
            ok, reason = check_move(item, folder, descendants)
            rows.append(Destination(category_id, folder.id, folder.name, depth, ok, reason))
            walk(category_id, folder.children, depth + 1)

    for category in categories:
        rows.append(Destination(category.id, None, category.name, 0, True))
        walk(category.id, category.children, 1)
    return rows
