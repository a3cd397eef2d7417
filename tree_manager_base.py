"""
tree_manager_base.py - VERSION 2.0

Vocabulary tree data model, independent of any UI.

Categories own forests of folders and cards. Every operation here is pure:
it takes a tree (a tuple of TreeItem) and returns a new one, sharing every
subtree it did not touch. Holding on to an old tuple is therefore a complete
snapshot of the tree at that moment.

Features:
- Build trees from the server's nested /cards/hierarchy payload
- Canonical ordering (folders first, then by name)
- Lookup helpers (find, parent chain, descendants, flatten)
- Structure-sharing update / remove / insert / move

Author: VocabTree Development Team
Date: October 2026
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

UNCATEGORIZED_ID = 0  # Server returns category=None for items with no category
UNCATEGORIZED_NAME = "Uncategorized"

# Keys that belong to the tree structure itself. Everything else the server
# sends for a card (meanings, example_phrases, ...) is carried in `extra`.
STRUCTURAL_KEYS = ('id', 'name', 'is_folder', 'parent_id', 'category_id',
                   'children', 'is_expanded')

# Changing one of these moves the node within its sibling list
SORT_KEYS = ('name', 'is_folder')


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass(frozen=True)
class TreeItem:
    """A folder or a card. Frozen so a kept reference can never change under you."""
    id: int
    name: str
    is_folder: bool = False
    parent_id: Optional[int] = None
    category_id: Optional[int] = None
    children: Tuple['TreeItem', ...] = ()
    is_expanded: bool = False
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_subfolder(self) -> bool:
        """A folder nested in another folder. Subfolders hold cards only."""
        return self.is_folder and self.parent_id is not None

    def get_type(self) -> str:
        return "folder" if self.is_folder else "card"

    def to_dict(self) -> dict:
        """Serialize back to the server's card shape (children inline)"""
        data = dict(self.extra)
        data.update({
            'id': self.id,
            'name': self.name,
            'is_folder': self.is_folder,
            'parent_id': self.parent_id,
            'category_id': self.category_id,
            'is_expanded': self.is_expanded,
            'children': [child.to_dict() for child in self.children],
        })
        return data


@dataclass(frozen=True)
class CategoryItem:
    """Top-level container owning one forest"""
    id: int
    name: str
    is_expanded: bool = False
    children: Tuple[TreeItem, ...] = ()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'is_expanded': self.is_expanded,
            'children': [child.to_dict() for child in self.children],
        }


# ============================================================================
# TREE BUILDER
# ============================================================================

def sort_key(item: TreeItem) -> Tuple[bool, str]:
    """Folders before cards, then case-sensitive by name"""
    return (not item.is_folder, item.name)


def sort_items(items: Iterable[TreeItem]) -> Tuple[TreeItem, ...]:
    return tuple(sorted(items, key=sort_key))


def card_to_tree_item(raw: Any, expanded_ids: Optional[Set[int]] = None) -> TreeItem:
    """
    Convert one raw card (and, recursively, its children) into a TreeItem.

    Children are converted first and sorted at every level. Unknown keys are
    kept in `extra` so card content survives every tree operation.
    """
    if isinstance(raw, TreeItem):
        raw = raw.to_dict()
    expanded_ids = expanded_ids or set()

    is_folder = bool(raw.get('is_folder', False))
    children_raw = raw.get('children') or []
    if children_raw and not is_folder:
        logger.warning("Card %s arrived with %d children; dropping them",
                       raw.get('id'), len(children_raw))
        children_raw = []

    children = sort_items(card_to_tree_item(child, expanded_ids) for child in children_raw)
    extra = {k: v for k, v in raw.items() if k not in STRUCTURAL_KEYS}

    return TreeItem(
        id=raw['id'],
        name=raw.get('name', ''),
        is_folder=is_folder,
        parent_id=raw.get('parent_id'),
        category_id=raw.get('category_id'),
        children=children,
        is_expanded=raw['id'] in expanded_ids,
        extra=extra,
    )


def build_tree(nodes: Iterable[Any], expanded_ids: Optional[Set[int]] = None) -> Tuple[TreeItem, ...]:
    """
    Build a sorted tree from the server's nested card list.

    The /cards/hierarchy endpoint returns cards with their children already
    populated, so this is a straight recursive conversion followed by the
    canonical sort. `expanded_ids` keeps folders open across a reload.
    """
    return sort_items(card_to_tree_item(node, expanded_ids) for node in nodes or [])


def build_category(raw_category: Optional[dict], cards: Iterable[Any],
                   expanded_ids: Optional[Set[int]] = None) -> CategoryItem:
    """Build one CategoryItem from a /categories/with-cards entry"""
    children = build_tree(cards, expanded_ids)
    if not raw_category:
        return CategoryItem(id=UNCATEGORIZED_ID, name=UNCATEGORIZED_NAME, children=children)
    return CategoryItem(id=raw_category['id'], name=raw_category.get('name', ''),
                        children=children)


# ============================================================================
# TREE INDEX - read-only queries
# ============================================================================

def find_item(tree: Iterable[TreeItem], item_id: int) -> Optional[TreeItem]:
    """Depth-first search by id"""
    for item in tree:
        if item.id == item_id:
            return item
        found = find_item(item.children, item_id)
        if found is not None:
            return found
    return None


def get_parent_ids(tree: Iterable[TreeItem], item_id: int) -> List[int]:
    """Ancestor ids from the root down to just above the item ([] if not found)"""
    def search(items, path):
        for item in items:
            if item.id == item_id:
                return path
            if item.children:
                result = search(item.children, path + [item.id])
                if result is not None:
                    return result
        return None

    return search(tree, []) or []


def descendant_ids(node: TreeItem) -> Set[int]:
    """All ids reachable from node, including its own"""
    ids = {node.id}
    stack = list(node.children)
    while stack:
        current = stack.pop()
        ids.add(current.id)
        stack.extend(current.children)
    return ids


def flatten_tree(tree: Iterable[TreeItem]) -> List[TreeItem]:
    """Pre-order list of every node"""
    result: List[TreeItem] = []

    def traverse(items):
        for item in items:
            result.append(item)
            traverse(item.children)

    traverse(tree)
    return result


def get_expanded_ids(tree: Iterable[TreeItem]) -> Set[int]:
    return {item.id for item in flatten_tree(tree) if item.is_expanded}


def count_children(item: TreeItem) -> Tuple[int, int]:
    """Direct (folders, cards) counts"""
    folders = sum(1 for child in item.children if child.is_folder)
    return folders, len(item.children) - folders


# ============================================================================
# TREE MUTATOR - pure, structure-sharing edits
# ============================================================================

def _map_item(tree: Tuple[TreeItem, ...], item_id: int, fn, resort: bool = False):
    """
    Replace the node with `item_id` by fn(node).

    Returns (new_tree, changed). Only the path from the root to the node is
    rebuilt; every other subtree is the same object as before.
    """
    for index, item in enumerate(tree):
        if item.id == item_id:
            new_level = tree[:index] + (fn(item),) + tree[index + 1:]
            return (sort_items(new_level) if resort else new_level), True
        if item.children:
            new_children, changed = _map_item(item.children, item_id, fn, resort)
            if changed:
                updated = replace(item, children=new_children)
                return tree[:index] + (updated,) + tree[index + 1:], True
    return tree, False


def update_item(tree: Tuple[TreeItem, ...], item_id: int, changes: Dict[str, Any]) -> Tuple[TreeItem, ...]:
    """
    Apply field changes to one node.

    Unknown ids return the tree unchanged; callers check existence with
    find_item() first. Renames re-sort the node's sibling list.
    """
    resort = any(key in changes for key in SORT_KEYS)
    new_tree, changed = _map_item(tree, item_id, lambda item: replace(item, **changes), resort)
    return new_tree if changed else tree


def remove_item(tree: Tuple[TreeItem, ...], item_id: int) -> Tuple[TreeItem, ...]:
    """Remove a node together with its whole subtree"""
    def remove(items):
        for index, item in enumerate(items):
            if item.id == item_id:
                return items[:index] + items[index + 1:], True
            if item.children:
                new_children, changed = remove(item.children)
                if changed:
                    return items[:index] + (replace(item, children=new_children),) + items[index + 1:], True
        return items, False

    new_tree, changed = remove(tree)
    return new_tree if changed else tree


def insert_item(tree: Tuple[TreeItem, ...], item: TreeItem,
                parent_id: Optional[int]) -> Tuple[TreeItem, ...]:
    """Add `item` under `parent_id` (or at the root) and re-sort that level"""
    if parent_id is None:
        return sort_items(tree + (item,))

    new_tree, changed = _map_item(
        tree, parent_id,
        lambda parent: replace(parent, children=sort_items(parent.children + (item,))))
    if not changed:
        logger.warning("Insert of %s skipped: parent %s not in tree", item.id, parent_id)
        return tree
    return new_tree


def move_item(tree: Tuple[TreeItem, ...], item_id: int,
              new_parent_id: Optional[int]) -> Tuple[TreeItem, ...]:
    """
    Move a node under a new parent within the same tree.

    Equivalent to remove_item() followed by insert_item() with `parent_id`
    rewritten. Returns the original tree if the item or the destination
    is missing.

    No rules are checked here; callers go through move_rules first. Those
    rules only look at the destination, so a top-level folder that holds
    subfolders may still move into another top-level folder, and its
    subfolders then sit three levels down.
    """
    item = find_item(tree, item_id)
    if item is None:
        return tree

    without = remove_item(tree, item_id)
    if new_parent_id is not None and find_item(without, new_parent_id) is None:
        logger.warning("Move of %s into %s skipped: destination not in tree", item_id, new_parent_id)
        return tree

    return insert_item(without, replace(item, parent_id=new_parent_id), new_parent_id)


def with_category(item: TreeItem, category_id: Optional[int]) -> TreeItem:
    """Copy of `item` whose subtree all belongs to `category_id`"""
    children = tuple(with_category(child, category_id) for child in item.children)
    if item.category_id == category_id and all(new is old for new, old in zip(children, item.children)):
        return item
    return replace(item, category_id=category_id, children=children)
