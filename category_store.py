"""
category_store.py - VERSION 1.0

Holds every category's forest and routes edits to the right one.

The store is the single owner of tree state. Views subscribe to it and
re-render when notified; they never edit the tuples themselves. Every
state change swaps in a new tuple of CategoryItem built with the pure
functions from tree_manager_base, so the previous tuple stays a valid
snapshot for rollback.

Author: VocabTree Development Team
Date: October 2026
"""

import logging
import threading
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from api_client import ApiError, StaleReferenceError, VocabApiClient
from config import MSG_ADD_FAILED, MSG_DELETE_FAILED, MSG_LOAD_FAILED, MSG_RENAME_FAILED
from delete_utils import delete_category_remote, delete_item_remote
from move_rules import MSG_SUBFOLDER
from tree_manager_base import (
    UNCATEGORIZED_ID, CategoryItem, TreeItem, build_category, build_tree,
    find_item, get_expanded_ids, insert_item, move_item, remove_item,
    update_item, with_category,
)

logger = logging.getLogger(__name__)

Forest = Tuple[CategoryItem, ...]


# ============================================================================
# PURE HELPERS
# ============================================================================

def locate(categories: Forest, item_id: int) -> Tuple[Optional[CategoryItem], Optional[TreeItem]]:
    """(owning category, item), or (None, None)"""
    for category in categories:
        found = find_item(category.children, item_id)
        if found is not None:
            return category, found
    return None, None


def _replace_category(categories: Forest, category: CategoryItem) -> Forest:
    return tuple(category if c.id == category.id else c for c in categories)


def remove_from_forest(categories: Forest, item_id: int) -> Forest:
    """Drop an item, or a whole category, from the forest"""
    if any(c.id == item_id for c in categories):
        return tuple(c for c in categories if c.id != item_id)
    owner, item = locate(categories, item_id)
    if item is None:
        return categories
    return _replace_category(categories, replace(owner, children=remove_item(owner.children, item_id)))


def move_item_across_categories(categories: Forest, item_id: int,
                                new_parent_id: Optional[int],
                                new_category_id: Optional[int] = None) -> Forest:
    """
    Move an item to a folder or a category root, possibly in another category.

    A destination folder decides the category; otherwise `new_category_id`
    does, falling back to the item's current category. The moved subtree
    takes on the destination's category id. Returns `categories` unchanged
    when the item or the destination can't be found.
    """
    source, item = locate(categories, item_id)
    if item is None:
        return categories

    if new_parent_id is not None:
        dest, parent = locate(categories, new_parent_id)
        if parent is None:
            logger.warning("Move of %s skipped: folder %s not in any category", item_id, new_parent_id)
            return categories
    elif new_category_id is not None:
        dest = next((c for c in categories if c.id == new_category_id), None)
        if dest is None:
            logger.warning("Move of %s skipped: category %s not found", item_id, new_category_id)
            return categories
    else:
        dest = source

    if dest.id == source.id:
        children = move_item(source.children, item_id, new_parent_id)
        if children is source.children:
            return categories
        return _replace_category(categories, replace(source, children=children))

    category_id = None if dest.id == UNCATEGORIZED_ID else dest.id
    moved = with_category(replace(item, parent_id=new_parent_id), category_id)
    new_source = replace(source, children=remove_item(source.children, item_id))
    new_dest = replace(dest, children=insert_item(dest.children, moved, new_parent_id))
    return _replace_category(_replace_category(categories, new_source), new_dest)


# ============================================================================
# STORE
# ============================================================================

class CategoryStore:
    """
    All categories and their trees, plus the banner messages shown above them.

    Remote calls made here block; call them from a worker thread in a UI.
    """

    def __init__(self, api: VocabApiClient, categories: Optional[Forest] = None):
        self.api = api
        self._categories: Forest = tuple(categories or ())
        self._lock = threading.RLock()
        self._subscribers: List[Callable[[Forest], None]] = []
        self.generation = 0  # bumped on every full reload
        self.error: Optional[str] = None
        self.success_message: Optional[str] = None

    # ========== STATE ==========

    @property
    def categories(self) -> Forest:
        return self._categories

    def snapshot(self) -> Forest:
        """The current state; safe to keep since it is never modified"""
        return self._categories

    def restore(self, snapshot: Forest):
        self._swap(lambda current: snapshot)

    def subscribe(self, callback: Callable[[Forest], None]) -> Callable[[], None]:
        """Register for change notifications. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self):
        for callback in list(self._subscribers):
            try:
                callback(self._categories)
            except Exception:
                logger.exception("Subscriber failed")

    def _swap(self, fn: Callable[[Forest], Forest], reload: bool = False) -> bool:
        """Replace state with fn(current). Returns True if anything changed."""
        with self._lock:
            current = self._categories
            new = fn(current)
            if new is current and not reload:
                return False
            self._categories = new
            if reload:
                self.generation += 1
        self._notify()
        return True

    def set_error(self, message: Optional[str]):
        self.error = message
        self._notify()

    def dismiss_error(self):
        self.set_error(None)

    def set_success(self, message: Optional[str]):
        self.success_message = message
        self._notify()

    def clear_success(self, message: Optional[str] = None):
        """Clear the success banner, but only if it still shows `message`"""
        if message is None or self.success_message == message:
            self.set_success(None)

    # ========== QUERIES ==========

    def locate(self, item_id: int) -> Tuple[Optional[CategoryItem], Optional[TreeItem]]:
        return locate(self._categories, item_id)

    def find(self, item_id: int) -> Optional[TreeItem]:
        return self.locate(item_id)[1]

    def get_category(self, category_id: int) -> Optional[CategoryItem]:
        return next((c for c in self._categories if c.id == category_id), None)

    def is_category(self, item_id: int) -> bool:
        return self.get_category(item_id) is not None

    # ========== LOADING ==========

    def replace_forest(self, categories: Forest):
        self._swap(lambda current: tuple(categories), reload=True)

    def load_all(self) -> bool:
        """Full reload from /categories/with-cards, keeping expansion state"""
        try:
            payload = self.api.get_categories_with_cards()
        except ApiError as e:
            logger.error("Error loading categories: %s", e)
            self.set_error(f"{MSG_LOAD_FAILED}: {e.user_message(str(e))}")
            return False

        current = self._categories
        expanded = set()
        open_categories = set()
        for category in current:
            expanded |= get_expanded_ids(category.children)
            if category.is_expanded:
                open_categories.add(category.id)

        categories = []
        for entry in payload:
            category = build_category(entry.get("category"), entry.get("cards") or [], expanded)
            if category.id in open_categories:
                category = replace(category, is_expanded=True)
            categories.append(category)

        self.error = None
        self.replace_forest(tuple(categories))
        logger.info("Loaded %d categories", len(categories))
        return True

    def refresh_category(self, category_id: int, expand_folder_id: Optional[int] = None) -> bool:
        """
        Re-fetch one category's tree without touching the others.

        Used after adding items so a full reload isn't needed. The category
        is expanded, and so is `expand_folder_id` if given.
        """
        try:
            cards = self.api.get_cards_hierarchy(category_id or None)
        except ApiError as e:
            logger.error("Error refreshing category %s: %s", category_id, e)
            return False

        def rebuild(categories: Forest) -> Forest:
            category = next((c for c in categories if c.id == category_id), None)
            if category is None:
                return categories
            expanded = get_expanded_ids(category.children)
            if expand_folder_id is not None:
                expanded.add(expand_folder_id)
            refreshed = replace(category, children=build_tree(cards, expanded), is_expanded=True)
            return _replace_category(categories, refreshed)

        return self._swap(rebuild)

    # ========== EDITS ==========

    def toggle(self, item_id: int) -> bool:
        """Expand or collapse a category or folder"""
        def flip(categories: Forest) -> Forest:
            category = next((c for c in categories if c.id == item_id), None)
            if category is not None:
                return _replace_category(categories, replace(category, is_expanded=not category.is_expanded))
            owner, item = locate(categories, item_id)
            if item is None:
                return categories
            children = update_item(owner.children, item_id, {'is_expanded': not item.is_expanded})
            return _replace_category(categories, replace(owner, children=children))

        return self._swap(flip)

    def rename(self, item_id: int, new_name: str) -> bool:
        """Rename remotely, then echo the new name locally"""
        new_name = (new_name or "").strip()
        category = self.get_category(item_id)
        current = category or self.find(item_id)
        if current is None or not new_name or new_name == current.name:
            return False

        try:
            if category is not None:
                self.api.update_category(item_id, new_name)
            else:
                self.api.update_card(item_id, {"name": new_name})
        except StaleReferenceError:
            logger.warning("Rename target %s is gone; removing it locally", item_id)
            self.remove_local(item_id)
            return False
        except ApiError as e:
            logger.error("Error renaming item %s: %s", item_id, e)
            self.set_error(e.user_message(MSG_RENAME_FAILED))
            return False

        def echo(categories: Forest) -> Forest:
            target = next((c for c in categories if c.id == item_id), None)
            if target is not None:
                return _replace_category(categories, replace(target, name=new_name))
            owner, item = locate(categories, item_id)
            if item is None:
                return categories
            return _replace_category(categories, replace(owner, children=update_item(
                owner.children, item_id, {'name': new_name})))

        return self._swap(echo)

    def remove_local(self, item_id: int) -> bool:
        """Drop an item (or a whole category) from local state only"""
        return self._swap(lambda categories: remove_from_forest(categories, item_id))

    def delete(self, item_id: int) -> bool:
        """Delete remotely (bulk for non-empty folders), then locally"""
        category = self.get_category(item_id)
        item = None if category is not None else self.find(item_id)
        if category is None and item is None:
            return False
        try:
            if category is not None:
                delete_category_remote(self.api, category)
            else:
                delete_item_remote(self.api, item)
        except ApiError as e:
            logger.error("Error deleting item %s: %s", item_id, e)
            self.set_error(e.user_message(MSG_DELETE_FAILED))
            return False
        return self.remove_local(item_id)

    def add_item(self, category_id: int, name: str, is_folder: bool,
                 parent_id: Optional[int] = None) -> Optional[dict]:
        """Create a folder or card, then refresh just that category"""
        name = (name or "").strip()
        if not name:
            return None
        if is_folder and parent_id is not None:
            parent = self.find(parent_id)
            if parent is not None and parent.is_subfolder:
                self.set_error(MSG_SUBFOLDER)
                return None

        try:
            created = self.api.create_card(
                name, is_folder,
                None if category_id == UNCATEGORIZED_ID else category_id,
                parent_id)
        except ApiError as e:
            logger.error("Error adding item to category %s: %s", category_id, e)
            self.set_error(e.user_message(MSG_ADD_FAILED))
            return None

        self.refresh_category(category_id, parent_id)
        return created

    def add_category(self, name: str) -> Optional[CategoryItem]:
        name = (name or "").strip()
        if not name:
            return None
        try:
            created = self.api.create_category(name)
        except ApiError as e:
            logger.error("Error adding category: %s", e)
            self.set_error(e.user_message(MSG_ADD_FAILED))
            return None

        category = CategoryItem(id=created["id"], name=created.get("name", name))
        self._swap(lambda categories: categories + (category,))
        return category

    def apply_move(self, item_id: int, parent_id: Optional[int],
                   category_id: Optional[int] = None) -> bool:
        """Local half of a move; see move_coordinator for the remote half"""
        return self._swap(lambda categories: move_item_across_categories(
            categories, item_id, parent_id, category_id))

