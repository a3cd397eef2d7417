"""
delete_utils.py - Deleting folders, cards and categories

Items with children go through the bulk endpoint so the server removes the
whole subtree in one call. A 404 means someone else already deleted it; the
item is gone either way, so the local tree should still drop it.
"""

import logging

from api_client import StaleReferenceError, VocabApiClient
from tree_manager_base import CategoryItem, TreeItem, count_children
from utils import pluralize

logger = logging.getLogger(__name__)


def has_children(item) -> bool:
    return bool(item.children)


def build_delete_confirmation(item: TreeItem) -> str:
    """Confirmation text, spelling out what a non-empty folder contains"""
    kind = item.get_type()
    if not has_children(item):
        return f"Are you sure you want to delete this {kind}?"

    folders, cards = count_children(item)
    if folders and cards:
        contents = f"{pluralize(folders, 'folder')} and {pluralize(cards, 'card')}"
    elif folders:
        contents = pluralize(folders, 'folder')
    else:
        contents = pluralize(cards, 'card')
    return (f"This {kind} contains {contents}. Deleting it will also delete "
            f"all items inside. Do you want to continue?")


def build_category_delete_confirmation(category: CategoryItem) -> str:
    return f'Are you sure you want to delete the category "{category.name}" and all its contents?'


def delete_item_remote(api: VocabApiClient, item: TreeItem) -> bool:
    """
    Delete an item server-side.

    Returns True when the item no longer exists remotely (deleted now or
    already gone). Other ApiErrors propagate.
    """
    try:
        if has_children(item):
            logger.info("Bulk deleting %s %s (%s) with children", item.get_type(), item.id, item.name)
            api.delete_card_bulk(item.id)
        else:
            logger.info("Deleting %s %s (%s)", item.get_type(), item.id, item.name)
            api.delete_card(item.id)
    except StaleReferenceError:
        logger.warning("Item %s (%s) not found, might have been deleted already", item.id, item.name)
    return True


def delete_category_remote(api: VocabApiClient, category: CategoryItem) -> bool:
    try:
        logger.info("Deleting category %s (%s) with bulk delete", category.id, category.name)
        api.delete_category_bulk(category.id)
    except StaleReferenceError:
        logger.warning("Category %s not found, might have been deleted already", category.id)
    return True
