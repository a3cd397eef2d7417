"""
Main.py - VocabTree entry point

Loads the configuration, connects to the backend and prints the category
tree as an indented outline. With `--move ITEM_ID FOLDER_ID` it first moves
one item through the move coordinator. The GUI builds on the same objects:
CategoryStore for state, OptimisticMoveCoordinator for moves and
DragDropController for drag gestures.
"""

import logging
import os
import sys
from typing import Iterable, List, Optional, Tuple

from api_client import VocabApiClient
from category_store import CategoryStore
from config import LOG_DIR
from config_manager import load_config
from move_coordinator import MoveState, OptimisticMoveCoordinator
from tree_manager_base import CategoryItem, TreeItem
from version import APP_DISPLAY_NAME, get_version_string

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    """File log when running as a bundled exe (no console), stderr otherwise"""
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    if getattr(sys, 'frozen', False):
        os.makedirs(LOG_DIR, exist_ok=True)
        logging.basicConfig(
            filename=os.path.join(LOG_DIR, 'error_log.txt'),
            level=numeric_level,
            format='%(asctime)s - %(levelname)s - %(message)s'
        )
        logging.info(f"{APP_DISPLAY_NAME} starting - exe location: {sys.executable}")
    else:
        logging.basicConfig(
            level=numeric_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )


def _outline_items(items: Iterable[TreeItem], depth: int, lines: List[str]):
    for item in items:
        icon = "📁" if item.is_folder else "📄"
        lines.append(f"{'  ' * depth}{icon} {item.name}")
        _outline_items(item.children, depth + 1, lines)


def format_outline(categories: Iterable[CategoryItem]) -> str:
    """Indented text rendering of every category, folder and card"""
    lines: List[str] = []
    for category in categories:
        lines.append(f"🗂 {category.name}")
        _outline_items(category.children, 1, lines)
    return "\n".join(lines)


def parse_move_args(argv: List[str]) -> Optional[Tuple[int, int]]:
    """`--move ITEM_ID FOLDER_ID` -> (item_id, folder_id), or None without --move"""
    if "--move" not in argv:
        return None
    index = argv.index("--move")
    try:
        return int(argv[index + 1]), int(argv[index + 2])
    except (IndexError, ValueError):
        raise ValueError("usage: Main.py [--move ITEM_ID FOLDER_ID]")


def run_move(store: CategoryStore, coordinator: OptimisticMoveCoordinator,
             item_id: int, folder_id: int, timeout: float) -> bool:
    """Move one item the way the "Move to..." picker does and wait for the server"""
    request = coordinator.move_to(item_id, parent_id=folder_id)
    request.wait(timeout)
    if request.state != MoveState.COMMITTED:
        print(request.error or store.error or f"Move did not finish ({request.state.value})",
              file=sys.stderr)
        return False
    if store.success_message:
        print(store.success_message)
    return True


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    try:
        move = parse_move_args(argv)
    except ValueError as e:
        print(e, file=sys.stderr)
        return 2

    cfg = load_config()
    setup_logging(cfg.get("log_level", "INFO"))
    logger.info("%s %s", APP_DISPLAY_NAME, get_version_string())

    api = VocabApiClient.from_config(cfg)
    store = CategoryStore(api)

    if not store.load_all():
        print(store.error, file=sys.stderr)
        return 1

    status = 0
    if move is not None:
        coordinator = OptimisticMoveCoordinator.from_config(store, api, cfg)
        timeout = cfg.get("request_timeout", 15) * 2
        if not run_move(store, coordinator, move[0], move[1], timeout):
            status = 1
        coordinator.detach()

    print(format_outline(store.categories))
    return status


if __name__ == "__main__":
    sys.exit(main())
