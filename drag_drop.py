"""
drag_drop.py - Drag-and-drop state for the vocabulary tree

Framework-agnostic: the view forwards its drag events here and reads the
visual flags (`dragging_id`, `highlight_id`, `drop_effect`) back out.

Event sequence per gesture:
    drag_start(item) -> drag_over(target)* -> drop(target) | drag_end()

drag_over() fires on every pointer move, so it only checks the rules and
sets flags. drop() checks again against the current tree, since the tree
may have changed while the pointer was moving.
"""

import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional

from category_store import CategoryStore
from move_coordinator import MSG_ITEM_MISSING, MoveRequest, OptimisticMoveCoordinator
from move_rules import MSG_TARGET_MISSING, check_drop_target
from tree_manager_base import TreeItem, descendant_ids

logger = logging.getLogger(__name__)

DROP_MOVE = "move"
DROP_NONE = "none"


@dataclass(frozen=True)
class DragSource:
    """What was picked up, recorded once at drag start"""
    id: int
    is_folder: bool
    parent_id: Optional[int]
    category_id: Optional[int]
    descendants: FrozenSet[int]


class DragDropController:
    """One drag gesture at a time over a CategoryStore"""

    def __init__(self, store: CategoryStore, coordinator: OptimisticMoveCoordinator,
                 on_reject: Optional[Callable[[str], None]] = None):
        self.store = store
        self.coordinator = coordinator
        self.on_reject = on_reject or store.set_error

        self.source: Optional[DragSource] = None
        self._dragged: Optional[TreeItem] = None

        # Visual state
        self.dragging_id: Optional[int] = None
        self.highlight_id: Optional[int] = None
        self.drop_effect = DROP_NONE

    @property
    def is_dragging(self) -> bool:
        return self.source is not None

    def drag_start(self, item: TreeItem) -> DragSource:
        owner, _ = self.store.locate(item.id)
        self.source = DragSource(
            id=item.id,
            is_folder=item.is_folder,
            parent_id=item.parent_id,
            category_id=owner.id if owner is not None else item.category_id,
            descendants=frozenset(descendant_ids(item)),
        )
        self._dragged = item
        self.dragging_id = item.id
        self.highlight_id = None
        self.drop_effect = DROP_NONE
        logger.debug("Drag started: %s (%s)", item.id, item.name)
        return self.source

    def drag_over(self, target: TreeItem) -> bool:
        """True if `target` would accept the drop. Only visual flags change."""
        if self.source is None:
            return False

        ok, _ = check_drop_target(self._dragged, target, self.source.descendants)
        if ok:
            self.highlight_id = target.id
            self.drop_effect = DROP_MOVE
        else:
            self.highlight_id = None
            self.drop_effect = DROP_NONE
        return ok

    def drop(self, target: TreeItem) -> Optional[MoveRequest]:
        """
        Finish the gesture on `target`.

        Both ends are looked up again by id so the decision uses the tree as
        it is now. Returns the started MoveRequest, or None if rejected.
        """
        source = self.source
        self._clear()
        if source is None:
            return None

        dragged = self.store.find(source.id)
        if dragged is None:
            self.on_reject(MSG_ITEM_MISSING)
            return None

        current_target = self.store.find(target.id)
        if current_target is None:
            self.on_reject(MSG_TARGET_MISSING)
            return None

        ok, reason = check_drop_target(dragged, current_target)
        if not ok:
            logger.info("Drop of %s onto %s rejected: %s", dragged.id, current_target.id, reason)
            self.on_reject(reason)
            return None

        return self.coordinator.request_move(dragged.id, current_target.id)

    def drag_end(self):
        """Always called when the gesture ends, dropped or not"""
        self._clear()

    def _clear(self):
        self.source = None
        self._dragged = None
        self.dragging_id = None
        self.highlight_id = None
        self.drop_effect = DROP_NONE
