"""
move_coordinator.py - VERSION 1.1

Optimistic moves with rollback.

A move is shown immediately: the store's current state is kept as a
snapshot, the move is applied locally, and the remote call runs in a
background thread. When the server agrees, the snapshot is dropped. When it
refuses, the snapshot goes back in and the error is shown. There is no
automatic retry.

Moves of the same item never overlap: a second request for an item waits
until the first one has committed or rolled back, and takes its snapshot
only when it starts. Moves of different items run side by side.

A move is checked against the move rules when it starts and again whenever
an earlier move's rollback replays it. A move that no longer fits the tree
is undone along with the failed one and ends ROLLED_BACK.

Author: VocabTree Development Team
Date: October 2026
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Tuple

from api_client import ApiError, StaleReferenceError, VocabApiClient
from category_store import (
    CategoryStore, Forest, locate, move_item_across_categories, remove_from_forest,
)
from config import DEFAULT_CONFIG, MSG_MOVE_FAILED
from move_rules import MSG_TARGET_MISSING, check_destination

logger = logging.getLogger(__name__)

MSG_ITEM_MISSING = "The item no longer exists"


class MoveState(Enum):
    IDLE = "idle"
    APPLYING = "applying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"  # failed validation, nothing was applied
    ABANDONED = "abandoned"  # coordinator detached before the move resolved


@dataclass(eq=False)
class MoveRequest:
    """One move, from request to commit or rollback"""
    item_id: int
    parent_id: Optional[int] = None
    category_id: Optional[int] = None
    state: MoveState = MoveState.IDLE
    error: str = ""
    item_name: str = ""
    snapshot: Optional[Forest] = field(default=None, repr=False)
    generation: int = 0
    removed: bool = False  # server said the item is gone; replays as a removal
    superseded: bool = False  # undone by an earlier move's rollback
    _done: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the move has resolved. Returns False on timeout."""
        return self._done.wait(timeout)


def check_request(categories: Forest, request: MoveRequest) -> Tuple[bool, str]:
    """Would `request` be a legal move in `categories`?"""
    _, item = locate(categories, request.item_id)
    if item is None:
        return (False, MSG_ITEM_MISSING)
    if request.parent_id is None and request.category_id is None:
        return (True, "")  # root of its own category
    return check_destination(categories, item, request.parent_id, request.category_id)


# ============================================================================
# THREADING DEFAULTS
# ============================================================================

def start_worker(fn: Callable[[], None]) -> threading.Thread:
    """Run fn in a daemon thread"""
    thread = threading.Thread(target=fn, daemon=True)
    thread.start()
    return thread


def run_inline(fn: Callable[[], None]):
    fn()


class OptimisticMoveCoordinator:
    """
    Runs moves against a CategoryStore.

    Args:
        store: the CategoryStore to update
        api: client used for the remote move
        run_in_background: starts the remote call; defaults to a daemon thread
        dispatch: hands a continuation back to the UI thread. With Tk, pass
            something like `lambda fn: root.after(0, fn)`. Defaults to
            running it on the worker thread; continuations hold the
            coordinator lock, so they never interleave.
        schedule_later: schedule_later(seconds, fn) for dismissing the
            success message; defaults to a threading.Timer
        success_message_seconds: how long "moved successfully" stays up
        max_concurrent_moves: cap on moves in flight, 0 for no cap
    """

    def __init__(self, store: CategoryStore, api: VocabApiClient,
                 run_in_background: Callable[[Callable[[], None]], object] = start_worker,
                 dispatch: Callable[[Callable[[], None]], object] = run_inline,
                 schedule_later: Optional[Callable[[float, Callable[[], None]], object]] = None,
                 success_message_seconds: float = DEFAULT_CONFIG["success_message_seconds"],
                 max_concurrent_moves: int = DEFAULT_CONFIG["max_concurrent_moves"]):
        self.store = store
        self.api = api
        self.run_in_background = run_in_background
        self.dispatch = dispatch
        self.schedule_later = schedule_later or self._timer
        self.success_message_seconds = success_message_seconds
        self.max_concurrent_moves = max_concurrent_moves

        # Held for every start and every resolve: a rollback reads, rebases
        # and restores snapshots as one step.
        self._lock = threading.RLock()
        self._pending: Deque[MoveRequest] = deque()
        self._in_flight: Dict[int, MoveRequest] = {}
        # Moves whose change is in the local tree, oldest first. A failing
        # move's rollback replays the later ones.
        self._applied: List[MoveRequest] = []
        self._mounted = True

    @classmethod
    def from_config(cls, store: CategoryStore, api: VocabApiClient, cfg: Dict,
                    **kwargs) -> "OptimisticMoveCoordinator":
        return cls(
            store, api,
            success_message_seconds=cfg.get("success_message_seconds",
                                            DEFAULT_CONFIG["success_message_seconds"]),
            max_concurrent_moves=cfg.get("max_concurrent_moves",
                                         DEFAULT_CONFIG["max_concurrent_moves"]),
            **kwargs,
        )

    def _timer(self, seconds: float, fn: Callable[[], None]):
        timer = threading.Timer(seconds, lambda: self.dispatch(fn))
        timer.daemon = True
        timer.start()
        return timer

    # ========== PUBLIC API ==========

    def request_move(self, item_id: int, parent_id: Optional[int] = None,
                     category_id: Optional[int] = None) -> MoveRequest:
        """
        Queue a move. It starts right away unless the same item is already
        moving (or the in-flight cap is reached).
        """
        request = MoveRequest(item_id, parent_id, category_id)
        if not self._mounted:
            self._finish(request, MoveState.ABANDONED)
            return request
        with self._lock:
            self._pending.append(request)
        self._pump()
        return request

    def move_to(self, item_id: int, parent_id: Optional[int] = None,
                category_id: Optional[int] = None) -> MoveRequest:
        """Validate a "Move to..." picker selection, then move"""
        item = self.store.find(item_id)
        if item is None:
            return self._reject(MoveRequest(item_id, parent_id, category_id), MSG_ITEM_MISSING)

        ok, reason = check_destination(self.store.categories, item, parent_id, category_id)
        if not ok:
            return self._reject(MoveRequest(item_id, parent_id, category_id), reason)
        return self.request_move(item_id, parent_id, category_id)

    def is_moving(self, item_id: int) -> bool:
        """True while a move for item_id is in flight or queued"""
        with self._lock:
            return item_id in self._in_flight or any(r.item_id == item_id for r in self._pending)

    def detach(self):
        """
        The view is going away. In-flight calls are not cancelled, but their
        results will no longer touch the store.
        """
        with self._lock:
            self._mounted = False
            queued = list(self._pending)
            self._pending.clear()
        for request in queued:
            self._finish(request, MoveState.ABANDONED)

    # ========== INTERNALS ==========

    def _reject(self, request: MoveRequest, reason: str) -> MoveRequest:
        logger.info("Move of %s rejected: %s", request.item_id, reason)
        request.error = reason
        self.store.set_error(reason)
        self._finish(request, MoveState.REJECTED)
        return request

    def _finish(self, request: MoveRequest, state: MoveState):
        request.state = state
        request.snapshot = None
        request._done.set()

    def _settle(self, request: MoveRequest, state: MoveState, stands: bool):
        """
        Finish a request that was applied. If its change `stands` it stays
        in the replay chain until every earlier move has resolved.
        """
        if not stands and request in self._applied:
            self._applied.remove(request)
        self._finish(request, state)
        while self._applied and self._applied[0].state != MoveState.APPLYING:
            self._applied.pop(0)

    def _next_startable(self) -> Optional[MoveRequest]:
        if not self._mounted:
            return None
        if self.max_concurrent_moves and len(self._in_flight) >= self.max_concurrent_moves:
            return None
        for request in self._pending:
            if request.item_id not in self._in_flight:
                self._pending.remove(request)
                return request
        return None

    def _pump(self):
        with self._lock:
            while True:
                request = self._next_startable()
                if request is None:
                    return
                self._start(request)

    def _start(self, request: MoveRequest):
        owner, item = self.store.locate(request.item_id)
        if item is None:
            self._reject(request, MSG_ITEM_MISSING)
            return

        if (item.parent_id == request.parent_id
                and (request.category_id is None or request.category_id == owner.id)):
            logger.debug("Move of %s is a no-op", request.item_id)
            self._finish(request, MoveState.COMMITTED)
            return

        # The tree may have changed while this request waited in the queue
        ok, reason = check_request(self.store.categories, request)
        if not ok:
            self._reject(request, reason)
            return

        request.snapshot = self.store.snapshot()
        request.generation = self.store.generation
        request.item_name = item.name
        if not self.store.apply_move(request.item_id, request.parent_id, request.category_id):
            request.snapshot = None
            self._reject(request, MSG_TARGET_MISSING)
            return

        request.state = MoveState.APPLYING
        self._in_flight[request.item_id] = request
        self._applied.append(request)

        logger.debug("Move of %s applied locally; calling server", request.item_id)
        self.run_in_background(lambda: self._call_remote(request))

    def _call_remote(self, request: MoveRequest):
        """Worker thread: make the call, hand the outcome to the UI thread"""
        ok, stale, message = True, False, ""
        try:
            self.api.move_card(request.item_id, request.parent_id, request.category_id)
        except StaleReferenceError:
            stale = True
        except ApiError as e:
            ok, message = False, e.user_message(MSG_MOVE_FAILED)
        except Exception:
            logger.exception("Unexpected error moving item %s", request.item_id)
            ok, message = False, MSG_MOVE_FAILED

        self.dispatch(lambda: self._resolve(request, ok, stale, message))

    def _resolve(self, request: MoveRequest, ok: bool, stale: bool, message: str):
        with self._lock:
            self._in_flight.pop(request.item_id, None)

            if not self._mounted:
                logger.debug("Move of %s resolved after detach; ignoring", request.item_id)
                self._settle(request, MoveState.ABANDONED, stands=False)
                return

            if stale:
                logger.warning("Item %s no longer exists on the server; removing it", request.item_id)
                self.store.remove_local(request.item_id)
                request.removed = True
                self._settle(request, MoveState.COMMITTED, stands=True)
            elif request.superseded:
                # Already taken out of the tree by an earlier rollback
                logger.warning("Move of %s was undone locally: %s", request.item_id, request.error)
                self.store.set_error(request.error)
                self._settle(request, MoveState.ROLLED_BACK, stands=False)
            elif ok:
                self._announce(f'"{request.item_name}" moved successfully')
                self._settle(request, MoveState.COMMITTED, stands=True)
            else:
                self._rollback(request)
                request.error = message
                self.store.set_error(message)
                self._settle(request, MoveState.ROLLED_BACK, stands=False)

            self._pump()

    def _rollback(self, request: MoveRequest):
        if self.store.generation != request.generation:
            # A full reload replaced the tree since; it already shows the server's view
            logger.info("Skipping rollback of %s: tree was reloaded", request.item_id)
            return

        index = self._applied.index(request) if request in self._applied else len(self._applied)
        later = [r for r in self._applied[index + 1:]
                 if r.state in (MoveState.APPLYING, MoveState.COMMITTED) and not r.superseded]

        restored = request.snapshot
        replayed = 0
        for other in later:
            if other.removed:
                restored = remove_from_forest(restored, other.item_id)
                continue

            ok, reason = check_request(restored, other)
            if not ok:
                self._supersede(other, reason)
                continue

            if other.state == MoveState.APPLYING:
                # Its own rollback must not bring this move back
                other.snapshot = restored
            restored = move_item_across_categories(restored, other.item_id, other.parent_id, other.category_id)
            replayed += 1

        logger.warning("Rolling back move of %s%s", request.item_id,
                       f" (replaying {replayed} later move(s))" if replayed else "")
        self.store.restore(restored)

    def _supersede(self, request: MoveRequest, reason: str):
        """A later move that only fit the tree because of a failed one"""
        logger.warning("Undoing move of %s along with an earlier failed move: %s",
                       request.item_id, reason)
        request.superseded = True
        request.error = reason
        request.snapshot = None
        if request.state == MoveState.COMMITTED:
            # The server already took it; the local tree no longer shows it
            self._applied.remove(request)
            request.state = MoveState.ROLLED_BACK

    def _announce(self, message: str):
        self.store.set_success(message)
        if self.success_message_seconds:
            self.schedule_later(self.success_message_seconds,
                                lambda: self.store.clear_success(message))
