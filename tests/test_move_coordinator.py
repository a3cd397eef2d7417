"""
Tests for OptimisticMoveCoordinator

Tests cover:
- Optimistic apply followed by commit
- Rollback to the exact pre-move state on a remote failure
- 404 from the server treated as "already gone"
- Per-item serialization and the optional global cap
- Detach, reloads mid-flight and cross-category moves
"""

import threading

import pytest

from api_client import ApiError, StaleReferenceError
from config import MSG_MOVE_FAILED
from move_coordinator import (
    MSG_ITEM_MISSING, MoveState, OptimisticMoveCoordinator, run_inline,
)
from category_store import CategoryStore
from move_rules import MSG_SUBFOLDER
from tree_manager_base import build_category, find_item, flatten_tree


def child_names(store, folder_id):
    return [child.name for child in store.find(folder_id).children]


def folder_store(api, cards):
    """A single-category store (id 10) built from raw cards"""
    return CategoryStore(api, (build_category({"id": 10, "name": "Vocabulary"}, cards),))


def folder(item_id, name, parent_id=None, children=()):
    return {"id": item_id, "name": name, "is_folder": True, "parent_id": parent_id,
            "category_id": 10, "children": list(children)}


def folders_in_subfolders(store):
    """(subfolder id, folder id) pairs breaking the nesting cap"""
    return [(item.id, child.id)
            for category in store.categories
            for item in flatten_tree(category.children)
            if item.is_subfolder
            for child in item.children if child.is_folder]


class ManualRunner:
    """Holds remote calls until the test releases them"""

    def __init__(self):
        self.jobs = []

    def __call__(self, fn):
        self.jobs.append(fn)

    def run_next(self):
        self.jobs.pop(0)()

    def run(self, index):
        self.jobs.pop(index)()


@pytest.fixture
def later():
    return []


@pytest.fixture
def coordinator(store, api, later):
    return OptimisticMoveCoordinator(
        store, api,
        run_in_background=run_inline,
        schedule_later=lambda seconds, fn: later.append(fn),
    )


@pytest.fixture
def runner():
    return ManualRunner()


def manual_for(store, api, later, runner):
    return OptimisticMoveCoordinator(
        store, api,
        run_in_background=runner,
        schedule_later=lambda seconds, fn: later.append(fn),
    )


@pytest.fixture
def manual(store, api, later, runner):
    return manual_for(store, api, later, runner)


class TestCommit:
    """Server accepts the move"""

    def test_card_moves_into_subfolder(self, store, api, coordinator):
        request = coordinator.request_move(2, 4)

        assert request.state == MoveState.COMMITTED
        assert request.done
        assert child_names(store, 4) == ["Cat", "Fish"]
        assert store.find(2).parent_id == 4
        api.move_card.assert_called_once_with(2, 4, None)

    def test_success_message_is_shown_then_cleared(self, store, coordinator, later):
        coordinator.request_move(2, 4)
        assert store.success_message == '"Cat" moved successfully'

        later.pop()()
        assert store.success_message is None

    def test_stale_clear_keeps_newer_message(self, store, coordinator, later):
        coordinator.request_move(2, 4)
        coordinator.request_move(3, 4)
        assert store.success_message == '"Dog" moved successfully'

        later.pop(0)()
        assert store.success_message == '"Dog" moved successfully'

    def test_move_already_in_place_skips_server(self, api, coordinator):
        request = coordinator.request_move(2, 1)
        assert request.state == MoveState.COMMITTED
        api.move_card.assert_not_called()

    def test_snapshot_is_dropped(self, coordinator):
        request = coordinator.request_move(2, 4)
        assert request.snapshot is None

    def test_subscribers_see_the_move(self, store, coordinator):
        seen = []
        store.subscribe(lambda categories: seen.append(categories))
        coordinator.request_move(2, 4)
        assert seen
        assert find_item(seen[0][0].children, 2).parent_id == 4


class TestRollback:
    """Server refuses the move"""

    def test_state_is_restored_exactly(self, store, api, coordinator):
        before = store.snapshot()
        api.move_card.side_effect = ApiError("boom", 500, "Server said no")

        request = coordinator.request_move(2, 4)

        assert request.state == MoveState.ROLLED_BACK
        assert store.categories == before
        assert store.find(2).parent_id == 1
        assert child_names(store, 4) == ["Fish"]

    def test_error_is_surfaced(self, store, api, coordinator):
        api.move_card.side_effect = ApiError("boom", 500, "Server said no")
        request = coordinator.request_move(2, 4)
        assert store.error == "Server said no"
        assert request.error == "Server said no"
        assert store.success_message is None

    def test_fallback_message_without_detail(self, store, api, coordinator):
        api.move_card.side_effect = ApiError("Request timed out")
        coordinator.request_move(2, 4)
        assert store.error == MSG_MOVE_FAILED

    def test_unexpected_exception_rolls_back(self, store, api, coordinator):
        before = store.snapshot()
        api.move_card.side_effect = RuntimeError("bug")
        request = coordinator.request_move(2, 4)
        assert request.state == MoveState.ROLLED_BACK
        assert store.categories == before

    def test_later_moves_of_other_items_survive(self, store, api, manual, runner):
        api.move_card.side_effect = [ApiError("boom", 500, "nope"), None]

        failing = manual.request_move(2, 4)
        standing = manual.request_move(3, None)
        runner.run_next()

        assert failing.state == MoveState.ROLLED_BACK
        assert store.find(2).parent_id == 1
        assert store.find(3).parent_id is None

        runner.run_next()
        assert standing.state == MoveState.COMMITTED
        assert store.find(3).parent_id is None

    def test_two_failures_restore_original_tree(self, store, api, manual, runner):
        before = store.snapshot()
        api.move_card.side_effect = [ApiError("boom", 500, "nope"), ApiError("boom", 500, "nope")]

        manual.request_move(2, 4)
        manual.request_move(3, None)
        runner.run_next()
        runner.run_next()

        assert store.categories == before

    def test_reload_mid_flight_skips_rollback(self, store, api, manual, runner):
        api.move_card.side_effect = ApiError("boom", 500, "nope")
        request = manual.request_move(2, 4)

        assert store.load_all()
        reloaded = store.categories
        runner.run_next()

        assert request.state == MoveState.ROLLED_BACK
        assert store.categories is reloaded
        assert store.error == "nope"


class TestRollbackReplay:
    """Later moves re-applied on top of a restored snapshot"""

    def test_committed_later_move_survives_earlier_failure(self, store, api, manual, runner):
        api.move_card.side_effect = [None, ApiError("boom", 500, "nope")]
        failing = manual.request_move(2, 4)
        standing = manual.request_move(3, None)

        runner.run(1)
        assert standing.state == MoveState.COMMITTED

        runner.run_next()
        assert failing.state == MoveState.ROLLED_BACK
        assert store.find(2).parent_id == 1
        assert store.find(3).parent_id is None

    def test_item_gone_on_server_stays_gone(self, store, api, manual, runner):
        api.move_card.side_effect = [StaleReferenceError("gone", 404), ApiError("boom", 500, "nope")]
        failing = manual.request_move(2, 4)
        manual.request_move(3, None)

        runner.run(1)
        assert store.find(3) is None

        runner.run_next()
        assert failing.state == MoveState.ROLLED_BACK
        assert store.find(3) is None
        assert store.find(2).parent_id == 1

    def test_move_that_only_fit_after_the_failed_one_is_undone(self, api, later, runner):
        store = folder_store(api, [
            folder(1, "A", children=[folder(2, "S", parent_id=1)]),
            folder(3, "Y"),
        ])
        coordinator = manual_for(store, api, later, runner)
        before = store.snapshot()
        api.move_card.side_effect = [ApiError("boom", 500, "nope"), None]

        first = coordinator.move_to(2, category_id=10)
        second = coordinator.move_to(3, parent_id=2)
        assert second.state == MoveState.APPLYING

        runner.run_next()
        assert first.state == MoveState.ROLLED_BACK
        assert folders_in_subfolders(store) == []
        assert store.categories == before

        runner.run_next()
        assert second.state == MoveState.ROLLED_BACK
        assert second.error == MSG_SUBFOLDER
        assert store.error == MSG_SUBFOLDER
        assert store.categories == before


class TestStaleReference:

    def test_404_removes_item_and_counts_as_success(self, store, api, coordinator):
        api.move_card.side_effect = StaleReferenceError("gone", 404)
        request = coordinator.request_move(2, 4)

        assert request.state == MoveState.COMMITTED
        assert store.find(2) is None
        assert store.error is None


class TestValidation:

    def test_missing_item_is_rejected(self, store, api, coordinator):
        request = coordinator.request_move(99, 4)
        assert request.state == MoveState.REJECTED
        assert store.error == MSG_ITEM_MISSING
        api.move_card.assert_not_called()

    def test_move_to_rejects_folder_into_subfolder(self, store, api, coordinator):
        before = store.snapshot()
        request = coordinator.move_to(6, parent_id=4)
        assert request.state == MoveState.REJECTED
        assert store.error == MSG_SUBFOLDER
        assert store.categories is before
        api.move_card.assert_not_called()

    def test_move_to_category_root(self, store, coordinator):
        request = coordinator.move_to(5, category_id=10)
        assert request.state == MoveState.COMMITTED
        assert store.find(5).parent_id is None


class TestRecheckOnStart:
    """A queued move is checked against the tree as it is when it starts"""

    def test_destination_became_subfolder_while_waiting(self, api, later, runner):
        store = folder_store(api, [folder(1, "A"), folder(2, "B"), folder(3, "C")])
        coordinator = manual_for(store, api, later, runner)

        coordinator.request_move(3, 1)
        queued = coordinator.move_to(3, parent_id=2)
        coordinator.request_move(2, 1)
        assert queued.state == MoveState.IDLE

        runner.run_next()

        assert queued.state == MoveState.REJECTED
        assert queued.error == MSG_SUBFOLDER
        assert store.error == MSG_SUBFOLDER
        assert store.find(3).parent_id == 1
        assert folders_in_subfolders(store) == []
        assert api.move_card.call_count == 1

    def test_destination_deleted_while_waiting(self, store, api, manual, runner):
        manual.request_move(2, 4)
        queued = manual.request_move(2, 6)
        store.remove_local(6)

        runner.run_next()

        assert queued.state == MoveState.REJECTED
        assert store.find(2).parent_id == 4


class TestSerialization:
    """Moves of one item never overlap"""

    def test_second_move_waits_for_first(self, store, api, manual, runner):
        first = manual.request_move(2, 4)
        second = manual.request_move(2, None)

        assert first.state == MoveState.APPLYING
        assert second.state == MoveState.IDLE
        assert manual.is_moving(2)
        assert len(runner.jobs) == 1

        runner.run_next()
        assert first.state == MoveState.COMMITTED
        assert second.state == MoveState.APPLYING

        runner.run_next()
        assert second.state == MoveState.COMMITTED
        assert store.find(2).parent_id is None
        assert not manual.is_moving(2)
        assert api.move_card.call_count == 2

    def test_different_items_run_side_by_side(self, manual, runner):
        manual.request_move(2, 4)
        manual.request_move(3, 4)
        assert len(runner.jobs) == 2

    def test_global_cap_queues_excess(self, store, api, later, runner):
        capped = OptimisticMoveCoordinator(
            store, api, run_in_background=runner,
            schedule_later=lambda seconds, fn: later.append(fn),
            max_concurrent_moves=1)

        capped.request_move(2, 4)
        queued = capped.request_move(3, 4)
        assert queued.state == MoveState.IDLE
        assert len(runner.jobs) == 1

        runner.run_next()
        assert queued.state == MoveState.APPLYING


class TestDetach:

    def test_result_after_detach_is_ignored(self, store, api, manual, runner):
        api.move_card.side_effect = ApiError("boom", 500, "nope")
        request = manual.request_move(2, 4)
        manual.detach()
        runner.run_next()

        assert request.state == MoveState.ABANDONED
        assert store.error is None

    def test_queued_moves_are_abandoned(self, manual):
        manual.request_move(2, 4)
        queued = manual.request_move(2, None)
        manual.detach()
        assert queued.state == MoveState.ABANDONED
        assert queued.wait(0)

    def test_request_after_detach(self, api, coordinator):
        coordinator.detach()
        request = coordinator.request_move(2, 4)
        assert request.state == MoveState.ABANDONED
        api.move_card.assert_not_called()


class TestCrossCategory:

    def test_card_moves_to_other_category_root(self, store, api, coordinator):
        request = coordinator.request_move(2, None, 20)

        assert request.state == MoveState.COMMITTED
        owner, moved = store.locate(2)
        assert owner.id == 20
        assert moved.category_id == 20
        assert [child.name for child in store.get_category(20).children] == ["Airport", "Cat", "Hotel"]
        assert child_names(store, 1) == ["Pets", "Dog"]
        api.move_card.assert_called_once_with(2, None, 20)

    def test_folder_into_other_category_folder(self, store, coordinator):
        coordinator.request_move(4, 6)
        owner, pets = store.locate(4)
        assert owner.id == 20
        assert store.find(5).category_id == 20

    def test_rollback_spans_both_categories(self, store, api, coordinator):
        before = store.snapshot()
        api.move_card.side_effect = ApiError("boom", 500, "nope")
        coordinator.request_move(2, 6)
        assert store.categories == before


class TestThreaded:

    def test_default_worker_thread(self, store, api):
        coordinator = OptimisticMoveCoordinator(store, api, success_message_seconds=0)
        request = coordinator.request_move(2, 4)

        assert request.wait(timeout=5)
        assert request.state == MoveState.COMMITTED
        assert store.find(2).parent_id == 4

    def test_simultaneous_failures_restore_original_tree(self, store, api):
        before = store.snapshot()
        barrier = threading.Barrier(2)

        def fail_together(*args):
            barrier.wait(timeout=5)
            raise ApiError("boom", 500, "nope")

        api.move_card.side_effect = fail_together
        coordinator = OptimisticMoveCoordinator(store, api, success_message_seconds=0)
        first = coordinator.request_move(2, 4)
        second = coordinator.request_move(3, None)

        assert first.wait(timeout=5)
        assert second.wait(timeout=5)
        assert first.state == MoveState.ROLLED_BACK
        assert second.state == MoveState.ROLLED_BACK
        assert store.categories == before
