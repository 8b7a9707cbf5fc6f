"""Tests for the training session state machine."""
import copy

import pytest

from smishdefense.errors import CatalogLoadError, SessionStateError, TransientSyncFailure
from smishdefense.models.training_models import (
    Action,
    FeedbackKind,
    Identity,
    SessionMode,
    SessionState,
)
from smishdefense.services.catalog_service import Catalog
from smishdefense.services.progress_service import ProgressStore
from smishdefense.services.session_service import SessionController
from smishdefense.services.sync_service import SyncBridge


def loader_for(catalog: Catalog):
    async def load() -> Catalog:
        return catalog
    return load


async def failing_loader() -> Catalog:
    raise CatalogLoadError("Failed to load messages")


async def started(controller: SessionController, catalog: Catalog) -> SessionController:
    await controller.load(loader_for(catalog))
    return controller


@pytest.fixture
def controller(identity: Identity, progress_store: ProgressStore, bridge) -> SessionController:
    return SessionController(identity, progress_store, bridge)


@pytest.mark.asyncio
async def test_sequential_pass_scores_and_completes(controller, catalog, progress_store, bridge) -> None:
    await started(controller, catalog)
    decisions = [Action.BLOCK, Action.BLOCK, Action.BLOCK]  # correct, incorrect, correct

    for action in decisions:
        item = controller.present()
        assert controller.state == SessionState.AWAITING_DECISION
        controller.decide(action)
        assert controller.state == SessionState.FEEDBACK
        assert controller.acknowledge() == SessionState.PRESENTING
        assert item is not None

    assert controller.present() is None
    assert controller.state == SessionState.COMPLETE
    result = controller.result()
    assert result.score == 2
    assert result.total == 3
    assert result.percentage == 67
    assert not controller.returned_to_caller

    assert progress_store.completed == [1, 2, 3]
    assert [a.message_id for a in bridge.forwarded] == [1, 2, 3]
    assert [a.correct for a in bridge.forwarded] == [True, False, True]


@pytest.mark.asyncio
async def test_restart_resets_score_and_keeps_progress(controller, catalog, progress_store) -> None:
    await started(controller, catalog)
    for action in (Action.BLOCK, Action.ACCEPT, Action.ACCEPT):
        controller.present()
        controller.decide(action)
        controller.acknowledge()
    assert controller.present() is None

    before = (list(progress_store.completed), copy.deepcopy(progress_store.results))
    controller.restart()

    assert controller.state == SessionState.PRESENTING
    assert controller.index == 0
    assert controller.score == 0
    assert (progress_store.completed, progress_store.results) == before
    assert controller.present().id == 1


@pytest.mark.asyncio
async def test_question_loop_does_not_advance(controller, catalog, progress_store, bridge) -> None:
    await started(controller, catalog)
    controller.present()

    feedback = controller.decide(Action.QUESTION)
    assert feedback.kind == FeedbackKind.QUESTION
    assert feedback.cues == ["Unknown sender", "Payment link"]
    assert controller.acknowledge() == SessionState.AWAITING_DECISION
    assert controller.index == 0
    assert controller.score == 0
    assert progress_store.completed == []
    assert bridge.forwarded == []

    # The user can still decide after asking
    assert controller.decide(Action.BLOCK).kind == FeedbackKind.CORRECT
    assert controller.score == 1


@pytest.mark.asyncio
async def test_single_mode_targets_message_and_returns(identity, progress_store, bridge, catalog) -> None:
    controller = SessionController(identity, progress_store, bridge, SessionMode.SINGLE, target_message_id=2)
    await started(controller, catalog)

    assert controller.present().id == 2
    controller.decide(Action.ACCEPT)
    assert controller.acknowledge() == SessionState.COMPLETE
    assert controller.returned_to_caller
    assert progress_store.result_for(2).correct is True


@pytest.mark.asyncio
async def test_single_mode_unknown_message_falls_back_to_first(identity, progress_store, bridge, catalog) -> None:
    controller = SessionController(identity, progress_store, bridge, SessionMode.SINGLE, target_message_id=999)
    await started(controller, catalog)

    assert controller.index == 0
    assert controller.present().id == 1


@pytest.mark.asyncio
async def test_single_mode_cannot_restart(identity, progress_store, bridge, catalog) -> None:
    controller = SessionController(identity, progress_store, bridge, SessionMode.SINGLE, target_message_id=1)
    await started(controller, catalog)
    controller.present()
    controller.decide(Action.BLOCK)
    controller.acknowledge()

    with pytest.raises(SessionStateError):
        controller.restart()


@pytest.mark.asyncio
async def test_empty_catalog_completes_immediately(controller) -> None:
    await started(controller, Catalog([]))
    assert controller.present() is None
    assert controller.state == SessionState.COMPLETE
    assert controller.result().percentage == 0


@pytest.mark.asyncio
async def test_catalog_failure_halts_session(controller) -> None:
    with pytest.raises(CatalogLoadError):
        await controller.load(failing_loader)

    assert controller.state == SessionState.FAILED
    with pytest.raises(SessionStateError):
        controller.present()
    with pytest.raises(SessionStateError):
        controller.decide(Action.BLOCK)
    with pytest.raises(SessionStateError):
        await controller.load(failing_loader)


@pytest.mark.asyncio
async def test_illegal_transitions(controller, catalog) -> None:
    with pytest.raises(SessionStateError):
        controller.present()  # Still loading

    await started(controller, catalog)
    with pytest.raises(SessionStateError):
        controller.decide(Action.ACCEPT)  # Nothing presented yet
    with pytest.raises(SessionStateError):
        controller.acknowledge()

    controller.present()
    controller.decide(Action.ACCEPT)
    with pytest.raises(SessionStateError):
        controller.decide(Action.ACCEPT)  # Feedback must be acknowledged first
    with pytest.raises(SessionStateError):
        controller.restart()


@pytest.mark.asyncio
async def test_attempt_carries_identity(controller, catalog, bridge, identity) -> None:
    await started(controller, catalog)
    controller.present()
    controller.decide(Action.ACCEPT)

    attempt = bridge.forwarded[0]
    assert attempt.user_id == identity.user_id
    assert attempt.user_name == identity.user_name
    assert attempt.action == Action.ACCEPT
    assert attempt.correct is False
    assert attempt.timestamp


@pytest.mark.asyncio
async def test_without_bridge_progress_is_still_recorded(identity, progress_store, catalog) -> None:
    controller = SessionController(identity, progress_store, sync_bridge=None)
    await started(controller, catalog)
    controller.present()
    controller.decide(Action.BLOCK)
    assert progress_store.completed == [1]


class StatsClient:
    """Stats client that either accepts every attempt or fails every time."""

    def __init__(self, fail: bool):
        self.fail = fail
        self.calls = 0

    async def save_progress(self, attempt):
        self.calls += 1
        if self.fail:
            raise TransientSyncFailure("Error saving to server: connection refused")
        return {"totalAttempts": self.calls}


async def run_decisions(identity, store, client, catalog, actions) -> SyncBridge:
    sync_bridge = SyncBridge(client)
    controller = SessionController(identity, store, sync_bridge)
    await controller.load(loader_for(catalog))
    controller.present()
    for action in actions:
        controller.decide(action)
        if controller.acknowledge() == SessionState.PRESENTING:
            controller.present()
    await sync_bridge.drain()
    return sync_bridge


@pytest.mark.asyncio
async def test_sync_failure_leaves_progress_unchanged(identity, catalog, tmp_path) -> None:
    actions = [Action.BLOCK, Action.QUESTION, Action.ACCEPT, Action.ACCEPT]
    ok_client, failing_client = StatsClient(fail=False), StatsClient(fail=True)
    ok_store = ProgressStore(tmp_path / "ok" / "progress.json").load()
    failed_store = ProgressStore(tmp_path / "failed" / "progress.json").load()

    await run_decisions(identity, ok_store, ok_client, catalog, actions)
    await run_decisions(identity, failed_store, failing_client, catalog, actions)

    assert ok_client.calls == failing_client.calls == 3
    assert failed_store.completed == ok_store.completed == [1, 2, 3]
    assert {k: (v.action, v.correct) for k, v in failed_store.results.items()} == {
        k: (v.action, v.correct) for k, v in ok_store.results.items()
    }
    reloaded = ProgressStore(failed_store.path).load()
    assert reloaded.completed == ok_store.completed


if __name__ == "__main__":
    pytest.main([__file__])
