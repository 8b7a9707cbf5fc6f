"""Tests for the local progress store."""
import json
from pathlib import Path

import pytest

from smishdefense.models.training_models import Action
from smishdefense.services.progress_service import ProgressStore


def test_load_missing_file_gives_defaults(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "nothing.json").load()
    assert store.completed == []
    assert store.results == {}


def test_load_corrupt_file_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "progress.json"
    path.write_text("[[[", encoding="utf-8")

    store = ProgressStore(path).load()
    assert store.completed == []
    assert store.results == {}


def test_load_wrong_shape_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "progress.json"
    path.write_text(json.dumps({"completed": [1], "results": {"1": {"action": "shrug"}}}), encoding="utf-8")

    store = ProgressStore(path).load()
    assert store.completed == []
    assert store.results == {}


def test_load_verdict_without_correct_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "progress.json"
    path.write_text(json.dumps({
        "completed": [1],
        "results": {"1": {"action": "block", "timestamp": "t1"}},
    }), encoding="utf-8")

    store = ProgressStore(path).load()
    assert store.completed == []
    assert store.results == {}


def test_record_outcome_persists(progress_store: ProgressStore) -> None:
    progress_store.record_outcome(1, Action.BLOCK, True)

    reloaded = ProgressStore(progress_store.path).load()
    assert reloaded.completed == [1]
    assert reloaded.result_for(1).action == Action.BLOCK
    assert reloaded.result_for(1).correct is True
    assert reloaded.result_for(1).timestamp


def test_record_outcome_is_idempotent_for_completed(progress_store: ProgressStore) -> None:
    progress_store.record_outcome(1, Action.BLOCK, True)
    progress_store.record_outcome(1, Action.BLOCK, True)

    assert progress_store.completed.count(1) == 1


def test_last_write_wins(progress_store: ProgressStore) -> None:
    progress_store.record_outcome(2, Action.BLOCK, False)
    progress_store.record_outcome(2, Action.ACCEPT, True)
    progress_store.record_outcome(2, Action.BLOCK, False)

    result = progress_store.result_for(2)
    assert result.action == Action.BLOCK
    assert result.correct is False
    assert progress_store.completed == [2]


def test_question_is_ignored(progress_store: ProgressStore) -> None:
    progress_store.record_outcome(3, Action.QUESTION, None)
    assert not progress_store.is_completed(3)
    assert progress_store.result_for(3) is None

    progress_store.record_outcome(3, Action.ACCEPT, True)
    progress_store.record_outcome(3, Action.QUESTION, None)
    assert progress_store.is_completed(3)
    assert progress_store.result_for(3).action == Action.ACCEPT


def test_load_keeps_completed_in_line_with_results(tmp_path: Path) -> None:
    path = tmp_path / "progress.json"
    path.write_text(json.dumps({
        "completed": [1, 1, 5],
        "results": {
            "1": {"action": "accept", "correct": True, "timestamp": "t1"},
            "2": {"action": "block", "correct": False, "timestamp": "t2"},
        },
    }), encoding="utf-8")

    store = ProgressStore(path).load()
    assert store.completed == [1, 2]
    assert set(store.results) == {1, 2}


def test_reset(progress_store: ProgressStore) -> None:
    progress_store.record_outcome(1, Action.BLOCK, True)
    progress_store.reset()

    assert progress_store.completed == []
    assert progress_store.results == {}
    assert ProgressStore(progress_store.path).load().completed == []


def test_summary(progress_store: ProgressStore) -> None:
    assert progress_store.summary(8).accuracy_percent == 0

    progress_store.record_outcome(1, Action.BLOCK, True)
    progress_store.record_outcome(2, Action.BLOCK, False)
    progress_store.record_outcome(3, Action.BLOCK, True)

    summary = progress_store.summary(8)
    assert summary.completed_count == 3
    assert summary.total_count == 8
    assert summary.correct_count == 2
    assert summary.accuracy_percent == 67


if __name__ == "__main__":
    pytest.main([__file__])
