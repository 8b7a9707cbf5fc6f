"""Local per-device progress store."""
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from smishdefense.models.training_models import Action, OutcomeRecord, ProgressSummary, utc_now_iso
from smishdefense.utils import percent

logger = logging.getLogger(__name__)


class ProgressStore:
    """Which messages a device has answered and the latest outcome of each.

    Only accept/block decisions enter the store. A later decision on the same
    message overwrites its result; ``completed`` never holds an id twice.
    """

    def __init__(self, path: Path):
        """Initialize an empty store backed by the given JSON file."""
        self.path = Path(path)
        self.completed: List[int] = []
        self.results: Dict[int, OutcomeRecord] = {}

    def load(self) -> "ProgressStore":
        """Read persisted state, falling back to an empty store on any problem."""
        self.completed, self.results = [], {}
        if not self.path.exists():
            return self
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            completed: List[int] = []
            for message_id in data.get("completed", []):
                if int(message_id) not in completed:
                    completed.append(int(message_id))
            results = {
                int(message_id): OutcomeRecord.from_data(record)
                for message_id, record in data.get("results", {}).items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Progress at {self.path} is unreadable, starting from scratch: {e}")
            return self

        # Questions never complete a message
        results = {k: v for k, v in results.items() if v.action.is_verdict}
        completed = [k for k in completed if k in results]
        completed.extend(k for k in results if k not in completed)
        self.completed = completed
        self.results = results
        return self

    def save(self) -> None:
        """Persist the store; failures are logged since local state is best effort."""
        data = {
            "completed": list(self.completed),
            "results": {str(k): v.to_data() for k, v in self.results.items()},
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Could not save progress to {self.path}: {e}")

    def record_outcome(self, message_id: int, action: Action, correct: Optional[bool]) -> None:
        """Record the latest decision on a message."""
        if not action.is_verdict:
            return
        if message_id not in self.completed:
            self.completed.append(message_id)
        self.results[message_id] = OutcomeRecord(
            action=action,
            correct=bool(correct),
            timestamp=utc_now_iso(),
        )
        self.save()

    def reset(self) -> None:
        """Clear all progress."""
        self.completed = []
        self.results = {}
        self.save()
        logger.info(f"Progress reset at {self.path}")

    def is_completed(self, message_id: int) -> bool:
        return message_id in self.completed

    def result_for(self, message_id: int) -> Optional[OutcomeRecord]:
        return self.results.get(message_id)

    def summary(self, total_count: int) -> ProgressSummary:
        """Menu summary: completed count, correct count and accuracy."""
        completed_count = len(self.completed)
        correct_count = sum(1 for record in self.results.values() if record.correct)
        return ProgressSummary(
            completed_count=completed_count,
            total_count=total_count,
            correct_count=correct_count,
            accuracy_percent=percent(correct_count, completed_count),
        )
