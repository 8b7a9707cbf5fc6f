"""Models for training-related data structures."""
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Action(Enum):
    """Possible user decisions on a message."""
    ACCEPT = "accept"  # Message looks legitimate
    BLOCK = "block"  # Message looks like smishing
    QUESTION = "question"  # User asks for an analysis before deciding

    @property
    def is_verdict(self) -> bool:
        """Whether the action carries a correctness verdict."""
        return self is not Action.QUESTION


class FeedbackKind(Enum):
    """Kinds of feedback shown after a decision."""
    CORRECT = "correct"
    INCORRECT = "incorrect"
    QUESTION = "question"


class SessionMode(Enum):
    """How a training session walks the catalog."""
    SEQUENTIAL = "sequential"  # Whole catalog in order, with a score
    SINGLE = "single"  # One message picked from the menu


class SessionState(Enum):
    """States of the training session controller."""
    LOADING = "loading"
    PRESENTING = "presenting"
    AWAITING_DECISION = "awaiting_decision"
    FEEDBACK = "feedback"
    COMPLETE = "complete"
    FAILED = "failed"


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class MessageItem:
    """One catalog message. Read-only for the whole session."""
    id: int
    sender: str
    content: str
    correct_action: Action
    cues: List[str] = field(default_factory=list)
    question_feedback: Optional[str] = None
    incorrect_feedback: Dict[str, str] = field(default_factory=dict)

    def classify(self, action: Action) -> Optional[bool]:
        """Return the verdict for a decision, None for a question."""
        if not action.is_verdict:
            return None
        return action == self.correct_action

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessageItem":
        """Build an item from its catalog form; raises KeyError or ValueError on bad input."""
        for key in ("id", "sender", "content", "correctAction"):
            if data.get(key) is None:
                raise KeyError(key)
        correct_action = Action(data["correctAction"])
        if not correct_action.is_verdict:
            raise ValueError(f"correctAction must be accept or block, got {data['correctAction']!r}")
        if not isinstance(data["id"], int) or isinstance(data["id"], bool):
            raise ValueError(f"id must be an integer, got {data['id']!r}")
        cues = data.get("cues") or []
        if not isinstance(cues, list):
            raise ValueError(f"cues must be a list, got {type(cues).__name__}")
        incorrect_feedback = data.get("incorrectFeedback") or {}
        if not isinstance(incorrect_feedback, dict):
            raise ValueError(f"incorrectFeedback must be an object, got {type(incorrect_feedback).__name__}")
        return cls(
            id=data["id"],
            sender=str(data["sender"]),
            content=str(data["content"]),
            correct_action=correct_action,
            cues=[str(cue) for cue in cues],
            question_feedback=data.get("questionFeedback"),
            incorrect_feedback=dict(incorrect_feedback),
        )


@dataclass(frozen=True)
class Identity:
    """Anonymous identity of one device."""
    user_id: str
    user_name: str

    def to_dict(self) -> Dict[str, str]:
        return {"userId": self.user_id, "userName": self.user_name}


@dataclass(frozen=True)
class Attempt:
    """One user decision, as sent to the stats ledger."""
    user_id: str
    message_id: int
    action: Action
    correct: Optional[bool] = None
    user_name: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_payload(self) -> Dict[str, Any]:
        """Request body for the save-progress endpoint."""
        return {
            "userId": self.user_id,
            "userName": self.user_name,
            "messageId": self.message_id,
            "action": self.action.value,
            "correct": self.correct,
            "timestamp": self.timestamp,
        }


@dataclass
class OutcomeRecord:
    """Latest local outcome for one message."""
    action: Action
    correct: Optional[bool]
    timestamp: str

    def to_data(self) -> Dict[str, Any]:
        return {"action": self.action.value, "correct": self.correct, "timestamp": self.timestamp}

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "OutcomeRecord":
        action = Action(data["action"])
        correct = data.get("correct") if action.is_verdict else None
        if action.is_verdict and not isinstance(correct, bool):
            raise ValueError(f"{action.value} outcome needs a boolean correct, got {correct!r}")
        return cls(action=action, correct=correct, timestamp=data.get("timestamp") or "")


@dataclass
class Feedback:
    """Feedback shown for a decision."""
    kind: FeedbackKind
    item: MessageItem
    action: Action
    title: str
    text: str
    cues: List[str] = field(default_factory=list)


@dataclass
class SessionResult:
    """Score summary shown when a sequential pass completes."""
    score: int
    total: int
    percentage: int
    performance_message: str


@dataclass
class ProgressSummary:
    """Menu summary computed from the local progress store."""
    completed_count: int
    total_count: int
    correct_count: int
    accuracy_percent: int
