"""Models for the server-side stats ledger."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from smishdefense.utils import percent


@dataclass
class LedgerEntry:
    """One attempt stored in a user's ledger."""
    message_id: int
    action: str
    correct: Optional[bool]
    timestamp: str

    def to_data(self) -> Dict[str, Any]:
        return {
            "messageId": self.message_id,
            "action": self.action,
            "correct": self.correct,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "LedgerEntry":
        return cls(
            message_id=data["messageId"],
            action=data["action"],
            correct=data.get("correct"),
            timestamp=data.get("timestamp"),
        )


@dataclass
class UserSummary:
    """Counters derived from a user's ledger, updated on every attempt."""
    total_attempts: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    questions_asked: int = 0
    messages_completed: List[int] = field(default_factory=list)

    @property
    def answered(self) -> int:
        """Attempts that carried a verdict."""
        return self.total_attempts - self.questions_asked

    @property
    def accuracy(self) -> float:
        """Share of verdict attempts that were correct, 0 when there are none."""
        if self.answered <= 0:
            return 0.0
        return self.correct_answers / self.answered

    @property
    def accuracy_percent(self) -> int:
        return percent(self.correct_answers, self.answered)

    def to_data(self) -> Dict[str, Any]:
        return {
            "totalAttempts": self.total_attempts,
            "correctAnswers": self.correct_answers,
            "incorrectAnswers": self.incorrect_answers,
            "questionsAsked": self.questions_asked,
            "messagesCompleted": list(self.messages_completed),
        }

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "UserSummary":
        completed: List[int] = []
        for message_id in data.get("messagesCompleted", []):
            if message_id not in completed:
                completed.append(message_id)
        return cls(
            total_attempts=data.get("totalAttempts", 0),
            correct_answers=data.get("correctAnswers", 0),
            incorrect_answers=data.get("incorrectAnswers", 0),
            questions_asked=data.get("questionsAsked", 0),
            messages_completed=completed,
        )


@dataclass
class UserRecord:
    """A user's ledger: every attempt plus the derived summary."""
    user_id: str
    user_name: str
    first_attempt: str
    last_activity: str
    attempts: List[LedgerEntry] = field(default_factory=list)
    summary: UserSummary = field(default_factory=UserSummary)

    def to_data(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "userName": self.user_name,
            "firstAttempt": self.first_attempt,
            "lastActivity": self.last_activity,
            "attempts": [entry.to_data() for entry in self.attempts],
            "summary": self.summary.to_data(),
        }

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "UserRecord":
        return cls(
            user_id=data["userId"],
            user_name=data.get("userName") or f"User_{data['userId']}",
            first_attempt=data.get("firstAttempt"),
            last_activity=data.get("lastActivity"),
            attempts=[LedgerEntry.from_data(entry) for entry in data.get("attempts", [])],
            summary=UserSummary.from_data(data.get("summary", {})),
        )
