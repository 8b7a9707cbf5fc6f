"""Server-side stats ledger: every attempt per user plus summary counters."""
import copy
import logging
import threading
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from smishdefense import monitoring
from smishdefense.config import settings
from smishdefense.errors import PersistenceError, ValidationError
from smishdefense.models.base import SessionLocal
from smishdefense.models.models import LedgerDocument
from smishdefense.models.stats_models import LedgerEntry, UserRecord, UserSummary
from smishdefense.models.training_models import Action, utc_now_iso

logger = logging.getLogger(__name__)


def empty_document() -> Dict[str, Any]:
    return {"users": {}}


class VersionConflict(Exception):
    """The document changed between read and write."""


class LedgerRepository:
    """Reads and writes the single versioned ledger document."""

    def __init__(self, session_factory: sessionmaker = SessionLocal, name: Optional[str] = None):
        """Initialize the repository with a session factory and a document name."""
        self.session_factory = session_factory
        self.name = name or settings.ledger.document

    def read(self) -> Tuple[int, Dict[str, Any]]:
        """Return the current version and a private copy of the document."""
        db = self.session_factory()
        try:
            document = db.query(LedgerDocument).filter(LedgerDocument.name == self.name).first()
            if not document:
                return 0, empty_document()
            payload = copy.deepcopy(document.payload) or empty_document()
            payload.setdefault("users", {})
            return document.version, payload
        except SQLAlchemyError as e:
            monitoring.ledger_errors.labels(error_type="read").inc()
            raise PersistenceError(f"Failed to load statistics: {e}") from e
        finally:
            db.close()

    def write(self, payload: Dict[str, Any], expected_version: int) -> int:
        """Replace the document if it is still at expected_version; return the new version."""
        db = self.session_factory()
        try:
            if expected_version == 0:
                db.add(LedgerDocument(name=self.name, version=1, payload=payload))
            else:
                updated = (
                    db.query(LedgerDocument)
                    .filter(
                        LedgerDocument.name == self.name,
                        LedgerDocument.version == expected_version,
                    )
                    .update(
                        {"payload": payload, "version": expected_version + 1},
                        synchronize_session=False,
                    )
                )
                if updated != 1:
                    db.rollback()
                    raise VersionConflict(f"Ledger {self.name} is no longer at version {expected_version}")
            db.commit()
            return expected_version + 1
        except IntegrityError as e:
            # Another writer created the document first
            db.rollback()
            raise VersionConflict(f"Ledger {self.name} was created concurrently") from e
        except SQLAlchemyError as e:
            db.rollback()
            monitoring.ledger_errors.labels(error_type="write").inc()
            raise PersistenceError(f"Failed to save statistics: {e}") from e
        finally:
            db.close()


class StatsAggregator:
    """Appends attempts to the ledger and keeps per-user summaries.

    Every mutation is a full read-modify-write of one document. Writers in
    this process are serialized by a lock; writers in other processes are
    detected by the document version and the cycle is replayed.
    """

    def __init__(self, repository: LedgerRepository, write_retries: Optional[int] = None):
        """Initialize the aggregator over a ledger repository."""
        self.repository = repository
        self.write_retries = write_retries if write_retries is not None else settings.ledger.write_retries
        if self.write_retries < 1:
            raise ValueError(f"write_retries must be at least 1, got {self.write_retries}")
        self._lock = threading.Lock()

    @staticmethod
    def validate(attempt: Dict[str, Any]) -> Action:
        """Check the required fields of an attempt and return its action."""
        missing = [key for key in ("userId", "messageId", "action") if attempt.get(key) in (None, "")]
        if missing:
            raise ValidationError("Missing required fields: userId, messageId, action")
        try:
            return Action(attempt["action"])
        except ValueError as e:
            raise ValidationError(f"Unknown action: {attempt['action']!r}") from e

    @staticmethod
    def apply(document: Dict[str, Any], attempt: Dict[str, Any], action: Action) -> UserRecord:
        """Apply one attempt to a document in memory and return the updated record."""
        user_id = attempt["userId"]
        message_id = attempt["messageId"]
        timestamp = attempt.get("timestamp") or utc_now_iso()
        correct = bool(attempt.get("correct")) if action.is_verdict else None

        users = document["users"]
        if user_id in users:
            user = UserRecord.from_data(users[user_id])
        else:
            user = UserRecord(
                user_id=user_id,
                user_name=attempt.get("userName") or f"User_{user_id}",
                first_attempt=timestamp,
                last_activity=timestamp,
            )
            logger.info(f"New user in ledger: {user.user_name} ({user_id})")

        user.last_activity = timestamp
        user.attempts.append(LedgerEntry(
            message_id=message_id,
            action=action.value,
            correct=correct,
            timestamp=timestamp,
        ))

        summary: UserSummary = user.summary
        summary.total_attempts += 1
        if not action.is_verdict:
            summary.questions_asked += 1
        else:
            if correct:
                summary.correct_answers += 1
            else:
                summary.incorrect_answers += 1
            if message_id not in summary.messages_completed:
                summary.messages_completed.append(message_id)

        users[user_id] = user.to_data()
        return user

    def record_attempt(self, attempt: Dict[str, Any]) -> UserSummary:
        """Append an attempt to the user's ledger and return the updated summary.

        Raises:
            ValidationError: userId, messageId or action is missing or invalid.
            PersistenceError: the ledger could not be read or written.
        """
        action = self.validate(attempt)

        with self._lock:
            for _ in range(self.write_retries):
                version, document = self.repository.read()
                user = self.apply(document, attempt, action)
                try:
                    self.repository.write(document, version)
                except VersionConflict as e:
                    monitoring.ledger_write_conflicts.inc()
                    logger.warning(f"Ledger write conflict, replaying attempt: {e}")
                    continue
                monitoring.attempts_recorded.labels(action=action.value).inc()
                logger.debug(f"Recorded {action.value} on message {attempt['messageId']} for {user.user_id}")
                return user.summary

        monitoring.ledger_errors.labels(error_type="conflict").inc()
        raise PersistenceError(f"Failed to save statistics after {self.write_retries} conflicting writes")

    def get_user_stats(self, user_id: str) -> Optional[UserRecord]:
        """Get a user's ledger; None when the user has never been seen."""
        _, document = self.repository.read()
        data = document["users"].get(user_id)
        if data is None:
            return None
        return UserRecord.from_data(data)
