"""Training session state machine."""
import logging
from typing import Awaitable, Callable, Optional

from smishdefense import monitoring
from smishdefense.errors import CatalogLoadError, SessionStateError
from smishdefense.models.training_models import (
    Action,
    Attempt,
    Feedback,
    FeedbackKind,
    Identity,
    MessageItem,
    SessionMode,
    SessionResult,
    SessionState,
)
from smishdefense.services.catalog_service import Catalog
from smishdefense.services.feedback_service import build_feedback, performance_message
from smishdefense.services.progress_service import ProgressStore
from smishdefense.utils import percent

logger = logging.getLogger(__name__)

CatalogLoader = Callable[[], Awaitable[Catalog]]


class SessionController:
    """Drives one training pass through the catalog.

    The controller only moves on discrete user input:

        LOADING -> PRESENTING(i) -> AWAITING_DECISION(i) -> FEEDBACK(kind, i)
        FEEDBACK(question, i) -> AWAITING_DECISION(i)
        FEEDBACK(correct|incorrect, i) -> PRESENTING(i + 1) | COMPLETE

    In single mode a verdict ends the session and COMPLETE means "return to
    the caller". A failed catalog load leaves the session in FAILED for good.
    """

    def __init__(
        self,
        identity: Identity,
        progress_store: ProgressStore,
        sync_bridge=None,
        mode: SessionMode = SessionMode.SEQUENTIAL,
        target_message_id: Optional[int] = None,
    ):
        """Initialize the controller; the catalog is loaded separately by ``load``."""
        self.identity = identity
        self.progress_store = progress_store
        self.sync_bridge = sync_bridge
        self.mode = mode
        self.target_message_id = target_message_id

        self.state = SessionState.LOADING
        self.catalog: Optional[Catalog] = None
        self.index = 0
        self.score = 0
        self.feedback: Optional[Feedback] = None
        self.returned_to_caller = False

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            expected = ", ".join(s.value for s in states)
            raise SessionStateError(f"Session is {self.state.value}, expected {expected}")

    @property
    def is_sequential(self) -> bool:
        return self.mode == SessionMode.SEQUENTIAL

    @property
    def total(self) -> int:
        return len(self.catalog) if self.catalog else 0

    @property
    def current_item(self) -> Optional[MessageItem]:
        if self.catalog is None or self.index >= len(self.catalog):
            return None
        return self.catalog[self.index]

    async def load(self, catalog_loader: CatalogLoader) -> None:
        """Load the catalog and enter the first presentation state."""
        self._require(SessionState.LOADING)
        try:
            catalog = await catalog_loader()
        except CatalogLoadError:
            self.state = SessionState.FAILED
            monitoring.catalog_load_failures.inc()
            raise

        self.catalog = catalog
        self.index = 0
        if not self.is_sequential and self.target_message_id is not None:
            index = catalog.index_of(self.target_message_id)
            if index is None:
                logger.warning(f"Message {self.target_message_id} not in catalog, starting at the first message")
            else:
                self.index = index
        self.score = 0
        self.state = SessionState.PRESENTING
        monitoring.sessions_started.labels(mode=self.mode.value).inc()
        logger.info(f"Session started for {self.identity.user_id}: mode={self.mode.value}, index={self.index}, total={self.total}")

    def present(self) -> Optional[MessageItem]:
        """Show the current message, or complete the pass when none is left."""
        self._require(SessionState.PRESENTING)
        item = self.current_item
        if item is None:
            self._complete()
            return None
        self.state = SessionState.AWAITING_DECISION
        return item

    def decide(self, action: Action) -> Feedback:
        """Turn the user's decision into feedback."""
        self._require(SessionState.AWAITING_DECISION)
        item = self.current_item
        feedback = build_feedback(item, action)
        verdict = item.classify(action)

        if verdict is not None:
            if verdict:
                self.score += 1
            self.progress_store.record_outcome(item.id, action, verdict)
            self._forward(Attempt(
                user_id=self.identity.user_id,
                user_name=self.identity.user_name,
                message_id=item.id,
                action=action,
                correct=verdict,
            ))

        monitoring.decisions.labels(action=action.value, verdict=feedback.kind.value).inc()
        logger.debug(f"Decision {action.value} on message {item.id}: {feedback.kind.value}")
        self.feedback = feedback
        self.state = SessionState.FEEDBACK
        return feedback

    def acknowledge(self) -> SessionState:
        """Dismiss the feedback and move on."""
        self._require(SessionState.FEEDBACK)
        kind = self.feedback.kind
        self.feedback = None

        if kind == FeedbackKind.QUESTION:
            self.state = SessionState.AWAITING_DECISION
        elif self.is_sequential:
            self.index += 1
            self.state = SessionState.PRESENTING
        else:
            self.returned_to_caller = True
            self._complete()
        return self.state

    def restart(self) -> None:
        """Start the sequential pass again; local progress is kept."""
        self._require(SessionState.COMPLETE)
        if not self.is_sequential:
            raise SessionStateError("Only sequential sessions can be restarted")
        self.index = 0
        self.score = 0
        self.state = SessionState.PRESENTING
        logger.info(f"Session restarted for {self.identity.user_id}")

    def result(self) -> SessionResult:
        """Score summary of the pass so far."""
        percentage = percent(self.score, self.total)
        return SessionResult(
            score=self.score,
            total=self.total,
            percentage=percentage,
            performance_message=performance_message(percentage),
        )

    def _complete(self) -> None:
        self.state = SessionState.COMPLETE
        monitoring.sessions_completed.labels(mode=self.mode.value).inc()
        logger.info(f"Session complete for {self.identity.user_id}: score {self.score}/{self.total}")

    def _forward(self, attempt: Attempt) -> None:
        if self.sync_bridge is None:
            return
        # Dispatched, never awaited
        self.sync_bridge.forward(attempt)
