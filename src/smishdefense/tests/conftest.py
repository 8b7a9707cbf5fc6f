"""Test configuration."""
import os
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
_test_data_dir = tempfile.mkdtemp(prefix="smishdefense-test-")
os.environ.setdefault("DATA_DIR", _test_data_dir)
os.environ.setdefault("DATABASE_URL", f"sqlite:///{Path(_test_data_dir) / 'ledger.db'}")

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from sqlalchemy.orm import sessionmaker  # noqa: E402

from smishdefense.config import ensure_directories  # noqa: E402
from smishdefense.models.base import init_db, make_engine  # noqa: E402
from smishdefense.models.training_models import Action, Attempt, Identity, MessageItem  # noqa: E402
from smishdefense.services.catalog_service import Catalog  # noqa: E402
from smishdefense.services.progress_service import ProgressStore  # noqa: E402
from smishdefense.services.stats_service import LedgerRepository, StatsAggregator  # noqa: E402


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment before each test."""
    ensure_directories()
    yield


class RecordingBridge:
    """Sync bridge stand-in that keeps every forwarded attempt."""

    def __init__(self):
        self.forwarded: List[Attempt] = []

    def forward(self, attempt: Attempt) -> None:
        self.forwarded.append(attempt)


@pytest.fixture
def items() -> List[MessageItem]:
    """Three catalog messages: block, accept, block."""
    return [
        MessageItem(
            id=1,
            sender="+1 555 0100",
            content="Your parcel is on hold, pay the fee at parcel-fee.example",
            correct_action=Action.BLOCK,
            cues=["Unknown sender", "Payment link"],
            question_feedback="Think about who sends parcel fees by text. ",
            incorrect_feedback={"accept": "That was a parcel scam."},
        ),
        MessageItem(
            id=2,
            sender="Mom",
            content="Running late, start dinner without me",
            correct_action=Action.ACCEPT,
            cues=["Known contact"],
        ),
        MessageItem(
            id=3,
            sender="BankAlert",
            content="Verify your account now at bank-verify.example",
            correct_action=Action.BLOCK,
            cues=[],
        ),
    ]


@pytest.fixture
def catalog(items: List[MessageItem]) -> Catalog:
    return Catalog(items)


@pytest.fixture
def identity() -> Identity:
    return Identity(user_id="user_1700000000000_abc123xyz", user_name="Alice")


@pytest.fixture
def progress_store(tmp_path: Path) -> ProgressStore:
    """An empty progress store in a temporary directory."""
    return ProgressStore(tmp_path / "progress.json").load()


@pytest.fixture
def bridge() -> RecordingBridge:
    return RecordingBridge()


@pytest.fixture
def session_factory(tmp_path: Path) -> Generator[sessionmaker, None, None]:
    """Session factory over a fresh SQLite ledger database."""
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def repository(session_factory: sessionmaker) -> LedgerRepository:
    return LedgerRepository(session_factory, name="test-ledger")


@pytest.fixture
def aggregator(repository: LedgerRepository) -> StatsAggregator:
    return StatsAggregator(repository, write_retries=3)
