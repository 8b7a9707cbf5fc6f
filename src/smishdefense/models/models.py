"""Database models for the stats ledger."""
from sqlalchemy import Column, Integer, JSON, String

from smishdefense.models.base import Base, TimestampMixin


class LedgerDocument(Base, TimestampMixin):
    """A single versioned document holding the ledger of every user.

    The payload has the shape ``{"users": {user_id: user_record}}`` and is
    always replaced as a whole; ``version`` grows by one on every write.
    """

    __tablename__ = "ledger_documents"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    version = Column(Integer, nullable=False, default=0)
    payload = Column(JSON, nullable=False)
