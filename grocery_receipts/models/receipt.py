"""
SQLAlchemy models for receipts and anonymous upload sessions.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from grocery_receipts.database import Base
from grocery_receipts.lifecycle.ownership import (
    SESSION,
    USER,
    Owner,
    owner_from_columns,
)

PENDING_STORE_NAME = "Pending"

# migration_state values
MIGRATION_COPYING = "copying"
MIGRATION_CLEANUP = "cleanup"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReceiptModel(Base):
    __tablename__ = "receipts"
    __table_args__ = (
        CheckConstraint(f"owner_type IN ('{USER}', '{SESSION}')", name="ck_receipts_owner_type"),
    )

    id = Column(String, primary_key=True)
    owner_type = Column(String, nullable=False)
    owner_id = Column(String, nullable=False, index=True)

    store_name = Column(String, nullable=False, default=PENDING_STORE_NAME)
    date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_items = Column(Integer)
    items = Column(JSON, nullable=False, default=list)

    file_url = Column(Text, nullable=False)
    file_path = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    processed = Column(Boolean, nullable=False, default=False)

    # Migration saga: copying -> cleanup -> NULL
    migration_state = Column(String)
    migration_user_id = Column(String)
    migration_path = Column(String)  # target key while copying, source key during cleanup
    migration_session_id = Column(String)  # session the receipt is leaving

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def owner(self) -> Owner:
        return owner_from_columns(self.owner_type, self.owner_id)

    @owner.setter
    def owner(self, value: Owner) -> None:
        self.owner_type = value.kind
        self.owner_id = value.owner_id


class TempSessionModel(Base):
    """Groups anonymous uploads until the uploader signs in."""
    __tablename__ = "temp_sessions"

    id = Column(String, primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_seen_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class InsightSnapshotModel(Base):
    """Latest AI-generated narrative for a user or a session."""
    __tablename__ = "insights"
    __table_args__ = (UniqueConstraint("owner_type", "owner_id", name="uq_insights_owner"),)

    id = Column(String, primary_key=True)
    owner_type = Column(String, nullable=False)
    owner_id = Column(String, nullable=False, index=True)
    content = Column(Text, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=utcnow)
