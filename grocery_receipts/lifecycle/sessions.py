"""
Temp session manager — anonymous upload groups awaiting account linkage.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from grocery_receipts.errors import SessionInUseError, UpstreamError
from grocery_receipts.lifecycle.ownership import SessionOwner
from grocery_receipts.lifecycle.store import ReceiptStore
from grocery_receipts.models.receipt import (
    InsightSnapshotModel,
    ReceiptModel,
    TempSessionModel,
    utcnow,
)
from grocery_receipts.services.blob_store import BlobStore

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(self, db: Session, blob_store: Optional[BlobStore] = None):
        self.db = db
        self.blob_store = blob_store
        self.store = ReceiptStore(db)

    def get(self, session_id: str) -> Optional[TempSessionModel]:
        return self.db.get(TempSessionModel, session_id)

    def ensure(self, session_id: str) -> TempSessionModel:
        """Create the session if missing, otherwise just touch it."""
        session = self.get(session_id)
        if session is None:
            self.db.add(TempSessionModel(id=session_id))
            try:
                self.db.commit()
            except IntegrityError:
                # Lost a race with a concurrent upload using the same id
                self.db.rollback()
                logger.info("Temp session %s created concurrently", session_id)
            else:
                logger.info("Created temp session %s", session_id)
            session = self.get(session_id)
        else:
            session.last_seen_at = utcnow()
            self.db.commit()
        return session

    def receipts(self, session_id: str) -> list[ReceiptModel]:
        return self.store.for_owner(SessionOwner(session_id))

    def delete(self, session_id: str) -> None:
        """Delete a session once nothing references it any more."""
        remaining = self.store.count_for_owner(SessionOwner(session_id))
        if remaining:
            raise SessionInUseError(
                f"Temp session {session_id} still owns {remaining} receipt(s)"
            )
        self.db.query(InsightSnapshotModel).filter(
            InsightSnapshotModel.owner_type == SessionOwner(session_id).kind,
            InsightSnapshotModel.owner_id == session_id,
        ).delete(synchronize_session=False)
        self.db.query(TempSessionModel).filter(TempSessionModel.id == session_id).delete(
            synchronize_session=False
        )
        self.db.commit()
        logger.info("Deleted temp session %s", session_id)

    def purge_expired(self, ttl: timedelta, now: Optional[datetime] = None) -> list[str]:
        """Remove abandoned sessions together with their receipts and blobs.

        A session is abandoned when it has not been touched for ``ttl``.
        Sessions with a receipt mid-migration are left for the migration
        resume to finish. Returns the purged session ids.
        """
        cutoff = (now or utcnow()) - ttl
        expired = [
            row.id
            for row in self.db.query(TempSessionModel.id)
            .filter(TempSessionModel.last_seen_at < cutoff)
        ]
        purged: list[str] = []
        for session_id in expired:
            receipts = self.receipts(session_id)
            if any(r.migration_state is not None for r in receipts):
                logger.info("Skipping expired session %s: migration in progress", session_id)
                continue
            try:
                for receipt in receipts:
                    if self.blob_store is not None:
                        self.blob_store.delete(receipt.file_path)
                    self.db.delete(receipt)
                self.db.flush()
                self.delete(session_id)
            except UpstreamError as e:
                self.db.rollback()
                logger.warning("Failed to purge expired session %s: %s", session_id, e)
                continue
            purged.append(session_id)

        if purged:
            logger.info("Purged %d expired temp session(s)", len(purged))
        return purged
