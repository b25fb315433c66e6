"""
Receipt lifecycle controller.

Orchestrates: upload → (optional) migrate session → user → extract.
Every batch runs sequentially and isolates per-item failures: a failing
file or receipt is logged, rolled back and reported, never aborting its
siblings.
"""
from __future__ import annotations

import logging
import posixpath
import time
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from grocery_receipts.errors import (
    BadRequestError,
    NotFoundError,
    ReceiptTrackerError,
    UploadFailedError,
    UpstreamError,
)
from grocery_receipts.lifecycle.ownership import Owner, SessionOwner, UserOwner
from grocery_receipts.lifecycle.sessions import SessionManager
from grocery_receipts.lifecycle.store import ReceiptStore
from grocery_receipts.models.receipt import (
    MIGRATION_CLEANUP,
    MIGRATION_COPYING,
    ReceiptModel,
)
from grocery_receipts.services.blob_store import BlobStore
from grocery_receipts.services.extraction import Extractor

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    data: bytes


@dataclass
class ItemFailure:
    receipt_id: str
    reason: str


@dataclass
class BatchReport:
    """Receipts a batch updated, and the ones it had to skip."""
    succeeded: list[ReceiptModel] = field(default_factory=list)
    failed: list[ItemFailure] = field(default_factory=list)


def is_supported_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    return content_type.startswith("image/") or content_type == PDF_MIME


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class ReceiptLifecycle:
    def __init__(
        self,
        db: Session,
        blob_store: BlobStore,
        extractor: Optional[Extractor] = None,
        temp_url_ttl: timedelta = timedelta(hours=24),
        long_url_ttl: timedelta = timedelta(days=3650),
        clock: Callable[[], int] = _epoch_ms,
    ):
        self.db = db
        self.blob_store = blob_store
        self.extractor = extractor
        self.temp_url_ttl = temp_url_ttl
        self.long_url_ttl = long_url_ttl
        self.clock = clock
        self.store = ReceiptStore(db)
        self.sessions = SessionManager(db, blob_store)

    def _key(self, owner: Owner, filename: str) -> str:
        # Unique even for same-name files stored in the same millisecond
        suffix = uuid.uuid4().hex[:8]
        return f"{owner.storage_scope}/{self.clock()}-{suffix}-{posixpath.basename(filename)}"

    def _url_ttl(self, owner: Owner) -> timedelta:
        return self.temp_url_ttl if isinstance(owner, SessionOwner) else self.long_url_ttl

    # ── upload ───────────────────────────────────────────────────────────
    def upload(
        self,
        files: list[UploadedFile],
        owner: Owner,
        store_name: Optional[str] = None,
    ) -> list[ReceiptModel]:
        if not files:
            raise BadRequestError("Missing required fields: file")
        rejected = [f.filename for f in files if not is_supported_type(f.content_type)]
        if rejected:
            raise BadRequestError(
                f"Only images and PDFs are accepted: {', '.join(rejected)}"
            )

        if isinstance(owner, SessionOwner):
            self.sessions.ensure(owner.session_id)

        created: list[ReceiptModel] = []
        for upload in files:
            key = self._key(owner, upload.filename)
            try:
                self.blob_store.upload(
                    key,
                    upload.data,
                    upload.content_type,
                    metadata={"ownerType": owner.kind, "ownerId": owner.owner_id},
                )
                url = self.blob_store.signed_url(key, self._url_ttl(owner))
                receipt = self.store.create(
                    owner,
                    file_url=url,
                    file_path=key,
                    file_type=upload.content_type,
                    store_name=store_name,
                )
                self.db.commit()
            except (ReceiptTrackerError, SQLAlchemyError) as e:
                self.db.rollback()
                logger.error("Error processing file %s: %s", upload.filename, e)
                continue
            logger.info("Stored receipt %s at %s", receipt.id, key)
            created.append(receipt)

        if not created:
            raise UploadFailedError("Failed to upload any receipts")
        return created

    # ── migrate ──────────────────────────────────────────────────────────
    def migrate(self, user_id: str, session_id: str) -> BatchReport:
        """Move every receipt of a temp session to a user account.

        A receipt counts as migrated once ownership has moved. Failing to
        delete the old blob afterwards only defers the cleanup step to
        ``resume_migrations``.
        """
        if self.sessions.get(session_id) is None:
            raise NotFoundError(f"Temp session not found: {session_id}")
        receipts = self.sessions.receipts(session_id)
        if not receipts:
            raise NotFoundError(f"No receipts found for session {session_id}")

        report = BatchReport()
        for receipt in receipts:
            try:
                self._begin_migration(receipt, user_id)
                self._swap_owner(receipt)
            except (ReceiptTrackerError, SQLAlchemyError) as e:
                self.db.rollback()
                logger.error("Error migrating receipt %s: %s", receipt.id, e)
                report.failed.append(ItemFailure(receipt.id, str(e)))
                continue
            try:
                self._cleanup_source(receipt)
            except (ReceiptTrackerError, SQLAlchemyError) as e:
                self.db.rollback()
                logger.warning("Receipt %s migrated, source cleanup deferred: %s", receipt.id, e)
            report.succeeded.append(receipt)

        if report.failed:
            logger.warning(
                "Session %s partially migrated: %d ok, %d failed",
                session_id, len(report.succeeded), len(report.failed),
            )
        self._drop_session_if_empty(session_id)
        logger.info("Migrated %d receipt(s) from session %s to user %s",
                    len(report.succeeded), session_id, user_id)
        return report

    def resume_migrations(self) -> int:
        """Drive receipts left mid-migration (e.g. by a crash) to completion."""
        resumed = 0
        for receipt in self.store.in_migration():
            session_id = receipt.migration_session_id
            try:
                self._advance_migration(receipt)
                if session_id:
                    self._drop_session_if_empty(session_id)
            except (ReceiptTrackerError, SQLAlchemyError) as e:
                self.db.rollback()
                logger.warning("Could not resume migration of receipt %s: %s", receipt.id, e)
                continue
            resumed += 1
        if resumed:
            logger.info("Resumed %d interrupted migration(s)", resumed)
        return resumed

    def _drop_session_if_empty(self, session_id: str) -> None:
        if self.sessions.get(session_id) is None:
            return
        if self.store.count_for_owner(SessionOwner(session_id)) == 0:
            self.sessions.delete(session_id)

    def _begin_migration(self, receipt: ReceiptModel, user_id: str) -> None:
        if receipt.migration_state == MIGRATION_COPYING and receipt.migration_user_id == user_id:
            return
        receipt.migration_state = MIGRATION_COPYING
        receipt.migration_user_id = user_id
        receipt.migration_session_id = receipt.owner_id
        receipt.migration_path = self._key(UserOwner(user_id), receipt.file_path)
        self.db.commit()

    def _advance_migration(self, receipt: ReceiptModel) -> None:
        if receipt.migration_state == MIGRATION_COPYING:
            self._swap_owner(receipt)
        if receipt.migration_state == MIGRATION_CLEANUP:
            self._cleanup_source(receipt)

    def _swap_owner(self, receipt: ReceiptModel) -> None:
        """copying -> cleanup: copy the blob and hand the receipt to the user."""
        source, target = receipt.file_path, receipt.migration_path
        if self.blob_store.exists(source):
            self.blob_store.copy(source, target)
        elif not self.blob_store.exists(target):
            raise UpstreamError(f"File not found in storage: {source}")

        url = self.blob_store.signed_url(target, self.long_url_ttl)
        receipt.owner = UserOwner(receipt.migration_user_id)
        receipt.file_url = url
        receipt.file_path = target
        receipt.migration_state = MIGRATION_CLEANUP
        receipt.migration_path = source
        receipt.migration_user_id = None
        self.db.commit()

    def _cleanup_source(self, receipt: ReceiptModel) -> None:
        """cleanup -> done: delete the old blob."""
        self.blob_store.delete(receipt.migration_path)
        receipt.migration_state = None
        receipt.migration_path = None
        receipt.migration_session_id = None
        self.db.commit()

    # ── extract ──────────────────────────────────────────────────────────
    def extract(self, owner: Owner, receipt_ids: Optional[Iterable[str]] = None) -> BatchReport:
        """Run extraction on the owner's unprocessed receipts."""
        if self.extractor is None:
            raise UpstreamError("Extraction service is not configured")

        report = BatchReport()
        for receipt in self.store.unprocessed(owner, receipt_ids):
            try:
                data = self.blob_store.download(receipt.file_path)
                extracted = self.extractor.extract(
                    data, receipt.file_type, posixpath.basename(receipt.file_path)
                )
                self.store.apply_extraction(receipt, extracted)
                self.db.commit()
            except (ReceiptTrackerError, SQLAlchemyError) as e:
                self.db.rollback()
                logger.error("Error processing receipt %s: %s", receipt.id, e)
                report.failed.append(ItemFailure(receipt.id, str(e)))
                continue
            logger.info("Processed receipt %s (%s, %s)", receipt.id, receipt.store_name, receipt.total_amount)
            report.succeeded.append(receipt)
        return report

    # ── summary ──────────────────────────────────────────────────────────
    def session_summary(self, session_id: str) -> tuple[Decimal, int]:
        """``(total_amount, total_items)`` over a session's receipts."""
        receipts = self.sessions.receipts(session_id)
        if not receipts:
            raise NotFoundError("No receipts found")
        total_amount = sum((Decimal(r.total_amount) for r in receipts), Decimal(0))
        total_items = sum(len(r.items or []) for r in receipts)
        return total_amount, total_items
