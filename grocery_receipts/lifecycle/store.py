"""
Receipt record store — queries and mutations on the ``receipts`` table.
"""
from __future__ import annotations

import uuid
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from grocery_receipts.lifecycle.ownership import SESSION, USER, Owner
from grocery_receipts.models.receipt import (
    MIGRATION_CLEANUP,
    PENDING_STORE_NAME,
    ReceiptModel,
    utcnow,
)
from grocery_receipts.schemas import ExtractedReceipt, ReceiptOut


class ReceiptStore:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        owner: Owner,
        file_url: str,
        file_path: str,
        file_type: str,
        store_name: Optional[str] = None,
    ) -> ReceiptModel:
        receipt = ReceiptModel(
            id=str(uuid.uuid4()),
            store_name=store_name or PENDING_STORE_NAME,
            date=utcnow(),
            total_amount=0,
            items=[],
            file_url=file_url,
            file_path=file_path,
            file_type=file_type,
            processed=False,
        )
        receipt.owner = owner
        self.db.add(receipt)
        return receipt

    def _owned_by(self, owner: Owner):
        return self.db.query(ReceiptModel).filter(
            ReceiptModel.owner_type == owner.kind,
            ReceiptModel.owner_id == owner.owner_id,
        )

    def for_owner(self, owner: Owner, processed: Optional[bool] = None) -> list[ReceiptModel]:
        query = self._owned_by(owner)
        if processed is not None:
            query = query.filter(ReceiptModel.processed == processed)
        return query.order_by(ReceiptModel.date.desc(), ReceiptModel.created_at.desc()).all()

    def count_for_owner(self, owner: Owner) -> int:
        return self._owned_by(owner).count()

    def unprocessed(self, owner: Owner, receipt_ids: Optional[Iterable[str]] = None) -> list[ReceiptModel]:
        """Receipts eligible for extraction; ids outside the owner's set are ignored.

        A receipt waiting only for its old blob to be deleted already has
        its final owner and key, so it is eligible too.
        """
        query = self._owned_by(owner).filter(
            ReceiptModel.processed == False,  # noqa: E712
            or_(
                ReceiptModel.migration_state.is_(None),
                ReceiptModel.migration_state == MIGRATION_CLEANUP,
            ),
        )
        if receipt_ids is not None:
            query = query.filter(ReceiptModel.id.in_(list(receipt_ids)))
        return query.order_by(ReceiptModel.created_at).all()

    def in_migration(self) -> list[ReceiptModel]:
        return (
            self.db.query(ReceiptModel)
            .filter(ReceiptModel.migration_state.isnot(None))
            .order_by(ReceiptModel.created_at)
            .all()
        )

    def apply_extraction(self, receipt: ReceiptModel, extracted: ExtractedReceipt) -> None:
        receipt.store_name = extracted.store_name
        receipt.date = extracted.purchase_date
        receipt.total_amount = extracted.total_amount
        receipt.total_items = extracted.total_items
        receipt.items = [item.model_dump(mode="json") for item in extracted.items]
        receipt.processed = True


def to_receipt_out(model: ReceiptModel) -> ReceiptOut:
    """ReceiptModel -> ReceiptOut"""
    owner = model.owner
    return ReceiptOut(
        id=model.id,
        user_id=owner.owner_id if owner.kind == USER else None,
        temp_session_id=owner.owner_id if owner.kind == SESSION else None,
        store_name=model.store_name,
        date=model.date,
        total_amount=model.total_amount,
        total_items=model.total_items,
        items=model.items or [],
        file_url=model.file_url,
        file_path=model.file_path,
        file_type=model.file_type,
        processed=model.processed,
        created_at=model.created_at,
    )
