"""
Insights aggregator — numeric rollup and AI narrative over processed receipts.
"""
from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from grocery_receipts.errors import NotFoundError, UpstreamError
from grocery_receipts.lifecycle.ownership import Owner
from grocery_receipts.lifecycle.store import ReceiptStore
from grocery_receipts.models.receipt import InsightSnapshotModel, ReceiptModel, utcnow
from grocery_receipts.schemas import CommonItem, InsightsRollup, NarrativeInsights
from grocery_receipts.services.extraction import Extractor

logger = logging.getLogger(__name__)

UNKNOWN_STORE = "Unknown Store"
MOST_COMMON_LIMIT = 5


def _month_key(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m")


def _item_name(item) -> Optional[str]:
    name = item.get("name") if isinstance(item, dict) else getattr(item, "name", None)
    return name or None


def compute_rollup(receipts: Iterable[ReceiptModel]) -> InsightsRollup:
    """Aggregate processed receipts.

    Pure and order-independent for the sums: amounts are Decimals, so the
    result is exact regardless of input order. ``most_common_items`` ranks by
    count and breaks ties by first occurrence.
    """
    total = Decimal(0)
    by_store: dict[str, Decimal] = {}
    by_month: dict[str, Decimal] = {}
    item_counts: Counter[str] = Counter()
    count = 0

    for receipt in receipts:
        amount = Decimal(receipt.total_amount or 0)
        store = (receipt.store_name or "").strip() or UNKNOWN_STORE
        month = _month_key(receipt.date)

        total += amount
        by_store[store] = by_store.get(store, Decimal(0)) + amount
        by_month[month] = by_month.get(month, Decimal(0)) + amount
        for item in receipt.items or []:
            name = _item_name(item)
            if name:
                item_counts[name] += 1
        count += 1

    # Counter keeps first-insertion order and sorted() is stable
    ranked = sorted(item_counts.items(), key=lambda pair: -pair[1])[:MOST_COMMON_LIMIT]

    return InsightsRollup(
        total_spending=total,
        spending_by_store=dict(sorted(by_store.items())),
        spending_by_month=dict(sorted(by_month.items())),
        most_common_items=[CommonItem(name=name, count=n) for name, n in ranked],
        total_receipts=count,
    )


def _receipt_payload(receipt: ReceiptModel) -> dict:
    return {
        "storeName": receipt.store_name,
        "date": receipt.date.isoformat(),
        "totalAmount": str(receipt.total_amount),
        "totalItems": receipt.total_items,
        "items": receipt.items or [],
    }


class InsightsService:
    def __init__(self, db: Session, extractor: Optional[Extractor] = None):
        self.db = db
        self.extractor = extractor
        self.store = ReceiptStore(db)

    def rollup(self, owner: Owner) -> InsightsRollup:
        return compute_rollup(self.store.for_owner(owner, processed=True))

    def generate_narrative(self, owner: Owner) -> NarrativeInsights:
        """Ask the AI service for a narrative and store it, replacing the previous one."""
        receipts = self.store.for_owner(owner, processed=True)
        if not receipts:
            raise NotFoundError("No processed receipts to analyse")
        if self.extractor is None:
            raise UpstreamError("Insight generation is not configured")

        content = self.extractor.generate_insights([_receipt_payload(r) for r in receipts])

        snapshot = self._snapshot(owner)
        if snapshot is None:
            snapshot = InsightSnapshotModel(
                id=str(uuid.uuid4()),
                owner_type=owner.kind,
                owner_id=owner.owner_id,
                content=content,
            )
            self.db.add(snapshot)
        snapshot.content = content
        snapshot.last_updated = utcnow()
        self.db.commit()
        logger.info("Stored narrative insights for %s %s (%d receipts)",
                    owner.kind, owner.owner_id, len(receipts))
        return NarrativeInsights(content=snapshot.content, last_updated=snapshot.last_updated)

    def latest_narrative(self, owner: Owner) -> NarrativeInsights:
        snapshot = self._snapshot(owner)
        if snapshot is None:
            raise NotFoundError("No insights found")
        return NarrativeInsights(content=snapshot.content, last_updated=snapshot.last_updated)

    def _snapshot(self, owner: Owner) -> Optional[InsightSnapshotModel]:
        return (
            self.db.query(InsightSnapshotModel)
            .filter(
                InsightSnapshotModel.owner_type == owner.kind,
                InsightSnapshotModel.owner_id == owner.owner_id,
            )
            .first()
        )
