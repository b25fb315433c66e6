"""
Tests for the spending rollup and narrative insights.
"""
import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from grocery_receipts.errors import NotFoundError, UpstreamError
from grocery_receipts.lifecycle.insights import InsightsService, compute_rollup
from grocery_receipts.lifecycle.ownership import SessionOwner, UserOwner
from grocery_receipts.models import ReceiptModel


def _receipt(store, amount, when, items=(), owner=UserOwner("u1"), processed=True):
    receipt = ReceiptModel(
        id=f"r-{store}-{amount}-{when.isoformat()}",
        store_name=store,
        date=when,
        total_amount=Decimal(amount),
        items=[{"name": name, "price": 1.0} for name in items],
        file_url="https://storage.test/x",
        file_path="u1/x.jpg",
        file_type="image/jpeg",
        processed=processed,
    )
    receipt.owner = owner
    return receipt


JAN = datetime(2024, 1, 15, tzinfo=timezone.utc)
FEB = datetime(2024, 2, 20, tzinfo=timezone.utc)


class TestComputeRollup:
    def test_groups_by_store_and_month(self):
        rollup = compute_rollup([
            _receipt("A", "10", JAN),
            _receipt("B", "5", FEB),
            _receipt("A", "3", FEB),
        ])
        assert rollup.spending_by_store == {"A": Decimal("13"), "B": Decimal("5")}
        assert rollup.spending_by_month == {"2024-01": Decimal("10"), "2024-02": Decimal("8")}
        assert rollup.total_spending == Decimal("18")
        assert rollup.total_receipts == 3

    def test_store_sums_match_total(self):
        receipts = [_receipt(s, a, JAN) for s, a in [("A", "0.10"), ("B", "0.20"), ("A", "0.30"), ("C", "99.99")]]
        rollup = compute_rollup(receipts)
        assert sum(rollup.spending_by_store.values()) == rollup.total_spending == Decimal("100.59")

    def test_independent_of_input_order(self):
        receipts = [_receipt(s, a, d) for s, a, d in [
            ("A", "1.10", JAN), ("B", "2.20", FEB), ("C", "3.30", JAN), ("A", "0.01", FEB),
        ]]
        expected = compute_rollup(receipts)
        shuffled = receipts[:]
        random.Random(7).shuffle(shuffled)
        actual = compute_rollup(shuffled)
        assert actual.total_spending == expected.total_spending
        assert actual.spending_by_store == expected.spending_by_store
        assert actual.spending_by_month == expected.spending_by_month

    def test_blank_store_is_unknown(self):
        rollup = compute_rollup([_receipt("", "4", JAN), _receipt("   ", "1", JAN)])
        assert rollup.spending_by_store == {"Unknown Store": Decimal("5")}

    def test_month_uses_utc(self):
        late_night = datetime(2024, 3, 31, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        rollup = compute_rollup([_receipt("A", "2", late_night)])
        assert list(rollup.spending_by_month) == ["2024-04"]

    def test_naive_dates_are_utc(self):
        rollup = compute_rollup([_receipt("A", "2", datetime(2024, 5, 1))])
        assert list(rollup.spending_by_month) == ["2024-05"]

    def test_most_common_items(self):
        rollup = compute_rollup([
            _receipt("A", "1", JAN, items=["Milk", "Bread", "Eggs"]),
            _receipt("A", "1", JAN, items=["Bread", "Apples", "Milk"]),
            _receipt("A", "1", JAN, items=["Milk", "Cheese", "Tea", "Rice"]),
        ])
        names = [(i.name, i.count) for i in rollup.most_common_items]
        # Ties keep first-seen order
        assert names == [("Milk", 3), ("Bread", 2), ("Eggs", 1), ("Apples", 1), ("Cheese", 1)]

    def test_empty(self):
        rollup = compute_rollup([])
        assert rollup.total_spending == 0
        assert rollup.spending_by_store == {}
        assert rollup.most_common_items == []
        assert rollup.total_receipts == 0


class TestInsightsService:
    def test_rollup_only_counts_processed_receipts_of_owner(self, db, extractor):
        db.add_all([
            _receipt("A", "10", JAN),
            _receipt("A", "7", FEB, processed=False),
            _receipt("B", "4", FEB, owner=UserOwner("u2")),
        ])
        db.commit()

        rollup = InsightsService(db, extractor).rollup(UserOwner("u1"))
        assert rollup.total_receipts == 1
        assert rollup.total_spending == Decimal("10")

    def test_narrative_replaces_previous_snapshot(self, db, extractor):
        db.add(_receipt("A", "10", JAN, owner=SessionOwner("s1")))
        db.commit()
        service = InsightsService(db, extractor)

        service.generate_narrative(SessionOwner("s1"))
        extractor.generate_insights = lambda receipts: "Second opinion."
        service.generate_narrative(SessionOwner("s1"))

        latest = service.latest_narrative(SessionOwner("s1"))
        assert latest.content == "Second opinion."
        assert latest.kind == "narrative"

    def test_narrative_payload(self, db, extractor):
        db.add(_receipt("A", "10.50", JAN, items=["Milk"]))
        db.commit()
        InsightsService(db, extractor).generate_narrative(UserOwner("u1"))

        [[payload]] = extractor.insight_calls
        assert payload["storeName"] == "A"
        assert payload["totalAmount"] == "10.50"
        assert payload["items"][0]["name"] == "Milk"

    def test_narrative_without_receipts(self, db, extractor):
        with pytest.raises(NotFoundError):
            InsightsService(db, extractor).generate_narrative(UserOwner("u1"))

    def test_narrative_without_extractor(self, db):
        db.add(_receipt("A", "10", JAN))
        db.commit()
        with pytest.raises(UpstreamError):
            InsightsService(db, None).generate_narrative(UserOwner("u1"))

    def test_latest_narrative_missing(self, db, extractor):
        with pytest.raises(NotFoundError):
            InsightsService(db, extractor).latest_narrative(UserOwner("u1"))
