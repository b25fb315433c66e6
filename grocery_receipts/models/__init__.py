from grocery_receipts.models.receipt import (  # noqa: F401
    InsightSnapshotModel,
    ReceiptModel,
    TempSessionModel,
)
from grocery_receipts.models.user import UserModel  # noqa: F401
