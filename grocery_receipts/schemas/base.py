"""
Canonical JSON schemas for the receipts API and the extraction boundary.

All models are Pydantic v2, serialised with camelCase aliases. Field names
are also accepted on input, so the snake_case payload returned by the
extraction service validates against the same models.
"""
from __future__ import annotations

import re
from datetime import date as date_type, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Literal, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

_DECIMAL_COMMA = re.compile(r"-?\d+,\d{1,2}")
_DATE_FORMATS = ("%m/%d/%Y", "%d.%m.%Y", "%Y/%m/%d", "%d/%m/%Y")


def parse_amount(value: Any) -> Decimal:
    """Parse a free-form money value into a Decimal.

    Accepts numbers and strings such as ``"12.50"``, ``"$1,024.00"`` or
    ``"3,99"``. Anything else raises ``ValueError``; nothing is coerced to 0.
    """
    if isinstance(value, bool):
        raise ValueError(f"Unparseable amount: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().lstrip("$€£¥").strip()
        if _DECIMAL_COMMA.fullmatch(text):
            text = text.replace(",", ".")
        else:
            text = text.replace(",", "")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Unparseable amount: {value!r}") from None
    else:
        raise ValueError(f"Unparseable amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Unparseable amount: {value!r}")
    return amount


def parse_datetime(value: Any) -> Any:
    """Normalise extracted dates to timezone-aware datetimes (naive -> UTC)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date_type):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            else:
                raise ValueError(f"Unparseable date: {value!r}") from None
    else:
        raise ValueError(f"Unparseable date: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


Money = Annotated[
    Decimal,
    BeforeValidator(parse_amount),
    PlainSerializer(float, return_type=float, when_used="json"),
]
ExtractedDate = Annotated[datetime, BeforeValidator(parse_datetime)]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Extraction boundary
# ---------------------------------------------------------------------------

class LineItem(ApiModel):
    """One purchased article on a receipt."""
    name: str = Field(..., min_length=1)
    code: Optional[str] = None
    size: Optional[str] = None
    price: Money
    purchase_date: Optional[ExtractedDate] = None


class ExtractedReceipt(ApiModel):
    """Validated output of the extraction service."""
    store_name: str = Field(..., min_length=1)
    purchase_date: ExtractedDate
    total_amount: Money
    total_items: Optional[int] = Field(default=None, ge=0)
    items: list[LineItem]

    @model_validator(mode="after")
    def _default_total_items(self) -> "ExtractedReceipt":
        if self.total_items is None:
            self.total_items = len(self.items)
        return self


# ---------------------------------------------------------------------------
# Receipts
# ---------------------------------------------------------------------------

class ReceiptOut(ApiModel):
    id: str
    user_id: Optional[str] = None
    temp_session_id: Optional[str] = None
    store_name: str
    date: datetime
    total_amount: Money
    total_items: Optional[int] = None
    items: list[LineItem] = Field(default_factory=list)
    file_url: str
    file_path: str
    file_type: str
    processed: bool
    created_at: datetime


class UploadResponse(ApiModel):
    receipts: list[ReceiptOut]
    session_id: Optional[str] = None


class MigrateRequest(ApiModel):
    session_id: str = Field(..., min_length=1)


class ProcessRequest(ApiModel):
    receipt_ids: Optional[list[str]] = None
    session_id: Optional[str] = None


class ItemFailure(ApiModel):
    receipt_id: str
    reason: str


class BatchResponse(ApiModel):
    """Receipts a batch operation updated, plus the ones it skipped."""
    receipts: list[ReceiptOut]
    failed: list[ItemFailure] = Field(default_factory=list)


class SessionSummary(ApiModel):
    total_amount: Money
    total_items: int


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

class CommonItem(ApiModel):
    name: str
    count: int


class InsightsRollup(ApiModel):
    """Deterministic numeric aggregate over processed receipts."""
    kind: Literal["rollup"] = "rollup"
    total_spending: Money
    spending_by_store: dict[str, Money]
    spending_by_month: dict[str, Money]
    most_common_items: list[CommonItem]
    total_receipts: int


class NarrativeInsights(ApiModel):
    """AI-generated free-form text; not stable between calls."""
    kind: Literal["narrative"] = "narrative"
    content: str
    last_updated: datetime


class InsightsGenerateRequest(ApiModel):
    session_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserOut(ApiModel):
    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None


class UserUpdate(ApiModel):
    name: Optional[str] = None
    image: Optional[str] = None
