"""
Tests for amount/date parsing and the extraction service boundary.
"""
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from conftest import receipt_json
from openai import OpenAIError

from grocery_receipts.errors import ExtractionParseError, UpstreamError
from grocery_receipts.schemas import parse_amount, parse_datetime
from grocery_receipts.services.extraction import OpenAIExtractor, parse_extraction_payload


class TestParseAmount:
    @pytest.mark.parametrize("raw, expected", [
        ("12.50", Decimal("12.50")),
        ("$1,024.00", Decimal("1024.00")),
        ("€ 3,99", Decimal("3.99")),
        ("  7 ", Decimal("7")),
        (4, Decimal("4")),
        (0.1, Decimal("0.1")),
        (Decimal("2.35"), Decimal("2.35")),
        ("-1.25", Decimal("-1.25")),
    ])
    def test_valid(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["", "abc", "12.5.1", "NaN", "Infinity", None, True, [1]])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_amount(raw)


class TestParseDatetime:
    def test_iso_with_z(self):
        assert parse_datetime("2024-03-05T10:00:00Z") == datetime(2024, 3, 5, 10, tzinfo=timezone.utc)

    def test_naive_becomes_utc(self):
        assert parse_datetime("2024-03-05").tzinfo == timezone.utc

    def test_us_format(self):
        assert parse_datetime("03/25/2024").date().isoformat() == "2024-03-25"

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_datetime("last tuesday")


class TestParseExtractionPayload:
    def test_plain_json(self):
        receipt = parse_extraction_payload(receipt_json(store="Aldi", total="9.99"))
        assert receipt.store_name == "Aldi"
        assert receipt.total_amount == Decimal("9.99")
        assert receipt.items[0].price == Decimal("2.50")
        assert receipt.purchase_date.tzinfo is not None

    def test_markdown_fence(self):
        content = f"```json\n{receipt_json()}\n```"
        assert parse_extraction_payload(content).store_name == "Fresh Market"

    def test_total_items_defaults_to_item_count(self):
        content = (
            '{"store_name": "X", "purchase_date": "2024-01-01", "total_amount": 3,'
            ' "items": [{"name": "A", "price": 1}, {"name": "B", "price": 2}]}'
        )
        assert parse_extraction_payload(content).total_items == 2

    def test_not_json(self):
        with pytest.raises(ExtractionParseError):
            parse_extraction_payload("Sorry, I cannot read this receipt.")

    def test_not_an_object(self):
        with pytest.raises(ExtractionParseError):
            parse_extraction_payload("[1, 2, 3]")

    def test_missing_fields(self):
        with pytest.raises(ExtractionParseError):
            parse_extraction_payload('{"store_name": "X"}')

    def test_unparseable_item_price(self):
        with pytest.raises(ExtractionParseError):
            parse_extraction_payload(receipt_json(items=[{"name": "Milk", "price": "n/a"}]))

    def test_parse_error_is_unprocessable(self):
        with pytest.raises(ExtractionParseError) as exc:
            parse_extraction_payload(receipt_json(total="??"))
        assert exc.value.status_code == 422


class _FakeResponses:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(output_text=self.text)


class _FakeFiles:
    def __init__(self):
        self.created = []
        self.deleted = []

    def create(self, file, purpose):
        self.created.append((file, purpose))
        return SimpleNamespace(id="file-123")

    def delete(self, file_id):
        self.deleted.append(file_id)


def _extractor(text=None, error=None):
    client = SimpleNamespace(responses=_FakeResponses(text, error), files=_FakeFiles())
    return OpenAIExtractor(api_key="unused", model="test-model", client=client), client


class TestOpenAIExtractor:
    def test_image_sent_inline(self):
        extractor, client = _extractor(text=receipt_json())
        receipt = extractor.extract(b"\x89PNG", "image/png", "r.png")

        assert receipt.store_name == "Fresh Market"
        [request] = client.responses.requests
        assert request["model"] == "test-model"
        document = request["input"][0]["content"][0]
        assert document["type"] == "input_image"
        assert document["image_url"].startswith("data:image/png;base64,")
        assert client.files.created == []

    def test_pdf_uploaded_then_discarded(self):
        extractor, client = _extractor(text=receipt_json())
        extractor.extract(b"%PDF-1.7", "application/pdf", "r.pdf")

        [(file, purpose)] = client.files.created
        assert file[0] == "r.pdf"
        assert purpose == "user_data"
        document = client.responses.requests[0]["input"][0]["content"][0]
        assert document == {"type": "input_file", "file_id": "file-123"}
        assert client.files.deleted == ["file-123"]

    def test_api_error_becomes_upstream_error(self):
        extractor, client = _extractor(error=OpenAIError("rate limited"))
        with pytest.raises(UpstreamError):
            extractor.extract(b"%PDF", "application/pdf", "r.pdf")
        assert client.files.deleted == ["file-123"]

    def test_empty_output(self):
        extractor, _ = _extractor(text="")
        with pytest.raises(UpstreamError):
            extractor.extract(b"img", "image/jpeg")

    def test_generate_insights(self):
        extractor, client = _extractor(text="Buy less candy.")
        assert extractor.generate_insights([{"storeName": "A"}]) == "Buy less candy."
        assert client.responses.requests[0]["max_output_tokens"] == 1000
