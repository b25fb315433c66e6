"""
Receipt extraction and narrative insights via the OpenAI Responses API.

The model is asked for bare JSON; ``parse_extraction_payload`` is the only
place where its output is trusted, and it rejects anything that does not
validate as an ``ExtractedReceipt``.
"""
from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any, Optional, Protocol

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from grocery_receipts.errors import ExtractionParseError, UpstreamError
from grocery_receipts.schemas import ExtractedReceipt

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"

EXTRACTION_PROMPT = (
    "Extract the following information from this receipt: store name, purchase date, "
    "total amount, total items, and for each item: name, code, size, price, and purchase date. "
    "Respond with a single JSON object using the keys store_name, purchase_date, total_amount, "
    "total_items and items (a list of objects with name, code, size, price, purchase_date). "
    "Return ONLY the JSON data without any markdown formatting or additional text."
)

INSIGHTS_PROMPT = """You are a shopping insights expert. Analyze the following receipt data and provide meaningful insights about shopping patterns, spending habits, and recommendations. Focus on:
1. Most frequent stores
2. Average spending per trip
3. Common items purchased
4. Spending trends over time
5. Potential savings opportunities
Format the response in a clear, structured way with sections and bullet points."""

_FENCE = re.compile(r"```(?:json)?\s*|\s*```")


class Extractor(Protocol):
    def extract(self, data: bytes, mime_type: str, filename: str = "receipt") -> ExtractedReceipt: ...

    def generate_insights(self, receipts: list[dict]) -> str: ...


def parse_extraction_payload(content: str) -> ExtractedReceipt:
    """Validate raw model output (optionally wrapped in a markdown fence)."""
    cleaned = _FENCE.sub("", content).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error("Extraction output is not JSON: %.200s", content)
        raise ExtractionParseError(f"Extraction output is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionParseError("Extraction output must be a JSON object")

    try:
        return ExtractedReceipt.model_validate(data)
    except ValidationError as e:
        logger.error("Extraction output failed validation: %s", e)
        raise ExtractionParseError(f"Invalid extraction output: {e.error_count()} field error(s)") from e


class OpenAIExtractor:
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        max_output_tokens: int = 1000,
        client: Optional[OpenAI] = None,
    ):
        self.client = client or OpenAI(api_key=api_key)
        self.model = model
        self.max_output_tokens = max_output_tokens

    def extract(self, data: bytes, mime_type: str, filename: str = "receipt") -> ExtractedReceipt:
        uploaded_id: Optional[str] = None
        try:
            if mime_type == PDF_MIME:
                uploaded = self.client.files.create(
                    file=(filename, data, mime_type),
                    purpose="user_data",
                )
                uploaded_id = uploaded.id
                document: dict[str, Any] = {"type": "input_file", "file_id": uploaded_id}
            else:
                encoded = base64.b64encode(data).decode("ascii")
                document = {"type": "input_image", "image_url": f"data:{mime_type};base64,{encoded}"}

            response = self.client.responses.create(
                model=self.model,
                input=[
                    {
                        "role": "user",
                        "content": [document, {"type": "input_text", "text": EXTRACTION_PROMPT}],
                    }
                ],
            )
        except OpenAIError as e:
            raise UpstreamError(f"Extraction request failed: {e}") from e
        finally:
            if uploaded_id:
                self._discard_file(uploaded_id)

        content = response.output_text
        if not content:
            raise UpstreamError("No content received from extraction service")
        return parse_extraction_payload(content)

    def generate_insights(self, receipts: list[dict]) -> str:
        try:
            response = self.client.responses.create(
                model=self.model,
                input=[
                    {
                        "role": "system",
                        "content": [
                            {"type": "input_text", "text": json.dumps(receipts, default=str)},
                            {"type": "input_text", "text": INSIGHTS_PROMPT},
                        ],
                    }
                ],
                temperature=1,
                max_output_tokens=self.max_output_tokens,
            )
        except OpenAIError as e:
            raise UpstreamError(f"Failed to generate shopping insights: {e}") from e

        insights = response.output_text
        if not insights:
            raise UpstreamError("No insights generated")
        return insights

    def _discard_file(self, file_id: str) -> None:
        try:
            self.client.files.delete(file_id)
        except OpenAIError as e:
            logger.warning("Could not delete uploaded file %s: %s", file_id, e)
