"""Google Gemini client for photo-to-ledger extraction.

Uses the google-genai SDK to send a photo of a spreadsheet (daily P&L,
payroll sheet, item sales list) and asks for a JSON payload shaped like

    {"businessResults": [...], "staffPayroll": [...], "salesDetails": [...]}

The service's own totals are never trusted: staff and operating totals and net
profit are recomputed from their parts after parsing.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any

import structlog
from google import genai
from google.genai import types

from cafe_ledger.config import get_settings
from cafe_ledger.ledger import (
    DailyBusinessResult,
    LedgerValidationError,
    MenuItemSales,
    StaffShift,
    menu_item_id,
)

logger = structlog.get_logger(__name__)

EXTRACTION_PROMPT = """
You are a financial data analyst for a food & beverage business (a cafe).
Extract the data shown in the attached spreadsheet photo.

For every day present, extract when available:

1. Revenue: total revenue, morning shift revenue, evening shift revenue,
   discounts, net revenue.
2. Raw material cost (COGS): cost of goods sold (recipe-based), raw material
   imports for the period, waste.
3. Staff cost: salary, bonus, allowance.
4. Other operating cost: marketing, tools and equipment, consumables,
   other cash expenses.
5. Item sales (sales mix): if the photo lists drinks sold, extract item name,
   quantity sold and total revenue per item (0 when no revenue column). Keep
   the 5-10 best sellers if the list is long.

Return JSON in exactly this shape:
{
  "businessResults": [
    {
      "date": "YYYY-MM-DD",
      "totalRevenue": number, "morningRevenue": number, "eveningRevenue": number,
      "discounts": number, "netRevenue": number,
      "costOfGoodsSold": number, "costOfGoodsImport": number, "wasteCost": number,
      "staffSalary": number, "staffBonus": number, "staffAllowance": number,
      "marketing": number, "tools": number, "consumables": number, "otherCash": number,
      "netProfit": number
    }
  ],
  "staffPayroll": [
    {"name": "string", "totalHours": number, "salary": number, "role": "string"}
  ],
  "salesDetails": [
    {"itemName": "string", "quantity": number, "revenue": number}
  ]
}

Rules:
- Empty cells or missing figures are 0.
- Convert amounts such as 1.200.000 to plain integers (1200000).
- If the photo is blurry, estimate from the totals.
- Sales items belong to the date of the business result.
"""


class ImageAnalysisError(Exception):
    """The photo could not be turned into ledger data."""


@dataclass
class AnalysisResult:
    """Ledger records extracted from one photo."""

    business_results: list[DailyBusinessResult] = field(default_factory=list)
    staff_payroll: list[StaffShift] = field(default_factory=list)
    sales_details: list[MenuItemSales] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.business_results or self.staff_payroll or self.sales_details)


def _business_result(item: dict[str, Any]) -> DailyBusinessResult:
    result = DailyBusinessResult.from_document(item)
    if "totalRevenue" not in item:
        result.total_revenue = result.morning_revenue + result.evening_revenue
    if "netRevenue" not in item:
        result.net_revenue = result.total_revenue - result.discounts
    result.recompute_totals()
    return result


def parse_analysis_payload(text: str) -> AnalysisResult:
    """Turn the model's JSON text into ledger records.

    Sales lines missing a date or id are stamped with the first business
    result's date and a ``<date>-<item_name>`` id.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ImageAnalysisError(
            "Could not read data from the image. Try again with a sharper photo."
        ) from exc
    if not isinstance(payload, dict):
        raise ImageAnalysisError("Unexpected analysis payload: expected a JSON object")

    try:
        results = [_business_result(item) for item in payload.get("businessResults") or []]
        staff = [StaffShift.from_document(item) for item in payload.get("staffPayroll") or []]

        default_date = results[0].date if results else None
        sales = []
        for item in payload.get("salesDetails") or []:
            if not isinstance(item, dict):
                raise ImageAnalysisError(f"Unexpected sales line in analysis payload: {item!r}")
            line = dict(item)
            if not line.get("date"):
                if default_date is None:
                    raise ImageAnalysisError(
                        "Sales lines have no date and no business result to take it from"
                    )
                line["date"] = default_date
            if not line.get("id"):
                line["id"] = menu_item_id(line["date"], str(line.get("itemName", "")))
            sales.append(MenuItemSales.from_document(line))
    except (LedgerValidationError, KeyError, TypeError, AttributeError) as exc:
        raise ImageAnalysisError(f"Unexpected analysis payload: {exc}") from exc

    return AnalysisResult(business_results=results, staff_payroll=staff, sales_details=sales)


class GeminiImageAnalyzer:
    """Extracts ledger records from spreadsheet photos with Gemini."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        self._api_key = api_key or settings.google_api_key.get_secret_value()
        self._model_name = model or settings.gemini_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature if temperature is not None else settings.llm_temperature

        self._client = genai.Client(api_key=self._api_key)

        self._logger = logger.bind(client="gemini", model=self._model_name)

    @staticmethod
    def _image_bytes(image: bytes | str) -> bytes:
        if isinstance(image, bytes):
            return image
        # Accept data URLs as produced by browser file readers.
        if image.startswith("data:") and "," in image:
            image = image.split(",", 1)[1]
        try:
            return base64.b64decode(image, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ImageAnalysisError("Image is not valid base64 data") from exc

    async def analyze(
        self,
        image: bytes | str,
        mime_type: str = "image/jpeg",
        prompt: str = EXTRACTION_PROMPT,
    ) -> AnalysisResult:
        """Extract ledger records from a photo.

        Args:
            image: Raw image bytes or a base64 string.
            mime_type: Image MIME type.
            prompt: Extraction instructions.

        Returns:
            AnalysisResult with post-processed records.
        """
        data = self._image_bytes(image)
        self._logger.debug("analyzing_image", size=len(data), mime_type=mime_type)

        config = types.GenerateContentConfig(
            max_output_tokens=self._max_tokens,
            temperature=self._temperature,
            response_mime_type="application/json",
        )
        contents = [
            types.Content(
                role="user",
                parts=[
                    types.Part.from_bytes(data=data, mime_type=mime_type),
                    types.Part(text=prompt),
                ],
            )
        ]

        try:
            response = await self._client.aio.models.generate_content(
                model=self._model_name,
                contents=contents,
                config=config,
            )
        except Exception as e:
            self._logger.error("api_error", error=str(e))
            raise ImageAnalysisError(f"Image analysis request failed: {e}") from e

        text = getattr(response, "text", None)
        if not text:
            self._logger.warning("empty_response")
            raise ImageAnalysisError("No response received from Gemini")

        result = parse_analysis_payload(text)
        self._logger.info(
            "image_analyzed",
            business_results=len(result.business_results),
            staff=len(result.staff_payroll),
            sales_lines=len(result.sales_details),
        )
        return result
