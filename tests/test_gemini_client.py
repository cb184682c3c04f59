"""Tests for the Gemini image-analysis client."""

import base64
import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cafe_ledger.clients.gemini import (
    GeminiImageAnalyzer,
    ImageAnalysisError,
    parse_analysis_payload,
)

PAYLOAD = {
    "businessResults": [
        {
            "date": "2026-01-06",
            "morningRevenue": 1200000,
            "eveningRevenue": 1800000,
            "discounts": 200000,
            "costOfGoodsSold": 900000,
            "staffSalary": 500000,
            "staffAllowance": 50000,
            "staffTotalCost": 1,
            "marketing": 100000,
            "operatingTotalCost": 1,
            "netProfit": 42,
        }
    ],
    "staffPayroll": [{"name": "Thủy", "totalHours": 8, "salary": 249000, "role": "Pha chế"}],
    "salesDetails": [
        {"itemName": "Cà phê  sữa", "quantity": 12, "revenue": 348000},
        {"itemName": "Latte", "quantity": 3, "date": "2026-01-05", "id": "custom"},
    ],
}


class TestParsePayload:
    """Tests for post-processing of the model's JSON."""

    def test_totals_recomputed(self):
        result = parse_analysis_payload(json.dumps(PAYLOAD))

        row = result.business_results[0]
        assert row.total_revenue == Decimal("3000000")
        assert row.net_revenue == Decimal("2800000")
        assert row.staff_total_cost == Decimal("550000")
        assert row.operating_total_cost == Decimal("100000")
        assert row.net_profit == Decimal("1250000")
        assert row.is_consistent()

    def test_reported_revenue_kept(self):
        payload = {"businessResults": [{"date": "2026-01-06", "totalRevenue": 5, "netRevenue": 4}]}

        row = parse_analysis_payload(json.dumps(payload)).business_results[0]

        assert row.total_revenue == Decimal("5")
        assert row.net_revenue == Decimal("4")
        assert row.net_profit == Decimal("4")

    def test_sales_stamped_with_result_date(self):
        result = parse_analysis_payload(json.dumps(PAYLOAD))

        first, second = result.sales_details
        assert first.date == "2026-01-06"
        assert first.id == "2026-01-06-Cà_phê_sữa"
        assert second.date == "2026-01-05"
        assert second.id == "custom"
        assert result.staff_payroll[0].salary == Decimal("249000")

    def test_undated_sales_without_results(self):
        with pytest.raises(ImageAnalysisError):
            parse_analysis_payload(json.dumps({"salesDetails": [{"itemName": "Latte"}]}))

    @pytest.mark.parametrize("text", ["not json", "[1, 2]", '{"businessResults": [{"date": "x"}]}'])
    def test_bad_payloads(self, text):
        with pytest.raises(ImageAnalysisError):
            parse_analysis_payload(text)

    def test_non_object_sales_line_rejected(self):
        payload = {"businessResults": [{"date": "2026-01-02"}], "salesDetails": ["Latte"]}

        with pytest.raises(ImageAnalysisError, match="sales line"):
            parse_analysis_payload(json.dumps(payload))

    def test_fractional_sales_quantity_rejected(self):
        payload = {
            "businessResults": [{"date": "2026-01-02"}],
            "salesDetails": [{"itemName": "Latte", "quantity": 2.7}],
        }

        with pytest.raises(ImageAnalysisError, match="whole number"):
            parse_analysis_payload(json.dumps(payload))

    def test_empty_payload(self):
        assert parse_analysis_payload("{}").is_empty


class TestGeminiImageAnalyzer:
    """Tests for GeminiImageAnalyzer."""

    def test_initialization_with_defaults(self):
        with patch("cafe_ledger.clients.gemini.genai.Client") as client_cls:
            analyzer = GeminiImageAnalyzer()

        client_cls.assert_called_once_with(api_key="test-key")
        assert analyzer._model_name == "gemini-2.5-flash"
        assert analyzer._temperature == 0.1

    def test_image_bytes_accepts_base64_and_data_urls(self):
        raw = b"\xff\xd8\xff\xe0jpeg"
        encoded = base64.b64encode(raw).decode()

        assert GeminiImageAnalyzer._image_bytes(raw) is raw
        assert GeminiImageAnalyzer._image_bytes(encoded) == raw
        assert GeminiImageAnalyzer._image_bytes(f"data:image/jpeg;base64,{encoded}") == raw
        with pytest.raises(ImageAnalysisError):
            GeminiImageAnalyzer._image_bytes("not base64!")

    @pytest.mark.asyncio
    async def test_analyze(self):
        with patch("cafe_ledger.clients.gemini.genai.Client") as client_cls:
            generate = AsyncMock(return_value=MagicMock(text=json.dumps(PAYLOAD)))
            client_cls.return_value.aio.models.generate_content = generate
            analyzer = GeminiImageAnalyzer(model="gemini-test", max_tokens=1024, temperature=0.0)

            result = await analyzer.analyze(b"\xff\xd8jpeg", mime_type="image/png")

        kwargs = generate.await_args.kwargs
        assert kwargs["model"] == "gemini-test"
        assert kwargs["config"].response_mime_type == "application/json"
        assert kwargs["config"].max_output_tokens == 1024
        parts = kwargs["contents"][0].parts
        assert parts[0].inline_data.mime_type == "image/png"
        assert parts[0].inline_data.data == b"\xff\xd8jpeg"
        assert "businessResults" in parts[1].text
        assert len(result.business_results) == 1
        assert len(result.sales_details) == 2

    @pytest.mark.asyncio
    async def test_empty_response(self):
        with patch("cafe_ledger.clients.gemini.genai.Client") as client_cls:
            client_cls.return_value.aio.models.generate_content = AsyncMock(
                return_value=MagicMock(text="")
            )
            analyzer = GeminiImageAnalyzer()

            with pytest.raises(ImageAnalysisError, match="No response"):
                await analyzer.analyze(b"img")

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self):
        with patch("cafe_ledger.clients.gemini.genai.Client") as client_cls:
            client_cls.return_value.aio.models.generate_content = AsyncMock(
                side_effect=RuntimeError("quota exceeded")
            )
            analyzer = GeminiImageAnalyzer()

            with pytest.raises(ImageAnalysisError, match="quota exceeded"):
                await analyzer.analyze(b"img")
