"""Tests for the analysis webhook client and response normalization."""

import asyncio
import json

import httpx
import pytest

from receipt_ledger.core.analyzer import (AnalysisClient, FIELD_RULES, image_to_data_url,
                                          normalize_analysis, unwrap_payload)
from receipt_ledger.core.errors import AnalysisError
from receipt_ledger.core.models import UploadOptions

from conftest import Recorder

WEBHOOK = "https://hooks.example.com/webhook/analyze"


class TestUnwrapPayload:

    def test_uses_data_field(self):
        assert unwrap_payload({"success": True, "data": {"금액": 1}}) == {"금액": 1}

    def test_without_data_uses_value_itself(self):
        assert unwrap_payload({"금액": 1}) == {"금액": 1}

    def test_list_takes_first_element(self):
        assert unwrap_payload([{"a": 1}, {"a": 2}]) == {"a": 1}
        assert unwrap_payload({"data": [{"a": 1}]}) == {"a": 1}

    def test_empty_list_is_empty_mapping(self):
        assert unwrap_payload([]) == {}
        assert unwrap_payload({"data": []}) == {}

    def test_scalar_is_empty_mapping(self):
        assert unwrap_payload("ok") == {}


class TestNormalizeAnalysis:

    def test_korean_payload(self):
        r = normalize_analysis({"data": [{"거래일": "2024-02-01", "금액": "₩12,000", "구분": "식대"}]})
        assert r.amount == 12000
        assert r.category == "식대"
        assert r.transaction_date == "2024-02-01"

    def test_korean_names_win_over_english(self):
        r = normalize_analysis({"이용지점": "스타벅스", "vendor": "Starbucks",
                                "금액": 5500, "amount": 9999})
        assert r.vendor == "스타벅스"
        assert r.amount == 5500

    def test_english_fallbacks(self):
        r = normalize_analysis({"date": "2024-03-01", "vendor": "GS25", "amount": "12000원",
                                "category": "마트", "cardType": "개인카드", "billable": "X",
                                "memo": "간식", "remark": "영수증 흐림"})
        assert r.transaction_date == "2024-03-01"
        assert r.vendor == "GS25"
        assert r.amount == 12000
        assert r.card_type == "개인카드"
        assert r.billable == "X"
        assert r.memo == "간식"
        assert r.note == "영수증 흐림"

    def test_whole_float_amount(self):
        r = normalize_analysis({"data": {"거래일": "2024-02-01", "금액": 12000.0, "구분": "식대"}})
        assert r.amount == 12000

    def test_missing_amount_is_zero(self):
        assert normalize_analysis({"구분": "식대"}).amount == 0
        assert normalize_analysis({"금액": "없음"}).amount == 0

    def test_empty_korean_value_falls_back(self):
        assert normalize_analysis({"금액": "", "amount": "3,000"}).amount == 3000

    def test_image_prefers_remote_value(self):
        assert normalize_analysis({"image": "https://x/1.jpg"}, "data:local").image == "https://x/1.jpg"
        assert normalize_analysis({}, "data:local").image == "data:local"

    def test_missing_text_fields(self):
        r = normalize_analysis({})
        assert r.id == ""
        assert r.vendor == ""
        assert r.card_type is None
        assert r.billable is None

    def test_every_field_has_localized_name_first(self):
        for name, keys in FIELD_RULES:
            if name in ("image", "id"):
                continue
            assert not keys[0].isascii()


class TestImageToDataUrl:

    def test_png(self, png_bytes):
        assert image_to_data_url(png_bytes).startswith("data:image/png;base64,")

    def test_not_an_image(self):
        with pytest.raises(ValueError):
            image_to_data_url(b"plain text, not pixels")


class TestAnalysisClient:

    def _submit(self, recorder, image, options=None):
        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
                return await AnalysisClient(WEBHOOK, client).submit(image, "receipt.png", options)
        return asyncio.run(go())

    def test_submits_multipart_and_normalizes(self, png_bytes):
        recorder = Recorder(httpx.Response(200, json={
            "success": True, "message": "saved",
            "data": {"거래일": "2024-02-01", "이용지점": "맥도날드", "금액": "₩12,000", "구분": "식대"},
        }))
        r = self._submit(recorder, png_bytes, UploadOptions(card_type="법인카드", billable="O"))

        assert r.amount == 12000
        assert r.vendor == "맥도날드"
        assert r.image.startswith("data:image/png;base64,")

        request = recorder.requests[0]
        assert request.headers["content-type"].startswith("multipart/form-data")
        content = request.content
        assert b'name="image"; filename="receipt.png"' in content
        assert b'name="imageBase64"' in content
        assert b'name="cardType"' in content
        assert b'name="billable"' in content
        assert png_bytes in content

    def test_hints_omitted_when_unset(self, png_bytes):
        recorder = Recorder(httpx.Response(200, json=[{"금액": 100}]))
        self._submit(recorder, png_bytes)
        content = recorder.requests[0].content
        assert b'name="cardType"' not in content
        assert b'name="billable"' not in content

    def test_error_status_raises(self, png_bytes):
        recorder = Recorder(httpx.Response(502, text="workflow crashed"))
        with pytest.raises(AnalysisError) as exc:
            self._submit(recorder, png_bytes)
        assert exc.value.status == 502
        assert "workflow crashed" in str(exc.value)

    def test_non_json_body_raises(self, png_bytes):
        recorder = Recorder(httpx.Response(200, text="Workflow was started"))
        with pytest.raises(AnalysisError) as exc:
            self._submit(recorder, png_bytes)
        assert exc.value.body == "Workflow was started"

    def test_fenced_json_is_accepted(self, png_bytes):
        body = "```json\n" + json.dumps({"금액": "7,700"}) + "\n```"
        recorder = Recorder(httpx.Response(200, text=body))
        assert self._submit(recorder, png_bytes).amount == 7700

    def test_rejects_non_image_before_sending(self):
        recorder = Recorder(httpx.Response(200, json={}))
        with pytest.raises(ValueError):
            self._submit(recorder, b"%PDF-1.4 not an image")
        assert recorder.requests == []
