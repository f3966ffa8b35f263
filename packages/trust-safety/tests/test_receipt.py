from datetime import date, datetime, timezone

import pytest

from trust_safety.receipt import (
    OcrReceiptEvaluator,
    ReceiptEvidence,
    ReceiptExtraction,
    ReceiptVerificationResult,
    is_brand_matched,
    is_purchase_date_valid,
    judge_receipt_extraction,
)

CHECKIN_AT = datetime(2025, 1, 5, 14, 30, tzinfo=timezone.utc)


def _extraction(**overrides) -> ReceiptExtraction:
    values = {
        "brand_name": "Gentle Monster",
        "purchase_date": date(2025, 1, 5),
        "total_amount": 25_000,
        "confidence": 0.85,
        "extracted_text": "GENTLE MONSTER\n2025-01-05\nTotal 25,000",
    }
    values.update(overrides)
    return ReceiptExtraction(**values)


def test_brand_match_rules() -> None:
    assert is_brand_matched("GENTLE MONSTER", "Gentle Monster")
    assert is_brand_matched("Gentle Monster Seongsu", "gentle-monster")
    assert is_brand_matched("젠틀몬스터", "젠틀몬스터 성수")
    assert not is_brand_matched("xyz", "Gentle Monster")
    assert not is_brand_matched("", "Gentle Monster")


def test_purchase_date_allows_one_day_skew() -> None:
    assert is_purchase_date_valid(date(2025, 1, 4), CHECKIN_AT)
    assert is_purchase_date_valid(date(2025, 1, 6), CHECKIN_AT)
    assert not is_purchase_date_valid(date(2025, 1, 7), CHECKIN_AT)
    assert not is_purchase_date_valid(None, CHECKIN_AT)


def test_judge_receipt_extraction_success() -> None:
    result = judge_receipt_extraction(_extraction(), "Gentle Monster", CHECKIN_AT)

    assert result.verified is True
    assert result.score == 20
    assert result.brand_matched is True
    assert result.date_valid is True
    assert "GENTLE MONSTER" in (result.extracted_text or "")


@pytest.mark.parametrize(
    "overrides",
    [
        {"confidence": 0.45},
        {"total_amount": 0},
        {"brand_name": "xyz"},
        {"purchase_date": date(2024, 12, 1)},
    ],
)
def test_judge_receipt_extraction_requires_every_rule(overrides: dict) -> None:
    result = judge_receipt_extraction(_extraction(**overrides), "Gentle Monster", CHECKIN_AT)

    assert result.verified is False
    assert result.score == 0


def test_judge_receipt_extraction_falls_back_to_summary_text() -> None:
    result = judge_receipt_extraction(_extraction(extracted_text=None), "Gentle Monster", CHECKIN_AT)
    assert result.extracted_text == "Gentle Monster - 2025-01-05"


def test_judge_receipt_extraction_empty_brand_raises() -> None:
    with pytest.raises(ValueError):
        judge_receipt_extraction(_extraction(), " ", CHECKIN_AT)


def test_receipt_result_score_is_bounded() -> None:
    with pytest.raises(ValueError):
        ReceiptVerificationResult(verified=True, score=25, brand_matched=True, date_valid=True)


class FakeExtractor:
    def __init__(self, extraction: ReceiptExtraction) -> None:
        self.extraction = extraction
        self.calls: list[ReceiptEvidence] = []

    async def extract(self, evidence: ReceiptEvidence) -> ReceiptExtraction:
        self.calls.append(evidence)
        return self.extraction


@pytest.mark.asyncio
async def test_ocr_receipt_evaluator_judges_extraction() -> None:
    extractor = FakeExtractor(_extraction())
    evaluator = OcrReceiptEvaluator(extractor)
    evidence = ReceiptEvidence(image_data=b"jpeg-bytes", expected_brand="Gentle Monster", expected_date=CHECKIN_AT)

    result = await evaluator.evaluate(evidence)

    assert result.verified is True
    assert extractor.calls == [evidence]


@pytest.mark.asyncio
async def test_ocr_receipt_evaluator_rejects_empty_image() -> None:
    evaluator = OcrReceiptEvaluator(FakeExtractor(_extraction()))
    with pytest.raises(ValueError):
        await evaluator.evaluate(
            ReceiptEvidence(image_data=b"", expected_brand="Gentle Monster", expected_date=CHECKIN_AT)
        )
