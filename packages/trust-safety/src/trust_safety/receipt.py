from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol

RECEIPT_MAX_SCORE = 20
MIN_OCR_CONFIDENCE = 0.6
MAX_PURCHASE_DATE_SKEW_DAYS = 1
BRAND_SIMILARITY_THRESHOLD = 0.5


@dataclass(frozen=True)
class ReceiptVerificationResult:
    verified: bool
    score: int
    brand_matched: bool
    date_valid: bool
    extracted_text: str | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.score <= RECEIPT_MAX_SCORE:
            raise ValueError(f"receipt score must be in [0, {RECEIPT_MAX_SCORE}]")


@dataclass(frozen=True)
class ReceiptEvidence:
    image_data: bytes
    expected_brand: str
    expected_date: datetime


@dataclass(frozen=True)
class ReceiptExtraction:
    brand_name: str
    purchase_date: date | None
    total_amount: int
    confidence: float
    extracted_text: str | None = None


class ReceiptEvaluator(Protocol):
    async def evaluate(self, evidence: ReceiptEvidence) -> ReceiptVerificationResult: ...


class ReceiptTextExtractor(Protocol):
    async def extract(self, evidence: ReceiptEvidence) -> ReceiptExtraction: ...


def normalize_brand(text: str) -> str:
    return re.sub(r"[^a-z0-9가-힣]", "", text.lower())


def is_brand_matched(receipt_brand: str, expected_brand: str) -> bool:
    found = normalize_brand(receipt_brand)
    expected = normalize_brand(expected_brand)
    if not found or not expected:
        return False
    if found == expected or expected in found or found in expected:
        return True
    shorter, longer = sorted((found, expected), key=len)
    matches = sum(1 for char in shorter if char in longer)
    return matches / len(shorter) >= BRAND_SIMILARITY_THRESHOLD


def is_purchase_date_valid(purchase_date: date | None, expected: date | datetime) -> bool:
    if purchase_date is None:
        return False
    if isinstance(purchase_date, datetime):
        purchase_date = purchase_date.date()
    if isinstance(expected, datetime):
        expected = expected.date()
    return abs((purchase_date - expected).days) <= MAX_PURCHASE_DATE_SKEW_DAYS


def judge_receipt_extraction(
    extraction: ReceiptExtraction,
    expected_brand: str,
    expected_date: date | datetime,
) -> ReceiptVerificationResult:
    if not expected_brand.strip():
        raise ValueError("expected_brand must not be empty")
    brand_matched = is_brand_matched(extraction.brand_name, expected_brand)
    date_valid = is_purchase_date_valid(extraction.purchase_date, expected_date)
    verified = (
        brand_matched
        and date_valid
        and extraction.total_amount > 0
        and extraction.confidence >= MIN_OCR_CONFIDENCE
    )
    extracted_text = extraction.extracted_text
    if not extracted_text:
        extracted_text = f"{extraction.brand_name} - {extraction.purchase_date or ''}".rstrip(" -")
    return ReceiptVerificationResult(
        verified=verified,
        score=RECEIPT_MAX_SCORE if verified else 0,
        brand_matched=brand_matched,
        date_valid=date_valid,
        extracted_text=extracted_text,
    )


class OcrReceiptEvaluator:
    """Receipt evaluator that delegates OCR to an extractor and judges the result locally."""

    def __init__(self, extractor: ReceiptTextExtractor) -> None:
        self._extractor = extractor

    async def evaluate(self, evidence: ReceiptEvidence) -> ReceiptVerificationResult:
        if not evidence.image_data:
            raise ValueError("image_data must not be empty")
        extraction = await self._extractor.extract(evidence)
        return judge_receipt_extraction(extraction, evidence.expected_brand, evidence.expected_date)
