"""Multi-factor check-in verification.

GPS, rotating code and receipt evidence are scored independently and folded
into one ``VerificationResult``. Every factor is described once in
``FACTORS``; adding a factor means adding a row there and an evaluation step
in ``CheckinVerifier``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum

from geo_engine.models import Coordinates, GpsVerificationResult
from geo_engine.scoring import GPS_MAX_SCORE, verify_gps_location

from trust_safety.receipt import (
    RECEIPT_MAX_SCORE,
    ReceiptEvaluator,
    ReceiptEvidence,
    ReceiptVerificationResult,
)
from trust_safety.rotating_code import (
    QR_MAX_SCORE,
    QrVerificationResult,
    current_time_ms,
    verify_issued_code,
)

logger = logging.getLogger(__name__)

PASS_THRESHOLD = 60
STRONG_PASS_THRESHOLD = 70
DEFAULT_RECEIPT_TIMEOUT_SECONDS = 5.0


class VerificationMethod(StrEnum):
    GPS = "gps"
    QR = "qr"
    RECEIPT = "receipt"


class SummaryBadge(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAIL = "fail"


class MethodState(StrEnum):
    SUCCESS = "success"
    FAIL = "fail"
    PENDING = "pending"


@dataclass(frozen=True)
class FactorSpec:
    method: VerificationMethod
    label: str
    max_score: int


FACTORS: tuple[FactorSpec, ...] = (
    FactorSpec(VerificationMethod.GPS, "GPS location", GPS_MAX_SCORE),
    FactorSpec(VerificationMethod.QR, "QR code", QR_MAX_SCORE),
    FactorSpec(VerificationMethod.RECEIPT, "Receipt", RECEIPT_MAX_SCORE),
)
MAX_SCORES: dict[str, int] = {factor.method.value: factor.max_score for factor in FACTORS}

FactorResult = GpsVerificationResult | QrVerificationResult | ReceiptVerificationResult


class ReceiptUnavailableError(RuntimeError):
    """Raised when a mandatory receipt could not be evaluated."""


@dataclass(frozen=True)
class GpsEvidence:
    user_location: Coordinates
    max_range_meters: int | None = None


@dataclass(frozen=True)
class CodeEvidence:
    input_code: str
    valid_code: str
    generated_at_ms: int


@dataclass(frozen=True)
class ReceiptData:
    image_data: bytes
    purchase_date: datetime


@dataclass(frozen=True)
class VerificationOptions:
    popup_id: str
    user_id: str
    popup_location: Coordinates
    brand_name: str
    gps_data: GpsEvidence | None = None
    qr_data: CodeEvidence | None = None
    receipt_data: ReceiptData | None = None


@dataclass(frozen=True)
class VerificationResult:
    popup_id: str
    user_id: str
    verified_at: datetime
    gps: GpsVerificationResult | None
    qr: QrVerificationResult | None
    receipt: ReceiptVerificationResult | None
    total_score: int
    passed: bool
    methods: frozenset[VerificationMethod]

    def factor(self, method: VerificationMethod) -> FactorResult | None:
        return {
            VerificationMethod.GPS: self.gps,
            VerificationMethod.QR: self.qr,
            VerificationMethod.RECEIPT: self.receipt,
        }[VerificationMethod(method)]


@dataclass(frozen=True)
class VerificationSummary:
    badge: SummaryBadge
    title: str
    message: str


@dataclass(frozen=True)
class MethodStatus:
    label: str
    score: int
    max_score: int
    status: MethodState


class CheckinVerifier:
    def __init__(
        self,
        receipt_evaluator: ReceiptEvaluator | None = None,
        *,
        receipt_timeout_seconds: float = DEFAULT_RECEIPT_TIMEOUT_SECONDS,
        receipt_required: bool = False,
        clock: Callable[[], int] = current_time_ms,
    ) -> None:
        if receipt_timeout_seconds <= 0:
            raise ValueError("receipt_timeout_seconds must be > 0")
        self._receipt_evaluator = receipt_evaluator
        self._receipt_timeout_seconds = receipt_timeout_seconds
        self._receipt_required = receipt_required
        self._clock = clock

    async def evaluate(self, options: VerificationOptions, now_ms: int | None = None) -> VerificationResult:
        _validate_options(options)
        if now_ms is None:
            now_ms = self._clock()

        receipt_task = None
        if options.receipt_data is not None:
            receipt_task = asyncio.ensure_future(self._evaluate_receipt(options))
        try:
            gps = None
            if options.gps_data is not None:
                gps = verify_gps_location(
                    options.gps_data.user_location,
                    options.popup_location,
                    options.gps_data.max_range_meters,
                )
            qr = None
            if options.qr_data is not None:
                qr = verify_issued_code(
                    options.qr_data.input_code,
                    options.qr_data.valid_code,
                    options.qr_data.generated_at_ms,
                    now_ms=now_ms,
                )
            receipt = await receipt_task if receipt_task is not None else None
        finally:
            if receipt_task is not None and not receipt_task.done():
                receipt_task.cancel()

        results: dict[VerificationMethod, FactorResult | None] = {
            VerificationMethod.GPS: gps,
            VerificationMethod.QR: qr,
            VerificationMethod.RECEIPT: receipt,
        }
        methods = frozenset(method for method, result in results.items() if result is not None)
        total_score = sum(
            min(factor_result.score, factor.max_score)
            for factor in FACTORS
            if (factor_result := results[factor.method]) is not None
        )
        result = VerificationResult(
            popup_id=options.popup_id,
            user_id=options.user_id,
            verified_at=datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc),
            gps=gps,
            qr=qr,
            receipt=receipt,
            total_score=total_score,
            passed=total_score >= PASS_THRESHOLD,
            methods=methods,
        )
        logger.info(
            "checkin_verification_completed",
            extra={
                "component": "trust_safety",
                "popup_id": options.popup_id,
                "total_score": total_score,
                "passed": result.passed,
                "methods": ",".join(sorted(methods)),
            },
        )
        return result

    async def _evaluate_receipt(self, options: VerificationOptions) -> ReceiptVerificationResult | None:
        assert options.receipt_data is not None
        evidence = ReceiptEvidence(
            image_data=options.receipt_data.image_data,
            expected_brand=options.brand_name,
            expected_date=options.receipt_data.purchase_date,
        )
        try:
            if self._receipt_evaluator is None:
                raise RuntimeError("receipt evaluator is not configured")
            return await asyncio.wait_for(
                self._receipt_evaluator.evaluate(evidence),
                timeout=self._receipt_timeout_seconds,
            )
        except Exception as exc:
            if self._receipt_required:
                raise ReceiptUnavailableError("receipt could not be evaluated") from exc
            logger.warning(
                "receipt_factor_dropped",
                extra={
                    "component": "trust_safety",
                    "popup_id": options.popup_id,
                    "error_type": type(exc).__name__,
                },
            )
            return None


def summarize(result: VerificationResult) -> VerificationSummary:
    score = result.total_score
    if result.passed and score >= STRONG_PASS_THRESHOLD:
        return VerificationSummary(
            badge=SummaryBadge.SUCCESS,
            title="Check-in complete!",
            message=f"Verified with {score} points. You earned a visit badge.",
        )
    if result.passed:
        return VerificationSummary(
            badge=SummaryBadge.PARTIAL,
            title="Check-in successful!",
            message=f"Verified with {score} points. Add another verification to earn a bonus.",
        )
    return VerificationSummary(
        badge=SummaryBadge.FAIL,
        title="Verification failed",
        message=f"{score} points - at least {PASS_THRESHOLD} points are required. Please try again on site.",
    )


def method_status(method: VerificationMethod | str, result: VerificationResult) -> MethodStatus:
    method = VerificationMethod(method)
    factor = next(item for item in FACTORS if item.method == method)
    factor_result = result.factor(method)
    if factor_result is None:
        return MethodStatus(label=factor.label, score=0, max_score=factor.max_score, status=MethodState.PENDING)
    return MethodStatus(
        label=factor.label,
        score=factor_result.score,
        max_score=factor.max_score,
        status=MethodState.SUCCESS if factor_result.score > 0 else MethodState.FAIL,
    )


def _validate_options(options: VerificationOptions) -> None:
    if not options.popup_id.strip():
        raise ValueError("popup_id must not be empty")
    if not options.user_id.strip():
        raise ValueError("user_id must not be empty")
    if options.gps_data is not None and options.gps_data.max_range_meters is not None:
        if options.gps_data.max_range_meters < 0:
            raise ValueError("max_range_meters must be >= 0")
