from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Callable
from datetime import datetime, timezone

from pydantic import BaseModel

from geo_engine.formatting import format_distance
from geo_engine.models import Coordinates
from trust_safety.checkin_verification import (
    FACTORS,
    MAX_SCORES,
    PASS_THRESHOLD,
    CheckinVerifier,
    CodeEvidence,
    GpsEvidence,
    ReceiptData,
    VerificationMethod,
    VerificationOptions,
    VerificationResult,
    method_status,
    summarize,
)
from trust_safety.rotating_code import current_time_ms, generate_code, generate_code_bundle, verify_code

from checkin_api.code_replay import DEFAULT_REPLAY_TTL_SECONDS, UsedCodeStore
from checkin_api.errors import ApiError, popup_not_found
from checkin_api.observability import CheckinOutcome, CheckinOutcomeRecorder
from checkin_api.repositories.checkin_repository import CheckinRepository
from checkin_api.repositories.popup_repository import PopupEntity, PopupRepository

logger = logging.getLogger(__name__)

# Stand-in venue for popups without coordinates; GPS is never scored against it.
_UNLOCATED_VENUE = Coordinates(latitude=0.0, longitude=0.0)


class CodeIssueItem(BaseModel):
    popup_id: str
    code: str
    valid_until: str
    refresh_in_seconds: int


class CodeVerifyItem(BaseModel):
    matched: bool
    score: int
    expired: bool
    remaining_seconds: int


class MethodStatusItem(BaseModel):
    label: str
    score: int
    max_score: int
    status: str


class GpsFactorItem(BaseModel):
    score: int
    max_score: int
    distance_meters: int
    distance_label: str
    accuracy: str
    verified: bool


class QrFactorItem(BaseModel):
    score: int
    max_score: int
    verified: bool
    expired: bool


class ReceiptFactorItem(BaseModel):
    score: int
    max_score: int
    verified: bool
    brand_matched: bool
    date_valid: bool


class CheckinItem(BaseModel):
    id: str
    popup_id: str
    user_id: str
    total_score: int
    max_score: int
    threshold: int
    passed: bool
    verified_at: str
    methods: list[str]
    gps: GpsFactorItem | None
    qr: QrFactorItem | None
    receipt: ReceiptFactorItem | None
    summary: dict[str, str]
    method_statuses: dict[str, MethodStatusItem]
    popup: dict[str, str]


class CheckinService:
    def __init__(
        self,
        popups: PopupRepository,
        checkins: CheckinRepository,
        verifier: CheckinVerifier,
        used_codes: UsedCodeStore,
        *,
        code_secret: str | None = None,
        replay_ttl_seconds: int = DEFAULT_REPLAY_TTL_SECONDS,
        max_range_meters: int | None = None,
        outcome_recorder: CheckinOutcomeRecorder | None = None,
        clock: Callable[[], int] = current_time_ms,
    ) -> None:
        self._popups = popups
        self._checkins = checkins
        self._verifier = verifier
        self._used_codes = used_codes
        self._code_secret = code_secret
        self._replay_ttl_seconds = replay_ttl_seconds
        self._max_range_meters = max_range_meters
        self._outcome_recorder = outcome_recorder
        self._clock = clock

    async def issue_code(self, popup_id: str) -> CodeIssueItem:
        popup = await self._require_popup(popup_id)
        bundle = generate_code_bundle(popup.id, at_ms=self._clock(), secret=self._code_secret)
        return CodeIssueItem(
            popup_id=popup.id,
            code=bundle.code,
            valid_until=bundle.valid_until.isoformat(),
            refresh_in_seconds=bundle.refresh_in_seconds,
        )

    async def verify_code(self, popup_id: str, user_id: str, code: str) -> CodeVerifyItem:
        popup = await self._require_popup(popup_id)
        result = verify_code(code, popup.id, at_ms=self._clock(), secret=self._code_secret)
        if result.matched:
            await self._ensure_unused(popup.id, user_id, code)
        return CodeVerifyItem(
            matched=result.matched,
            score=result.score,
            expired=result.expired,
            remaining_seconds=result.remaining_seconds,
        )

    async def check_in(
        self,
        popup_id: str,
        user_id: str,
        latitude: float | None = None,
        longitude: float | None = None,
        code: str | None = None,
        receipt_image_base64: str | None = None,
    ) -> CheckinItem:
        popup = await self._require_popup(popup_id)
        if not popup.accepts_checkins:
            raise ApiError("POPUP_NOT_OPEN", "This popup is not yet open for check-in", 400)
        existing = await self._checkins.find(popup.id, user_id)
        if existing is not None and existing.passed:
            raise ApiError(
                "ALREADY_CHECKED_IN",
                "You have already successfully checked in to this popup",
                409,
                details={"checkin_id": existing.id, "total_score": existing.total_score},
            )

        now_ms = self._clock()
        options = VerificationOptions(
            popup_id=popup.id,
            user_id=user_id,
            popup_location=popup.location or _UNLOCATED_VENUE,
            brand_name=popup.brand_name,
            gps_data=self._gps_evidence(popup, latitude, longitude),
            qr_data=self._code_evidence(popup, code, now_ms),
            receipt_data=_receipt_data(receipt_image_base64, now_ms),
        )
        result = await self._verifier.evaluate(options, now_ms=now_ms)
        summary = summarize(result)
        # Only a passing check-in spends its code.
        if code is not None and result.passed and result.qr is not None and result.qr.matched:
            await self._claim_code(popup.id, user_id, code)

        record = await self._checkins.save(
            popup_id=popup.id,
            user_id=user_id,
            gps_score=result.gps.score if result.gps else 0,
            qr_score=result.qr.score if result.qr else 0,
            receipt_score=result.receipt.score if result.receipt else 0,
            total_score=result.total_score,
            passed=result.passed,
            verified_at=result.verified_at,
            user_latitude=latitude if options.gps_data else None,
            user_longitude=longitude if options.gps_data else None,
        )
        if self._outcome_recorder is not None:
            self._outcome_recorder.record_outcome(
                CheckinOutcome(
                    badge=summary.badge.value,
                    passed=result.passed,
                    total_score=result.total_score,
                    methods=tuple(sorted(result.methods)),
                )
            )

        gps = None
        if result.gps is not None:
            gps = GpsFactorItem(
                score=result.gps.score,
                max_score=MAX_SCORES["gps"],
                distance_meters=result.gps.distance_meters,
                distance_label=format_distance(result.gps.distance_meters),
                accuracy=result.gps.accuracy_tier.value,
                verified=result.gps.score > 0,
            )
        qr = None
        if result.qr is not None:
            qr = QrFactorItem(
                score=result.qr.score,
                max_score=MAX_SCORES["qr"],
                verified=result.qr.matched,
                expired=result.qr.expired,
            )
        receipt = None
        if result.receipt is not None:
            receipt = ReceiptFactorItem(
                score=result.receipt.score,
                max_score=MAX_SCORES["receipt"],
                verified=result.receipt.verified,
                brand_matched=result.receipt.brand_matched,
                date_valid=result.receipt.date_valid,
            )

        return CheckinItem(
            id=record.id,
            popup_id=popup.id,
            user_id=user_id,
            total_score=result.total_score,
            max_score=sum(MAX_SCORES.values()),
            threshold=PASS_THRESHOLD,
            passed=result.passed,
            verified_at=result.verified_at.isoformat(),
            methods=sorted(result.methods),
            gps=gps,
            qr=qr,
            receipt=receipt,
            summary={"badge": summary.badge.value, "title": summary.title, "message": summary.message},
            method_statuses={factor.method.value: _method_status_item(factor.method, result) for factor in FACTORS},
            popup={"id": popup.id, "brand_name": popup.brand_name, "title": popup.title},
        )

    async def _require_popup(self, popup_id: str) -> PopupEntity:
        popup = await self._popups.get(popup_id)
        if popup is None:
            raise popup_not_found(popup_id)
        return popup

    async def _claim_code(self, popup_id: str, user_id: str, code: str) -> None:
        first_use = await self._used_codes.mark_once(popup_id, user_id, code, self._replay_ttl_seconds)
        if not first_use:
            logger.warning(
                "checkin_code_replayed",
                extra={"component": "checkin_api", "popup_id": popup_id},
            )
            raise ApiError("CODE_ALREADY_USED", "This code has already been used", 409)

    async def _ensure_unused(self, popup_id: str, user_id: str, code: str) -> None:
        if await self._used_codes.is_used(popup_id, user_id, code):
            raise ApiError("CODE_ALREADY_USED", "This code has already been used", 409)

    def _gps_evidence(
        self,
        popup: PopupEntity,
        latitude: float | None,
        longitude: float | None,
    ) -> GpsEvidence | None:
        if popup.location is None or latitude is None or longitude is None:
            return None
        return GpsEvidence(
            user_location=Coordinates(latitude=latitude, longitude=longitude),
            max_range_meters=self._max_range_meters,
        )

    def _code_evidence(self, popup: PopupEntity, code: str | None, now_ms: int) -> CodeEvidence | None:
        if code is None:
            return None
        # A code that passed the window check is compared against itself so the
        # verifier scores it; otherwise against the current code, which fails.
        window_check = verify_code(code, popup.id, at_ms=now_ms, secret=self._code_secret)
        if window_check.matched:
            return CodeEvidence(input_code=code, valid_code=code, generated_at_ms=now_ms)
        return CodeEvidence(
            input_code=code,
            valid_code=generate_code(popup.id, now_ms, secret=self._code_secret),
            generated_at_ms=now_ms,
        )


def _method_status_item(method: VerificationMethod, result: VerificationResult) -> MethodStatusItem:
    status = method_status(method, result)
    return MethodStatusItem(
        label=status.label,
        score=status.score,
        max_score=status.max_score,
        status=status.status.value,
    )


def _receipt_data(receipt_image_base64: str | None, now_ms: int) -> ReceiptData | None:
    if receipt_image_base64 is None:
        return None
    try:
        image_data = base64.b64decode(receipt_image_base64, validate=True)
    except binascii.Error as exc:
        raise ApiError("VALIDATION_ERROR", "receipt_image_base64 is not valid base64", 422) from exc
    if not image_data:
        raise ApiError("VALIDATION_ERROR", "receipt_image_base64 must not be empty", 422)
    return ReceiptData(
        image_data=image_data,
        purchase_date=datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc),
    )
