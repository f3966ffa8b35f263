from __future__ import annotations

from devkit.config import CheckinSettings, load_settings
from devkit.redis import create_redis_client
from trust_safety.checkin_verification import CheckinVerifier
from trust_safety.receipt import ReceiptEvaluator

from checkin_api.circuit_breaker import CircuitBreaker
from checkin_api.clients.receipt_provider_client import CircuitBreakingReceiptEvaluator, ReceiptProviderClient
from checkin_api.code_replay import InMemoryUsedCodeStore, RedisUsedCodeStore, UsedCodeStore
from checkin_api.observability import CheckinOutcomeRecorder
from checkin_api.repositories.checkin_repository import CheckinRepository
from checkin_api.repositories.popup_repository import PopupRepository
from checkin_api.services.checkin_service import CheckinService

settings = load_settings("checkin-api")
_checkin_service: CheckinService | None = None


def build_used_code_store(settings: CheckinSettings) -> UsedCodeStore:
    redis_client = create_redis_client(settings.REDIS_URL)
    if redis_client is None:
        return InMemoryUsedCodeStore()
    return RedisUsedCodeStore(redis_client)


def build_receipt_evaluator(settings: CheckinSettings) -> ReceiptEvaluator | None:
    if not settings.RECEIPT_PROVIDER_BASE_URL:
        return None
    return CircuitBreakingReceiptEvaluator(
        ReceiptProviderClient(
            base_url=settings.RECEIPT_PROVIDER_BASE_URL,
            timeout_seconds=settings.RECEIPT_TIMEOUT_SECONDS,
        ),
        CircuitBreaker(name="receipt-provider", failure_threshold=3, recovery_timeout_seconds=30),
    )


def build_checkin_service(
    settings: CheckinSettings,
    outcome_recorder: CheckinOutcomeRecorder | None = None,
) -> CheckinService:
    verifier = CheckinVerifier(
        build_receipt_evaluator(settings),
        receipt_timeout_seconds=settings.RECEIPT_TIMEOUT_SECONDS,
        receipt_required=settings.RECEIPT_REQUIRED,
    )
    return CheckinService(
        PopupRepository(),
        CheckinRepository(),
        verifier,
        build_used_code_store(settings),
        code_secret=settings.CHECKIN_CODE_SECRET,
        replay_ttl_seconds=settings.CODE_REPLAY_TTL_SECONDS,
        max_range_meters=settings.GPS_MAX_RANGE_METERS,
        outcome_recorder=outcome_recorder,
    )


def get_checkin_service() -> CheckinService:
    global _checkin_service
    if _checkin_service is None:
        _checkin_service = build_checkin_service(settings)
    return _checkin_service
