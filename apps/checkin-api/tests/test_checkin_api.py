from __future__ import annotations

import asyncio
import base64

from fastapi.testclient import TestClient

from trust_safety.checkin_verification import CheckinVerifier
from trust_safety.receipt import ReceiptEvidence, ReceiptVerificationResult
from trust_safety.rotating_code import generate_code

from checkin_api.app import create_app
from checkin_api.code_replay import InMemoryUsedCodeStore
from checkin_api.repositories.checkin_repository import CheckinRepository
from checkin_api.repositories.popup_repository import PopupRepository
from checkin_api.services.checkin_service import CheckinService

NOW_MS = 1_700_000_010_000
POPUP_ID = "popup-seongsu-1"
VENUE = {"latitude": 37.5445, "longitude": 127.0557}


class FakeReceiptEvaluator:
    def __init__(self, score: int = 20) -> None:
        self._score = score
        self.calls: list[ReceiptEvidence] = []

    async def evaluate(self, evidence: ReceiptEvidence) -> ReceiptVerificationResult:
        self.calls.append(evidence)
        return ReceiptVerificationResult(
            verified=self._score > 0,
            score=self._score,
            brand_matched=self._score > 0,
            date_valid=True,
        )


class FlakyReceiptEvaluator(FakeReceiptEvaluator):
    def __init__(self, failures: int) -> None:
        super().__init__(score=20)
        self._failures = failures

    async def evaluate(self, evidence: ReceiptEvidence) -> ReceiptVerificationResult:
        if self._failures > 0:
            self._failures -= 1
            raise RuntimeError("ocr down")
        return await super().evaluate(evidence)


def build_client(
    receipt_evaluator: FakeReceiptEvaluator | None = None,
    code_secret: str | None = None,
    checkins: CheckinRepository | None = None,
    used_codes: InMemoryUsedCodeStore | None = None,
    receipt_required: bool = False,
) -> TestClient:
    service = CheckinService(
        PopupRepository(),
        checkins if checkins is not None else CheckinRepository(),
        CheckinVerifier(receipt_evaluator, receipt_required=receipt_required, clock=lambda: NOW_MS),
        used_codes if used_codes is not None else InMemoryUsedCodeStore(),
        code_secret=code_secret,
        clock=lambda: NOW_MS,
    )
    return TestClient(create_app(checkin_service=service))


def test_issue_code_returns_current_window_code() -> None:
    client = build_client()

    response = client.get("/v1/checkin/code", params={"popup_id": POPUP_ID})
    body = response.json()

    assert response.status_code == 200
    assert body["success"] is True
    assert body["data"]["code"] == generate_code(POPUP_ID, NOW_MS)
    assert body["data"]["refresh_in_seconds"] == 30
    assert body["data"]["valid_until"].startswith("2023-11-14T22:14:00")


def test_issue_code_uses_configured_secret() -> None:
    client = build_client(code_secret="venue-secret")

    response = client.get("/v1/checkin/code", params={"popup_id": POPUP_ID})

    assert response.json()["data"]["code"] == generate_code(POPUP_ID, NOW_MS, secret="venue-secret")


def test_unknown_popup_returns_not_found() -> None:
    client = build_client()

    response = client.get("/v1/checkin/code", params={"popup_id": "popup-missing"})
    body = response.json()

    assert response.status_code == 404
    assert body["success"] is False
    assert body["error"]["code"] == "POPUP_NOT_FOUND"


def test_verify_code_scores_match_without_spending_it() -> None:
    client = build_client()
    payload = {"popup_id": POPUP_ID, "user_id": "user-1", "code": generate_code(POPUP_ID, NOW_MS)}

    first = client.post("/v1/checkin/code/verify", json=payload)
    again = client.post("/v1/checkin/code/verify", json=payload)

    assert first.status_code == 200
    assert first.json()["data"] == {"matched": True, "score": 40, "expired": False, "remaining_seconds": 30}
    assert again.status_code == 200
    assert again.json()["data"]["matched"] is True


def test_verify_code_reports_stale_code_as_expired() -> None:
    client = build_client()
    stale = generate_code(POPUP_ID, NOW_MS - 90_000)

    response = client.post(
        "/v1/checkin/code/verify",
        json={"popup_id": POPUP_ID, "user_id": "user-1", "code": stale},
    )
    data = response.json()["data"]

    assert data["matched"] is False
    assert data["score"] == 0
    assert data["expired"] is True


def test_check_in_with_gps_and_code_passes() -> None:
    client = build_client()

    response = client.post(
        "/v1/checkin",
        json={"popup_id": POPUP_ID, "user_id": "user-1", **VENUE, "code": generate_code(POPUP_ID, NOW_MS)},
    )
    body = response.json()
    data = body["data"]

    assert response.status_code == 200
    assert data["total_score"] == 80
    assert data["passed"] is True
    assert data["methods"] == ["gps", "qr"]
    assert data["gps"]["distance_label"] == "0m"
    assert data["gps"]["accuracy"] == "exact"
    assert data["summary"]["badge"] == "success"
    assert data["method_statuses"]["receipt"]["status"] == "pending"
    assert data["popup"]["brand_name"] == "Gentle Monster"
    assert body["meta"] == {"threshold": 60}


def test_second_check_in_after_pass_conflicts() -> None:
    client = build_client()
    payload = {"popup_id": POPUP_ID, "user_id": "user-1", **VENUE, "code": generate_code(POPUP_ID, NOW_MS)}
    client.post("/v1/checkin", json=payload)

    response = client.post("/v1/checkin", json={"popup_id": POPUP_ID, "user_id": "user-1", **VENUE})
    body = response.json()

    assert response.status_code == 409
    assert body["error"]["code"] == "ALREADY_CHECKED_IN"
    assert body["error"]["details"]["total_score"] == 80


def test_failed_check_in_can_be_retried() -> None:
    checkins = CheckinRepository()
    client = build_client(checkins=checkins)

    failed = client.post("/v1/checkin", json={"popup_id": POPUP_ID, "user_id": "user-1", **VENUE})
    retried = client.post(
        "/v1/checkin",
        json={"popup_id": POPUP_ID, "user_id": "user-1", **VENUE, "code": generate_code(POPUP_ID, NOW_MS)},
    )

    assert failed.json()["data"]["passed"] is False
    assert failed.json()["data"]["summary"]["badge"] == "fail"
    assert retried.status_code == 200
    assert retried.json()["data"]["passed"] is True
    assert retried.json()["data"]["id"] == failed.json()["data"]["id"]


def test_verified_code_can_then_be_used_to_check_in() -> None:
    client = build_client()
    code = generate_code(POPUP_ID, NOW_MS)
    client.post("/v1/checkin/code/verify", json={"popup_id": POPUP_ID, "user_id": "user-1", "code": code})

    response = client.post("/v1/checkin", json={"popup_id": POPUP_ID, "user_id": "user-1", **VENUE, "code": code})

    assert response.status_code == 200
    assert response.json()["data"]["passed"] is True


def test_code_only_attempt_does_not_spend_the_code() -> None:
    client = build_client()
    code = generate_code(POPUP_ID, NOW_MS)

    first = client.post("/v1/checkin", json={"popup_id": POPUP_ID, "user_id": "user-1", "code": code})
    retried = client.post("/v1/checkin", json={"popup_id": POPUP_ID, "user_id": "user-1", **VENUE, "code": code})

    assert first.status_code == 200
    assert first.json()["data"]["total_score"] == 40
    assert first.json()["data"]["passed"] is False
    assert retried.status_code == 200
    assert retried.json()["data"]["passed"] is True


def test_unavailable_mandatory_receipt_leaves_code_reusable() -> None:
    evaluator = FlakyReceiptEvaluator(failures=1)
    client = build_client(receipt_evaluator=evaluator, receipt_required=True)
    payload = {
        "popup_id": POPUP_ID,
        "user_id": "user-1",
        **VENUE,
        "code": generate_code(POPUP_ID, NOW_MS),
        "receipt_image_base64": base64.b64encode(b"receipt-jpeg").decode("ascii"),
    }

    first = client.post("/v1/checkin", json=payload)
    retried = client.post("/v1/checkin", json=payload)

    assert first.status_code == 503
    assert first.json()["error"]["code"] == "RECEIPT_UNAVAILABLE"
    assert retried.status_code == 200
    assert retried.json()["data"]["total_score"] == 100


def test_spent_code_is_rejected_and_not_recorded() -> None:
    used_codes = InMemoryUsedCodeStore()
    checkins = CheckinRepository()
    client = build_client(checkins=checkins, used_codes=used_codes)
    code = generate_code(POPUP_ID, NOW_MS)
    assert asyncio.run(used_codes.mark_once(POPUP_ID, "user-1", code, ttl_seconds=120)) is True

    verified = client.post("/v1/checkin/code/verify", json={"popup_id": POPUP_ID, "user_id": "user-1", "code": code})
    response = client.post("/v1/checkin", json={"popup_id": POPUP_ID, "user_id": "user-1", **VENUE, "code": code})

    assert verified.status_code == 409
    assert verified.json()["error"]["code"] == "CODE_ALREADY_USED"
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CODE_ALREADY_USED"
    assert asyncio.run(checkins.find(POPUP_ID, "user-1")) is None


def test_passing_check_in_spends_its_code() -> None:
    used_codes = InMemoryUsedCodeStore()
    client = build_client(used_codes=used_codes)
    code = generate_code(POPUP_ID, NOW_MS)

    client.post("/v1/checkin", json={"popup_id": POPUP_ID, "user_id": "user-1", **VENUE, "code": code})

    assert asyncio.run(used_codes.is_used(POPUP_ID, "user-1", code)) is True
    assert asyncio.run(used_codes.is_used(POPUP_ID, "user-2", code)) is False


def test_wrong_code_counts_as_attempted_factor() -> None:
    client = build_client()
    wrong = "000000" if generate_code(POPUP_ID, NOW_MS) != "000000" else "111111"

    response = client.post(
        "/v1/checkin",
        json={"popup_id": POPUP_ID, "user_id": "user-1", **VENUE, "code": wrong},
    )
    data = response.json()["data"]

    assert data["total_score"] == 40
    assert data["qr"]["verified"] is False
    assert data["method_statuses"]["qr"]["status"] == "fail"


def test_receipt_factor_completes_full_score() -> None:
    evaluator = FakeReceiptEvaluator(score=20)
    client = build_client(receipt_evaluator=evaluator)

    response = client.post(
        "/v1/checkin",
        json={
            "popup_id": POPUP_ID,
            "user_id": "user-1",
            **VENUE,
            "code": generate_code(POPUP_ID, NOW_MS),
            "receipt_image_base64": base64.b64encode(b"receipt-jpeg").decode("ascii"),
        },
    )
    data = response.json()["data"]

    assert data["total_score"] == 100
    assert data["methods"] == ["gps", "qr", "receipt"]
    assert evaluator.calls[0].image_data == b"receipt-jpeg"
    assert evaluator.calls[0].expected_brand == "Gentle Monster"


def test_invalid_receipt_encoding_is_rejected() -> None:
    client = build_client(receipt_evaluator=FakeReceiptEvaluator())

    response = client.post(
        "/v1/checkin",
        json={"popup_id": POPUP_ID, "user_id": "user-1", "receipt_image_base64": "not base64!"},
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_popup_without_location_skips_gps() -> None:
    client = build_client()

    response = client.post(
        "/v1/checkin",
        json={"popup_id": "popup-online-3", "user_id": "user-1", **VENUE},
    )
    data = response.json()["data"]

    assert data["gps"] is None
    assert data["methods"] == []
    assert data["total_score"] == 0


def test_draft_popup_is_not_open_for_check_in() -> None:
    client = build_client()

    response = client.post("/v1/checkin", json={"popup_id": "popup-draft-4", "user_id": "user-1"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "POPUP_NOT_OPEN"


def test_check_in_validation_errors() -> None:
    client = build_client()

    bad_code = client.post("/v1/checkin", json={"popup_id": POPUP_ID, "user_id": "user-1", "code": "12ab56"})
    lone_latitude = client.post(
        "/v1/checkin",
        json={"popup_id": POPUP_ID, "user_id": "user-1", "latitude": 37.5},
    )
    out_of_range = client.post(
        "/v1/checkin",
        json={"popup_id": POPUP_ID, "user_id": "user-1", "latitude": 91.0, "longitude": 127.0},
    )

    for response in (bad_code, lone_latitude, out_of_range):
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_blank_user_id_is_a_validation_error() -> None:
    client = build_client()

    response = client.post("/v1/checkin", json={"popup_id": POPUP_ID, "user_id": "   ", **VENUE})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert "user_id" in response.json()["error"]["message"]
