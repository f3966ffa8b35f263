from __future__ import annotations

import base64
import time
from collections.abc import Callable
from typing import Any

import httpx

from trust_safety.receipt import RECEIPT_MAX_SCORE, ReceiptEvaluator, ReceiptEvidence, ReceiptVerificationResult

from checkin_api.circuit_breaker import CircuitBreaker
from checkin_api.errors import ApiError


class ReceiptProviderClient:
    """Remote receipt judgment service speaking JSON over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory

    async def evaluate(self, evidence: ReceiptEvidence) -> ReceiptVerificationResult:
        payload = {
            "image_base64": base64.b64encode(evidence.image_data).decode("ascii"),
            "brand_name": evidence.expected_brand,
            "check_in_date": evidence.expected_date.date().isoformat(),
        }
        try:
            factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout_seconds))
            async with factory() as client:
                response = await client.post(f"{self._base_url}/receipts/verify", json=payload)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ApiError("UPSTREAM_TIMEOUT", "Receipt provider timeout", 504) from exc
        except httpx.HTTPError as exc:
            raise ApiError("UPSTREAM_FAILURE", "Receipt provider failure", 502) from exc

        return _parse_result(response.json())


class CircuitBreakingReceiptEvaluator:
    def __init__(
        self,
        evaluator: ReceiptEvaluator,
        circuit_breaker: CircuitBreaker,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._evaluator = evaluator
        self._circuit_breaker = circuit_breaker
        self._clock = clock

    async def evaluate(self, evidence: ReceiptEvidence) -> ReceiptVerificationResult:
        return await self._circuit_breaker.call(
            lambda: self._evaluator.evaluate(evidence),
            now_seconds=self._clock(),
        )


def _parse_result(data: Any) -> ReceiptVerificationResult:
    if not isinstance(data, dict):
        raise ApiError("UPSTREAM_FAILURE", "Invalid receipt provider response", 502)
    score = data.get("score")
    flags = [data.get(name) for name in ("verified", "brand_matched", "date_valid")]
    if isinstance(score, bool) or not isinstance(score, int) or not all(isinstance(flag, bool) for flag in flags):
        raise ApiError("UPSTREAM_FAILURE", "Invalid receipt provider response", 502)
    if not 0 <= score <= RECEIPT_MAX_SCORE:
        raise ApiError("UPSTREAM_FAILURE", "Receipt score out of range", 502)
    extracted_text = data.get("extracted_text")
    if extracted_text is not None and not isinstance(extracted_text, str):
        extracted_text = None
    verified, brand_matched, date_valid = flags
    return ReceiptVerificationResult(
        verified=verified,
        score=score,
        brand_matched=brand_matched,
        date_valid=date_valid,
        extracted_text=extracted_text,
    )
