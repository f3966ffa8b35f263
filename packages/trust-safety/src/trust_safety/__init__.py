"""Check-in trust and verification package."""

from trust_safety.checkin_verification import (
    FACTORS,
    MAX_SCORES,
    PASS_THRESHOLD,
    CheckinVerifier,
    CodeEvidence,
    GpsEvidence,
    MethodState,
    MethodStatus,
    ReceiptData,
    ReceiptUnavailableError,
    SummaryBadge,
    VerificationMethod,
    VerificationOptions,
    VerificationResult,
    VerificationSummary,
    method_status,
    summarize,
)
from trust_safety.receipt import (
    OcrReceiptEvaluator,
    ReceiptEvaluator,
    ReceiptEvidence,
    ReceiptExtraction,
    ReceiptVerificationResult,
    judge_receipt_extraction,
)
from trust_safety.rotating_code import (
    CODE_LENGTH,
    CODE_WINDOW_SECONDS,
    CodeBundle,
    QrVerificationResult,
    generate_code,
    generate_code_bundle,
    verify_code,
    verify_issued_code,
    window_index,
)

__all__ = [
    "CODE_LENGTH",
    "CODE_WINDOW_SECONDS",
    "FACTORS",
    "MAX_SCORES",
    "PASS_THRESHOLD",
    "CheckinVerifier",
    "CodeBundle",
    "CodeEvidence",
    "GpsEvidence",
    "MethodState",
    "MethodStatus",
    "OcrReceiptEvaluator",
    "QrVerificationResult",
    "ReceiptData",
    "ReceiptEvaluator",
    "ReceiptEvidence",
    "ReceiptExtraction",
    "ReceiptUnavailableError",
    "ReceiptVerificationResult",
    "SummaryBadge",
    "VerificationMethod",
    "VerificationOptions",
    "VerificationResult",
    "VerificationSummary",
    "generate_code",
    "generate_code_bundle",
    "judge_receipt_extraction",
    "method_status",
    "summarize",
    "verify_code",
    "verify_issued_code",
    "window_index",
]
