from __future__ import annotations

import hashlib
import hmac
import time
from dataclasses import dataclass
from datetime import datetime, timezone

WINDOW_SECONDS = 30
CODE_WINDOW_SECONDS = WINDOW_SECONDS
CODE_LENGTH = 6
QR_MAX_SCORE = 40

# A code two windows old or more is past the grace period.
GRACE_WINDOWS = 1
# How far back verify_code searches to prove that a code has expired.
EXPIRED_LOOKBACK_WINDOWS = 4

_WINDOW_MS = WINDOW_SECONDS * 1000
_CODE_MODULUS = 10**CODE_LENGTH
_MASK_32 = 0xFFFFFFFF


@dataclass(frozen=True)
class QrVerificationResult:
    matched: bool
    score: int
    expired: bool
    remaining_seconds: int


@dataclass(frozen=True)
class CodeBundle:
    code: str
    valid_until_ms: int
    refresh_in_seconds: int

    @property
    def valid_until(self) -> datetime:
        return datetime.fromtimestamp(self.valid_until_ms / 1000, tz=timezone.utc)


def current_time_ms() -> int:
    return time.time_ns() // 1_000_000


def window_index(timestamp_ms: int) -> int:
    return timestamp_ms // _WINDOW_MS


def remaining_seconds(timestamp_ms: int) -> int:
    """Whole seconds until the window containing ``timestamp_ms`` rolls over, in (0, 30]."""
    elapsed_ms = timestamp_ms % _WINDOW_MS
    return -(-(_WINDOW_MS - elapsed_ms) // 1000)


def generate_code(location_id: str, timestamp_ms: int, secret: str | None = None) -> str:
    _validate_location_id(location_id)
    return _code_for_window(location_id, window_index(timestamp_ms), secret)


def verify_code(
    input_code: str,
    location_id: str,
    at_ms: int | None = None,
    secret: str | None = None,
) -> QrVerificationResult:
    _validate_code("input_code", input_code)
    _validate_location_id(location_id)
    if at_ms is None:
        at_ms = current_time_ms()
    window = window_index(at_ms)
    matched = any(
        hmac.compare_digest(input_code, _code_for_window(location_id, window - offset, secret))
        for offset in range(GRACE_WINDOWS + 1)
    )
    expired = not matched and any(
        hmac.compare_digest(input_code, _code_for_window(location_id, window - offset, secret))
        for offset in range(GRACE_WINDOWS + 1, GRACE_WINDOWS + 1 + EXPIRED_LOOKBACK_WINDOWS)
    )
    return QrVerificationResult(
        matched=matched,
        score=QR_MAX_SCORE if matched else 0,
        expired=expired,
        remaining_seconds=remaining_seconds(at_ms),
    )


def verify_issued_code(
    input_code: str,
    valid_code: str,
    generated_at_ms: int,
    now_ms: int | None = None,
) -> QrVerificationResult:
    """Check a submitted code against one the server issued at ``generated_at_ms``.

    The issued code is honoured for the current window plus one grace window,
    measured from its issuance time.
    """
    _validate_code("input_code", input_code)
    _validate_code("valid_code", valid_code)
    if now_ms is None:
        now_ms = current_time_ms()
    expired = now_ms - generated_at_ms > (GRACE_WINDOWS + 1) * _WINDOW_MS
    matched = hmac.compare_digest(input_code, valid_code) and not expired
    return QrVerificationResult(
        matched=matched,
        score=QR_MAX_SCORE if matched else 0,
        expired=expired,
        remaining_seconds=remaining_seconds(now_ms),
    )


def generate_code_bundle(
    location_id: str,
    at_ms: int | None = None,
    secret: str | None = None,
) -> CodeBundle:
    if at_ms is None:
        at_ms = current_time_ms()
    window = window_index(at_ms)
    return CodeBundle(
        code=generate_code(location_id, at_ms, secret),
        valid_until_ms=(window + 1) * _WINDOW_MS,
        refresh_in_seconds=remaining_seconds(at_ms),
    )


def _code_for_window(location_id: str, window: int, secret: str | None) -> str:
    if secret:
        value = _keyed_code_value(secret, location_id, window)
    else:
        value = _mixed_code_value(f"{location_id}-{window}")
    return str(value).zfill(CODE_LENGTH)


def _mixed_code_value(seed: str) -> int:
    # FNV-1a over UTF-16 code units, a MurmurHash2 style reverse pass, then the
    # murmur3 finalizer. All arithmetic is 32-bit.
    raw = seed.encode("utf-16-le")
    units = [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]

    value = 0x811C9DC5
    for unit in units:
        value ^= unit
        value = (value * 0x01000193) & _MASK_32

    for position in range(len(units) - 1, -1, -1):
        value ^= (units[position] << ((position % 4) * 8)) & _MASK_32
        value = (value * 0x5BD1E995) & _MASK_32

    value ^= value >> 16
    value = (value * 0x85EBCA6B) & _MASK_32
    value ^= value >> 13
    value = (value * 0xC2B2AE35) & _MASK_32
    value ^= value >> 16

    signed = value - (1 << 32) if value & 0x80000000 else value
    return abs(signed) % _CODE_MODULUS


def _keyed_code_value(secret: str, location_id: str, window: int) -> int:
    key = f"{secret}:{location_id}".encode("utf-8")
    counter = (window & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "big")
    digest = hmac.new(key, counter, hashlib.sha256).digest()
    offset = digest[-1] & 0x0F
    binary = int.from_bytes(digest[offset : offset + 4], "big") & 0x7FFFFFFF
    return binary % _CODE_MODULUS


def _validate_location_id(location_id: str) -> None:
    if not location_id or not location_id.strip():
        raise ValueError("location_id must not be empty")


def _validate_code(field: str, code: str) -> None:
    if len(code) != CODE_LENGTH or not code.isascii() or not code.isdigit():
        raise ValueError(f"{field} must be a {CODE_LENGTH}-digit numeric string")
