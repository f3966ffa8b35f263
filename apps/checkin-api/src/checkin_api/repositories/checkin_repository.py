from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

# Stored coordinates keep four decimals, roughly 11 m.
STORED_COORDINATE_DECIMALS = 4


@dataclass(frozen=True)
class CheckinRecord:
    id: str
    popup_id: str
    user_id: str
    gps_score: int
    qr_score: int
    receipt_score: int
    total_score: int
    passed: bool
    verified_at: datetime
    user_latitude: float | None = None
    user_longitude: float | None = None


def reduce_precision(value: float | None) -> float | None:
    if value is None:
        return None
    return round(value, STORED_COORDINATE_DECIMALS)


class CheckinRepository:
    """Keeps one check-in per (popup, user); a later save replaces an earlier one."""

    def __init__(self) -> None:
        self._items: dict[tuple[str, str], CheckinRecord] = {}

    async def find(self, popup_id: str, user_id: str) -> CheckinRecord | None:
        return self._items.get((popup_id, user_id))

    async def save(
        self,
        *,
        popup_id: str,
        user_id: str,
        gps_score: int,
        qr_score: int,
        receipt_score: int,
        total_score: int,
        passed: bool,
        verified_at: datetime,
        user_latitude: float | None = None,
        user_longitude: float | None = None,
    ) -> CheckinRecord:
        existing = self._items.get((popup_id, user_id))
        record = CheckinRecord(
            id=existing.id if existing else f"chk-{uuid4().hex[:12]}",
            popup_id=popup_id,
            user_id=user_id,
            gps_score=gps_score,
            qr_score=qr_score,
            receipt_score=receipt_score,
            total_score=total_score,
            passed=passed,
            verified_at=verified_at,
            user_latitude=reduce_precision(user_latitude),
            user_longitude=reduce_precision(user_longitude),
        )
        self._items[(popup_id, user_id)] = record
        return record
