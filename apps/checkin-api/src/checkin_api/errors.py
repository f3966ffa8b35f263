from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ApiError(Exception):
    code: str
    message: str
    status_code: int
    details: dict[str, Any] = field(default_factory=dict)


def popup_not_found(popup_id: str) -> ApiError:
    return ApiError("POPUP_NOT_FOUND", f"Popup {popup_id} not found", 404)
