from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from trust_safety.checkin_verification import ReceiptUnavailableError

from checkin_api.dependencies import get_checkin_service
from checkin_api.errors import ApiError
from checkin_api.response import success_response
from checkin_api.schemas.checkin import CheckinRequest, CodeVerifyRequest
from checkin_api.services.checkin_service import CheckinService

router = APIRouter(prefix="/v1/checkin", tags=["checkin"])


@router.get("/code")
async def issue_code(
    popup_id: str = Query(min_length=1),
    service: CheckinService = Depends(get_checkin_service),
) -> dict:
    item = await service.issue_code(popup_id)
    return success_response(item.model_dump(), meta={})


@router.post("/code/verify")
async def verify_code(
    body: CodeVerifyRequest,
    service: CheckinService = Depends(get_checkin_service),
) -> dict:
    item = await service.verify_code(body.popup_id, body.user_id, body.code)
    return success_response(item.model_dump(), meta={})


@router.post("")
async def check_in(
    body: CheckinRequest,
    service: CheckinService = Depends(get_checkin_service),
) -> dict:
    try:
        item = await service.check_in(
            popup_id=body.popup_id,
            user_id=body.user_id,
            latitude=body.latitude,
            longitude=body.longitude,
            code=body.code,
            receipt_image_base64=body.receipt_image_base64,
        )
    except ValueError as exc:
        raise ApiError("VALIDATION_ERROR", str(exc), 422) from exc
    except ReceiptUnavailableError as exc:
        raise ApiError("RECEIPT_UNAVAILABLE", "Receipt verification is unavailable, please retry", 503) from exc
    return success_response(item.model_dump(), meta={"threshold": item.threshold})
