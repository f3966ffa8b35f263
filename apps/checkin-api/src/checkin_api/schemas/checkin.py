from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class CodeVerifyRequest(BaseModel):
    popup_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    code: str = Field(pattern=r"^[0-9]{6}$")


class CheckinRequest(BaseModel):
    popup_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    code: str | None = Field(default=None, pattern=r"^[0-9]{6}$")
    receipt_image_base64: str | None = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def _coordinates_come_in_pairs(self) -> CheckinRequest:
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        return self
