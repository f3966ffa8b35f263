from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from geo_engine.models import Coordinates


class PopupStatus(StrEnum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Check-in opens once a popup is confirmed and stays open after it completes.
CHECKIN_OPEN_STATUSES = frozenset({PopupStatus.CONFIRMED, PopupStatus.COMPLETED})


@dataclass(frozen=True)
class PopupEntity:
    id: str
    title: str
    brand_name: str
    status: PopupStatus
    location: Coordinates | None

    @property
    def accepts_checkins(self) -> bool:
        return self.status in CHECKIN_OPEN_STATUSES


class PopupRepository:
    def __init__(self, items: list[PopupEntity] | None = None) -> None:
        if items is None:
            items = [
                PopupEntity(
                    id="popup-seongsu-1",
                    title="Seongsu Flagship Popup",
                    brand_name="Gentle Monster",
                    status=PopupStatus.CONFIRMED,
                    location=Coordinates(latitude=37.5445, longitude=127.0557),
                ),
                PopupEntity(
                    id="popup-hannam-2",
                    title="Hannam Tasting Room",
                    brand_name="Tamburins",
                    status=PopupStatus.COMPLETED,
                    location=Coordinates(latitude=37.5344, longitude=127.0008),
                ),
                PopupEntity(
                    id="popup-online-3",
                    title="Online Launch Week",
                    brand_name="Nudake",
                    status=PopupStatus.CONFIRMED,
                    location=None,
                ),
                PopupEntity(
                    id="popup-draft-4",
                    title="Yeonnam Pop Market",
                    brand_name="Osulloc",
                    status=PopupStatus.DRAFT,
                    location=Coordinates(latitude=37.5609, longitude=126.9236),
                ),
            ]
        self._items = {item.id: item for item in items}

    async def get(self, popup_id: str) -> PopupEntity | None:
        return self._items.get(popup_id)
