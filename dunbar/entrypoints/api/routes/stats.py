"""統計・リマインダー API ルート

GET /api/stats       → 200 { total, active, inactive, recently_contacted, never_contacted }
GET /api/reminders   → 200 [Reminder...]
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from dunbar.entrypoints.api.deps import get_contact_book, require_password
from dunbar.services.contact_book import ContactBook

router = APIRouter(tags=["stats"], dependencies=[Depends(require_password)])


class StatsResponse(BaseModel):
    total: int
    active: int
    inactive: int
    recently_contacted: int
    never_contacted: list[str]


class ReminderResponse(BaseModel):
    contact_id: str
    name: str
    days_since_contact: int | None
    message: str


@router.get("/stats", response_model=StatsResponse)
async def get_stats(book: ContactBook = Depends(get_contact_book)) -> StatsResponse:
    """ダッシュボード用の統計を返す"""
    stats = book.stats()
    return StatsResponse(
        total=stats.total,
        active=stats.active,
        inactive=stats.inactive,
        recently_contacted=stats.recently_contacted,
        never_contacted=stats.never_contacted,
    )


@router.get("/reminders", response_model=list[ReminderResponse])
async def get_reminders(
    book: ContactBook = Depends(get_contact_book),
) -> list[ReminderResponse]:
    """しばらく連絡していない連絡先を返す"""
    return [
        ReminderResponse(
            contact_id=r.contact_id,
            name=r.name,
            days_since_contact=r.days_since_contact,
            message=r.message,
        )
        for r in book.reminders()
    ]
