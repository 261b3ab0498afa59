"""同期・状態 API ルート

POST   /api/sync              → 200 SyncReport
GET    /api/status            → 200 { offline_mode, syncing, pending_changes, ... }
DELETE /api/status/notice     → 204
GET    /api/connectivity      → 200 { available, offline_mode }
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from dunbar.domain.intents import DismissNotice
from dunbar.entrypoints.api.deps import get_contact_book, require_password
from dunbar.services.contact_book import ContactBook

logger = logging.getLogger(__name__)
router = APIRouter(tags=["sync"], dependencies=[Depends(require_password)])


class SyncItemErrorResponse(BaseModel):
    contact_id: str
    name: str
    error: str


class SyncResponse(BaseModel):
    started: bool
    reachable: bool
    succeeded: int
    failed: int
    errors: list[SyncItemErrorResponse]
    back_online: bool
    refreshed: bool
    message: str | None


class StatusResponse(BaseModel):
    offline_mode: bool
    syncing: bool
    loading: bool
    contacts: int
    unsynced: int
    pending_changes: int
    selected_contact_id: str | None
    notice: str | None


class ConnectivityResponse(BaseModel):
    available: bool
    offline_mode: bool
    notice: str | None


@router.post("/sync", response_model=SyncResponse)
async def sync(book: ContactBook = Depends(get_contact_book)) -> SyncResponse:
    """オフライン中の変更をアップロードする"""
    report = book.sync()
    logger.info(
        "Sync requested: started=%s succeeded=%d failed=%d",
        report.started,
        report.succeeded,
        report.failed,
    )
    return SyncResponse(
        started=report.started,
        reachable=report.reachable,
        succeeded=report.succeeded,
        failed=report.failed,
        errors=[
            SyncItemErrorResponse(contact_id=e.contact_id, name=e.name, error=e.error)
            for e in report.errors
        ],
        back_online=report.back_online,
        refreshed=report.refreshed,
        message=report.message,
    )


@router.get("/status", response_model=StatusResponse)
async def get_status(book: ContactBook = Depends(get_contact_book)) -> StatusResponse:
    """同期状態を返す"""
    state = book.state
    return StatusResponse(
        offline_mode=state.offline_mode,
        syncing=state.syncing,
        loading=state.loading,
        contacts=len(state.visible_contacts),
        unsynced=len(state.unsynced_contacts),
        pending_changes=len(state.pending_changes),
        selected_contact_id=state.selected_contact_id,
        notice=state.error,
    )


@router.delete("/status/notice", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_notice(book: ContactBook = Depends(get_contact_book)) -> None:
    """表示中の通知を閉じる"""
    book.dispatch(DismissNotice())


@router.get("/connectivity", response_model=ConnectivityResponse)
async def check_connectivity(
    book: ContactBook = Depends(get_contact_book),
) -> ConnectivityResponse:
    """レコードストアへの到達性を確認する（オンラインへの切り替えは sync で行う）"""
    available = book.check_connectivity()
    return ConnectivityResponse(
        available=available,
        offline_mode=book.state.offline_mode,
        notice=book.state.error,
    )
