"""SyncEngine - 未同期レコードをレコードストアへ送り、ミラーを再同期する"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from dunbar.domain.errors import (
    ConnectivityError,
    DunbarError,
    NotFoundError,
)
from dunbar.domain.models import ChangeType, Contact
from dunbar.domain.ports import ConnectivityProbe, ContactStore
from dunbar.services.mirror import (
    ContactRemoved,
    ContactsReplaced,
    ContactUpserted,
    LoadingSet,
    MirrorStore,
    NoticeSet,
    OfflineModeSet,
    PendingChangeCleared,
    PendingChangesCleared,
    SyncingSet,
)

logger = logging.getLogger(__name__)

DELETE_MAX_ATTEMPTS = 3
DELETE_RETRY_DELAY_SECONDS = 1.0

SERVER_UNAVAILABLE_NOTICE = "Cannot sync: server is unavailable."
SYNC_FAILED_NOTICE = "Sync failed: no contacts were processed."
PARTIAL_SYNC_NOTICE = "Partial sync: {succeeded} succeeded, {failed} failed."
REFRESH_FAILED_NOTICE = "Sync succeeded but failed to refresh contacts."
SYNC_IN_PROGRESS = "Sync already in progress."


@dataclass
class SyncItemError:
    """同期に失敗したレコード"""

    contact_id: str
    name: str
    error: str


@dataclass
class SyncReport:
    """同期結果サマリー"""

    started: bool = True
    reachable: bool = True
    succeeded: int = 0
    failed: int = 0
    errors: list[SyncItemError] = field(default_factory=list)
    back_online: bool = False
    refreshed: bool = False
    message: str | None = None


class SyncEngine:
    """
    未同期レコードを1件ずつ順番にレコードストアへ反映する。

    - tombstone: 一度も同期していなければローカルで破棄、それ以外はリモート削除
      （接続エラーのみ最大3回まで再試行）
    - それ以外: 未同期の create があれば作成、なければ更新（再試行なし）
    全件成功した場合だけオンラインに戻り、一覧を取り直す。
    """

    def __init__(
        self,
        mirror: MirrorStore,
        store: ContactStore,
        probe: ConnectivityProbe,
        max_delete_attempts: int = DELETE_MAX_ATTEMPTS,
        retry_delay: float = DELETE_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._mirror = mirror
        self._store = store
        self._probe = probe
        self._max_delete_attempts = max_delete_attempts
        self._retry_delay = retry_delay
        self._sleep = sleep

    def sync(self) -> SyncReport:
        """
        未同期レコードを同期する。

        Returns:
            SyncReport: 成功・失敗件数とレコードごとのエラー
        """
        state = self._mirror.state
        if state.syncing:
            logger.info("Sync requested while another sync is running")
            return SyncReport(started=False, message=SYNC_IN_PROGRESS)

        reachable = self._probe.check_availability()
        if not reachable and not state.offline_mode:
            logger.warning("Sync aborted: record store unreachable")
            self._mirror.commit(NoticeSet(SERVER_UNAVAILABLE_NOTICE))
            return SyncReport(
                started=False, reachable=False, message=SERVER_UNAVAILABLE_NOTICE
            )

        self._mirror.commit(SyncingSet(True))
        try:
            return self._run(reachable)
        finally:
            self._mirror.commit(SyncingSet(False))

    def refresh(self) -> bool:
        """
        レコードストアの一覧でミラーを置き換える。

        Returns:
            bool: 取得できた場合 True（失敗時はミラーを変更しない）
        """
        self._mirror.commit(LoadingSet(True))
        try:
            contacts = self._store.list_contacts()
        except DunbarError as e:
            logger.warning("Failed to fetch contacts: %s", e)
            return False
        finally:
            self._mirror.commit(LoadingSet(False))

        self._mirror.commit(
            ContactsReplaced(tuple(replace(c, synced=True, deleted=False) for c in contacts))
        )
        logger.info("Fetched %d contacts", len(contacts))
        return True

    def _run(self, reachable: bool) -> SyncReport:
        report = SyncReport(reachable=reachable)
        items = self._mirror.state.unsynced_contacts
        logger.info("Syncing %d unsynced contacts (reachable=%s)", len(items), reachable)

        for contact in items:
            try:
                self._sync_one(contact, reachable)
            except DunbarError as e:
                logger.warning("Failed to sync contact %s: %s", contact.id, e)
                report.failed += 1
                report.errors.append(SyncItemError(contact.id, contact.name, str(e)))
            else:
                report.succeeded += 1

        if report.failed == 0 and reachable:
            self._mirror.commit(
                OfflineModeSet(False), PendingChangesCleared(), NoticeSet(None)
            )
            report.back_online = True
            report.refreshed = self.refresh()
            if not report.refreshed:
                report.message = REFRESH_FAILED_NOTICE
        elif report.failed == 0:
            # ローカルでの破棄だけが行われた
            report.message = SERVER_UNAVAILABLE_NOTICE
        elif report.succeeded > 0:
            report.message = PARTIAL_SYNC_NOTICE.format(
                succeeded=report.succeeded, failed=report.failed
            )
        else:
            report.message = SYNC_FAILED_NOTICE

        if report.message:
            self._mirror.commit(NoticeSet(report.message))
        logger.info(
            "Sync finished: %d succeeded, %d failed", report.succeeded, report.failed
        )
        return report

    def _sync_one(self, contact: Contact, reachable: bool) -> None:
        """1件を同期する。失敗時は DunbarError を送出し、レコードは未同期のまま残る"""
        pending = self._mirror.state.pending_for(contact.id)
        never_synced = pending is not None and pending.type is ChangeType.CREATE

        if contact.deleted and never_synced:
            self._mirror.commit(ContactRemoved(contact.id), PendingChangeCleared(contact.id))
            logger.info("Forgot never-synced tombstone %s", contact.id)
            return

        if not reachable:
            raise ConnectivityError("Record store is unreachable; change deferred")

        if contact.deleted:
            self._delete_with_retry(contact.id)
            self._mirror.commit(ContactRemoved(contact.id), PendingChangeCleared(contact.id))
            return

        if never_synced:
            saved = self._store.create_contact(contact)
        else:
            saved = self._store.update_contact(contact.id, contact)
        self._mirror.commit(
            ContactUpserted(replace(saved, synced=True), target_id=contact.id),
            PendingChangeCleared(contact.id),
        )

    def _delete_with_retry(self, contact_id: str) -> None:
        """接続エラーのみ再試行する。存在しない場合は成功扱い"""
        for attempt in range(1, self._max_delete_attempts + 1):
            try:
                if not self._store.delete_contact(contact_id):
                    logger.info("Contact %s was already gone from the store", contact_id)
                return
            except NotFoundError:
                logger.info("Contact %s was already gone from the store", contact_id)
                return
            except ConnectivityError as e:
                logger.warning(
                    "Delete of %s failed (attempt %d/%d): %s",
                    contact_id,
                    attempt,
                    self._max_delete_attempts,
                    e,
                )
                if attempt == self._max_delete_attempts:
                    raise
                self._sleep(self._retry_delay)
