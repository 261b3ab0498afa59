"""ContactBook - ミラー・ディスパッチャ・同期エンジンをまとめたファサード"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from dunbar.domain.errors import SnapshotCorruptError
from dunbar.domain.intents import Intent
from dunbar.domain.models import ContactStats, MirrorState, Reminder
from dunbar.domain.ports import ConnectivityProbe, ContactStore, SnapshotStore
from dunbar.services.connectivity import ConnectivityMonitor
from dunbar.services.dispatcher import (
    DEFAULT_CONTACT_LIMIT,
    Clock,
    DispatchResult,
    IdFactory,
    MutationDispatcher,
    new_id,
    utc_now,
)
from dunbar.services.mirror import (
    Listener,
    MirrorStore,
    NoticeSet,
    OfflineModeSet,
    StateLoaded,
)
from dunbar.services.reminders import DEFAULT_THRESHOLD_DAYS, compute_stats, find_overdue
from dunbar.services.sync_engine import SyncEngine, SyncReport

logger = logging.getLogger(__name__)

SNAPSHOT_CORRUPT_NOTICE = "Saved contacts could not be read. Starting with an empty list."
UNREACHABLE_NOTICE = "Unable to connect to the server. Working in offline mode."
LOAD_FAILED_NOTICE = "Failed to load contacts from the server."


class ContactBook:
    """
    連絡先管理のエントリーポイント。

    start() でスナップショットを1度だけ読み込み、到達性を確認してから
    Intent を受け付ける。
    """

    def __init__(
        self,
        store: ContactStore,
        probe: ConnectivityProbe,
        snapshot_store: SnapshotStore | None = None,
        contact_limit: int = DEFAULT_CONTACT_LIMIT,
        reminder_threshold_days: int = DEFAULT_THRESHOLD_DAYS,
        clock: Clock = utc_now,
        id_factory: IdFactory = new_id,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._snapshot_store = snapshot_store
        self._probe = probe
        self._clock = clock
        self._reminder_threshold_days = reminder_threshold_days
        self._mirror = MirrorStore(snapshot_store)
        self._dispatcher = MutationDispatcher(
            self._mirror,
            store,
            contact_limit=contact_limit,
            clock=clock,
            id_factory=id_factory,
        )
        self._sync_engine = SyncEngine(self._mirror, store, probe, sleep=sleep)
        self._monitor = ConnectivityMonitor(self._mirror, probe)
        self._started = False

    @property
    def state(self) -> MirrorState:
        return self._mirror.state

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> MirrorState:
        """
        スナップショットを読み込み、到達性に応じてオンライン/オフラインを決める。

        2回目以降の呼び出しは何もしない。
        """
        if self._started:
            return self.state

        loaded = None
        notice = None
        if self._snapshot_store is not None:
            try:
                loaded = self._snapshot_store.load()
            except SnapshotCorruptError as e:
                logger.warning("Discarding unreadable snapshot: %s", e)
                notice = SNAPSHOT_CORRUPT_NOTICE
        self._started = True

        if loaded is not None:
            logger.info(
                "Loaded snapshot: %d contacts, %d pending changes",
                len(loaded.contacts),
                len(loaded.pending_changes),
            )
            self._mirror.commit(StateLoaded(loaded))
        if notice:
            self._mirror.commit(NoticeSet(notice))

        if not self._probe.check_availability():
            logger.warning("Record store unreachable at startup")
            self._mirror.commit(OfflineModeSet(True), NoticeSet(UNREACHABLE_NOTICE))
            return self.state

        state = self.state
        if state.offline_mode:
            self._monitor.check()
        elif not state.pending_changes and not state.unsynced_contacts:
            if not self._sync_engine.refresh():
                self._mirror.commit(NoticeSet(LOAD_FAILED_NOTICE))
        return self.state

    def dispatch(self, intent: Intent) -> DispatchResult:
        self._require_started()
        return self._dispatcher.dispatch(intent)

    def sync(self) -> SyncReport:
        self._require_started()
        return self._sync_engine.sync()

    def check_connectivity(self) -> bool:
        """到達性を確認する（オフライン中なら復旧を通知するだけ）"""
        self._require_started()
        return self._monitor.check()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._mirror.subscribe(listener)

    def reminders(self) -> list[Reminder]:
        return find_overdue(
            self.state.contacts, self._clock(), self._reminder_threshold_days
        )

    def stats(self) -> ContactStats:
        return compute_stats(
            self.state.contacts, self._clock(), self._reminder_threshold_days
        )

    def _require_started(self) -> None:
        if not self._started:
            raise RuntimeError("ContactBook.start() must be called first")
