"""Local Mirror Store - ローカルミラーの状態遷移

状態遷移は純粋関数 reduce(state, action) で表現し、
MirrorStore が現在の状態の保持・購読者への通知・スナップショットへの書き込みを担う。
ミラーを書き換えるのはこのモジュールのアクションだけ（単一の書き手）。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

from dunbar.domain.models import (
    ChangeType,
    Communication,
    Contact,
    MirrorState,
    PendingChange,
)
from dunbar.domain.ports import SnapshotStore

logger = logging.getLogger(__name__)

Listener = Callable[[MirrorState], None]

SAVE_FAILED_NOTICE = "Failed to save contacts."


# ── アクション ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ContactsReplaced:
    """サーバーから取得した一覧でミラーを置き換える"""

    contacts: tuple[Contact, ...]


@dataclass(frozen=True)
class ContactUpserted:
    """target_id の位置を置き換える。見つからなければ contact.id で探し、無ければ末尾に追加"""

    contact: Contact
    target_id: str | None = None


@dataclass(frozen=True)
class ContactRestored:
    """楽観的な削除を取り消して元の位置に戻す"""

    contact: Contact
    index: int


@dataclass(frozen=True)
class ContactTombstoned:
    contact_id: str


@dataclass(frozen=True)
class ContactRemoved:
    contact_id: str


@dataclass(frozen=True)
class CommunicationLogged:
    contact_id: str
    communication: Communication
    updated_at: str
    synced: bool


@dataclass(frozen=True)
class ContactSelected:
    contact_id: str | None


@dataclass(frozen=True)
class OfflineModeSet:
    offline: bool


@dataclass(frozen=True)
class PendingChangeQueued:
    change: PendingChange


@dataclass(frozen=True)
class PendingChangeCleared:
    contact_id: str


@dataclass(frozen=True)
class PendingChangesCleared:
    pass


@dataclass(frozen=True)
class SyncingSet:
    syncing: bool


@dataclass(frozen=True)
class LoadingSet:
    loading: bool


@dataclass(frozen=True)
class NoticeSet:
    message: str | None


@dataclass(frozen=True)
class StateLoaded:
    state: MirrorState


Action = (
    ContactsReplaced
    | ContactUpserted
    | ContactRestored
    | ContactTombstoned
    | ContactRemoved
    | CommunicationLogged
    | ContactSelected
    | OfflineModeSet
    | PendingChangeQueued
    | PendingChangeCleared
    | PendingChangesCleared
    | SyncingSet
    | LoadingSet
    | NoticeSet
    | StateLoaded
)


# ── 純粋な状態遷移 ─────────────────────────────────────────────────────────────


def reduce(state: MirrorState, action: Action) -> MirrorState:
    """アクションを適用した新しい状態を返す（state 自体は変更しない）"""
    if isinstance(action, ContactsReplaced):
        contacts = _dedupe(action.contacts)
        return replace(
            state,
            contacts=contacts,
            selected_contact_id=_keep_selection(state.selected_contact_id, contacts),
        )

    if isinstance(action, ContactUpserted):
        return replace(state, contacts=_upsert(state.contacts, action))

    if isinstance(action, ContactRestored):
        if state.index_of(action.contact.id) >= 0:
            return replace(
                state, contacts=_upsert(state.contacts, ContactUpserted(action.contact))
            )
        contacts = list(state.contacts)
        contacts.insert(min(max(action.index, 0), len(contacts)), action.contact)
        return replace(state, contacts=tuple(contacts))

    if isinstance(action, ContactTombstoned):
        contacts = tuple(
            replace(c, deleted=True, synced=False) if c.id == action.contact_id else c
            for c in state.contacts
        )
        return replace(
            state,
            contacts=contacts,
            selected_contact_id=_drop_selection(state.selected_contact_id, action.contact_id),
        )

    if isinstance(action, ContactRemoved):
        return replace(
            state,
            contacts=tuple(c for c in state.contacts if c.id != action.contact_id),
            selected_contact_id=_drop_selection(state.selected_contact_id, action.contact_id),
        )

    if isinstance(action, CommunicationLogged):
        contacts = tuple(
            replace(
                c,
                communications=(action.communication, *c.communications),
                last_contacted_at=action.communication.date,
                updated_at=action.updated_at,
                synced=action.synced,
            )
            if c.id == action.contact_id
            else c
            for c in state.contacts
        )
        return replace(state, contacts=contacts)

    if isinstance(action, ContactSelected):
        selected = action.contact_id
        if selected is not None and state.find(selected) is None:
            selected = None
        return replace(state, selected_contact_id=selected)

    if isinstance(action, OfflineModeSet):
        return replace(state, offline_mode=action.offline)

    if isinstance(action, PendingChangeQueued):
        return replace(
            state, pending_changes=coalesce(state.pending_changes, action.change)
        )

    if isinstance(action, PendingChangeCleared):
        return replace(
            state,
            pending_changes=tuple(
                ch for ch in state.pending_changes if ch.id != action.contact_id
            ),
        )

    if isinstance(action, PendingChangesCleared):
        return replace(state, pending_changes=())

    if isinstance(action, SyncingSet):
        return replace(state, syncing=action.syncing)

    if isinstance(action, LoadingSet):
        return replace(state, loading=action.loading)

    if isinstance(action, NoticeSet):
        return replace(state, error=action.message)

    if isinstance(action, StateLoaded):
        # 実行中フラグは復元しない
        contacts = _dedupe(action.state.contacts)
        return replace(
            action.state,
            contacts=contacts,
            selected_contact_id=_keep_selection(action.state.selected_contact_id, contacts),
            syncing=False,
            loading=False,
        )

    raise TypeError(f"Unknown action: {action!r}")


def coalesce(
    queue: tuple[PendingChange, ...], change: PendingChange
) -> tuple[PendingChange, ...]:
    """
    同一IDの変更を1件にまとめてキューに追加する。

    - create の後の update は create のまま新しいデータを持つ
    - create の後の delete は create を残す（未同期レコードの tombstone は同期時にローカルで破棄される）
    - それ以外は新しい変更で置き換える
    """
    existing = next((ch for ch in queue if ch.id == change.id), None)
    if existing is None:
        return (*queue, change)

    merged = change
    if existing.type is ChangeType.CREATE:
        if change.type is ChangeType.UPDATE:
            merged = replace(change, type=ChangeType.CREATE)
        elif change.type is ChangeType.DELETE:
            merged = existing

    return tuple(merged if ch.id == change.id else ch for ch in queue)


def _upsert(
    contacts: tuple[Contact, ...], action: ContactUpserted
) -> tuple[Contact, ...]:
    target = action.target_id or action.contact.id
    ids = [c.id for c in contacts]
    if target in ids:
        index = ids.index(target)
    elif action.contact.id in ids:
        index = ids.index(action.contact.id)
    else:
        return (*contacts, action.contact)

    result = []
    for i, contact in enumerate(contacts):
        if i == index:
            result.append(action.contact)
        elif contact.id != action.contact.id:
            result.append(contact)
    return tuple(result)


def _dedupe(contacts: tuple[Contact, ...]) -> tuple[Contact, ...]:
    """同一IDは後勝ちで、最初に現れた位置に置く"""
    latest = {c.id: c for c in contacts}
    seen: set[str] = set()
    result = []
    for contact in contacts:
        if contact.id not in seen:
            seen.add(contact.id)
            result.append(latest[contact.id])
    return tuple(result)


def _keep_selection(selected: str | None, contacts: tuple[Contact, ...]) -> str | None:
    if selected is None or any(c.id == selected for c in contacts):
        return selected
    return None


def _drop_selection(selected: str | None, contact_id: str) -> str | None:
    return None if selected == contact_id else selected


# ── 状態の保持 ─────────────────────────────────────────────────────────────────


class MirrorStore:
    """
    ローカルミラーの現在の状態を保持する。

    commit() でアクションを適用し、購読者に通知したうえでスナップショットに書き込む
    （write-through）。保存の失敗は例外にせず通知として状態に残す。
    """

    def __init__(
        self,
        snapshot_store: SnapshotStore | None = None,
        initial: MirrorState | None = None,
    ) -> None:
        """
        Args:
            snapshot_store: 永続スロット（None の場合は保存しない）
            initial: 初期状態
        """
        self._snapshot_store = snapshot_store
        self._state = initial or MirrorState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> MirrorState:
        return self._state

    def commit(self, *actions: Action) -> MirrorState:
        """アクションを順に適用し、1回だけ通知・保存する"""
        state = self._state
        for action in actions:
            logger.debug("Applying %s", type(action).__name__)
            state = reduce(state, action)
        self._state = state
        self._persist()
        self._notify()
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """状態変更の購読を登録し、解除用の関数を返す"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _persist(self) -> None:
        if self._snapshot_store is None:
            return
        try:
            self._snapshot_store.save(self._state)
        except Exception:
            logger.exception("Failed to save mirror snapshot")
            # 再保存はしない（次回の commit で通知ごと保存される）
            self._state = replace(self._state, error=SAVE_FAILED_NOTICE)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("Mirror listener failed")
