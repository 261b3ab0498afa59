"""MutationDispatcher - ユーザー操作（Intent）をミラーとレコードストアへ振り分ける"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from dunbar.domain.contacts import apply_changes, build_contact
from dunbar.domain.errors import (
    ConnectivityError,
    ContactLimitError,
    NotFoundError,
    ValidationError,
)
from dunbar.domain.formatting import parse_timestamp, to_iso
from dunbar.domain.intents import (
    CreateContact,
    DeleteContact,
    DismissNotice,
    Intent,
    LogCommunication,
    MarkContacted,
    SelectContact,
    UpdateContact,
)
from dunbar.domain.models import (
    ChangeType,
    Communication,
    Contact,
    PendingChange,
)
from dunbar.domain.parsing import Fallback, parse_communication_types
from dunbar.domain.ports import ContactStore
from dunbar.services.mirror import (
    CommunicationLogged,
    ContactRemoved,
    ContactRestored,
    ContactSelected,
    ContactTombstoned,
    ContactUpserted,
    MirrorStore,
    NoticeSet,
    OfflineModeSet,
    PendingChangeCleared,
    PendingChangeQueued,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTACT_LIMIT = 150
NETWORK_LOST_NOTICE = "Network connection lost. Working in offline mode."
CONTACT_LIMIT_NOTICE = (
    "You've reached the maximum of {limit} contacts (Dunbar's number). "
    "Please archive some contacts first."
)

Clock = Callable[[], datetime]
IdFactory = Callable[[], str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class DispatchResult:
    """Intent の処理結果"""

    ok: bool = True
    contact_id: str | None = None
    queued: bool = False  # オフラインキューに積まれた
    went_offline: bool = False  # この操作でオフラインに切り替わった
    error: str | None = None
    error_kind: str | None = None  # "validation" | "not_found" | "limit"


class MutationDispatcher:
    """
    Intent をローカルミラーに適用し、オンラインならレコードストアにも反映する。

    - 楽観的にローカルを先に更新する
    - 接続エラーはオフラインに切り替えて変更をキューする
    - 入力エラー・存在しないIDは楽観的な変更を取り消して通知する
    ドメインエラーは送出せず DispatchResult で返す。
    """

    def __init__(
        self,
        mirror: MirrorStore,
        store: ContactStore,
        contact_limit: int = DEFAULT_CONTACT_LIMIT,
        clock: Clock = utc_now,
        id_factory: IdFactory = new_id,
    ) -> None:
        self._mirror = mirror
        self._store = store
        self._contact_limit = contact_limit
        self._clock = clock
        self._id_factory = id_factory
        self._handlers: dict[type, Callable[..., DispatchResult]] = {
            CreateContact: self._create,
            UpdateContact: self._update,
            DeleteContact: self._delete,
            LogCommunication: self._log_communication,
            MarkContacted: self._mark_contacted,
            SelectContact: self._select,
            DismissNotice: self._dismiss,
        }

    def dispatch(self, intent: Intent) -> DispatchResult:
        """
        Intent を処理する。

        Returns:
            DispatchResult: 失敗時は ok=False と error_kind を持つ（通知も設定済み）
        """
        handler = self._handlers.get(type(intent))
        if handler is None:
            raise TypeError(f"Unknown intent: {intent!r}")

        logger.debug("Dispatching %s", type(intent).__name__)
        try:
            return handler(intent)
        except ContactLimitError as e:
            return self._fail(e, "limit")
        except ValidationError as e:
            return self._fail(e, "validation")
        except NotFoundError as e:
            return self._fail(e, "not_found")

    # ── Handlers ─────────────────────────────────────────────────────────────

    def _create(self, intent: CreateContact) -> DispatchResult:
        state = self._mirror.state
        if len(state.visible_contacts) >= self._contact_limit:
            raise ContactLimitError(
                CONTACT_LIMIT_NOTICE.format(limit=self._contact_limit)
            )

        now = self._clock()
        contact = build_contact(self._id_factory(), intent.values, to_iso(now), now.date())
        self._check_not_future(contact.last_contacted_at, now, "Last contacted date")

        offline = state.offline_mode
        contact = replace(contact, synced=not offline)
        self._mirror.commit(ContactUpserted(contact))
        logger.info("Created contact %s (offline=%s)", contact.id, offline)

        if offline:
            self._mirror.commit(self._queue(ChangeType.CREATE, contact, now))
            return DispatchResult(contact_id=contact.id, queued=True)

        try:
            saved = self._store.create_contact(contact)
        except ConnectivityError as e:
            return self._go_offline(contact, ChangeType.CREATE, now, e)
        except (ValidationError, NotFoundError):
            self._mirror.commit(ContactRemoved(contact.id))
            raise

        self._mirror.commit(
            ContactUpserted(replace(saved, synced=True), target_id=contact.id)
        )
        return DispatchResult(contact_id=saved.id)

    def _update(self, intent: UpdateContact) -> DispatchResult:
        existing = self._require_contact(intent.contact_id)
        now = self._clock()
        updated = apply_changes(existing, intent.changes, to_iso(now), now.date())
        if "last_contacted_at" in intent.changes:
            self._check_not_future(updated.last_contacted_at, now, "Last contacted date")
        return self._save_existing(existing, updated, now)

    def _mark_contacted(self, intent: MarkContacted) -> DispatchResult:
        existing = self._require_contact(intent.contact_id)
        now = self._clock()
        at = self._normalize_date(intent.at, now, "Last contacted date")
        updated = apply_changes(
            existing, {"last_contacted_at": at}, to_iso(now), now.date()
        )
        return self._save_existing(existing, updated, now)

    def _delete(self, intent: DeleteContact) -> DispatchResult:
        state = self._mirror.state
        existing = self._require_contact(intent.contact_id)
        pending = state.pending_for(existing.id)

        # 一度も同期していないレコードはローカルで忘れるだけ
        if pending is not None and pending.type is ChangeType.CREATE:
            self._mirror.commit(
                ContactRemoved(existing.id), PendingChangeCleared(existing.id)
            )
            logger.info("Forgot never-synced contact %s", existing.id)
            return DispatchResult(contact_id=existing.id)

        now = self._clock()
        if state.offline_mode:
            self._mirror.commit(
                ContactTombstoned(existing.id),
                self._queue(ChangeType.DELETE, None, now, existing.id),
            )
            logger.info("Tombstoned contact %s", existing.id)
            return DispatchResult(contact_id=existing.id, queued=True)

        index = state.index_of(existing.id)
        self._mirror.commit(ContactRemoved(existing.id))
        try:
            found = self._store.delete_contact(existing.id)
        except NotFoundError:
            found = False
        except ConnectivityError as e:
            logger.warning("Delete of %s failed, going offline: %s", existing.id, e)
            tombstone = replace(existing, deleted=True, synced=False)
            self._mirror.commit(
                OfflineModeSet(True),
                ContactRestored(tombstone, index),
                self._queue(ChangeType.DELETE, None, now, existing.id),
                NoticeSet(NETWORK_LOST_NOTICE),
            )
            return DispatchResult(contact_id=existing.id, queued=True, went_offline=True)
        except ValidationError:
            self._mirror.commit(ContactRestored(existing, index))
            raise

        if not found:
            logger.info("Contact %s was already gone from the store", existing.id)
        self._mirror.commit(PendingChangeCleared(existing.id))
        return DispatchResult(contact_id=existing.id)

    def _log_communication(self, intent: LogCommunication) -> DispatchResult:
        existing = self._require_contact(intent.contact_id)
        parsed = parse_communication_types(intent.types)
        if isinstance(parsed, Fallback):
            if not parsed.value:
                raise ValidationError("At least one communication type is required")
            raise ValidationError(f"Invalid communication types: {parsed.raw!r}")

        now = self._clock()
        communication = Communication(
            id=self._id_factory(),
            types=parsed.value,
            notes=(intent.notes or "").strip(),
            date=self._normalize_date(intent.date, now, "Communication date"),
        )

        offline = self._mirror.state.offline_mode
        state = self._mirror.commit(
            CommunicationLogged(existing.id, communication, to_iso(now), synced=not offline)
        )
        logged = state.find(existing.id)
        logger.info("Logged communication %s for %s", communication.id, existing.id)

        if offline:
            self._mirror.commit(self._queue(ChangeType.UPDATE, logged, now))
            return DispatchResult(contact_id=existing.id, queued=True)

        try:
            self._store.add_communication(existing.id, communication)
            fresh = self._store.get_contact(existing.id)
        except ConnectivityError as e:
            return self._go_offline(logged, ChangeType.UPDATE, now, e)
        except (ValidationError, NotFoundError):
            self._mirror.commit(ContactUpserted(existing))
            raise

        merged = fresh if fresh is not None else logged
        self._mirror.commit(ContactUpserted(replace(merged, synced=True)))
        return DispatchResult(contact_id=existing.id)

    def _select(self, intent: SelectContact) -> DispatchResult:
        if intent.contact_id is not None:
            self._require_contact(intent.contact_id)
        self._mirror.commit(ContactSelected(intent.contact_id))
        return DispatchResult(contact_id=intent.contact_id)

    def _dismiss(self, intent: DismissNotice) -> DispatchResult:
        self._mirror.commit(NoticeSet(None))
        return DispatchResult()

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _save_existing(
        self, existing: Contact, updated: Contact, now: datetime
    ) -> DispatchResult:
        """変更済みの連絡先をミラーに反映し、オンラインならストアに書き込む"""
        state = self._mirror.state
        offline = state.offline_mode
        updated = replace(updated, synced=not offline)
        self._mirror.commit(ContactUpserted(updated))

        if offline:
            self._mirror.commit(self._queue(ChangeType.UPDATE, updated, now))
            return DispatchResult(contact_id=updated.id, queued=True)

        pending = state.pending_for(updated.id)
        try:
            if pending is not None and pending.type is ChangeType.CREATE:
                saved = self._store.create_contact(updated)
            else:
                saved = self._store.update_contact(updated.id, updated)
        except ConnectivityError as e:
            return self._go_offline(updated, ChangeType.UPDATE, now, e)
        except (ValidationError, NotFoundError):
            self._mirror.commit(ContactUpserted(existing))
            raise

        self._mirror.commit(
            ContactUpserted(replace(saved, synced=True), target_id=updated.id),
            PendingChangeCleared(updated.id),
        )
        return DispatchResult(contact_id=saved.id)

    def _go_offline(
        self,
        contact: Contact,
        change_type: ChangeType,
        now: datetime,
        error: ConnectivityError,
    ) -> DispatchResult:
        logger.warning(
            "Remote %s of %s failed, going offline: %s",
            change_type.value,
            contact.id,
            error,
        )
        unsynced = replace(contact, synced=False)
        self._mirror.commit(
            OfflineModeSet(True),
            ContactUpserted(unsynced),
            self._queue(change_type, unsynced, now),
            NoticeSet(NETWORK_LOST_NOTICE),
        )
        return DispatchResult(contact_id=contact.id, queued=True, went_offline=True)

    def _queue(
        self,
        change_type: ChangeType,
        contact: Contact | None,
        now: datetime,
        contact_id: str | None = None,
    ) -> PendingChangeQueued:
        return PendingChangeQueued(
            PendingChange(
                type=change_type,
                id=contact_id or contact.id,
                timestamp=int(now.timestamp() * 1000),
                data=contact,
            )
        )

    def _require_contact(self, contact_id: str) -> Contact:
        contact = self._mirror.state.find(contact_id)
        if contact is None or contact.deleted:
            raise NotFoundError(f"Contact not found: {contact_id}")
        return contact

    @staticmethod
    def _normalize_date(value: str | None, now: datetime, label: str) -> str:
        if not value:
            return to_iso(now)
        moment = parse_timestamp(value)
        if moment > now:
            raise ValidationError(f"{label} cannot be in the future")
        return to_iso(moment)

    @staticmethod
    def _check_not_future(value: str | None, now: datetime, label: str) -> None:
        if value and parse_timestamp(value) > now:
            raise ValidationError(f"{label} cannot be in the future")

    def _fail(self, error: Exception, kind: str) -> DispatchResult:
        message = str(error)
        logger.info("Intent rejected (%s): %s", kind, message)
        self._mirror.commit(NoticeSet(message))
        return DispatchResult(ok=False, error=message, error_kind=kind)
