"""共通テストフィクスチャ

全テストから利用可能なモックオブジェクト・フェイク・サンプルデータを提供。

モックの作成:
- MagicMock(spec=ABC) でABCのメソッドシグネチャを保持
- レコードストアは状態を持つフェイク（FakeContactStore）で置き換える
"""

from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from dunbar.domain.errors import ConnectivityError, NotFoundError
from dunbar.domain.models import (
    Address,
    Communication,
    CommunicationType,
    Contact,
    ContactCategory,
    ContactStatus,
    MirrorState,
)
from dunbar.domain.ports import (
    ConnectivityProbe,
    ContactStore,
    Notifier,
    SnapshotStore,
)

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
NOW_ISO = "2026-10-19T12:00:00.000Z"


# ========== フェイク ==========


class FakeContactStore(ContactStore):
    """
    メモリ上のレコードストア。

    - offline = True の間は全操作が ConnectivityError
    - fail_next[op] に積んだ例外は、その操作の次の呼び出しで1つずつ送出される
    - fail_ids[id] に設定した例外は、その連絡先への書き込みで毎回送出される
    """

    def __init__(self, contacts=()):
        self.contacts: dict[str, Contact] = {c.id: self._stored(c) for c in contacts}
        self.calls: list[tuple[str, str]] = []
        self.offline = False
        self.fail_next: dict[str, list[Exception]] = {}
        self.fail_ids: dict[str, Exception] = {}

    @staticmethod
    def _stored(contact: Contact) -> Contact:
        return replace(contact, synced=True, deleted=False)

    def _enter(self, op: str, contact_id: str = "") -> None:
        self.calls.append((op, contact_id))
        if self.offline:
            raise ConnectivityError(f"{op}: offline")
        queued = self.fail_next.get(op)
        if queued:
            raise queued.pop(0)
        if contact_id in self.fail_ids and op != "get_contact":
            raise self.fail_ids[contact_id]

    def ops(self, op: str) -> list[str]:
        """指定した操作が呼ばれた連絡先IDの一覧"""
        return [cid for name, cid in self.calls if name == op]

    def list_contacts(self) -> list[Contact]:
        self._enter("list_contacts")
        return list(self.contacts.values())

    def get_contact(self, contact_id: str) -> Contact | None:
        self._enter("get_contact", contact_id)
        return self.contacts.get(contact_id)

    def create_contact(self, contact: Contact) -> Contact:
        self._enter("create_contact", contact.id)
        self.contacts[contact.id] = self._stored(contact)
        return self.contacts[contact.id]

    def update_contact(self, contact_id: str, contact: Contact) -> Contact:
        self._enter("update_contact", contact_id)
        if contact_id not in self.contacts:
            raise NotFoundError(f"Contact not found: {contact_id}")
        self.contacts[contact_id] = self._stored(contact)
        return self.contacts[contact_id]

    def delete_contact(self, contact_id: str) -> bool:
        self._enter("delete_contact", contact_id)
        return self.contacts.pop(contact_id, None) is not None

    def add_communication(self, contact_id: str, communication: Communication) -> Communication:
        self._enter("add_communication", contact_id)
        if contact_id not in self.contacts:
            raise NotFoundError(f"Contact not found: {contact_id}")
        current = self.contacts[contact_id]
        self.contacts[contact_id] = replace(
            current,
            communications=(communication, *current.communications),
            last_contacted_at=communication.date,
        )
        return communication


class InMemorySnapshotStore(SnapshotStore):
    """保存された状態をメモリに持つスナップショット"""

    def __init__(self, state: MirrorState | None = None):
        self.state = state
        self.saves = 0
        self.fail = False
        self.load_error: Exception | None = None

    def load(self) -> MirrorState | None:
        if self.load_error is not None:
            raise self.load_error
        return self.state

    def save(self, state: MirrorState) -> None:
        if self.fail:
            raise OSError("disk full")
        self.saves += 1
        self.state = state


# ========== サンプルデータ ==========


def _make_contact(contact_id: str = "c1", name: str = "Jane Doe", **kwargs) -> Contact:
    values = {
        "created_at": "2026-01-01T00:00:00.000Z",
        "updated_at": "2026-01-01T00:00:00.000Z",
        "role": "Engineer",
        "status": ContactStatus.ACTIVE,
        "category": ContactCategory.CLIENT,
        "phone_number": "5551234567",
        "email": f"{contact_id}@example.com",
    }
    values.update(kwargs)
    return Contact(id=contact_id, name=name, **values)


@pytest.fixture
def make_contact():
    """Contact を作るファクトリ（キーワード引数で上書き可能）"""
    return _make_contact


@pytest.fixture
def sample_contact() -> Contact:
    """サンプル連絡先: 連絡履歴あり"""
    return _make_contact(
        "c1",
        "Jane Doe",
        address=Address(street="1 Main St", city="Springfield"),
        last_contacted_at="2026-10-01T09:00:00.000Z",
        communications=(
            Communication(
                id="m1",
                types=frozenset({CommunicationType.CALL}),
                notes="Quarterly check-in",
                date="2026-10-01T09:00:00.000Z",
            ),
        ),
    )


@pytest.fixture
def sample_contact_bob() -> Contact:
    """サンプル連絡先: 一度も連絡していない"""
    return _make_contact("c2", "Bob Smith", category=ContactCategory.RECRUITER)


@pytest.fixture
def fake_store(sample_contact, sample_contact_bob) -> FakeContactStore:
    """2件登録済みのレコードストア"""
    return FakeContactStore([sample_contact, sample_contact_bob])


@pytest.fixture
def snapshot_store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def clock():
    """固定時刻を返す時計"""
    return lambda: NOW


@pytest.fixture
def id_factory():
    """"new-1", "new-2", ... を順に返すIDファクトリ"""
    counter = itertools.count(1)
    return lambda: f"new-{next(counter)}"


@pytest.fixture
def no_sleep() -> MagicMock:
    """sleep の代わりに呼び出しだけを記録する"""
    return MagicMock()


# ========== モックフィクスチャ ==========


@pytest.fixture
def mock_probe() -> MagicMock:
    """ConnectivityProbe のモック（到達可能）"""
    mock = MagicMock(spec=ConnectivityProbe)
    mock.check_availability.return_value = True
    return mock


@pytest.fixture
def mock_notifier() -> MagicMock:
    """Notifier のモック"""
    return MagicMock(spec=Notifier)
