"""ドメインモデル - 外部依存なしのデータ構造"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ContactStatus(Enum):
    """連絡先のステータス"""

    ACTIVE = "Active"
    INACTIVE = "Inactive"
    PENDING = "Pending"
    BLOCKED = "Blocked"


class ContactCategory(Enum):
    """連絡先のカテゴリ（未知の値は Client にフォールバック）"""

    KITCHEN_TABLE = "Kitchen Table"
    INSIDE_HOUSE = "Inside House"
    OUTSIDE_HOUSE = "Outside House"
    RECRUITER = "Recruiter"
    CLIENT = "Client"
    EMPLOYER = "Employer"
    BILLS = "Bills"
    HEALTH = "Health"
    WOMAN = "Woman"


class CommunicationType(Enum):
    """コミュニケーション手段"""

    CALL = "Call"
    VIDEO = "Video"
    IN_PERSON = "In-Person"
    EMAIL = "Email"


class MaritalStatus(Enum):
    """婚姻状況（カテゴリが Woman の場合のみ意味を持つ）"""

    SINGLE = "Single"
    DIVORCED = "Divorced"
    SEPARATED = "Separated"
    WIDOW = "Widow"


class ChangeType(Enum):
    """オフライン中にキューされた変更の種類"""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Address:
    """住所（レコードストアには1つの表示文字列として保存される）"""

    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


@dataclass(frozen=True)
class Communication:
    """コミュニケーション記録（作成後は不変）"""

    id: str
    types: frozenset[CommunicationType]  # 空集合は不可
    notes: str
    date: str  # ISO8601: "2024-01-05T00:00:00Z"


@dataclass(frozen=True)
class Contact:
    """連絡先"""

    id: str  # クライアント側で採番する UUID
    name: str
    created_at: str  # ISO8601、作成後は不変
    updated_at: str  # ISO8601、変更のたびに更新
    role: str = ""
    status: ContactStatus = ContactStatus.ACTIVE
    category: ContactCategory = ContactCategory.CLIENT
    description: str = ""
    picture: str | None = None  # 画像URI
    birthday: str | None = None  # "1990-04-25" or 年を隠した "--04-25"
    age: int | None = None
    has_kids: bool = False
    number_of_kids: int = 0
    marital_status: MaritalStatus | None = None
    additional_details: str = ""
    phone_number: str = ""  # 数字のみ
    email: str = ""
    address: Address = field(default_factory=Address)
    last_contacted_at: str | None = None
    communications: tuple[Communication, ...] = ()  # 新しい順
    # 同期管理用（レコードストアには書き込まない）
    synced: bool = True
    deleted: bool = False


# UpdateContact / CreateContact で変更可能なフィールド
EDITABLE_FIELDS = frozenset(
    {
        "name",
        "role",
        "status",
        "category",
        "description",
        "picture",
        "birthday",
        "age",
        "has_kids",
        "number_of_kids",
        "marital_status",
        "additional_details",
        "phone_number",
        "email",
        "address",
        "last_contacted_at",
    }
)


@dataclass(frozen=True)
class PendingChange:
    """オフライン中にキューされた変更（同一IDにつき最大1件）"""

    type: ChangeType
    id: str  # 対象の連絡先ID
    timestamp: int  # キュー投入時刻（epoch ミリ秒）
    data: Contact | None = None  # create/update 時の連絡先スナップショット


@dataclass(frozen=True)
class MirrorState:
    """ローカルミラーの状態"""

    contacts: tuple[Contact, ...] = ()  # 挿入順、暗黙のソートなし
    selected_contact_id: str | None = None
    pending_changes: tuple[PendingChange, ...] = ()
    offline_mode: bool = False
    syncing: bool = False
    loading: bool = False
    error: str | None = None  # ユーザーに表示する通知（閉じられる）

    def find(self, contact_id: str) -> Contact | None:
        for contact in self.contacts:
            if contact.id == contact_id:
                return contact
        return None

    def index_of(self, contact_id: str) -> int:
        for i, contact in enumerate(self.contacts):
            if contact.id == contact_id:
                return i
        return -1

    def pending_for(self, contact_id: str) -> PendingChange | None:
        for change in self.pending_changes:
            if change.id == contact_id:
                return change
        return None

    @property
    def selected_contact(self) -> Contact | None:
        if self.selected_contact_id is None:
            return None
        return self.find(self.selected_contact_id)

    @property
    def visible_contacts(self) -> list[Contact]:
        """tombstone を除いた連絡先"""
        return [c for c in self.contacts if not c.deleted]

    @property
    def unsynced_contacts(self) -> list[Contact]:
        return [c for c in self.contacts if not c.synced]


@dataclass(frozen=True)
class Reminder:
    """しばらく連絡していない連絡先へのリマインダー"""

    contact_id: str
    name: str
    days_since_contact: int | None  # None は一度も連絡していない
    message: str


@dataclass(frozen=True)
class ContactStats:
    """ダッシュボード用の統計"""

    total: int
    active: int
    inactive: int
    recently_contacted: int
    never_contacted: list[str] = field(default_factory=list)  # 連絡先名
