"""Intents - UI（CLI/API）からディスパッチャに渡される操作"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from dunbar.domain.models import CommunicationType


@dataclass(frozen=True)
class CreateContact:
    """連絡先を作成する（values は EDITABLE_FIELDS のサブセット、name 必須）"""

    values: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateContact:
    """連絡先のフィールドを変更する"""

    contact_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteContact:
    """連絡先を削除する"""

    contact_id: str


@dataclass(frozen=True)
class LogCommunication:
    """コミュニケーションを記録する（date 省略時は現在時刻）"""

    contact_id: str
    types: Collection[CommunicationType | str]
    notes: str = ""
    date: str | None = None


@dataclass(frozen=True)
class MarkContacted:
    """最終連絡日時だけを更新する（at 省略時は現在時刻）"""

    contact_id: str
    at: str | None = None


@dataclass(frozen=True)
class SelectContact:
    """詳細表示する連絡先を選択する（None で選択解除）"""

    contact_id: str | None


@dataclass(frozen=True)
class DismissNotice:
    """表示中の通知を閉じる"""


Intent = Union[
    CreateContact,
    UpdateContact,
    DeleteContact,
    LogCommunication,
    MarkContacted,
    SelectContact,
    DismissNotice,
]
