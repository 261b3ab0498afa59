"""Ports - 外部サービスとの契約（ABC）

実装クラス（Adapter）はこれらのABCを継承し、全ての抽象メソッドを実装する。
レコードストアの実装はライブラリ固有の例外を dunbar.domain.errors の型に変換して送出する。
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from dunbar.domain.models import Communication, Contact, MirrorState, Reminder


class ContactStore(ABC):
    """リモートのレコードストア（Google Sheets等）

    全メソッドは失敗時に ConnectivityError / ValidationError / NotFoundError を送出する。
    同期管理用フィールド（synced / deleted）は保存しない。
    """

    @abstractmethod
    def list_contacts(self) -> list[Contact]:
        """全連絡先をコミュニケーション込みで取得"""
        pass

    @abstractmethod
    def get_contact(self, contact_id: str) -> Contact | None:
        """連絡先を1件取得。存在しない場合は None"""
        pass

    @abstractmethod
    def create_contact(self, contact: Contact) -> Contact:
        """連絡先を作成し、保存された内容を返す"""
        pass

    @abstractmethod
    def update_contact(self, contact_id: str, contact: Contact) -> Contact:
        """連絡先を丸ごと上書きし（last writer wins）、保存された内容を返す"""
        pass

    @abstractmethod
    def delete_contact(self, contact_id: str) -> bool:
        """連絡先と関連コミュニケーションを削除。存在しなかった場合は False"""
        pass

    @abstractmethod
    def add_communication(
        self, contact_id: str, communication: Communication
    ) -> Communication:
        """コミュニケーションを追加し、連絡先の last_contacted_at を更新する"""
        pass


class ConnectivityProbe(ABC):
    """レコードストアへの到達性チェック"""

    @abstractmethod
    def check_availability(self) -> bool:
        """到達可能なら True。例外は送出しない"""
        pass


class SnapshotStore(ABC):
    """ローカルミラーの永続スロット（JSONファイル、Firestore等）"""

    @abstractmethod
    def load(self) -> MirrorState | None:
        """保存済みの状態を返す。未保存なら None。壊れていれば SnapshotCorruptError"""
        pass

    @abstractmethod
    def save(self, state: MirrorState) -> None:
        """状態を保存する"""
        pass


class Notifier(ABC):
    """通知サービス（Slack等）"""

    @abstractmethod
    def notify_reminders(self, reminders: list[Reminder]) -> None:
        """連絡が途絶えている連絡先を通知"""
        pass
