"""Factory - 依存性注入の組み立て

全AdapterとServiceを組み立て、ContactBookを生成する。
"""

import logging

from google.cloud import firestore

from dunbar.adapters.credentials import get_google_credentials
from dunbar.adapters.file_snapshot import JsonFileSnapshotStore
from dunbar.adapters.firestore_snapshot import FirestoreSnapshotStore
from dunbar.adapters.google_sheets import (
    GoogleSheetsConnectivityProbe,
    GoogleSheetsContactStore,
)
from dunbar.adapters.slack import SlackNotifier
from dunbar.config import AppConfig
from dunbar.domain.models import Reminder
from dunbar.domain.ports import Notifier, SnapshotStore
from dunbar.services.contact_book import ContactBook

logger = logging.getLogger(__name__)


def create_contact_book(config: AppConfig | None = None) -> ContactBook:
    """
    ContactBookを生成（全依存を組み立て）。start() は呼び出し側で行う。

    Args:
        config: アプリケーション設定（Noneの場合は環境変数から読み込み）

    Raises:
        ConfigError: 必須設定が不足している場合
    """
    if config is None:
        config = AppConfig.from_env()

    logger.info(
        "Creating contact book: spreadsheet_id=%s, snapshot_backend=%s",
        config.spreadsheet_id,
        config.snapshot_backend,
    )

    # 1. Google認証
    creds = get_google_credentials()

    # 2. Adapters生成
    store = GoogleSheetsContactStore(
        credentials=creds,
        spreadsheet_id=config.spreadsheet_id,
        timeout=config.store_timeout_seconds,
    )
    probe = GoogleSheetsConnectivityProbe(
        credentials=creds,
        spreadsheet_id=config.spreadsheet_id,
        timeout=config.probe_timeout_seconds,
    )
    snapshot_store = create_snapshot_store(config, creds)

    # 3. ContactBook生成
    book = ContactBook(
        store=store,
        probe=probe,
        snapshot_store=snapshot_store,
        contact_limit=config.contact_limit,
        reminder_threshold_days=config.reminder_threshold_days,
    )
    logger.info("Contact book created successfully")
    return book


def create_snapshot_store(config: AppConfig, credentials=None) -> SnapshotStore:
    """設定に応じたスナップショットの保存先を返す"""
    if config.snapshot_backend == "firestore":
        db = firestore.Client(project=config.project_id, credentials=credentials)
        logger.info("Using Firestore snapshot: slot=%s", config.snapshot_slot)
        return FirestoreSnapshotStore(db, slot=config.snapshot_slot)

    logger.info("Using file snapshot: path=%s", config.snapshot_path)
    return JsonFileSnapshotStore(config.snapshot_path)


def create_notifier(config: AppConfig) -> Notifier:
    """Slackが設定されていればSlackNotifier、なければNull Objectを返す"""
    if config.slack_bot_token and config.slack_channel_id:
        logger.info("Slack notifier enabled")
        return SlackNotifier(
            bot_token=config.slack_bot_token,
            channel_id=config.slack_channel_id,
        )
    logger.warning("Slack tokens not set, reminders will not be sent")
    return _NullNotifier()


# Null Object Pattern（Slackが無効な場合の代替）

class _NullNotifier(Notifier):
    """NotifierのNull Object（何もしない）"""
    def notify_reminders(self, reminders: list[Reminder]) -> None:
        logger.debug(
            "NullNotifier: %d reminders skipped (Slack not configured)", len(reminders)
        )
