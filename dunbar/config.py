"""設定管理 - 環境変数の型安全な読み込み"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from dunbar.domain.errors import ConfigError

SNAPSHOT_BACKENDS = ("file", "firestore")


@dataclass(frozen=True)
class AppConfig:
    """アプリケーション設定"""
    spreadsheet_id: str
    snapshot_backend: str = "file"
    snapshot_path: str = ".dunbar/snapshot.json"
    snapshot_slot: str = "contactManagementData"
    project_id: str = ""
    probe_timeout_seconds: float = 10.0
    store_timeout_seconds: float = 30.0
    probe_interval_seconds: float = 30.0
    reminder_threshold_days: int = 30
    contact_limit: int = 150
    app_password: str = ""
    slack_bot_token: str = ""
    slack_channel_id: str = ""

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        環境変数から設定を読み込む

        Raises:
            ConfigError: 必須項目が無い、または値が不正な場合
        """
        load_dotenv()

        spreadsheet_id = os.getenv("SPREADSHEET_ID")
        if not spreadsheet_id:
            raise ConfigError("SPREADSHEET_ID is not set in environment")

        snapshot_backend = os.getenv("SNAPSHOT_BACKEND", "file").strip().lower()
        if snapshot_backend not in SNAPSHOT_BACKENDS:
            raise ConfigError(
                f"SNAPSHOT_BACKEND must be one of {', '.join(SNAPSHOT_BACKENDS)}: "
                f"{snapshot_backend!r}"
            )

        project_id = os.getenv("PROJECT_ID", "")
        if snapshot_backend == "firestore" and not project_id:
            raise ConfigError("PROJECT_ID is required when SNAPSHOT_BACKEND=firestore")

        return cls(
            spreadsheet_id=spreadsheet_id,
            snapshot_backend=snapshot_backend,
            snapshot_path=os.getenv("SNAPSHOT_PATH", ".dunbar/snapshot.json"),
            snapshot_slot=os.getenv("SNAPSHOT_SLOT", "contactManagementData"),
            project_id=project_id,
            probe_timeout_seconds=_positive_float("PROBE_TIMEOUT_SECONDS", 10.0),
            store_timeout_seconds=_positive_float("STORE_TIMEOUT_SECONDS", 30.0),
            probe_interval_seconds=_positive_float("PROBE_INTERVAL_SECONDS", 30.0),
            reminder_threshold_days=_positive_int("REMINDER_THRESHOLD_DAYS", 30),
            contact_limit=_positive_int("CONTACT_LIMIT", 150),
            app_password=os.getenv("APP_PASSWORD", ""),
            slack_bot_token=os.getenv("SLACK_BOT_TOKEN", ""),
            slack_channel_id=os.getenv("SLACK_CHANNEL_ID", ""),
        )


def _positive_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number: {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive: {raw!r}")
    return value


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer: {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive: {raw!r}")
    return value
