"""ロギング設定モジュール

Cloud Run / Cloud Logging 環境ではJSON形式、ローカルではテキスト形式でログを出力する。

使い方:
    from dunbar.logging_config import setup_logging
    setup_logging()

環境変数:
    LOG_LEVEL: ログレベル (DEBUG, INFO, WARNING, ERROR, CRITICAL) デフォルト: INFO
    LOG_FORMAT: "json" または "text"（未指定なら実行環境から判定）
    K_SERVICE / CLOUD_RUN_JOB: Cloud Run 環境判定（自動設定される）
"""

import json
import logging
import os

# 冗長なライブラリのロガー
_NOISY_LOGGERS = ("googleapiclient.discovery_cache", "urllib3", "httplib2")


class CloudLoggingFormatter(logging.Formatter):
    """Cloud Logging互換のJSONフォーマッタ

    `severity` フィールドを含めることでログレベルが正しくマッピングされる。
    record に extra_fields（dict）があれば出力にマージする。
    """

    LEVEL_TO_SEVERITY = {
        "DEBUG": "DEBUG",
        "INFO": "INFO",
        "WARNING": "WARNING",
        "ERROR": "ERROR",
        "CRITICAL": "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "severity": self.LEVEL_TO_SEVERITY.get(record.levelname, "DEFAULT"),
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
        }
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)
        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            log_entry.update(extra)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


def _use_json() -> bool:
    log_format = os.getenv("LOG_FORMAT", "").strip().lower()
    if log_format in ("json", "text"):
        return log_format == "json"
    return bool(os.getenv("K_SERVICE") or os.getenv("CLOUD_RUN_JOB"))


def setup_logging() -> None:
    """ログ設定を初期化する（複数回呼んでもハンドラは1つ）"""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    handler = logging.StreamHandler()
    if _use_json():
        handler.setFormatter(CloudLoggingFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
