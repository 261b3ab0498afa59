"""FastAPI 依存性注入

設定・ContactBook（プロセス内で1つ）の初期化と、共有パスワードによる認証を担当する。
各ルートは Depends() でこのモジュールの関数を呼び出す。
"""

from __future__ import annotations

import hmac
import logging
import threading

from fastapi import Depends, Header, HTTPException, status

from dunbar.config import AppConfig
from dunbar.entrypoints.factory import create_contact_book
from dunbar.services.contact_book import ContactBook

logger = logging.getLogger(__name__)

PASSWORD_HEADER = "X-App-Password"


# ── 設定（シングルトン） ──────────────────────────────────────────────────────

_config: AppConfig | None = None


def get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = AppConfig.from_env()
        logger.info("Config loaded: spreadsheet_id=%s", _config.spreadsheet_id)
    return _config


# ── ContactBook（シングルトン） ───────────────────────────────────────────────

_book: ContactBook | None = None
_book_lock = threading.Lock()


def get_contact_book(config: AppConfig = Depends(get_config)) -> ContactBook:
    """
    起動済みの ContactBook を返す（初回呼び出しで start() する）。

    スレッドプールから並行に呼ばれても初期化は1回だけ行う。
    """
    global _book
    if _book is None:
        with _book_lock:
            if _book is None:
                book = create_contact_book(config)
                book.start()
                _book = book
                logger.info("Contact book started (offline=%s)", book.state.offline_mode)
    return _book


# ── 認証 ────────────────────────────────────────────────────────────────────


def check_password(candidate: str | None, config: AppConfig) -> bool:
    """共有パスワードと一致するか（APP_PASSWORD 未設定なら常に True）"""
    if not config.app_password:
        return True
    if candidate is None:
        return False
    return hmac.compare_digest(candidate.encode(), config.app_password.encode())


async def require_password(
    x_app_password: str | None = Header(default=None),
    config: AppConfig = Depends(get_config),
) -> None:
    """
    X-App-Password ヘッダーを検証する。

    Raises:
        HTTPException(401): パスワードが一致しない場合
    """
    if not check_password(x_app_password, config):
        logger.warning("Rejected request with invalid %s header", PASSWORD_HEADER)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing password",
        )
