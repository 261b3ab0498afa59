"""FastAPI アプリケーション

連絡先管理のバックエンド API。共有パスワード（X-App-Password ヘッダー）で認証する。
レコードストアに届かない間もローカルミラーに対して操作でき、POST /api/sync で反映する。

エンドポイント一覧:
  POST   /api/auth/login                    ← 認証不要
  GET    /api/contacts
  POST   /api/contacts
  GET    /api/contacts/{id}
  PATCH  /api/contacts/{id}
  DELETE /api/contacts/{id}
  POST   /api/contacts/{id}/communications
  POST   /api/contacts/{id}/contacted
  POST   /api/sync
  GET    /api/status
  DELETE /api/status/notice
  GET    /api/connectivity
  GET    /api/stats
  GET    /api/reminders
  GET    /health                            ← 認証不要
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

from dunbar.entrypoints.api.deps import PASSWORD_HEADER
from dunbar.entrypoints.api.routes import auth, contacts, stats, sync
from dunbar.logging_config import setup_logging

# ── ロギング初期化 ───────────────────────────────────────────────────────────
setup_logging()
logger = logging.getLogger(__name__)

# ── FastAPI アプリ ───────────────────────────────────────────────────────────
app = FastAPI(
    title="Dunbar CRM API",
    description="オフラインでも使える連絡先管理のバックエンド API",
    version="1.0.0",
)

# ── グローバル例外ミドルウェア ──────────────────────────────────────────────────
# 【登録順の注意】
#   add_middleware は後から登録したものが外側になる。
#   このミドルウェアを CORSMiddleware より先に登録して内側に置き、
#   500 レスポンスにも CORS ヘッダーが付与されるようにする。
#
# スタック: ServerErrorMiddleware → CORSMiddleware → このMW → ExceptionMiddleware → Routes


@app.middleware("http")
async def _catch_unhandled_exceptions(
    request: Request, call_next: Callable[[Request], Response]
) -> Response:
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error(
            "Unhandled exception: %s %s - %s",
            request.method,
            request.url.path,
            exc,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


# ── CORS ─────────────────────────────────────────────────────────────────────
# CORS_ORIGINS 環境変数でカンマ区切りのオリジンを指定可能
_extra_origins = [
    o.strip() for o in os.environ.get("CORS_ORIGINS", "").split(",") if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_extra_origins if _extra_origins else ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", PASSWORD_HEADER],
)

# ── ルーター登録 ─────────────────────────────────────────────────────────────
_PREFIX = "/api"

app.include_router(auth.router, prefix=_PREFIX)
app.include_router(contacts.router, prefix=_PREFIX)
app.include_router(sync.router, prefix=_PREFIX)
app.include_router(stats.router, prefix=_PREFIX)


@app.get("/health")
async def health() -> dict:
    """ヘルスチェックエンドポイント（Cloud Run の起動確認用）"""
    return {"status": "ok"}


logger.info("Dunbar CRM API started")
