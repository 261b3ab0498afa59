"""認証 API ルート

POST /api/auth/login   → 200 { authenticated: true } / 401

以降のリクエストは X-App-Password ヘッダーに同じパスワードを付ける。
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from dunbar.config import AppConfig
from dunbar.entrypoints.api.deps import check_password, get_config

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    password: str


class LoginResponse(BaseModel):
    authenticated: bool


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    config: AppConfig = Depends(get_config),
) -> LoginResponse:
    """パスワードを検証する"""
    if not check_password(body.password, config):
        logger.warning("Login failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password"
        )
    logger.info("Login succeeded")
    return LoginResponse(authenticated=True)
