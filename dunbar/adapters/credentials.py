"""Google API認証の一元管理

シングルトンパターンで認証情報をキャッシュし、Sheets / Firestore の各Adapterで再利用する。

Cloud Run環境ではApplication Default Credentials (ADC)を使用。
"""

import logging
import os
import pickle
from functools import lru_cache

import google.auth
from google.auth.credentials import Credentials
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google_auth_oauthlib.flow import InstalledAppFlow

logger = logging.getLogger(__name__)

# Google API のスコープ
SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/datastore",
]


def _is_cloud_environment() -> bool:
    """Cloud Run（サービス/ジョブ）環境かどうかを判定"""
    return os.getenv("K_SERVICE") is not None or os.getenv("CLOUD_RUN_JOB") is not None


@lru_cache(maxsize=1)
def get_google_credentials(
    service_account_path: str = "service_account.json",
    token_pickle_path: str = "token.pickle",
    credentials_json_path: str = "credentials.json",
) -> Credentials:
    """
    Google API認証情報を取得（シングルトン）。

    優先順位:
    1. Cloud Run環境: Application Default Credentials (ADC)
    2. ローカル環境:
       a. service_account.json（サービスアカウント）
       b. token.pickle（キャッシュ済みのOAuth認証情報、期限切れならリフレッシュ）
       c. credentials.json（OAuthクライアント設定、ブラウザで認可）

    Raises:
        FileNotFoundError: 認証ファイルが見つからない場合
    """
    if _is_cloud_environment():
        creds, _ = google.auth.default(scopes=SCOPES)
        return creds

    if os.path.exists(service_account_path):
        logger.info("Using service account credentials: %s", service_account_path)
        return service_account.Credentials.from_service_account_file(
            service_account_path, scopes=SCOPES
        )

    creds = None
    if os.path.exists(token_pickle_path):
        with open(token_pickle_path, "rb") as token:
            creds = pickle.load(token)

    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
    elif os.path.exists(credentials_json_path):
        flow = InstalledAppFlow.from_client_secrets_file(credentials_json_path, SCOPES)
        creds = flow.run_local_server(port=0)
    else:
        raise FileNotFoundError(
            f"認証ファイルが見つかりません: "
            f"{service_account_path} または {credentials_json_path}"
        )

    with open(token_pickle_path, "wb") as token:
        pickle.dump(creds, token)
    return creds
