"""Worker エンドポイント用 OIDC トークン検証

Cloud Scheduler が付与する Google OIDC トークンを検証し、
想定外の呼び出し元からのリクエストを 401 で拒否する。

検証方針:
- audience は検証しない（ジョブごとに値が異なるため）
- email claim が WORKER_SERVICE_ACCOUNT_EMAIL（カンマ区切りで複数可）のいずれかと
  一致することで呼び出し元を確認
- WORKER_SERVICE_ACCOUNT_EMAIL 未設定時は fail-closed（401 を返す）
- LOCAL_MODE=true 時は検証をスキップ
"""

from __future__ import annotations

import logging
import os

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

logger = logging.getLogger(__name__)

# auto_error=False: Bearer ヘッダーがない場合に 403 ではなく 401 を返す
_bearer_scheme = HTTPBearer(auto_error=False)


def _allowed_emails() -> set[str]:
    raw = os.environ.get("WORKER_SERVICE_ACCOUNT_EMAIL", "")
    return {e.strip() for e in raw.split(",") if e.strip()}


def verify_worker_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str:
    """
    Worker エンドポイントの OIDC トークン検証 Depends 関数。

    Returns:
        呼び出し元サービスアカウントの email（LOCAL_MODE では "local"）

    Raises:
        HTTPException(401): 検証に失敗した場合
    """
    if os.environ.get("LOCAL_MODE"):
        return "local"

    allowed = _allowed_emails()
    if not allowed:
        logger.error("WORKER_SERVICE_ACCOUNT_EMAIL is not set; denying worker request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Worker authentication is not configured",
        )

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
        )

    try:
        id_info = id_token.verify_oauth2_token(
            credentials.credentials,
            google_requests.Request(),
            audience=None,
        )
    except Exception as exc:
        logger.warning("OIDC token verification failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid OIDC token",
        ) from exc

    actual_email = id_info.get("email", "")
    if actual_email not in allowed:
        logger.warning("OIDC email not allowed: got=%s", actual_email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized service account",
        )
    return actual_email
