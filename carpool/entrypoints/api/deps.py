"""FastAPI 依存性注入

Firebase Auth JWT 検証とサービスの初期化を担当する。
各ルートは Depends() でこのモジュールの関数を呼び出して
認証済みコンテキストとサービスインスタンスを受け取る。

ユーザーとファミリー・グループの紐付けは Firebase のカスタムクレーム
（family_id / group_id / role）で行う。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import firebase_admin
import firebase_admin.auth as fb_auth
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import credentials as fb_creds

from carpool.config import AppConfig
from carpool.entrypoints.factory import CarpoolServices, create_services
from carpool.services.fairness_ledger import FairnessLedger
from carpool.services.makeup_manager import MakeupManager
from carpool.services.preference_store import PreferenceStore
from carpool.services.scheduler import WeeklyScheduler

logger = logging.getLogger(__name__)

# ── Firebase Admin 初期化（プロセス内で1回のみ） ────────────────────────────────

_firebase_app: firebase_admin.App | None = None


def _get_firebase_app() -> firebase_admin.App:
    global _firebase_app
    if _firebase_app is None:
        try:
            # 既に初期化済み（worker などが先に初期化した場合）
            _firebase_app = firebase_admin.get_app()
        except ValueError:
            cred = fb_creds.ApplicationDefault()
            project_id = os.environ.get("PROJECT_ID")
            _firebase_app = firebase_admin.initialize_app(
                cred,
                options={"projectId": project_id} if project_id else {},
            )
            logger.info("Firebase Admin initialized (deps) project=%s", project_id)
    return _firebase_app


# ── 認証 ────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AuthInfo:
    """Firebase Auth JWT から取得した認証情報"""

    uid: str
    email: str
    family_id: str | None = None
    group_id: str | None = None
    role: str = "parent"  # "parent" | "admin"


_bearer = HTTPBearer()


async def get_auth_info(
    creds: HTTPAuthorizationCredentials = Depends(_bearer),
) -> AuthInfo:
    """
    Authorization: Bearer <id_token> ヘッダーを検証して AuthInfo を返す。

    Raises:
        HTTPException(401): トークンが無効な場合
    """
    _get_firebase_app()
    try:
        decoded = fb_auth.verify_id_token(creds.credentials)
    except Exception as e:
        logger.warning("Invalid Firebase ID token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired Firebase ID token",
        ) from e

    return AuthInfo(
        uid=decoded["uid"],
        email=decoded.get("email", ""),
        family_id=decoded.get("family_id"),
        group_id=decoded.get("group_id"),
        role=decoded.get("role", "parent"),
    )


# ── メンバーコンテキスト ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class MemberContext:
    """認証済みユーザーのファミリー・グループ"""

    uid: str
    family_id: str
    group_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_member_context(
    auth_info: AuthInfo = Depends(get_auth_info),
) -> MemberContext:
    """
    ファミリーとグループに紐付いたユーザーのみ通す。

    Raises:
        HTTPException(403): family_id / group_id クレームがない場合
    """
    if not auth_info.family_id or not auth_info.group_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="FAMILY_NOT_LINKED",
        )
    return MemberContext(
        uid=auth_info.uid,
        family_id=auth_info.family_id,
        group_id=auth_info.group_id,
        role=auth_info.role,
    )


async def require_admin(
    ctx: MemberContext = Depends(get_member_context),
) -> MemberContext:
    """
    グループ管理者権限を要求する依存関数。

    Raises:
        HTTPException(403): ロールが "admin" でない場合
    """
    if not ctx.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This operation requires group admin role",
        )
    return ctx


def ensure_same_group(ctx: MemberContext, group_id: str) -> None:
    """他グループのリソースへのアクセスは存在しないものとして扱う"""
    if ctx.group_id != group_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Group {group_id} not found",
        )


# ── サービス（シングルトン） ────────────────────────────────────────────────────

_services: CarpoolServices | None = None


def get_services() -> CarpoolServices:
    global _services
    if _services is None:
        _services = create_services(AppConfig.from_env())
        logger.info("Carpool services initialized")
    return _services


def get_preference_store() -> PreferenceStore:
    """PreferenceStore を返す依存関数"""
    return get_services().preferences


def get_scheduler() -> WeeklyScheduler:
    """WeeklyScheduler を返す依存関数"""
    return get_services().scheduler


def get_ledger() -> FairnessLedger:
    """FairnessLedger を返す依存関数"""
    return get_services().ledger


def get_makeup_manager() -> MakeupManager:
    """MakeupManager を返す依存関数"""
    return get_services().makeup
