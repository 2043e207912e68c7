"""FastAPI アプリケーション

Carpool 週次スケジューリング API。
Cloud Run Service として動作し、Firebase Auth で認証する。

エンドポイント一覧:
  POST   /api/preferences
  GET    /api/preferences/me?scheduleId=
  GET    /api/groups/{groupId}/schedules
  GET    /api/schedules/{id}/assignments
  GET    /api/groups/{groupId}/fairness
  POST   /api/makeup/travel
  GET    /api/makeup/balance
  POST   /api/makeup/proposals
  GET    /api/makeup/proposals
  POST   /api/admin/groups/{groupId}/schedules
  POST   /api/admin/schedules/{id}/close
  POST   /api/admin/schedules/{id}/generate
  POST   /api/admin/schedules/{id}/complete
  GET    /api/admin/schedules/{id}/preference-status
  POST   /api/admin/makeup/proposals/{id}/review
  POST   /api/admin/makeup/proposals/{id}/complete
  POST   /worker/generate      ← OIDC（Cloud Scheduler）
  GET    /health
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

from carpool.domain.errors import (
    CarpoolError,
    ConflictError,
    NotFoundError,
    SchedulingRunError,
    ValidationError,
)
from carpool.entrypoints import worker
from carpool.entrypoints.api.routes import fairness, makeup, preferences, schedules
from carpool.logging_config import setup_logging

# ── ロギング初期化 ───────────────────────────────────────────────────────────
setup_logging()
logger = logging.getLogger(__name__)

# ── FastAPI アプリ ───────────────────────────────────────────────────────────
app = FastAPI(
    title="Carpool Scheduling API",
    description="学校送迎カープールの週次スケジューリング API",
    version="1.0.0",
)


# ── ドメイン例外 → HTTP ステータス ─────────────────────────────────────────────

_STATUS_BY_ERROR: list[tuple[type[CarpoolError], int]] = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (SchedulingRunError, 500),
]


@app.exception_handler(CarpoolError)
async def _handle_carpool_error(request: Request, exc: CarpoolError) -> JSONResponse:
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500
    )
    content: dict = {"detail": str(exc)}
    if isinstance(exc, ValidationError):
        content["category"] = exc.category
        content["day"] = exc.day
    if isinstance(exc, SchedulingRunError):
        content["runId"] = exc.run_id
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info(
            "%s %s rejected (%d): %s", request.method, request.url.path, status_code, exc
        )
    return JSONResponse(status_code=status_code, content=content)


# ── グローバル例外ミドルウェア ──────────────────────────────────────────────────
# 【登録順の注意】
#   add_middleware は後から登録したものが外側になる。
#   このミドルウェアを CORSMiddleware より先に登録して内側に置くと、
#   500 レスポンスにも CORS ヘッダーが付与される。
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


# ── CORS ──────────────────────────────────────────────────────────────────────
# CORS_ORIGINS 環境変数でカンマ区切りのオリジンを指定可能
_extra_origins = [
    o.strip() for o in os.environ.get("CORS_ORIGINS", "").split(",") if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_extra_origins if _extra_origins else ["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# ── ルーター登録 ─────────────────────────────────────────────────────────────
_PREFIX = "/api"

app.include_router(preferences.router, prefix=_PREFIX)
app.include_router(schedules.router, prefix=_PREFIX)
app.include_router(fairness.router, prefix=_PREFIX)
app.include_router(makeup.router, prefix=_PREFIX)

# ── ワーカールート（/worker/*）──────────────────────────────────────────────────
# Firebase Auth なし。OIDC トークン検証（verify_worker_token）で保護される。
app.include_router(worker.router, prefix="/worker")


@app.get("/health")
async def health() -> dict:
    """ヘルスチェックエンドポイント（Cloud Run の起動確認用）"""
    return {"status": "ok"}


logger.info("Carpool API started")
