"""Cloud Scheduler ワーカー エントリーポイント

Cloud Scheduler から HTTP POST を受け取り、週次の割り当て実行を行う。

受け取るペイロード（JSON）:
  {
    "groupId": "group-id",
    "weekStartDate": "2026-10-19",   ← 省略時は次の月曜日
    "forceRegenerate": false
  }

処理フロー:
  1. 対象週のスケジュールを取得
  2. 希望受付中なら締め切る
  3. 割り当て済みなら（forceRegenerate でない限り）スキップ
  4. WeeklyScheduler.generate で割り当てをコミット
"""

from __future__ import annotations

import datetime
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from carpool.domain.models import ScheduleStatus
from carpool.entrypoints.api.deps import get_scheduler
from carpool.entrypoints.api.worker_auth import verify_worker_token
from carpool.services.scheduler import WeeklyScheduler, next_monday

logger = logging.getLogger(__name__)


def run_weekly_generation(
    scheduler: WeeklyScheduler,
    group_id: str,
    week_start_date: datetime.date,
    force_regenerate: bool = False,
) -> dict:
    """
    週次割り当てのコアロジック。

    ワーカーエンドポイントと CLI の両方から呼び出される共通実装。

    Returns:
        結果サマリー（status, scheduleId, runId, summary）
    """
    schedule = scheduler.find_for_week(group_id, week_start_date)
    logger.info(
        "Weekly generation started: group_id=%s, schedule_id=%s, status=%s",
        group_id,
        schedule.id,
        schedule.status.value,
    )

    if schedule.status is ScheduleStatus.PREFERENCES_OPEN:
        schedule = scheduler.close_preferences(schedule.id)
    elif schedule.status is ScheduleStatus.COMPLETED or (
        schedule.status is ScheduleStatus.ASSIGNED and not force_regenerate
    ):
        logger.info(
            "Weekly generation skipped: schedule_id=%s is %s",
            schedule.id,
            schedule.status.value,
        )
        return {"status": "skipped", "scheduleId": schedule.id, "reason": schedule.status.value}

    outcome = scheduler.generate(schedule.id, force_regenerate=force_regenerate)
    return {
        "status": "completed",
        "scheduleId": schedule.id,
        "runId": outcome.run_id,
        "summary": outcome.result.to_summary(),
    }


# ── Worker ルーター（app.py で /worker プレフィックスにマウント） ───────────────

router = APIRouter(dependencies=[Depends(verify_worker_token)])


@router.post("/generate", status_code=status.HTTP_200_OK)
async def generate_weekly(
    request: Request,
    scheduler: WeeklyScheduler = Depends(get_scheduler),
) -> dict:
    """
    Cloud Scheduler から呼び出される週次割り当てエンドポイント。

    OIDC トークン検証は verify_worker_token Depends によりアプリレベルで実施済み。
    """
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be JSON"
        ) from None
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be a JSON object"
        )
    group_id = payload.get("groupId")
    if not group_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="groupId is required"
        )
    week_raw = payload.get("weekStartDate")
    if week_raw:
        try:
            week_start = datetime.date.fromisoformat(week_raw)
        except (TypeError, ValueError):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid weekStartDate: {week_raw}",
            ) from None
    else:
        week_start = next_monday(datetime.datetime.now(datetime.UTC).date())
    return run_weekly_generation(
        scheduler,
        group_id,
        week_start,
        force_regenerate=bool(payload.get("forceRegenerate", False)),
    )
