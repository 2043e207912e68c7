"""スケジュール API ルート

GET  /api/groups/{groupId}/schedules                  → 200 [ScheduleResponse]
GET  /api/schedules/{id}/assignments                  → 200 [AssignmentResponse]
POST /api/admin/groups/{groupId}/schedules            → 201 ScheduleResponse
POST /api/admin/schedules/{id}/close                  → 200 ScheduleResponse
POST /api/admin/schedules/{id}/generate               → 200 GenerateResponse
POST /api/admin/schedules/{id}/complete               → 200 ScheduleResponse
GET  /api/admin/schedules/{id}/preference-status      → 200 PreferenceStatusResponse
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from carpool.domain.models import WeeklySchedule
from carpool.entrypoints.api.deps import (
    MemberContext,
    ensure_same_group,
    get_member_context,
    get_preference_store,
    get_scheduler,
    require_admin,
)
from carpool.entrypoints.api.schemas import (
    AssignmentResponse,
    CreateScheduleRequest,
    GenerateRequest,
    GenerateResponse,
    PreferenceStatusResponse,
    ScheduleResponse,
)
from carpool.services.preference_store import PreferenceStore
from carpool.services.scheduler import WeeklyScheduler

logger = logging.getLogger(__name__)
router = APIRouter(tags=["schedules"])


def _load(scheduler: WeeklyScheduler, ctx: MemberContext, schedule_id: str) -> WeeklySchedule:
    schedule = scheduler.get_schedule(schedule_id)
    ensure_same_group(ctx, schedule.group_id)
    return schedule


# ── 保護者向け ──────────────────────────────────────────────────────────────────


@router.get("/groups/{group_id}/schedules", response_model=list[ScheduleResponse])
async def list_schedules(
    group_id: str,
    ctx: MemberContext = Depends(get_member_context),
    scheduler: WeeklyScheduler = Depends(get_scheduler),
) -> list[ScheduleResponse]:
    """グループのスケジュール一覧（新しい週順）"""
    ensure_same_group(ctx, group_id)
    return [ScheduleResponse.from_domain(s) for s in scheduler.list_schedules(group_id)]


@router.get("/schedules/{schedule_id}/assignments", response_model=list[AssignmentResponse])
async def list_assignments(
    schedule_id: str,
    ctx: MemberContext = Depends(get_member_context),
    scheduler: WeeklyScheduler = Depends(get_scheduler),
) -> list[AssignmentResponse]:
    """現在の割り当てを日付順で返す"""
    _load(scheduler, ctx, schedule_id)
    return [AssignmentResponse.from_domain(a) for a in scheduler.get_assignments(schedule_id)]


# ── 管理者向け ──────────────────────────────────────────────────────────────────


@router.post(
    "/admin/groups/{group_id}/schedules",
    status_code=status.HTTP_201_CREATED,
    response_model=ScheduleResponse,
)
async def create_schedule(
    group_id: str,
    body: CreateScheduleRequest,
    ctx: MemberContext = Depends(require_admin),
    scheduler: WeeklyScheduler = Depends(get_scheduler),
) -> ScheduleResponse:
    """週次スケジュールを作成する（締切省略時は既定値）"""
    ensure_same_group(ctx, group_id)
    schedule = scheduler.create_schedule(
        group_id,
        body.week_start_date,
        preferences_deadline=body.preferences_deadline,
        swaps_deadline=body.swaps_deadline,
    )
    return ScheduleResponse.from_domain(schedule)


@router.post("/admin/schedules/{schedule_id}/close", response_model=ScheduleResponse)
async def close_preferences(
    schedule_id: str,
    ctx: MemberContext = Depends(require_admin),
    scheduler: WeeklyScheduler = Depends(get_scheduler),
) -> ScheduleResponse:
    _load(scheduler, ctx, schedule_id)
    return ScheduleResponse.from_domain(scheduler.close_preferences(schedule_id))


@router.post("/admin/schedules/{schedule_id}/generate", response_model=GenerateResponse)
async def generate_schedule(
    schedule_id: str,
    body: GenerateRequest | None = None,
    ctx: MemberContext = Depends(require_admin),
    scheduler: WeeklyScheduler = Depends(get_scheduler),
) -> GenerateResponse:
    """
    5ステップアルゴリズムで割り当てを作成する。

    埋められなかったスロットはエラーではなく summary.unassignedSlotDetails で返す。
    """
    body = body or GenerateRequest()
    _load(scheduler, ctx, schedule_id)
    outcome = scheduler.generate(
        schedule_id,
        force_regenerate=body.force_regenerate,
        dry_run=body.dry_run,
        include_late=body.include_late_submissions,
    )
    logger.info(
        "Generate requested by admin: uid=%s, schedule_id=%s, dry_run=%s",
        ctx.uid,
        schedule_id,
        body.dry_run,
    )
    return GenerateResponse(
        schedule_id=schedule_id,
        run_id=outcome.run_id,
        dry_run=outcome.dry_run,
        status=outcome.schedule.status.value,
        superseded_run_id=outcome.superseded_run_id,
        summary=outcome.result.to_summary(),
        assignments=[AssignmentResponse.from_domain(a) for a in outcome.result.assignments],
    )


@router.post("/admin/schedules/{schedule_id}/complete", response_model=ScheduleResponse)
async def complete_schedule(
    schedule_id: str,
    ctx: MemberContext = Depends(require_admin),
    scheduler: WeeklyScheduler = Depends(get_scheduler),
) -> ScheduleResponse:
    _load(scheduler, ctx, schedule_id)
    return ScheduleResponse.from_domain(scheduler.complete_schedule(schedule_id))


@router.get(
    "/admin/schedules/{schedule_id}/preference-status",
    response_model=PreferenceStatusResponse,
)
async def preference_status(
    schedule_id: str,
    ctx: MemberContext = Depends(require_admin),
    scheduler: WeeklyScheduler = Depends(get_scheduler),
    store: PreferenceStore = Depends(get_preference_store),
) -> PreferenceStatusResponse:
    """提出率と未提出ファミリー"""
    _load(scheduler, ctx, schedule_id)
    return PreferenceStatusResponse.from_domain(store.status(schedule_id))
