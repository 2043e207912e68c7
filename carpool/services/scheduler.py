"""WeeklyScheduler - WeeklySchedule のライフサイクルと割り当て実行

処理フロー（generate）:
1. スケジュールのステータス確認（preferences_closed、または再実行なら assigned）
2. ロスター・週次希望・台帳ベースライン（前回実行ぶんを巻き戻した台帳）を読み込み
3. ConstraintResolver で割り当てを計算
4. 割り当てと台帳差分を ScheduleRepository.commit_run で1トランザクションにコミット
5. assignments_published イベントを発行

同一グループの同時実行はスケジュールの version による楽観的排他で直列化する。
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass, replace

from carpool.domain.errors import (
    ConflictError,
    NotFoundError,
    SchedulingRunError,
    ValidationError,
)
from carpool.domain.models import (
    Assignment,
    ResolverResult,
    SchedulingRun,
    ScheduleStatus,
    WeeklySchedule,
)
from carpool.domain.ports import (
    EventPublisher,
    PreferenceRepository,
    RosterProvider,
    ScheduleRepository,
)
from carpool.logging_config import run_context
from carpool.services.fairness_ledger import FairnessLedger
from carpool.services.preference_store import Clock, utc_now
from carpool.services.resolver import ConstraintResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationOutcome:
    """generate() の結果"""

    schedule: WeeklySchedule
    run_id: str
    result: ResolverResult
    dry_run: bool = False
    superseded_run_id: str | None = None


def next_monday(today: datetime.date) -> datetime.date:
    """today より後の最初の月曜日"""
    return today + datetime.timedelta(days=7 - today.weekday())


def default_deadlines(
    week_start: datetime.date,
) -> tuple[datetime.datetime, datetime.datetime]:
    """
    既定の締切。

    希望提出: 前週水曜 17:00（UTC）
    スワップ: 前週土曜 17:00（UTC）
    """
    prefs = datetime.datetime.combine(
        week_start - datetime.timedelta(days=5),
        datetime.time(17, 0),
        tzinfo=datetime.UTC,
    )
    swaps = datetime.datetime.combine(
        week_start - datetime.timedelta(days=2),
        datetime.time(17, 0),
        tzinfo=datetime.UTC,
    )
    return prefs, swaps


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    """タイムゾーンなしの締切は UTC とみなす"""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


class WeeklyScheduler:
    """
    スケジュールの作成・締切・割り当て実行・完了を統合する。
    """

    def __init__(
        self,
        schedule_repo: ScheduleRepository,
        preference_repo: PreferenceRepository,
        roster: RosterProvider,
        ledger: FairnessLedger,
        resolver: ConstraintResolver,
        publisher: EventPublisher,
        clock: Clock = utc_now,
    ) -> None:
        """
        Args:
            schedule_repo: スケジュール・割り当ての永続化
            preference_repo: 週次希望の参照
            roster: グループのファミリー一覧
            ledger: 公平性台帳
            resolver: 5ステップの割り当てアルゴリズム
            publisher: 論理イベントの発行先
            clock: 現在時刻（テストで差し替え可能）
        """
        self._schedules = schedule_repo
        self._prefs = preference_repo
        self._roster = roster
        self._ledger = ledger
        self._resolver = resolver
        self._publisher = publisher
        self._clock = clock

    # ── ライフサイクル ───────────────────────────────────────────────────────

    def create_schedule(
        self,
        group_id: str,
        week_start_date: datetime.date,
        preferences_deadline: datetime.datetime | None = None,
        swaps_deadline: datetime.datetime | None = None,
    ) -> WeeklySchedule:
        """
        週次スケジュールを作成する（preferences_open）。

        Raises:
            ValidationError: week_start_date が月曜でない場合
            ConflictError: 同じ週のスケジュールが既にある場合
        """
        if week_start_date.weekday() != 0:
            raise ValidationError(
                f"weekStartDate must be a Monday: {week_start_date.isoformat()}"
            )
        if self._schedules.find_by_week(group_id, week_start_date.isoformat()):
            raise ConflictError(
                f"Schedule for week {week_start_date.isoformat()} already exists"
            )

        prefs_default, swaps_default = default_deadlines(week_start_date)
        schedule = WeeklySchedule(
            id=str(uuid.uuid4()),
            group_id=group_id,
            week_start_date=week_start_date,
            week_end_date=week_start_date + datetime.timedelta(days=4),
            status=ScheduleStatus.PREFERENCES_OPEN,
            preferences_deadline=_as_utc(preferences_deadline or prefs_default),
            swaps_deadline=_as_utc(swaps_deadline or swaps_default),
        )
        self._schedules.create(schedule)
        logger.info(
            "Schedule created: group_id=%s, schedule_id=%s, week=%s",
            group_id,
            schedule.id,
            week_start_date.isoformat(),
        )
        return schedule

    def close_preferences(self, schedule_id: str) -> WeeklySchedule:
        """希望受付を締め切る（preferences_open → preferences_closed）"""
        return self._transition(self.get_schedule(schedule_id), ScheduleStatus.PREFERENCES_CLOSED)

    def complete_schedule(self, schedule_id: str) -> WeeklySchedule:
        """週を完了にする（assigned → completed）。以降は変更不可"""
        return self._transition(self.get_schedule(schedule_id), ScheduleStatus.COMPLETED)

    def get_schedule(self, schedule_id: str) -> WeeklySchedule:
        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        return schedule

    def list_schedules(self, group_id: str) -> list[WeeklySchedule]:
        return self._schedules.list(group_id)

    def find_for_week(
        self, group_id: str, week_start_date: datetime.date
    ) -> WeeklySchedule:
        schedule = self._schedules.find_by_week(group_id, week_start_date.isoformat())
        if schedule is None:
            raise NotFoundError(
                f"No schedule for group {group_id} week {week_start_date.isoformat()}"
            )
        return schedule

    def get_assignments(self, schedule_id: str) -> list[Assignment]:
        self.get_schedule(schedule_id)
        return self._schedules.list_assignments(schedule_id)

    # ── 割り当て実行 ─────────────────────────────────────────────────────────

    def generate(
        self,
        schedule_id: str,
        *,
        force_regenerate: bool = False,
        dry_run: bool = False,
        include_late: bool | None = None,
    ) -> GenerationOutcome:
        """
        5ステップアルゴリズムで週の割り当てを作成してコミットする。

        Args:
            schedule_id: 対象スケジュール
            force_regenerate: assigned 済みのスケジュールを再実行する
            dry_run: 計算のみ行い保存しない
            include_late: 遅延提出を含めるか（None ならポリシーに従う）

        Raises:
            NotFoundError: スケジュールが存在しない
            ConflictError: ステータスが実行可能でない、または同時実行と競合した
            SchedulingRunError: コミットに失敗した（再実行可能）
        """
        schedule = self.get_schedule(schedule_id)
        self._check_can_generate(schedule, force_regenerate)

        superseded = None
        if schedule.current_run_id:
            superseded = self._schedules.get_run(schedule.id, schedule.current_run_id)

        roster = self._roster.list_families(schedule.group_id)
        member_ids = [f.id for f in roster]
        members = set(member_ids)
        preferences = [
            p
            for p in self._prefs.list_for_schedule(schedule.group_id, schedule.id)
            if p.family_id in members
        ]
        baseline = self._ledger.baseline(schedule.group_id, member_ids, superseded)

        run_id = str(uuid.uuid4())
        logger.info(
            "Scheduling run started: schedule_id=%s, run_id=%s, families=%d, submissions=%d",
            schedule.id,
            run_id,
            len(roster),
            len(preferences),
        )
        result = self._resolver.resolve(
            schedule, roster, preferences, baseline, run_id, include_late=include_late
        )

        if dry_run:
            logger.info("Dry run: schedule_id=%s, nothing committed", schedule.id)
            return GenerationOutcome(
                schedule=schedule, run_id=run_id, result=result, dry_run=True
            )

        if include_late is None:
            include_late = self._resolver.policy.include_late_submissions
        considered = [p for p in preferences if include_late or not p.is_late_submission]
        deltas = self._ledger.compute_deltas(result.assignments, considered, baseline)
        run = SchedulingRun(
            id=run_id,
            schedule_id=schedule.id,
            group_id=schedule.group_id,
            assignments=result.assignments,
            deltas=deltas,
            summary=result.to_summary(),
            created_at=self._clock(),
        )
        try:
            committed = self._schedules.commit_run(schedule, run, expected_version=schedule.version)
        except ConflictError:
            logger.warning(
                "Scheduling run conflicted: schedule_id=%s, run_id=%s", schedule.id, run_id
            )
            raise
        except Exception as e:
            logger.exception(
                "Scheduling run failed: schedule_id=%s, run_id=%s",
                schedule.id,
                run_id,
                extra=run_context(
                    group_id=schedule.group_id, schedule_id=schedule.id, run_id=run_id
                ),
            )
            raise SchedulingRunError(
                f"Failed to commit scheduling run {run_id}: {e}", run_id=run_id
            ) from e

        logger.info(
            "Scheduling run committed: schedule_id=%s, run_id=%s, superseded=%s",
            schedule.id,
            run_id,
            superseded.id if superseded else None,
            extra=run_context(
                group_id=schedule.group_id, schedule_id=schedule.id, run_id=run_id
            ),
        )
        self._publisher.publish(
            "assignments_published",
            {
                "groupId": schedule.group_id,
                "scheduleId": schedule.id,
                "runId": run_id,
                "weekStartDate": schedule.week_start_date.isoformat(),
                "assignmentsCreated": result.assignments_created,
                "unassignedSlots": len(result.unassigned_slots),
            },
        )
        return GenerationOutcome(
            schedule=committed,
            run_id=run_id,
            result=result,
            superseded_run_id=superseded.id if superseded else None,
        )

    @staticmethod
    def _check_can_generate(schedule: WeeklySchedule, force_regenerate: bool) -> None:
        if schedule.status is ScheduleStatus.PREFERENCES_CLOSED:
            return
        if schedule.status is ScheduleStatus.ASSIGNED:
            if force_regenerate:
                return
            raise ConflictError(
                f"Schedule {schedule.id} is already assigned; use forceRegenerate to re-run"
            )
        raise ConflictError(
            f"Schedule {schedule.id} is {schedule.status.value}; cannot generate assignments"
        )

    def _transition(self, schedule: WeeklySchedule, target: ScheduleStatus) -> WeeklySchedule:
        if not schedule.status.can_transition_to(target) or schedule.status is target:
            raise ConflictError(
                f"Schedule {schedule.id} is {schedule.status.value}; cannot move to {target.value}"
            )
        updated = replace(schedule, status=target, version=schedule.version + 1)
        self._schedules.update_status(updated, expected_version=schedule.version)
        logger.info(
            "Schedule status changed: schedule_id=%s, %s -> %s",
            schedule.id,
            schedule.status.value,
            target.value,
        )
        return updated
