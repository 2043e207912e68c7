"""PreferenceStore - 週次希望の受付・検証・保存

設計方針:
- 1ファミリー×1スケジュールにつき1レコード。再提出は丸ごと置き換え
- 3+2+2 ルール違反は超過した区分名つきの ValidationError
- 締切後の提出は拒否せず is_late_submission=True で受け付ける
  （採用するかは割り当て実行時のポリシーで決まる）
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable

from carpool.domain.errors import ConflictError, NotFoundError, ValidationError
from carpool.domain.models import (
    QUOTA_LIMITS,
    WEEKDAYS,
    DayPreference,
    EmergencyContact,
    PreferenceStatus,
    ScheduleStatus,
    WeeklyPreferences,
    WeeklySchedule,
)
from carpool.domain.ports import PreferenceRepository, RosterProvider, ScheduleRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def validate_week(days: list[DayPreference]) -> None:
    """
    1週間分の希望を検証する。

    - 月〜金の各曜日にちょうど1件
    - 各日の内部整合性（DayPreference.validate）
    - 3+2+2 ルール

    Raises:
        ValidationError: category または day に違反箇所を入れて送出
    """
    if len(days) != len(WEEKDAYS):
        raise ValidationError(
            f"Expected {len(WEEKDAYS)} day preferences (Monday-Friday), got {len(days)}"
        )
    seen = set()
    for d in days:
        if d.weekday in seen:
            raise ValidationError(
                f"Duplicate preference for {d.weekday.label}", day=d.weekday.value
            )
        seen.add(d.weekday)
    missing = [w for w in WEEKDAYS if w not in seen]
    if missing:
        raise ValidationError(
            f"Missing preference for {missing[0].label}", day=missing[0].value
        )

    for d in days:
        d.validate()

    counts = {level: 0 for level in QUOTA_LIMITS}
    for d in days:
        level = d.preference_level
        if level in counts:
            counts[level] += 1
    for level, limit in QUOTA_LIMITS.items():
        if counts[level] > limit:
            raise ValidationError(
                f"Too many '{level.value}' days: {counts[level]} (max {limit})",
                category=level.value,
            )


class PreferenceStore:
    """
    週次希望の受付サービス。
    """

    def __init__(
        self,
        preference_repo: PreferenceRepository,
        schedule_repo: ScheduleRepository,
        roster: RosterProvider,
        clock: Clock = utc_now,
    ) -> None:
        """
        Args:
            preference_repo: 希望の永続化
            schedule_repo: スケジュールの参照（締切・ステータス）
            roster: グループ所属の確認
            clock: 現在時刻（テストで差し替え可能）
        """
        self._prefs = preference_repo
        self._schedules = schedule_repo
        self._roster = roster
        self._clock = clock

    def submit(
        self,
        family_id: str,
        schedule_id: str,
        days: list[DayPreference],
        special_requests: str = "",
        emergency_contact: EmergencyContact | None = None,
    ) -> WeeklyPreferences:
        """
        週次希望を検証して保存する。

        Returns:
            保存した WeeklyPreferences（submitted_at 設定済み）

        Raises:
            NotFoundError: スケジュールが存在しない / ファミリーがグループに属さない
            ConflictError: 完了済みのスケジュール
            ValidationError: 検証エラー
        """
        schedule = self._require_schedule(schedule_id)
        if schedule.status is ScheduleStatus.COMPLETED:
            raise ConflictError(
                f"Schedule {schedule_id} is {schedule.status.value}; preferences are locked"
            )
        member_ids = {f.id for f in self._roster.list_families(schedule.group_id)}
        if family_id not in member_ids:
            raise NotFoundError(
                f"Family {family_id} is not a member of group {schedule.group_id}"
            )

        validate_week(days)

        now = self._clock()
        # 割り当て後の提出は遅延扱い（forceRegenerate の再実行で反映される）
        is_late = (
            now > schedule.preferences_deadline
            or schedule.status is ScheduleStatus.ASSIGNED
        )
        preferences = WeeklyPreferences(
            family_id=family_id,
            schedule_id=schedule_id,
            group_id=schedule.group_id,
            days=sorted(days, key=lambda d: d.weekday.offset),
            submitted_at=now,
            is_late_submission=is_late,
            special_requests=special_requests,
            emergency_contact=emergency_contact,
        )
        self._prefs.save(preferences)

        if is_late:
            logger.warning(
                "Late preference submission accepted: family_id=%s, schedule_id=%s, deadline=%s",
                family_id,
                schedule_id,
                schedule.preferences_deadline.isoformat(),
            )
        else:
            logger.info(
                "Preferences submitted: family_id=%s, schedule_id=%s",
                family_id,
                schedule_id,
            )
        return preferences

    def get(self, family_id: str, schedule_id: str) -> WeeklyPreferences | None:
        """ファミリーの提出済み希望を返す。未提出なら None"""
        schedule = self._require_schedule(schedule_id)
        return self._prefs.get(schedule.group_id, schedule_id, family_id)

    def list_for_schedule(self, schedule_id: str) -> list[WeeklyPreferences]:
        schedule = self._require_schedule(schedule_id)
        return sorted(
            self._prefs.list_for_schedule(schedule.group_id, schedule_id),
            key=lambda p: p.family_id,
        )

    def status(self, schedule_id: str) -> PreferenceStatus:
        """提出状況（提出率・未提出ファミリー）を集計する"""
        schedule = self._require_schedule(schedule_id)
        member_ids = sorted(f.id for f in self._roster.list_families(schedule.group_id))
        submitted = {
            p.family_id: p
            for p in self._prefs.list_for_schedule(schedule.group_id, schedule_id)
            if p.family_id in member_ids
        }
        return PreferenceStatus(
            total_families=len(member_ids),
            submitted_count=len(submitted),
            late_count=sum(1 for p in submitted.values() if p.is_late_submission),
            pending_family_ids=[fid for fid in member_ids if fid not in submitted],
        )

    def _require_schedule(self, schedule_id: str) -> WeeklySchedule:
        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        return schedule
