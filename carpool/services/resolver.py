"""ConstraintResolver - 週次割り当ての5ステップアルゴリズム

1. 不可スロットの除外（unavailable / 運転不可 / 未提出）
2. preferable の候補から運転手を割り当て
3. less_preferable の候補から割り当て
4. 残りの候補（neutral 含む）で埋める
5. 履歴による同点決着 ── 独立したパスではなく、2〜4 で共用する比較関数
   fairness_sort_key として適用される

ステップ2〜4 は曜日順に週全体をなめるパスで、運転手を1人決めるたびに
実行中の台帳コピーを更新する（週の前半で運転した家族は後半で後回しになる）。

純粋な計算のみで I/O は行わない。同じ入力に対して常に同じ出力を返す。
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field

from carpool.domain.errors import NotFoundError, ValidationError
from carpool.domain.models import (
    WEEKDAYS,
    AlgorithmStep,
    Assignment,
    DayPreference,
    FairnessRecord,
    Family,
    LedgerDelta,
    PreferenceLevel,
    PreferredRole,
    ResolverResult,
    SchedulingPolicy,
    UnassignedSlot,
    Weekday,
    WeeklyPreferences,
    WeeklySchedule,
)
from carpool.services.fairness_ledger import fairness_sort_key

logger = logging.getLogger(__name__)

STEP_NAMES = {
    1: "Exclude unavailable slots",
    2: "Assign preferable slots",
    3: "Assign less-preferable slots",
    4: "Fill neutral slots",
    5: "Historical tie-breaking",
}

# (ステップ番号, 対象の希望レベル)。None は希望レベルを問わない
_ASSIGNMENT_PASSES: list[tuple[int, PreferenceLevel | None]] = [
    (2, PreferenceLevel.PREFERABLE),
    (3, PreferenceLevel.LESS_PREFERABLE),
    (4, None),
]

# ステップ2・3で運転を希望したとみなす役割
_DRIVING_ROLES = (PreferredRole.DRIVER, PreferredRole.EITHER)


@dataclass
class _Driver:
    family_id: str
    capacity: int
    step: int
    level: PreferenceLevel


@dataclass
class _DayPlan:
    """1日分の作業状態"""

    weekday: Weekday
    date: datetime.date
    riders: set[str] = field(default_factory=set)
    candidates: dict[str, DayPreference] = field(default_factory=dict)
    drivers: list[_Driver] = field(default_factory=list)

    @property
    def driver_ids(self) -> set[str]:
        return {d.family_id for d in self.drivers}

    @property
    def riders_needing_seat(self) -> list[str]:
        return sorted(self.riders - self.driver_ids)

    @property
    def is_resolved(self) -> bool:
        if not self.drivers:
            return False
        seats = sum(d.capacity for d in self.drivers)
        return seats >= len(self.riders_needing_seat)


class ConstraintResolver:
    """
    希望と台帳スナップショットから1週間分の割り当てを作る。

    実行不能（運転手のいない日・座席の足りない家族）は例外にせず、
    ResolverResult.unassigned_slots として返す。
    """

    def __init__(self, policy: SchedulingPolicy | None = None) -> None:
        """
        Args:
            policy: 遅延提出の扱い・既定の定員などのポリシー
        """
        self._policy = policy or SchedulingPolicy()

    @property
    def policy(self) -> SchedulingPolicy:
        return self._policy

    def resolve(
        self,
        schedule: WeeklySchedule | None,
        roster: list[Family],
        preferences: list[WeeklyPreferences],
        fairness: dict[str, FairnessRecord],
        run_id: str,
        include_late: bool | None = None,
    ) -> ResolverResult:
        """
        1週間分の割り当てを計算する。

        Args:
            schedule: 対象の WeeklySchedule
            roster: グループのファミリー一覧
            preferences: スケジュールに対する週次希望
            fairness: family_id -> FairnessRecord（実行前の台帳）
            run_id: 割り当てIDに埋め込む実行ID
            include_late: 遅延提出を含めるか（None ならポリシーに従う）

        Returns:
            ResolverResult

        Raises:
            NotFoundError: schedule が None の場合
            ValidationError: ロスターが空の場合
        """
        if schedule is None:
            raise NotFoundError("Weekly schedule not found")
        if not roster:
            raise ValidationError(f"Group {schedule.group_id} has no families")

        if include_late is None:
            include_late = self._policy.include_late_submissions

        families = {f.id: f for f in roster}
        running = {
            fid: fairness.get(fid, FairnessRecord(family_id=fid, group_id=schedule.group_id))
            for fid in sorted(families)
        }
        warnings: list[str] = []

        usable = self._usable_preferences(preferences, families, include_late, warnings)
        plans, step1 = self._exclude_unavailable(schedule, families, usable)
        logger.info(
            "Step 1 (%s): processed=%d, excluded=%d",
            step1.name,
            step1.drivers_processed,
            step1.slots_excluded,
        )

        tie_break = AlgorithmStep(step=5, name=STEP_NAMES[5])
        steps = [step1]
        for step_no, level in _ASSIGNMENT_PASSES:
            stats = self._assignment_pass(step_no, level, plans, running, tie_break)
            steps.append(stats)
            logger.info(
                "Step %d (%s): processed=%d, assigned=%d",
                step_no,
                stats.name,
                stats.drivers_processed,
                stats.slots_assigned,
            )
        steps.append(tie_break)

        assignments, unassigned = self._seat_passengers(schedule, plans, run_id)

        eligible_drivers = {fid for plan in plans for fid in plan.candidates}
        if len(eligible_drivers) < self._policy.low_driver_warning_threshold:
            warnings.append("Low driver availability - consider recruiting more drivers")
        for plan in plans:
            if not plan.drivers:
                warnings.append(f"No available drivers for {plan.weekday.label}")

        result = ResolverResult(
            assignments=assignments,
            unassigned_slots=unassigned,
            steps=steps,
            warnings=warnings,
            fairness_score=_fairness_score(assignments),
        )
        logger.info(
            "Resolver finished: schedule_id=%s, assignments=%d, unassigned=%d",
            schedule.id,
            result.assignments_created,
            len(unassigned),
        )
        return result

    # ── ステップ1 ────────────────────────────────────────────────────────────

    def _usable_preferences(
        self,
        preferences: list[WeeklyPreferences],
        families: dict[str, Family],
        include_late: bool,
        warnings: list[str],
    ) -> dict[str, WeeklyPreferences]:
        usable: dict[str, WeeklyPreferences] = {}
        late_excluded = 0
        for prefs in sorted(preferences, key=lambda p: p.family_id):
            if prefs.family_id not in families:
                logger.debug("Ignoring preferences of non-member: %s", prefs.family_id)
                continue
            if prefs.is_late_submission and not include_late:
                late_excluded += 1
                continue
            usable[prefs.family_id] = prefs
        if late_excluded:
            warnings.append(f"Excluded {late_excluded} late submission(s)")
        return usable

    def _exclude_unavailable(
        self,
        schedule: WeeklySchedule,
        families: dict[str, Family],
        usable: dict[str, WeeklyPreferences],
    ) -> tuple[list[_DayPlan], AlgorithmStep]:
        stats = AlgorithmStep(step=1, name=STEP_NAMES[1])
        plans = []
        for weekday in WEEKDAYS:
            plan = _DayPlan(weekday=weekday, date=weekday.date_in_week(schedule.week_start_date))
            for fid in sorted(families):
                stats.drivers_processed += 1
                prefs = usable.get(fid)
                day = prefs.day(weekday) if prefs else None
                if day is None or day.is_unavailable:
                    stats.slots_excluded += 1
                    continue
                plan.riders.add(fid)
                if day.can_offer_ride and families[fid].is_active_driver:
                    plan.candidates[fid] = day
                else:
                    # 同乗はできるが運転手候補からは外す
                    stats.slots_excluded += 1
            plans.append(plan)
        return plans, stats

    # ── ステップ2〜4 ─────────────────────────────────────────────────────────

    def _assignment_pass(
        self,
        step_no: int,
        level: PreferenceLevel | None,
        plans: list[_DayPlan],
        running: dict[str, FairnessRecord],
        tie_break: AlgorithmStep,
    ) -> AlgorithmStep:
        stats = AlgorithmStep(step=step_no, name=STEP_NAMES[step_no])
        for plan in plans:
            if plan.is_resolved:
                continue
            pool = [
                fid
                for fid, pref in sorted(plan.candidates.items())
                if fid not in plan.driver_ids
                and (
                    level is None
                    or (pref.preference_level is level and pref.preferred_role in _DRIVING_ROLES)
                )
            ]
            stats.drivers_processed += len(pool)
            while pool and not plan.is_resolved:
                if len(pool) > 1:
                    tie_break.drivers_processed += len(pool)
                best = min(pool, key=lambda fid: fairness_sort_key(running[fid]))
                pool.remove(best)
                pref = plan.candidates[best]
                plan.drivers.append(
                    _Driver(
                        family_id=best,
                        capacity=pref.max_passengers or self._policy.default_max_passengers,
                        step=step_no,
                        level=pref.preference_level,
                    )
                )
                running[best] = running[best].with_delta(
                    LedgerDelta(family_id=best, trips_driven=1, last_driven_after=plan.date)
                )
                stats.slots_assigned += 1
                logger.debug(
                    "Step %d: %s drives on %s", step_no, best, plan.weekday.value
                )
        return stats

    # ── 同乗者の割り当て ───────────────────────────────────────────────────────

    def _seat_passengers(
        self, schedule: WeeklySchedule, plans: list[_DayPlan], run_id: str
    ) -> tuple[list[Assignment], list[UnassignedSlot]]:
        assignments: list[Assignment] = []
        unassigned: list[UnassignedSlot] = []
        for plan in plans:
            waiting = plan.riders_needing_seat
            if not plan.drivers:
                unassigned.append(
                    UnassignedSlot(
                        date=plan.date,
                        weekday=plan.weekday,
                        role="driver",
                        reason=f"No eligible driver ({len(waiting)} famil(ies) waiting)",
                    )
                )
                continue
            for n, driver in enumerate(plan.drivers, start=1):
                seated, waiting = waiting[: driver.capacity], waiting[driver.capacity :]
                assignments.append(
                    Assignment(
                        id=f"{run_id}-{plan.weekday.value}-{n}",
                        schedule_id=schedule.id,
                        run_id=run_id,
                        date=plan.date,
                        weekday=plan.weekday,
                        driver_family_id=driver.family_id,
                        passenger_family_ids=seated,
                        capacity=driver.capacity,
                        step=driver.step,
                        preference_level=driver.level,
                    )
                )
            for fid in waiting:
                unassigned.append(
                    UnassignedSlot(
                        date=plan.date,
                        weekday=plan.weekday,
                        role="passenger",
                        family_id=fid,
                        reason="Driver capacity exhausted",
                    )
                )
        return assignments, unassigned


def _fairness_score(assignments: list[Assignment]) -> float:
    """運転回数の分散から 0〜1 のスコアを出す（分散が小さいほど高い）"""
    if not assignments:
        return 1.0
    counts: dict[str, int] = {}
    for a in assignments:
        counts[a.driver_family_id] = counts.get(a.driver_family_id, 0) + 1
    values = list(counts.values())
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return max(0.0, 1 - variance)
