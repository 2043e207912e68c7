"""ドメインモデル - 外部依存なしのデータ構造"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from enum import Enum

from carpool.domain.errors import ValidationError


class Weekday(Enum):
    """スケジュール対象の平日"""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"

    @property
    def offset(self) -> int:
        """週開始日（月曜）からの日数"""
        return _WEEKDAY_ORDER.index(self)

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def date_in_week(self, week_start: datetime.date) -> datetime.date:
        return week_start + datetime.timedelta(days=self.offset)


_WEEKDAY_ORDER = [
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
]
WEEKDAYS: tuple[Weekday, ...] = tuple(_WEEKDAY_ORDER)


class PreferenceLevel(Enum):
    """1日あたりの運転希望の強さ"""

    PREFERABLE = "preferable"
    LESS_PREFERABLE = "less_preferable"
    NEUTRAL = "neutral"
    UNAVAILABLE = "unavailable"


# 3+2+2 ルール: 週あたりの区分ごとの上限
QUOTA_LIMITS: dict[PreferenceLevel, int] = {
    PreferenceLevel.PREFERABLE: 3,
    PreferenceLevel.LESS_PREFERABLE: 2,
    PreferenceLevel.UNAVAILABLE: 2,
}


class PreferredRole(Enum):
    """その日に希望する役割"""

    DRIVER = "driver"
    PASSENGER = "passenger"
    EITHER = "either"
    UNAVAILABLE = "unavailable"


_ROLE_TO_LEVEL = {
    PreferredRole.DRIVER: PreferenceLevel.PREFERABLE,
    PreferredRole.EITHER: PreferenceLevel.LESS_PREFERABLE,
    PreferredRole.PASSENGER: PreferenceLevel.NEUTRAL,
    PreferredRole.UNAVAILABLE: PreferenceLevel.UNAVAILABLE,
}

# 明示した preferenceLevel が取りうる値（役割ごと）
_ROLE_LEVELS: dict[PreferredRole, set[PreferenceLevel]] = {
    PreferredRole.DRIVER: {PreferenceLevel.PREFERABLE, PreferenceLevel.LESS_PREFERABLE},
    PreferredRole.EITHER: {
        PreferenceLevel.PREFERABLE,
        PreferenceLevel.LESS_PREFERABLE,
        PreferenceLevel.NEUTRAL,
    },
    PreferredRole.PASSENGER: {PreferenceLevel.NEUTRAL},
    PreferredRole.UNAVAILABLE: {PreferenceLevel.UNAVAILABLE},
}


class ScheduleStatus(Enum):
    """WeeklySchedule のライフサイクル（前進のみ）"""

    PREFERENCES_OPEN = "preferences_open"
    PREFERENCES_CLOSED = "preferences_closed"
    ASSIGNED = "assigned"
    COMPLETED = "completed"

    def can_transition_to(self, target: ScheduleStatus) -> bool:
        return target in _SCHEDULE_TRANSITIONS[self]


# ASSIGNED -> ASSIGNED は再実行による置き換え
_SCHEDULE_TRANSITIONS: dict[ScheduleStatus, set[ScheduleStatus]] = {
    ScheduleStatus.PREFERENCES_OPEN: {ScheduleStatus.PREFERENCES_CLOSED},
    ScheduleStatus.PREFERENCES_CLOSED: {ScheduleStatus.ASSIGNED},
    ScheduleStatus.ASSIGNED: {ScheduleStatus.ASSIGNED, ScheduleStatus.COMPLETED},
    ScheduleStatus.COMPLETED: set(),
}


class MakeupType(Enum):
    """メイクアップ（埋め合わせ）運転の種類"""

    EXTRA_WEEK = "extra_week"
    SPLIT_WEEKS = "split_weeks"
    WEEKEND_TRIP = "weekend_trip"


class MakeupStatus(Enum):
    """MakeupProposal のライフサイクル"""

    PROPOSED = "proposed"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"

    def can_transition_to(self, target: MakeupStatus) -> bool:
        return target in _MAKEUP_TRANSITIONS[self]


_MAKEUP_TRANSITIONS: dict[MakeupStatus, set[MakeupStatus]] = {
    MakeupStatus.PROPOSED: {MakeupStatus.APPROVED, MakeupStatus.REJECTED},
    MakeupStatus.APPROVED: {MakeupStatus.COMPLETED},
    MakeupStatus.REJECTED: set(),
    MakeupStatus.COMPLETED: set(),
}


# ─── ファミリー ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Family:
    """世帯。スケジューリングの最小単位（個人ではない）"""

    id: str
    name: str
    primary_parent_id: str
    parent_ids: list[str] = field(default_factory=list)
    children: list[str] = field(default_factory=list)  # 例: ["Emma", "Jake"]
    is_active_driver: bool = True

    def __post_init__(self) -> None:
        if not self.primary_parent_id:
            raise ValidationError(f"Family {self.id} has no primary parent")
        if self.parent_ids and self.primary_parent_id not in self.parent_ids:
            raise ValidationError(
                f"Primary parent {self.primary_parent_id} is not a parent of family {self.id}"
            )


@dataclass(frozen=True)
class EmergencyContact:
    """緊急連絡先"""

    name: str
    phone: str
    can_drive: bool = False


# ─── 週次希望 ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DayPreference:
    """1ファミリーの1日分の希望"""

    weekday: Weekday
    preferred_role: PreferredRole
    can_drive: bool = True
    max_passengers: int | None = None
    level: PreferenceLevel | None = None  # 省略時は preferred_role から導出
    earliest_pickup: str | None = None  # "HH:MM"
    latest_dropoff: str | None = None  # "HH:MM"
    notes: str = ""

    @property
    def preference_level(self) -> PreferenceLevel:
        if self.level is not None:
            return self.level
        return _ROLE_TO_LEVEL[self.preferred_role]

    @property
    def is_unavailable(self) -> bool:
        return self.preference_level is PreferenceLevel.UNAVAILABLE

    @property
    def can_offer_ride(self) -> bool:
        """運転手候補になれるか"""
        return self.can_drive and not self.is_unavailable

    def validate(self) -> None:
        """内部整合性を検証する。不整合なら ValidationError"""
        day = self.weekday.value
        if self.max_passengers is not None and self.max_passengers < 1:
            raise ValidationError(
                f"{self.weekday.label}: maxPassengers must be at least 1", day=day
            )
        if (
            self.can_drive
            and self.preferred_role is PreferredRole.DRIVER
            and self.max_passengers is None
        ):
            raise ValidationError(
                f"{self.weekday.label}: maxPassengers is required when offering to drive",
                day=day,
            )
        if self.preference_level not in _ROLE_LEVELS[self.preferred_role]:
            raise ValidationError(
                f"{self.weekday.label}: preference level {self.preference_level.value} "
                f"does not match role {self.preferred_role.value}",
                day=day,
            )
        pickup = _parse_clock(self.earliest_pickup, self.weekday)
        dropoff = _parse_clock(self.latest_dropoff, self.weekday)
        if pickup is not None and dropoff is not None and pickup > dropoff:
            raise ValidationError(
                f"{self.weekday.label}: earliest pickup is after latest dropoff",
                day=day,
            )


def _parse_clock(value: str | None, weekday: Weekday) -> datetime.time | None:
    """HH:MM 形式（時は1桁も可）を time に変換する"""
    if not value:
        return None
    try:
        return datetime.datetime.strptime(value, "%H:%M").time()
    except ValueError:
        raise ValidationError(
            f"{weekday.label}: invalid time {value!r} (expected HH:MM)",
            day=weekday.value,
        ) from None


@dataclass(frozen=True)
class WeeklyPreferences:
    """1ファミリーの1週間分（月〜金）の希望提出"""

    family_id: str
    schedule_id: str
    group_id: str
    days: list[DayPreference]
    submitted_at: datetime.datetime | None = None
    is_late_submission: bool = False
    special_requests: str = ""
    emergency_contact: EmergencyContact | None = None

    def day(self, weekday: Weekday) -> DayPreference | None:
        for d in self.days:
            if d.weekday is weekday:
                return d
        return None

    def level_counts(self) -> dict[PreferenceLevel, int]:
        counts = {level: 0 for level in PreferenceLevel}
        for d in self.days:
            counts[d.preference_level] += 1
        return counts


# ─── スケジュールと割り当て ──────────────────────────────────────────────────


@dataclass(frozen=True)
class WeeklySchedule:
    """1グループ・1週間のスケジューリング期間"""

    id: str
    group_id: str
    week_start_date: datetime.date  # 月曜
    week_end_date: datetime.date  # 金曜
    status: ScheduleStatus
    preferences_deadline: datetime.datetime
    swaps_deadline: datetime.datetime
    current_run_id: str | None = None
    version: int = 0  # 楽観的排他制御用

    @property
    def dates(self) -> list[datetime.date]:
        return [w.date_in_week(self.week_start_date) for w in WEEKDAYS]


@dataclass(frozen=True)
class Assignment:
    """1日分の運転手と同乗ファミリーの割り当て"""

    id: str
    schedule_id: str
    run_id: str
    date: datetime.date
    weekday: Weekday
    driver_family_id: str
    passenger_family_ids: list[str]
    capacity: int
    step: int  # 割り当てたアルゴリズムのステップ（2〜4）
    preference_level: PreferenceLevel


@dataclass(frozen=True)
class UnassignedSlot:
    """埋められなかったスロット（例外ではなく結果データ）"""

    date: datetime.date
    weekday: Weekday
    role: str  # "driver" | "passenger"
    family_id: str | None = None
    reason: str = ""


@dataclass
class AlgorithmStep:
    """アルゴリズム各ステップの監査用集計"""

    step: int
    name: str
    drivers_processed: int = 0
    slots_excluded: int = 0
    slots_assigned: int = 0

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "name": self.name,
            "driversProcessed": self.drivers_processed,
            "slotsExcluded": self.slots_excluded,
            "slotsAssigned": self.slots_assigned,
        }


@dataclass(frozen=True)
class ResolverResult:
    """ConstraintResolver の出力"""

    assignments: list[Assignment]
    unassigned_slots: list[UnassignedSlot]
    steps: list[AlgorithmStep]
    warnings: list[str] = field(default_factory=list)
    fairness_score: float = 1.0

    @property
    def assignments_created(self) -> int:
        return len(self.assignments)

    @property
    def slots_assigned(self) -> int:
        """運転手が決まった曜日の数"""
        return len({a.weekday for a in self.assignments})

    def to_summary(self) -> dict:
        """generate-schedule レスポンス形式に変換する"""
        return {
            "assignmentsCreated": self.assignments_created,
            "slotsAssigned": self.slots_assigned,
            "unassignedSlots": len(self.unassigned_slots),
            "unassignedSlotDetails": [
                {
                    "date": s.date.isoformat(),
                    "day": s.weekday.value,
                    "role": s.role,
                    "familyId": s.family_id,
                    "reason": s.reason,
                }
                for s in self.unassigned_slots
            ],
            "algorithmSteps": [s.to_dict() for s in self.steps],
            "warnings": list(self.warnings),
            "fairnessScore": round(self.fairness_score, 4),
        }


# ─── 公平性台帳 ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FairnessRecord:
    """ファミリー×グループ単位の運転回数の累計"""

    family_id: str
    group_id: str
    trips_driven: int = 0
    trips_missed: int = 0
    makeup_owed: int = 0
    makeup_completed: int = 0
    last_driven_date: datetime.date | None = None

    def with_delta(self, delta: LedgerDelta) -> FairnessRecord:
        """差分を適用したレコードを返す"""
        last = self.last_driven_date
        if delta.last_driven_after is not None and (
            last is None or delta.last_driven_after > last
        ):
            last = delta.last_driven_after
        return replace(
            self,
            trips_driven=self.trips_driven + delta.trips_driven,
            trips_missed=self.trips_missed + delta.trips_missed,
            last_driven_date=last,
        )

    def without_delta(self, delta: LedgerDelta) -> FairnessRecord:
        """差分を巻き戻したレコードを返す"""
        last = self.last_driven_date
        # 後続の運転で更新されていなければ、実行前の日付に戻す
        if delta.last_driven_after is not None and last == delta.last_driven_after:
            last = delta.last_driven_before
        return replace(
            self,
            trips_driven=max(0, self.trips_driven - delta.trips_driven),
            trips_missed=max(0, self.trips_missed - delta.trips_missed),
            last_driven_date=last,
        )


@dataclass(frozen=True)
class LedgerDelta:
    """1回の割り当て実行が台帳に与える差分（再実行時に巻き戻すため保存する）"""

    family_id: str
    trips_driven: int = 0
    trips_missed: int = 0
    last_driven_before: datetime.date | None = None
    last_driven_after: datetime.date | None = None


@dataclass(frozen=True)
class SchedulingRun:
    """コミット済みの割り当て実行"""

    id: str
    schedule_id: str
    group_id: str
    assignments: list[Assignment]
    deltas: list[LedgerDelta]
    summary: dict = field(default_factory=dict)
    created_at: datetime.datetime | None = None


# ─── メイクアップ ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TravelException:
    """出張等で運転できなかった日の記録"""

    family_id: str
    group_id: str
    dates: list[datetime.date]
    reason: str = ""


@dataclass(frozen=True)
class MakeupProposal:
    """出張ファミリーによる埋め合わせ運転の提案"""

    id: str
    family_id: str
    group_id: str
    proposed_date: datetime.date
    proposed_time: str  # "HH:MM"
    makeup_type: MakeupType
    trips_to_makeup: int
    status: MakeupStatus = MakeupStatus.PROPOSED
    notes: str = ""
    reviewed_by: str | None = None
    review_notes: str = ""
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None


# ─── ポリシー・集計 ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SchedulingPolicy:
    """割り当て実行のポリシー"""

    include_late_submissions: bool = True
    default_max_passengers: int = 4
    low_driver_warning_threshold: int = 3


@dataclass(frozen=True)
class PreferenceStatus:
    """週次希望の提出状況"""

    total_families: int
    submitted_count: int
    late_count: int
    pending_family_ids: list[str]

    @property
    def submission_rate(self) -> float:
        if self.total_families == 0:
            return 0.0
        return self.submitted_count / self.total_families * 100
