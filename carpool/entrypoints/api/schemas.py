"""API リクエスト / レスポンスモデル

JSON は camelCase（drivingAvailability 等）。Python 側は snake_case で扱い、
alias_generator で相互変換する。ドメインモデルとの変換もここに置く。
"""

from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from carpool.domain.models import (
    Assignment,
    DayPreference,
    EmergencyContact,
    FairnessRecord,
    MakeupProposal,
    MakeupStatus,
    MakeupType,
    PreferenceLevel,
    PreferenceStatus,
    PreferredRole,
    Weekday,
    WeeklyPreferences,
    WeeklySchedule,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── 週次希望 ─────────────────────────────────────────────────────────────────


class DayAvailability(CamelModel):
    day: Weekday
    preferred_role: PreferredRole
    can_drive: bool = True
    max_passengers: int | None = None
    preference_level: PreferenceLevel | None = None
    earliest_pickup: str | None = None
    latest_dropoff: str | None = None
    notes: str = ""

    def to_domain(self) -> DayPreference:
        return DayPreference(
            weekday=self.day,
            preferred_role=self.preferred_role,
            can_drive=self.can_drive,
            max_passengers=self.max_passengers,
            level=self.preference_level,
            earliest_pickup=self.earliest_pickup,
            latest_dropoff=self.latest_dropoff,
            notes=self.notes,
        )

    @classmethod
    def from_domain(cls, d: DayPreference) -> DayAvailability:
        return cls(
            day=d.weekday,
            preferred_role=d.preferred_role,
            can_drive=d.can_drive,
            max_passengers=d.max_passengers,
            preference_level=d.preference_level,
            earliest_pickup=d.earliest_pickup,
            latest_dropoff=d.latest_dropoff,
            notes=d.notes,
        )


class EmergencyContactModel(CamelModel):
    name: str
    phone: str
    can_drive: bool = False


class SubmitPreferencesRequest(CamelModel):
    schedule_id: str
    driving_availability: list[DayAvailability]
    special_requests: str = ""
    emergency_contact: EmergencyContactModel | None = None

    def emergency_contact_domain(self) -> EmergencyContact | None:
        c = self.emergency_contact
        if c is None:
            return None
        return EmergencyContact(name=c.name, phone=c.phone, can_drive=c.can_drive)


class PreferencesResponse(CamelModel):
    family_id: str
    schedule_id: str
    submitted_at: datetime.datetime | None
    is_late_submission: bool
    special_requests: str
    driving_availability: list[DayAvailability]
    emergency_contact: EmergencyContactModel | None = None

    @classmethod
    def from_domain(cls, p: WeeklyPreferences) -> PreferencesResponse:
        c = p.emergency_contact
        return cls(
            family_id=p.family_id,
            schedule_id=p.schedule_id,
            submitted_at=p.submitted_at,
            is_late_submission=p.is_late_submission,
            special_requests=p.special_requests,
            driving_availability=[DayAvailability.from_domain(d) for d in p.days],
            emergency_contact=(
                EmergencyContactModel(name=c.name, phone=c.phone, can_drive=c.can_drive)
                if c
                else None
            ),
        )


class PreferenceStatusResponse(CamelModel):
    total_families: int
    submitted_count: int
    late_count: int
    submission_rate: float
    pending_family_ids: list[str]

    @classmethod
    def from_domain(cls, s: PreferenceStatus) -> PreferenceStatusResponse:
        return cls(
            total_families=s.total_families,
            submitted_count=s.submitted_count,
            late_count=s.late_count,
            submission_rate=round(s.submission_rate, 1),
            pending_family_ids=s.pending_family_ids,
        )


# ── スケジュール・割り当て ──────────────────────────────────────────────────────


class CreateScheduleRequest(CamelModel):
    week_start_date: datetime.date
    preferences_deadline: datetime.datetime | None = None
    swaps_deadline: datetime.datetime | None = None


class GenerateRequest(CamelModel):
    force_regenerate: bool = False
    dry_run: bool = False
    include_late_submissions: bool | None = None


class ScheduleResponse(CamelModel):
    id: str
    group_id: str
    week_start_date: datetime.date
    week_end_date: datetime.date
    status: str
    preferences_deadline: datetime.datetime
    swaps_deadline: datetime.datetime
    current_run_id: str | None = None

    @classmethod
    def from_domain(cls, s: WeeklySchedule) -> ScheduleResponse:
        return cls(
            id=s.id,
            group_id=s.group_id,
            week_start_date=s.week_start_date,
            week_end_date=s.week_end_date,
            status=s.status.value,
            preferences_deadline=s.preferences_deadline,
            swaps_deadline=s.swaps_deadline,
            current_run_id=s.current_run_id,
        )


class AssignmentResponse(CamelModel):
    id: str
    date: datetime.date
    day: str
    driver_family_id: str
    passenger_family_ids: list[str]
    capacity: int
    step: int
    preference_level: str

    @classmethod
    def from_domain(cls, a: Assignment) -> AssignmentResponse:
        return cls(
            id=a.id,
            date=a.date,
            day=a.weekday.value,
            driver_family_id=a.driver_family_id,
            passenger_family_ids=list(a.passenger_family_ids),
            capacity=a.capacity,
            step=a.step,
            preference_level=a.preference_level.value,
        )


class GenerateResponse(CamelModel):
    schedule_id: str
    run_id: str
    dry_run: bool
    status: str
    superseded_run_id: str | None = None
    summary: dict
    assignments: list[AssignmentResponse]


# ── 公平性台帳 ─────────────────────────────────────────────────────────────────


class FairnessResponse(CamelModel):
    family_id: str
    trips_driven: int
    trips_missed: int
    makeup_owed: int
    makeup_completed: int
    last_driven_date: datetime.date | None = None

    @classmethod
    def from_domain(cls, r: FairnessRecord) -> FairnessResponse:
        return cls(
            family_id=r.family_id,
            trips_driven=r.trips_driven,
            trips_missed=r.trips_missed,
            makeup_owed=r.makeup_owed,
            makeup_completed=r.makeup_completed,
            last_driven_date=r.last_driven_date,
        )


# ── メイクアップ ─────────────────────────────────────────────────────────────────


class TravelRequest(CamelModel):
    dates: list[datetime.date] = Field(min_length=1)
    reason: str = ""


class BalanceResponse(CamelModel):
    family_id: str
    makeup_owed: int
    available_balance: int


class ProposeMakeupRequest(CamelModel):
    proposed_date: datetime.date
    proposed_time: str
    makeup_type: MakeupType
    trips_to_makeup: int
    notes: str = ""


class ReviewMakeupRequest(CamelModel):
    decision: MakeupStatus
    review_notes: str = ""


class MakeupProposalResponse(CamelModel):
    id: str
    family_id: str
    proposed_date: datetime.date
    proposed_time: str
    makeup_type: str
    trips_to_makeup: int
    status: str
    notes: str
    reviewed_by: str | None = None
    review_notes: str = ""

    @classmethod
    def from_domain(cls, p: MakeupProposal) -> MakeupProposalResponse:
        return cls(
            id=p.id,
            family_id=p.family_id,
            proposed_date=p.proposed_date,
            proposed_time=p.proposed_time,
            makeup_type=p.makeup_type.value,
            trips_to_makeup=p.trips_to_makeup,
            status=p.status.value,
            notes=p.notes,
            reviewed_by=p.reviewed_by,
            review_notes=p.review_notes,
        )
