"""Firestore Repository Adapter

ScheduleRepository / PreferenceRepository / FairnessRepository / MakeupRepository /
RosterProvider の Firestore 実装。

Firestore コレクション構造:
  families/{familyId}                                   ← ファミリー
  groups/{groupId}                                      ← グループ（family_ids）
  groups/{groupId}/preferences/{scheduleId}_{familyId}  ← 週次希望
  groups/{groupId}/fairness/{familyId}                  ← 公平性台帳
  groups/{groupId}/makeup_proposals/{proposalId}        ← メイクアップ提案
  schedules/{scheduleId}                                ← 週次スケジュール（group_id 付き）
  schedules/{scheduleId}/assignments/{assignmentId}     ← 現在の割り当て
  schedules/{scheduleId}/runs/{runId}                   ← 実行記録（割り当てと台帳差分）

日付は "YYYY-MM-DD" 文字列、締切などの日時は Timestamp で保存する。
"""

from __future__ import annotations

import datetime
import logging
from typing import Any

from google.cloud import firestore

from carpool.domain.errors import ConflictError
from carpool.domain.models import (
    Assignment,
    DayPreference,
    EmergencyContact,
    Family,
    FairnessRecord,
    LedgerDelta,
    MakeupProposal,
    MakeupStatus,
    MakeupType,
    PreferenceLevel,
    PreferredRole,
    ScheduleStatus,
    SchedulingRun,
    Weekday,
    WeeklyPreferences,
    WeeklySchedule,
)
from carpool.domain.ports import (
    FairnessRepository,
    MakeupRepository,
    PreferenceRepository,
    RosterProvider,
    ScheduleRepository,
)

logger = logging.getLogger(__name__)

_FAMILIES = "families"
_GROUPS = "groups"
_PREFERENCES = "preferences"
_FAIRNESS = "fairness"
_MAKEUP = "makeup_proposals"
_SCHEDULES = "schedules"
_ASSIGNMENTS = "assignments"
_RUNS = "runs"


def _date_str(value: datetime.date | None) -> str | None:
    return value.isoformat() if value else None


def _parse_date(value: str | None) -> datetime.date | None:
    return datetime.date.fromisoformat(value) if value else None


class FirestoreRosterProvider(RosterProvider):
    """
    groups/{groupId}.family_ids と families/{familyId} からロスターを組み立てる。
    """

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def list_families(self, group_id: str) -> list[Family]:
        snap = self._db.collection(_GROUPS).document(group_id).get()
        if not snap.exists:
            return []
        family_ids = (snap.to_dict() or {}).get("family_ids") or []
        families = []
        for fid in sorted(family_ids):
            family = self.get_family(fid)
            if family is None:
                logger.warning(
                    "Roster references missing family: group_id=%s, family_id=%s",
                    group_id,
                    fid,
                )
                continue
            families.append(family)
        return families

    def get_family(self, family_id: str) -> Family | None:
        snap = self._db.collection(_FAMILIES).document(family_id).get()
        if not snap.exists:
            return None
        d = snap.to_dict() or {}
        return Family(
            id=family_id,
            name=d.get("name") or "",
            primary_parent_id=d.get("primary_parent_id") or "",
            parent_ids=d.get("parent_ids") or [],
            children=d.get("children") or [],
            is_active_driver=d.get("is_active_driver", True),
        )


class FirestoreScheduleRepository(ScheduleRepository):
    """
    Firestore を使った ScheduleRepository 実装。

    commit_run はスケジュール・割り当て・実行記録・台帳を1トランザクションで更新する。
    """

    def __init__(self, db: firestore.Client) -> None:
        """
        Args:
            db: 初期化済みの Firestore クライアント
        """
        self._db = db

    def _ref(self, schedule_id: str):
        return self._db.collection(_SCHEDULES).document(schedule_id)

    # ── WeeklySchedule CRUD ──────────────────────────────────────────────────

    def create(self, schedule: WeeklySchedule) -> None:
        data = self._schedule_to_dict(schedule)
        data["created_at"] = firestore.SERVER_TIMESTAMP
        self._ref(schedule.id).set(data)
        logger.info("Created schedule: group_id=%s, schedule_id=%s", schedule.group_id, schedule.id)

    def get(self, schedule_id: str) -> WeeklySchedule | None:
        snap = self._ref(schedule_id).get()
        if not snap.exists:
            return None
        return self._dict_to_schedule(schedule_id, snap.to_dict())

    def find_by_week(self, group_id: str, week_start: str) -> WeeklySchedule | None:
        snaps = (
            self._db.collection(_SCHEDULES)
            .where("group_id", "==", group_id)
            .where("week_start_date", "==", week_start)
            .limit(1)
            .stream()
        )
        for snap in snaps:
            return self._dict_to_schedule(snap.id, snap.to_dict())
        return None

    def list(self, group_id: str) -> list[WeeklySchedule]:
        """週の新しい順。複合インデックスを避けるため並べ替えはクライアント側で行う"""
        snaps = self._db.collection(_SCHEDULES).where("group_id", "==", group_id).stream()
        schedules = [self._dict_to_schedule(snap.id, snap.to_dict()) for snap in snaps]
        return sorted(schedules, key=lambda s: s.week_start_date, reverse=True)

    def update_status(self, schedule: WeeklySchedule, expected_version: int) -> None:
        transaction = self._db.transaction()
        _update_status_in_transaction(
            transaction, self._ref(schedule.id), schedule, expected_version
        )
        logger.info(
            "Updated schedule status: schedule_id=%s, status=%s",
            schedule.id,
            schedule.status.value,
        )

    # ── 割り当て・実行記録 ────────────────────────────────────────────────────

    def list_assignments(self, schedule_id: str) -> list[Assignment]:
        snaps = self._ref(schedule_id).collection(_ASSIGNMENTS).stream()
        assignments = [_dict_to_assignment(snap.id, snap.to_dict()) for snap in snaps]
        return sorted(assignments, key=lambda a: (a.date, a.id))

    def get_run(self, schedule_id: str, run_id: str) -> SchedulingRun | None:
        snap = self._ref(schedule_id).collection(_RUNS).document(run_id).get()
        if not snap.exists:
            return None
        return self._dict_to_run(run_id, snap.to_dict())

    def commit_run(
        self, schedule: WeeklySchedule, run: SchedulingRun, expected_version: int
    ) -> WeeklySchedule:
        transaction = self._db.transaction()
        fairness_col = (
            self._db.collection(_GROUPS).document(schedule.group_id).collection(_FAIRNESS)
        )
        committed = _commit_run_in_transaction(
            transaction, self._ref(schedule.id), fairness_col, schedule, run, expected_version
        )
        logger.info(
            "Committed run: schedule_id=%s, run_id=%s, assignments=%d",
            schedule.id,
            run.id,
            len(run.assignments),
        )
        return committed

    # ── 変換ヘルパー ──────────────────────────────────────────────────────────

    @staticmethod
    def _schedule_to_dict(schedule: WeeklySchedule) -> dict:
        return {
            "group_id": schedule.group_id,
            "week_start_date": _date_str(schedule.week_start_date),
            "week_end_date": _date_str(schedule.week_end_date),
            "status": schedule.status.value,
            "preferences_deadline": schedule.preferences_deadline,
            "swaps_deadline": schedule.swaps_deadline,
            "current_run_id": schedule.current_run_id,
            "version": schedule.version,
            "updated_at": firestore.SERVER_TIMESTAMP,
        }

    @staticmethod
    def _dict_to_schedule(schedule_id: str, data: dict) -> WeeklySchedule:
        return WeeklySchedule(
            id=schedule_id,
            group_id=data.get("group_id", ""),
            week_start_date=_parse_date(data["week_start_date"]),
            week_end_date=_parse_date(data["week_end_date"]),
            status=ScheduleStatus(data.get("status", ScheduleStatus.PREFERENCES_OPEN.value)),
            preferences_deadline=data["preferences_deadline"],
            swaps_deadline=data["swaps_deadline"],
            current_run_id=data.get("current_run_id"),
            version=data.get("version") or 0,
        )

    @staticmethod
    def _run_to_dict(run: SchedulingRun) -> dict:
        return {
            "group_id": run.group_id,
            "assignments": [
                {"id": a.id, **_assignment_to_dict(a)} for a in run.assignments
            ],
            "deltas": [_delta_to_dict(d) for d in run.deltas],
            "summary": run.summary,
            "created_at": run.created_at or firestore.SERVER_TIMESTAMP,
        }

    @staticmethod
    def _dict_to_run(run_id: str, data: dict) -> SchedulingRun:
        return SchedulingRun(
            id=run_id,
            schedule_id=data.get("schedule_id", ""),
            group_id=data.get("group_id", ""),
            assignments=[_dict_to_assignment(a["id"], a) for a in data.get("assignments") or []],
            deltas=[_dict_to_delta(d) for d in data.get("deltas") or []],
            summary=data.get("summary") or {},
            created_at=data.get("created_at"),
        )


@firestore.transactional
def _update_status_in_transaction(
    transaction, ref, schedule: WeeklySchedule, expected_version: int
) -> None:
    snap = ref.get(transaction=transaction)
    _check_version(snap, schedule.id, expected_version)
    transaction.update(
        ref,
        {
            "status": schedule.status.value,
            "version": schedule.version,
            "updated_at": firestore.SERVER_TIMESTAMP,
        },
    )


@firestore.transactional
def _commit_run_in_transaction(
    transaction,
    sched_ref,
    fairness_col,
    schedule: WeeklySchedule,
    run: SchedulingRun,
    expected_version: int,
) -> WeeklySchedule:
    # トランザクション内では読み取りを全て書き込みより先に行う
    snap = sched_ref.get(transaction=transaction)
    stored = _check_version(snap, schedule.id, expected_version)

    previous_deltas: list[LedgerDelta] = []
    if stored.current_run_id:
        prev_snap = sched_ref.collection(_RUNS).document(stored.current_run_id).get(
            transaction=transaction
        )
        if prev_snap.exists:
            previous_deltas = [
                _dict_to_delta(d) for d in (prev_snap.to_dict() or {}).get("deltas") or []
            ]
    old_assignments = list(sched_ref.collection(_ASSIGNMENTS).stream(transaction=transaction))

    family_ids = sorted({d.family_id for d in previous_deltas} | {d.family_id for d in run.deltas})
    records: dict[str, FairnessRecord] = {}
    for fid in family_ids:
        fsnap = fairness_col.document(fid).get(transaction=transaction)
        records[fid] = (
            _dict_to_fairness(fid, schedule.group_id, fsnap.to_dict())
            if fsnap.exists
            else FairnessRecord(family_id=fid, group_id=schedule.group_id)
        )

    for delta in previous_deltas:
        records[delta.family_id] = records[delta.family_id].without_delta(delta)
    for delta in run.deltas:
        records[delta.family_id] = records[delta.family_id].with_delta(delta)

    run_data = FirestoreScheduleRepository._run_to_dict(run)
    run_data["schedule_id"] = schedule.id
    transaction.set(sched_ref.collection(_RUNS).document(run.id), run_data)
    for old in old_assignments:
        transaction.delete(old.reference)
    for a in run.assignments:
        transaction.set(sched_ref.collection(_ASSIGNMENTS).document(a.id), _assignment_to_dict(a))
    for fid, record in records.items():
        transaction.set(fairness_col.document(fid), _fairness_to_dict(record))

    committed = WeeklySchedule(
        id=stored.id,
        group_id=stored.group_id,
        week_start_date=stored.week_start_date,
        week_end_date=stored.week_end_date,
        status=ScheduleStatus.ASSIGNED,
        preferences_deadline=stored.preferences_deadline,
        swaps_deadline=stored.swaps_deadline,
        current_run_id=run.id,
        version=stored.version + 1,
    )
    transaction.update(
        sched_ref,
        {
            "status": committed.status.value,
            "current_run_id": committed.current_run_id,
            "version": committed.version,
            "updated_at": firestore.SERVER_TIMESTAMP,
        },
    )
    return committed


def _check_version(snap, schedule_id: str, expected_version: int) -> WeeklySchedule:
    if not snap.exists:
        raise ConflictError(f"Schedule {schedule_id} no longer exists")
    stored = FirestoreScheduleRepository._dict_to_schedule(schedule_id, snap.to_dict())
    if stored.version != expected_version:
        raise ConflictError(
            f"Schedule {schedule_id} was modified concurrently "
            f"(expected version {expected_version}, found {stored.version})"
        )
    return stored


class FirestorePreferenceRepository(PreferenceRepository):
    """
    groups/{groupId}/preferences/{scheduleId}_{familyId} に1ファミリー1ドキュメントで保存する。
    """

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def _col(self, group_id: str):
        return self._db.collection(_GROUPS).document(group_id).collection(_PREFERENCES)

    def save(self, preferences: WeeklyPreferences) -> None:
        doc_id = f"{preferences.schedule_id}_{preferences.family_id}"
        self._col(preferences.group_id).document(doc_id).set(self._prefs_to_dict(preferences))
        logger.info(
            "Saved preferences: group_id=%s, schedule_id=%s, family_id=%s",
            preferences.group_id,
            preferences.schedule_id,
            preferences.family_id,
        )

    def get(self, group_id: str, schedule_id: str, family_id: str) -> WeeklyPreferences | None:
        snap = self._col(group_id).document(f"{schedule_id}_{family_id}").get()
        if not snap.exists:
            return None
        return self._dict_to_prefs(group_id, snap.to_dict())

    def list_for_schedule(self, group_id: str, schedule_id: str) -> list[WeeklyPreferences]:
        snaps = self._col(group_id).where("schedule_id", "==", schedule_id).stream()
        return [self._dict_to_prefs(group_id, snap.to_dict()) for snap in snaps]

    @staticmethod
    def _prefs_to_dict(p: WeeklyPreferences) -> dict:
        contact = p.emergency_contact
        return {
            "family_id": p.family_id,
            "schedule_id": p.schedule_id,
            "days": [
                {
                    "weekday": d.weekday.value,
                    "preferred_role": d.preferred_role.value,
                    "can_drive": d.can_drive,
                    "max_passengers": d.max_passengers,
                    "level": d.preference_level.value,
                    "earliest_pickup": d.earliest_pickup,
                    "latest_dropoff": d.latest_dropoff,
                    "notes": d.notes,
                }
                for d in p.days
            ],
            "submitted_at": p.submitted_at or firestore.SERVER_TIMESTAMP,
            "is_late_submission": p.is_late_submission,
            "special_requests": p.special_requests,
            "emergency_contact": (
                {"name": contact.name, "phone": contact.phone, "can_drive": contact.can_drive}
                if contact
                else None
            ),
        }

    @staticmethod
    def _dict_to_prefs(group_id: str, data: dict) -> WeeklyPreferences:
        contact = data.get("emergency_contact")
        return WeeklyPreferences(
            family_id=data.get("family_id", ""),
            schedule_id=data.get("schedule_id", ""),
            group_id=group_id,
            days=[
                DayPreference(
                    weekday=Weekday(d["weekday"]),
                    preferred_role=PreferredRole(d["preferred_role"]),
                    can_drive=d.get("can_drive", True),
                    max_passengers=d.get("max_passengers"),
                    level=PreferenceLevel(d["level"]) if d.get("level") else None,
                    earliest_pickup=d.get("earliest_pickup"),
                    latest_dropoff=d.get("latest_dropoff"),
                    notes=d.get("notes") or "",
                )
                for d in data.get("days") or []
            ],
            submitted_at=data.get("submitted_at"),
            is_late_submission=data.get("is_late_submission", False),
            special_requests=data.get("special_requests") or "",
            emergency_contact=(
                EmergencyContact(
                    name=contact.get("name") or "",
                    phone=contact.get("phone") or "",
                    can_drive=contact.get("can_drive", False),
                )
                if contact
                else None
            ),
        )


class FirestoreFairnessRepository(FairnessRepository):
    """
    groups/{groupId}/fairness/{familyId} の台帳。更新は全てトランザクション。
    """

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def _col(self, group_id: str):
        return self._db.collection(_GROUPS).document(group_id).collection(_FAIRNESS)

    def list(self, group_id: str) -> list[FairnessRecord]:
        return [
            _dict_to_fairness(snap.id, group_id, snap.to_dict())
            for snap in self._col(group_id).stream()
        ]

    def get(self, group_id: str, family_id: str) -> FairnessRecord | None:
        snap = self._col(group_id).document(family_id).get()
        if not snap.exists:
            return None
        return _dict_to_fairness(family_id, group_id, snap.to_dict())

    def apply_deltas(self, group_id: str, deltas: list[LedgerDelta]) -> None:
        if not deltas:
            return
        _apply_deltas_in_transaction(self._db.transaction(), self._col(group_id), group_id, deltas)
        logger.info("Applied ledger deltas: group_id=%s, families=%d", group_id, len(deltas))

    def adjust(
        self,
        group_id: str,
        family_id: str,
        *,
        trips_driven: int = 0,
        trips_missed: int = 0,
        makeup_owed: int = 0,
        makeup_completed: int = 0,
    ) -> FairnessRecord:
        return _adjust_in_transaction(
            self._db.transaction(),
            self._col(group_id).document(family_id),
            group_id,
            family_id,
            {
                "trips_driven": trips_driven,
                "trips_missed": trips_missed,
                "makeup_owed": makeup_owed,
                "makeup_completed": makeup_completed,
            },
        )


@firestore.transactional
def _apply_deltas_in_transaction(transaction, col, group_id: str, deltas: list[LedgerDelta]) -> None:
    records = {}
    for delta in deltas:
        if delta.family_id in records:
            continue
        snap = col.document(delta.family_id).get(transaction=transaction)
        records[delta.family_id] = (
            _dict_to_fairness(delta.family_id, group_id, snap.to_dict())
            if snap.exists
            else FairnessRecord(family_id=delta.family_id, group_id=group_id)
        )
    for delta in deltas:
        records[delta.family_id] = records[delta.family_id].with_delta(delta)
    for fid, record in records.items():
        transaction.set(col.document(fid), _fairness_to_dict(record))


@firestore.transactional
def _adjust_in_transaction(
    transaction, ref, group_id: str, family_id: str, changes: dict[str, int]
) -> FairnessRecord:
    snap = ref.get(transaction=transaction)
    record = (
        _dict_to_fairness(family_id, group_id, snap.to_dict())
        if snap.exists
        else FairnessRecord(family_id=family_id, group_id=group_id)
    )
    updated = FairnessRecord(
        family_id=family_id,
        group_id=group_id,
        trips_driven=record.trips_driven + changes["trips_driven"],
        trips_missed=record.trips_missed + changes["trips_missed"],
        makeup_owed=max(0, record.makeup_owed + changes["makeup_owed"]),
        makeup_completed=record.makeup_completed + changes["makeup_completed"],
        last_driven_date=record.last_driven_date,
    )
    transaction.set(ref, _fairness_to_dict(updated))
    return updated


class FirestoreMakeupRepository(MakeupRepository):
    """
    groups/{groupId}/makeup_proposals/{proposalId} の提案。
    """

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def _col(self, group_id: str):
        return self._db.collection(_GROUPS).document(group_id).collection(_MAKEUP)

    def create(self, proposal: MakeupProposal) -> None:
        self._col(proposal.group_id).document(proposal.id).set(self._proposal_to_dict(proposal))
        logger.info(
            "Created makeup proposal: group_id=%s, proposal_id=%s", proposal.group_id, proposal.id
        )

    def get(self, group_id: str, proposal_id: str) -> MakeupProposal | None:
        snap = self._col(group_id).document(proposal_id).get()
        if not snap.exists:
            return None
        return self._dict_to_proposal(proposal_id, group_id, snap.to_dict())

    def list(
        self,
        group_id: str,
        family_id: str | None = None,
        status: MakeupStatus | None = None,
    ) -> list[MakeupProposal]:
        query = self._col(group_id)
        if family_id is not None:
            query = query.where("family_id", "==", family_id)
        if status is not None:
            query = query.where("status", "==", status.value)
        proposals = [
            self._dict_to_proposal(snap.id, group_id, snap.to_dict()) for snap in query.stream()
        ]
        return sorted(proposals, key=lambda p: (p.proposed_date, p.id))

    def update(self, proposal: MakeupProposal, expected_status: MakeupStatus) -> None:
        ref = self._col(proposal.group_id).document(proposal.id)
        _update_proposal_in_transaction(
            self._db.transaction(), ref, self._proposal_to_dict(proposal), expected_status
        )
        logger.info(
            "Updated makeup proposal: proposal_id=%s, status=%s",
            proposal.id,
            proposal.status.value,
        )

    @staticmethod
    def _proposal_to_dict(p: MakeupProposal) -> dict:
        return {
            "family_id": p.family_id,
            "proposed_date": _date_str(p.proposed_date),
            "proposed_time": p.proposed_time,
            "makeup_type": p.makeup_type.value,
            "trips_to_makeup": p.trips_to_makeup,
            "status": p.status.value,
            "notes": p.notes,
            "reviewed_by": p.reviewed_by,
            "review_notes": p.review_notes,
            "created_at": p.created_at or firestore.SERVER_TIMESTAMP,
            "updated_at": p.updated_at or firestore.SERVER_TIMESTAMP,
        }

    @staticmethod
    def _dict_to_proposal(proposal_id: str, group_id: str, data: dict) -> MakeupProposal:
        return MakeupProposal(
            id=proposal_id,
            family_id=data.get("family_id", ""),
            group_id=group_id,
            proposed_date=_parse_date(data["proposed_date"]),
            proposed_time=data.get("proposed_time") or "",
            makeup_type=MakeupType(data.get("makeup_type", MakeupType.EXTRA_WEEK.value)),
            trips_to_makeup=data.get("trips_to_makeup") or 0,
            status=MakeupStatus(data.get("status", MakeupStatus.PROPOSED.value)),
            notes=data.get("notes") or "",
            reviewed_by=data.get("reviewed_by"),
            review_notes=data.get("review_notes") or "",
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@firestore.transactional
def _update_proposal_in_transaction(
    transaction, ref, data: dict[str, Any], expected_status: MakeupStatus
) -> None:
    snap = ref.get(transaction=transaction)
    current = (snap.to_dict() or {}).get("status") if snap.exists else None
    if current != expected_status.value:
        raise ConflictError(
            f"Makeup proposal {ref.id} changed concurrently (expected {expected_status.value})"
        )
    transaction.set(ref, data)


# ── 共通の変換ヘルパー ────────────────────────────────────────────────────────


def _assignment_to_dict(a: Assignment) -> dict:
    return {
        "schedule_id": a.schedule_id,
        "run_id": a.run_id,
        "date": _date_str(a.date),
        "weekday": a.weekday.value,
        "driver_family_id": a.driver_family_id,
        "passenger_family_ids": list(a.passenger_family_ids),
        "capacity": a.capacity,
        "step": a.step,
        "preference_level": a.preference_level.value,
    }


def _dict_to_assignment(assignment_id: str, data: dict) -> Assignment:
    return Assignment(
        id=assignment_id,
        schedule_id=data.get("schedule_id", ""),
        run_id=data.get("run_id", ""),
        date=_parse_date(data["date"]),
        weekday=Weekday(data["weekday"]),
        driver_family_id=data.get("driver_family_id", ""),
        passenger_family_ids=data.get("passenger_family_ids") or [],
        capacity=data.get("capacity") or 0,
        step=data.get("step") or 0,
        preference_level=PreferenceLevel(
            data.get("preference_level", PreferenceLevel.NEUTRAL.value)
        ),
    )


def _delta_to_dict(d: LedgerDelta) -> dict:
    return {
        "family_id": d.family_id,
        "trips_driven": d.trips_driven,
        "trips_missed": d.trips_missed,
        "last_driven_before": _date_str(d.last_driven_before),
        "last_driven_after": _date_str(d.last_driven_after),
    }


def _dict_to_delta(data: dict) -> LedgerDelta:
    return LedgerDelta(
        family_id=data.get("family_id", ""),
        trips_driven=data.get("trips_driven") or 0,
        trips_missed=data.get("trips_missed") or 0,
        last_driven_before=_parse_date(data.get("last_driven_before")),
        last_driven_after=_parse_date(data.get("last_driven_after")),
    )


def _fairness_to_dict(r: FairnessRecord) -> dict:
    return {
        "trips_driven": r.trips_driven,
        "trips_missed": r.trips_missed,
        "makeup_owed": r.makeup_owed,
        "makeup_completed": r.makeup_completed,
        "last_driven_date": _date_str(r.last_driven_date),
        "updated_at": firestore.SERVER_TIMESTAMP,
    }


def _dict_to_fairness(family_id: str, group_id: str, data: dict | None) -> FairnessRecord:
    data = data or {}
    return FairnessRecord(
        family_id=family_id,
        group_id=group_id,
        trips_driven=data.get("trips_driven") or 0,
        trips_missed=data.get("trips_missed") or 0,
        makeup_owed=data.get("makeup_owed") or 0,
        makeup_completed=data.get("makeup_completed") or 0,
        last_driven_date=_parse_date(data.get("last_driven_date")),
    )
