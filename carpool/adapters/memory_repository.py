"""インメモリ Repository Adapter

LOCAL_MODE とテスト用の全 Port 実装。プロセス内の dict に保持し、
1つのロックで全リポジトリの書き込みを直列化する（commit_run がスケジュールと
台帳をまたいで更新するため）。
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace

from carpool.domain.errors import ConflictError
from carpool.domain.models import (
    Assignment,
    Family,
    FairnessRecord,
    LedgerDelta,
    MakeupProposal,
    MakeupStatus,
    ScheduleStatus,
    SchedulingRun,
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


class InMemoryStore:
    """全リポジトリが共有する状態"""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.families: dict[str, Family] = {}
        self.group_members: dict[str, list[str]] = {}
        self.schedules: dict[str, WeeklySchedule] = {}
        self.assignments: dict[str, list[Assignment]] = {}
        self.runs: dict[tuple[str, str], SchedulingRun] = {}
        self.preferences: dict[tuple[str, str, str], WeeklyPreferences] = {}
        self.fairness: dict[tuple[str, str], FairnessRecord] = {}
        self.proposals: dict[tuple[str, str], MakeupProposal] = {}

    def add_family(self, group_id: str, family: Family) -> None:
        """ロスターにファミリーを登録する（LOCAL_MODE のシード用）"""
        with self.lock:
            self.families[family.id] = family
            members = self.group_members.setdefault(group_id, [])
            if family.id not in members:
                members.append(family.id)


class InMemoryRosterProvider(RosterProvider):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def list_families(self, group_id: str) -> list[Family]:
        with self._store.lock:
            ids = self._store.group_members.get(group_id, [])
            return [self._store.families[fid] for fid in sorted(ids)]

    def get_family(self, family_id: str) -> Family | None:
        return self._store.families.get(family_id)


class InMemoryScheduleRepository(ScheduleRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def create(self, schedule: WeeklySchedule) -> None:
        with self._store.lock:
            if self.find_by_week(schedule.group_id, schedule.week_start_date.isoformat()):
                raise ConflictError(
                    f"Schedule for week {schedule.week_start_date.isoformat()} already exists"
                )
            self._store.schedules[schedule.id] = schedule

    def get(self, schedule_id: str) -> WeeklySchedule | None:
        return self._store.schedules.get(schedule_id)

    def find_by_week(self, group_id: str, week_start: str) -> WeeklySchedule | None:
        with self._store.lock:
            for s in self._store.schedules.values():
                if s.group_id == group_id and s.week_start_date.isoformat() == week_start:
                    return s
        return None

    def list(self, group_id: str) -> list[WeeklySchedule]:
        with self._store.lock:
            schedules = [s for s in self._store.schedules.values() if s.group_id == group_id]
        return sorted(schedules, key=lambda s: s.week_start_date, reverse=True)

    def update_status(self, schedule: WeeklySchedule, expected_version: int) -> None:
        with self._store.lock:
            self._check_version(schedule.id, expected_version)
            self._store.schedules[schedule.id] = schedule

    def list_assignments(self, schedule_id: str) -> list[Assignment]:
        with self._store.lock:
            assignments = list(self._store.assignments.get(schedule_id, []))
        return sorted(assignments, key=lambda a: (a.date, a.id))

    def get_run(self, schedule_id: str, run_id: str) -> SchedulingRun | None:
        return self._store.runs.get((schedule_id, run_id))

    def commit_run(
        self, schedule: WeeklySchedule, run: SchedulingRun, expected_version: int
    ) -> WeeklySchedule:
        with self._store.lock:
            stored = self._check_version(schedule.id, expected_version)

            fairness = self._store.fairness
            if stored.current_run_id:
                previous = self._store.runs.get((schedule.id, stored.current_run_id))
                if previous is not None:
                    for delta in previous.deltas:
                        key = (schedule.group_id, delta.family_id)
                        if key in fairness:
                            fairness[key] = fairness[key].without_delta(delta)
            _apply(fairness, schedule.group_id, run.deltas)

            self._store.runs[(schedule.id, run.id)] = run
            self._store.assignments[schedule.id] = list(run.assignments)
            committed = replace(
                stored,
                status=ScheduleStatus.ASSIGNED,
                current_run_id=run.id,
                version=stored.version + 1,
            )
            self._store.schedules[schedule.id] = committed
        logger.info(
            "Committed run: schedule_id=%s, run_id=%s, assignments=%d",
            schedule.id,
            run.id,
            len(run.assignments),
        )
        return committed

    def _check_version(self, schedule_id: str, expected_version: int) -> WeeklySchedule:
        stored = self._store.schedules.get(schedule_id)
        if stored is None:
            raise ConflictError(f"Schedule {schedule_id} no longer exists")
        if stored.version != expected_version:
            raise ConflictError(
                f"Schedule {schedule_id} was modified concurrently "
                f"(expected version {expected_version}, found {stored.version})"
            )
        return stored


class InMemoryPreferenceRepository(PreferenceRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def save(self, preferences: WeeklyPreferences) -> None:
        key = (preferences.group_id, preferences.schedule_id, preferences.family_id)
        with self._store.lock:
            self._store.preferences[key] = preferences

    def get(self, group_id: str, schedule_id: str, family_id: str) -> WeeklyPreferences | None:
        return self._store.preferences.get((group_id, schedule_id, family_id))

    def list_for_schedule(self, group_id: str, schedule_id: str) -> list[WeeklyPreferences]:
        with self._store.lock:
            return [
                p
                for (gid, sid, _), p in self._store.preferences.items()
                if gid == group_id and sid == schedule_id
            ]


class InMemoryFairnessRepository(FairnessRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def list(self, group_id: str) -> list[FairnessRecord]:
        with self._store.lock:
            return [r for (gid, _), r in self._store.fairness.items() if gid == group_id]

    def get(self, group_id: str, family_id: str) -> FairnessRecord | None:
        return self._store.fairness.get((group_id, family_id))

    def apply_deltas(self, group_id: str, deltas: list[LedgerDelta]) -> None:
        with self._store.lock:
            _apply(self._store.fairness, group_id, deltas)

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
        key = (group_id, family_id)
        with self._store.lock:
            record = self._store.fairness.get(
                key, FairnessRecord(family_id=family_id, group_id=group_id)
            )
            updated = replace(
                record,
                trips_driven=record.trips_driven + trips_driven,
                trips_missed=record.trips_missed + trips_missed,
                makeup_owed=max(0, record.makeup_owed + makeup_owed),
                makeup_completed=record.makeup_completed + makeup_completed,
            )
            self._store.fairness[key] = updated
        return updated


class InMemoryMakeupRepository(MakeupRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def create(self, proposal: MakeupProposal) -> None:
        with self._store.lock:
            self._store.proposals[(proposal.group_id, proposal.id)] = proposal

    def get(self, group_id: str, proposal_id: str) -> MakeupProposal | None:
        return self._store.proposals.get((group_id, proposal_id))

    def list(
        self,
        group_id: str,
        family_id: str | None = None,
        status: MakeupStatus | None = None,
    ) -> list[MakeupProposal]:
        with self._store.lock:
            proposals = [
                p
                for (gid, _), p in self._store.proposals.items()
                if gid == group_id
                and (family_id is None or p.family_id == family_id)
                and (status is None or p.status is status)
            ]
        return sorted(proposals, key=lambda p: (p.proposed_date, p.id))

    def update(self, proposal: MakeupProposal, expected_status: MakeupStatus) -> None:
        key = (proposal.group_id, proposal.id)
        with self._store.lock:
            stored = self._store.proposals.get(key)
            if stored is None or stored.status is not expected_status:
                raise ConflictError(
                    f"Makeup proposal {proposal.id} changed concurrently "
                    f"(expected {expected_status.value})"
                )
            self._store.proposals[key] = proposal


def _apply(
    fairness: dict[tuple[str, str], FairnessRecord],
    group_id: str,
    deltas: list[LedgerDelta],
) -> None:
    for delta in deltas:
        key = (group_id, delta.family_id)
        record = fairness.get(key, FairnessRecord(family_id=delta.family_id, group_id=group_id))
        fairness[key] = record.with_delta(delta)
