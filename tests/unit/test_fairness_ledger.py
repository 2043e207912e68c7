"""FairnessLedger のユニットテスト"""

import datetime

import pytest
from carpool.domain.errors import ValidationError
from carpool.domain.models import (
    Assignment,
    FairnessRecord,
    LedgerDelta,
    MakeupProposal,
    MakeupStatus,
    MakeupType,
    PreferenceLevel,
    SchedulingRun,
    TravelException,
    Weekday,
)
from carpool.services.fairness_ledger import FairnessLedger, fairness_sort_key

_GROUP_ID = "group-1"


def _assignment(driver: str, weekday: Weekday) -> Assignment:
    return Assignment(
        id=f"run-1-{weekday.value}-1",
        schedule_id="sched-1",
        run_id="run-1",
        date=weekday.date_in_week(datetime.date(2026, 10, 19)),
        weekday=weekday,
        driver_family_id=driver,
        passenger_family_ids=[],
        capacity=4,
        step=2,
        preference_level=PreferenceLevel.PREFERABLE,
    )


@pytest.fixture
def ledger(fairness_repo) -> FairnessLedger:
    return FairnessLedger(fairness_repo)


class TestSortKey:
    def test_orders_by_trips_then_date_then_id(self):
        """運転回数 → 最終運転日 → family_id の順で並ぶ"""
        records = [
            FairnessRecord("fam-c", _GROUP_ID, trips_driven=1),
            FairnessRecord(
                "fam-a", _GROUP_ID, trips_driven=1, last_driven_date=datetime.date(2026, 10, 2)
            ),
            FairnessRecord("fam-b", _GROUP_ID, trips_driven=0),
            FairnessRecord("fam-d", _GROUP_ID, trips_driven=1),
        ]

        ordered = [r.family_id for r in sorted(records, key=fairness_sort_key)]

        assert ordered == ["fam-b", "fam-c", "fam-d", "fam-a"]


class TestComputeDeltas:
    """update(assignments) の差分計算"""

    def test_counts_drives_and_missed_days(self, make_prefs):
        """運転1件ごとに +1、unavailable 1日ごとに trips_missed +1"""
        assignments = [
            _assignment("fam-a", Weekday.MONDAY),
            _assignment("fam-a", Weekday.WEDNESDAY),
            _assignment("fam-b", Weekday.TUESDAY),
        ]
        prefs = [
            make_prefs("fam-a", ["driver", "neutral", "driver", "neutral", "neutral"]),
            make_prefs("fam-c", ["unavailable", "unavailable", "neutral", "neutral", "neutral"]),
        ]
        records = {
            "fam-a": FairnessRecord(
                "fam-a", _GROUP_ID, trips_driven=4, last_driven_date=datetime.date(2026, 10, 9)
            )
        }

        deltas = FairnessLedger.compute_deltas(assignments, prefs, records)

        assert deltas == [
            LedgerDelta(
                family_id="fam-a",
                trips_driven=2,
                last_driven_before=datetime.date(2026, 10, 9),
                last_driven_after=datetime.date(2026, 10, 21),
            ),
            LedgerDelta(
                family_id="fam-b",
                trips_driven=1,
                last_driven_after=datetime.date(2026, 10, 20),
            ),
            LedgerDelta(family_id="fam-c", trips_missed=2),
        ]

    def test_no_assignments_no_deltas(self):
        """何もなければ空"""
        assert FairnessLedger.compute_deltas([], [], {}) == []


class TestUpdateAndRevert:
    def test_update_applies_deltas(self, ledger, fairness_repo):
        """差分を加算し、最終運転日は新しい方を残す"""
        ledger.update(
            _GROUP_ID,
            [
                LedgerDelta(
                    family_id="fam-a",
                    trips_driven=2,
                    last_driven_after=datetime.date(2026, 10, 21),
                )
            ],
        )
        ledger.update(
            _GROUP_ID,
            [
                LedgerDelta(
                    family_id="fam-a",
                    trips_missed=1,
                    last_driven_after=datetime.date(2026, 10, 1),
                )
            ],
        )

        record = fairness_repo.get(_GROUP_ID, "fam-a")
        assert record.trips_driven == 2
        assert record.trips_missed == 1
        assert record.last_driven_date == datetime.date(2026, 10, 21)

    def test_baseline_reverts_superseded_run(self, ledger):
        """置き換え対象の実行ぶんを巻き戻したスナップショットを返す"""
        delta = LedgerDelta(
            family_id="fam-a",
            trips_driven=3,
            trips_missed=1,
            last_driven_before=datetime.date(2026, 10, 9),
            last_driven_after=datetime.date(2026, 10, 21),
        )
        ledger.update(
            _GROUP_ID,
            [
                LedgerDelta(
                    family_id="fam-a",
                    trips_driven=5,
                    last_driven_after=datetime.date(2026, 10, 9),
                )
            ],
        )
        ledger.update(_GROUP_ID, [delta])
        run = SchedulingRun(
            id="run-1",
            schedule_id="sched-1",
            group_id=_GROUP_ID,
            assignments=[],
            deltas=[delta],
        )

        baseline = ledger.baseline(_GROUP_ID, ["fam-a", "fam-b"], superseded=run)

        assert baseline["fam-a"].trips_driven == 5
        assert baseline["fam-a"].trips_missed == 0
        assert baseline["fam-a"].last_driven_date == datetime.date(2026, 10, 9)
        assert baseline["fam-b"] == FairnessRecord("fam-b", _GROUP_ID)

    def test_snapshot_fills_missing_families(self, ledger):
        """履歴のないファミリーはゼロのレコード"""
        snapshot = ledger.snapshot(_GROUP_ID, ["fam-b", "fam-a"])

        assert list(snapshot) == ["fam-a", "fam-b"]
        assert snapshot["fam-a"].trips_driven == 0


class TestMakeupBalance:
    def test_record_travel_adds_owed_trips(self, ledger):
        """出張日数ぶん trips_missed と makeup_owed を加算する（重複日は1回）"""
        record = ledger.record_travel(
            TravelException(
                family_id="fam-a",
                group_id=_GROUP_ID,
                dates=[
                    datetime.date(2026, 10, 19),
                    datetime.date(2026, 10, 20),
                    datetime.date(2026, 10, 20),
                ],
            )
        )

        assert record.trips_missed == 2
        assert record.makeup_owed == 2
        assert ledger.outstanding_balance(_GROUP_ID, "fam-a") == 2

    def test_record_travel_requires_dates(self, ledger):
        """日付なしは ValidationError"""
        with pytest.raises(ValidationError):
            ledger.record_travel(TravelException(family_id="fam-a", group_id=_GROUP_ID, dates=[]))

    def test_makeup_completion_settles_balance(self, ledger):
        """完了したメイクアップは残高を減らし運転回数に加える"""
        ledger.record_travel(
            TravelException(
                family_id="fam-a",
                group_id=_GROUP_ID,
                dates=[datetime.date(2026, 10, 19), datetime.date(2026, 10, 20)],
            )
        )
        proposal = MakeupProposal(
            id="mk-1",
            family_id="fam-a",
            group_id=_GROUP_ID,
            proposed_date=datetime.date(2026, 10, 31),
            proposed_time="09:00",
            makeup_type=MakeupType.WEEKEND_TRIP,
            trips_to_makeup=2,
            status=MakeupStatus.COMPLETED,
        )

        record = ledger.apply_makeup_completion(proposal)

        assert record.makeup_owed == 0
        assert record.makeup_completed == 2
        assert record.trips_driven == 2

    def test_balance_zero_without_history(self, ledger):
        assert ledger.outstanding_balance(_GROUP_ID, "fam-z") == 0
