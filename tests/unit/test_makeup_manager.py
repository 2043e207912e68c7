"""MakeupManager のユニットテスト

出張の記録、提案・審査・完了の状態遷移と台帳への反映を検証する。
"""

import datetime
from unittest.mock import MagicMock

import pytest
from carpool.domain.errors import ConflictError, NotFoundError, ValidationError
from carpool.domain.models import MakeupStatus, MakeupType
from carpool.services.fairness_ledger import FairnessLedger
from carpool.services.makeup_manager import MakeupManager

_GROUP_ID = "group-1"
_NOW = datetime.datetime(2026, 10, 18, 12, 0, tzinfo=datetime.UTC)
_TRAVEL_DATES = [
    datetime.date(2026, 10, 19),
    datetime.date(2026, 10, 20),
    datetime.date(2026, 10, 21),
]


@pytest.fixture
def ledger(fairness_repo) -> FairnessLedger:
    return FairnessLedger(fairness_repo)


@pytest.fixture
def manager(makeup_repo, ledger, mock_publisher) -> MakeupManager:
    return MakeupManager(makeup_repo, ledger, mock_publisher, clock=lambda: _NOW)


def _propose(manager: MakeupManager, trips: int = 2):
    return manager.propose(
        family_id="fam-a",
        group_id=_GROUP_ID,
        proposed_date=datetime.date(2026, 10, 31),
        proposed_time="09:00",
        makeup_type=MakeupType.WEEKEND_TRIP,
        trips_to_makeup=trips,
        notes="土曜の練習試合",
    )


class TestTravel:
    def test_record_travel_returns_balance(self, manager):
        """出張日数ぶん残高が増える"""
        assert manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES, "出張") == 3
        assert manager.available_balance(_GROUP_ID, "fam-a") == 3


class TestPropose:
    def test_propose_creates_proposed(self, manager):
        """残高の範囲内なら proposed で作成される"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)

        proposal = _propose(manager)

        assert proposal.status is MakeupStatus.PROPOSED
        assert proposal.created_at == _NOW
        assert manager.get(_GROUP_ID, proposal.id) == proposal

    def test_propose_over_balance_rejected(self, manager):
        """残高を超える回数は category=makeup_balance で拒否"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES[:1])

        with pytest.raises(ValidationError) as exc_info:
            _propose(manager, trips=2)

        assert exc_info.value.category == "makeup_balance"

    def test_propose_without_travel_rejected(self, manager):
        """出張記録がなければ提案できない"""
        with pytest.raises(ValidationError):
            _propose(manager, trips=1)

    def test_propose_zero_trips_rejected(self, manager):
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)

        with pytest.raises(ValidationError):
            _propose(manager, trips=0)

    def test_approved_proposals_reduce_available_balance(self, manager):
        """承認済み未完了の提案ぶんは利用可能残高から差し引く"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)
        proposal = _propose(manager, trips=2)
        manager.review(_GROUP_ID, proposal.id, MakeupStatus.APPROVED, "admin-1")

        assert manager.available_balance(_GROUP_ID, "fam-a") == 1
        with pytest.raises(ValidationError):
            _propose(manager, trips=2)


class TestReview:
    def test_approve(self, manager, mock_publisher):
        """承認で審査者とメモが残り、イベントが発行される"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)
        proposal = _propose(manager)

        reviewed = manager.review(
            _GROUP_ID, proposal.id, MakeupStatus.APPROVED, "admin-1", "よろしく"
        )

        assert reviewed.status is MakeupStatus.APPROVED
        assert reviewed.reviewed_by == "admin-1"
        assert reviewed.review_notes == "よろしく"
        event, payload = mock_publisher.publish.call_args.args
        assert event == "makeup_proposal_decided"
        assert payload["decision"] == "approved"

    def test_reject_is_terminal(self, manager):
        """却下後は承認できない"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)
        proposal = _propose(manager)
        manager.review(_GROUP_ID, proposal.id, MakeupStatus.REJECTED, "admin-1")

        with pytest.raises(ConflictError):
            manager.review(_GROUP_ID, proposal.id, MakeupStatus.APPROVED, "admin-1")

    def test_invalid_decision(self, manager):
        """completed は審査結果として指定できない"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)
        proposal = _propose(manager)

        with pytest.raises(ValidationError):
            manager.review(_GROUP_ID, proposal.id, MakeupStatus.COMPLETED, "admin-1")

    def test_unknown_proposal(self, manager):
        with pytest.raises(NotFoundError):
            manager.review(_GROUP_ID, "missing", MakeupStatus.APPROVED, "admin-1")

    def test_approval_rechecks_balance(self, manager):
        """別の提案が先に承認され残高が足りなくなった場合は承認できない"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)
        first = _propose(manager, trips=2)
        second = _propose(manager, trips=2)
        manager.review(_GROUP_ID, first.id, MakeupStatus.APPROVED, "admin-1")

        with pytest.raises(ValidationError):
            manager.review(_GROUP_ID, second.id, MakeupStatus.APPROVED, "admin-1")


class TestComplete:
    def test_complete_updates_ledger(self, manager, fairness_repo, mock_publisher):
        """完了で台帳の残高が減り運転回数に加算される"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)
        proposal = _propose(manager, trips=2)
        manager.review(_GROUP_ID, proposal.id, MakeupStatus.APPROVED, "admin-1")

        completed = manager.complete(_GROUP_ID, proposal.id)

        assert completed.status is MakeupStatus.COMPLETED
        record = fairness_repo.get(_GROUP_ID, "fam-a")
        assert record.makeup_owed == 1
        assert record.makeup_completed == 2
        assert record.trips_driven == 2
        assert manager.available_balance(_GROUP_ID, "fam-a") == 1
        assert mock_publisher.publish.call_args.args[0] == "makeup_completed"

    def test_complete_requires_approval(self, manager):
        """proposed のままでは完了にできない"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)
        proposal = _propose(manager)

        with pytest.raises(ConflictError):
            manager.complete(_GROUP_ID, proposal.id)

    def test_complete_twice_conflicts(self, manager):
        """二重完了は ConflictError（台帳は1回だけ更新）"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)
        proposal = _propose(manager)
        manager.review(_GROUP_ID, proposal.id, MakeupStatus.APPROVED, "admin-1")
        manager.complete(_GROUP_ID, proposal.id)

        with pytest.raises(ConflictError):
            manager.complete(_GROUP_ID, proposal.id)
        assert manager.available_balance(_GROUP_ID, "fam-a") == 1

    def test_ledger_failure_restores_approved(self, makeup_repo, mock_publisher, ledger):
        """台帳更新に失敗したらステータスを approved に戻す"""
        failing_ledger = MagicMock(spec=FairnessLedger)
        failing_ledger.outstanding_balance.side_effect = ledger.outstanding_balance
        failing_ledger.record_travel.side_effect = ledger.record_travel
        failing_ledger.apply_makeup_completion.side_effect = RuntimeError("boom")
        manager = MakeupManager(makeup_repo, failing_ledger, mock_publisher, clock=lambda: _NOW)
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)
        proposal = _propose(manager)
        manager.review(_GROUP_ID, proposal.id, MakeupStatus.APPROVED, "admin-1")

        with pytest.raises(RuntimeError):
            manager.complete(_GROUP_ID, proposal.id)

        assert makeup_repo.get(_GROUP_ID, proposal.id).status is MakeupStatus.APPROVED


class TestList:
    def test_list_filters_by_family_and_status(self, manager, ledger):
        """family_id と status で絞り込める"""
        manager.record_travel("fam-a", _GROUP_ID, _TRAVEL_DATES)
        manager.record_travel("fam-b", _GROUP_ID, _TRAVEL_DATES[:1])
        a = _propose(manager, trips=1)
        b = manager.propose(
            "fam-b",
            _GROUP_ID,
            datetime.date(2026, 11, 2),
            "07:30",
            MakeupType.EXTRA_WEEK,
            1,
        )
        manager.review(_GROUP_ID, b.id, MakeupStatus.APPROVED, "admin-1")

        assert [p.id for p in manager.list_for_group(_GROUP_ID)] == [a.id, b.id]
        assert [p.id for p in manager.list_for_group(_GROUP_ID, family_id="fam-a")] == [a.id]
        approved = manager.list_for_group(_GROUP_ID, status=MakeupStatus.APPROVED)
        assert [p.id for p in approved] == [b.id]
