"""MakeupManager - 出張ファミリーの例外とメイクアップ提案

状態遷移: proposed → approved → completed / proposed → rejected
completed と rejected は終端。台帳に触れるのは出張の記録と完了時のみで、
当週の割り当て実行には影響しない。
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import replace

from carpool.domain.errors import ConflictError, NotFoundError, ValidationError
from carpool.domain.models import (
    MakeupProposal,
    MakeupStatus,
    MakeupType,
    TravelException,
)
from carpool.domain.ports import EventPublisher, MakeupRepository
from carpool.services.fairness_ledger import FairnessLedger
from carpool.services.preference_store import Clock, utc_now

logger = logging.getLogger(__name__)


class MakeupManager:
    """
    出張の記録、メイクアップ提案の作成・審査・完了を扱う。
    """

    def __init__(
        self,
        repo: MakeupRepository,
        ledger: FairnessLedger,
        publisher: EventPublisher,
        clock: Clock = utc_now,
    ) -> None:
        self._repo = repo
        self._ledger = ledger
        self._publisher = publisher
        self._clock = clock

    def record_travel(
        self,
        family_id: str,
        group_id: str,
        dates: list[datetime.date],
        reason: str = "",
    ) -> int:
        """出張で運転できない日を記録し、更新後のメイクアップ残高を返す"""
        record = self._ledger.record_travel(
            TravelException(family_id=family_id, group_id=group_id, dates=dates, reason=reason)
        )
        return record.makeup_owed

    def available_balance(self, group_id: str, family_id: str) -> int:
        """
        新たに提案できる回数。

        未消化残高から、承認済みで未完了の提案ぶんを差し引く。
        """
        owed = self._ledger.outstanding_balance(group_id, family_id)
        committed = sum(
            p.trips_to_makeup
            for p in self._repo.list(group_id, family_id=family_id, status=MakeupStatus.APPROVED)
        )
        return owed - committed

    def propose(
        self,
        family_id: str,
        group_id: str,
        proposed_date: datetime.date,
        proposed_time: str,
        makeup_type: MakeupType,
        trips_to_makeup: int,
        notes: str = "",
    ) -> MakeupProposal:
        """
        メイクアップを提案する。

        Raises:
            ValidationError: 回数が1未満、または残高を超える場合
        """
        if trips_to_makeup < 1:
            raise ValidationError("tripsToMakeup must be at least 1")
        balance = self.available_balance(group_id, family_id)
        if trips_to_makeup > balance:
            raise ValidationError(
                f"tripsToMakeup ({trips_to_makeup}) exceeds outstanding makeup balance ({balance})",
                category="makeup_balance",
            )

        now = self._clock()
        proposal = MakeupProposal(
            id=str(uuid.uuid4()),
            family_id=family_id,
            group_id=group_id,
            proposed_date=proposed_date,
            proposed_time=proposed_time,
            makeup_type=makeup_type,
            trips_to_makeup=trips_to_makeup,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self._repo.create(proposal)
        logger.info(
            "Makeup proposed: group_id=%s, family_id=%s, proposal_id=%s, trips=%d",
            group_id,
            family_id,
            proposal.id,
            trips_to_makeup,
        )
        return proposal

    def review(
        self,
        group_id: str,
        proposal_id: str,
        decision: MakeupStatus,
        reviewer_id: str,
        review_notes: str = "",
    ) -> MakeupProposal:
        """
        管理者による審査。approved / rejected のどちらかに遷移させる。

        承認時は残高を再確認する（提案後に別の提案が承認されている場合があるため）。
        """
        if decision not in (MakeupStatus.APPROVED, MakeupStatus.REJECTED):
            raise ValidationError(f"Invalid review decision: {decision.value}")
        proposal = self._require(group_id, proposal_id)
        self._check_transition(proposal, decision)

        if decision is MakeupStatus.APPROVED:
            balance = self.available_balance(group_id, proposal.family_id)
            if proposal.trips_to_makeup > balance:
                raise ValidationError(
                    f"tripsToMakeup ({proposal.trips_to_makeup}) exceeds outstanding "
                    f"makeup balance ({balance})",
                    category="makeup_balance",
                )

        reviewed = _transition(
            proposal,
            decision,
            self._clock(),
            reviewed_by=reviewer_id,
            review_notes=review_notes,
        )
        self._repo.update(reviewed, expected_status=proposal.status)
        logger.info(
            "Makeup reviewed: proposal_id=%s, decision=%s, reviewer=%s",
            proposal_id,
            decision.value,
            reviewer_id,
        )
        self._publisher.publish(
            "makeup_proposal_decided",
            {
                "groupId": group_id,
                "familyId": proposal.family_id,
                "proposalId": proposal_id,
                "decision": decision.value,
            },
        )
        return reviewed

    def complete(self, group_id: str, proposal_id: str) -> MakeupProposal:
        """
        承認済みの提案を完了にし、台帳に反映する。

        台帳更新に失敗した場合はステータスを approved に戻して例外を再送出する。
        """
        proposal = self._require(group_id, proposal_id)
        self._check_transition(proposal, MakeupStatus.COMPLETED)

        completed = _transition(proposal, MakeupStatus.COMPLETED, self._clock())
        # ステータス更新を先に行い、同時完了による二重計上を防ぐ
        self._repo.update(completed, expected_status=MakeupStatus.APPROVED)
        try:
            self._ledger.apply_makeup_completion(completed)
        except Exception:
            logger.exception("Ledger update failed for makeup: proposal_id=%s", proposal_id)
            self._repo.update(proposal, expected_status=MakeupStatus.COMPLETED)
            raise

        self._publisher.publish(
            "makeup_completed",
            {
                "groupId": group_id,
                "familyId": proposal.family_id,
                "proposalId": proposal_id,
                "trips": proposal.trips_to_makeup,
            },
        )
        return completed

    def get(self, group_id: str, proposal_id: str) -> MakeupProposal:
        return self._require(group_id, proposal_id)

    def list_for_group(
        self,
        group_id: str,
        family_id: str | None = None,
        status: MakeupStatus | None = None,
    ) -> list[MakeupProposal]:
        return self._repo.list(group_id, family_id=family_id, status=status)

    def _require(self, group_id: str, proposal_id: str) -> MakeupProposal:
        proposal = self._repo.get(group_id, proposal_id)
        if proposal is None:
            raise NotFoundError(f"Makeup proposal {proposal_id} not found")
        return proposal

    @staticmethod
    def _check_transition(proposal: MakeupProposal, target: MakeupStatus) -> None:
        if not proposal.status.can_transition_to(target):
            raise ConflictError(
                f"Makeup proposal {proposal.id} is {proposal.status.value}; "
                f"cannot move to {target.value}"
            )


def _transition(
    proposal: MakeupProposal,
    status: MakeupStatus,
    now: datetime.datetime,
    **changes,
) -> MakeupProposal:
    return replace(proposal, status=status, updated_at=now, **changes)
