"""FairnessLedger - ファミリーごとの運転負担の台帳

ConstraintResolver の比較関数が参照するカウンター（運転回数・最終運転日）と、
出張ファミリーのメイクアップ残高を管理する。

書き込みは全て FairnessRepository 経由のアトミックな更新。
割り当て実行に伴う更新は ScheduleRepository.commit_run が同一トランザクションで行うため、
ここでは差分（LedgerDelta）の計算までを担当する。
"""

from __future__ import annotations

import datetime
import logging

from carpool.domain.errors import ValidationError
from carpool.domain.models import (
    Assignment,
    FairnessRecord,
    LedgerDelta,
    MakeupProposal,
    SchedulingRun,
    TravelException,
    WeeklyPreferences,
)
from carpool.domain.ports import FairnessRepository

logger = logging.getLogger(__name__)


def fairness_sort_key(record: FairnessRecord) -> tuple:
    """
    割り当て候補の共通比較キー（ステップ2〜4で共用）。

    (1) 運転回数が少ない (2) 最終運転日が古い（未運転が最優先）(3) family_id 昇順
    """
    last = record.last_driven_date or datetime.date.min
    return (record.trips_driven, last, record.family_id)


class FairnessLedger:
    """
    FairnessRepository の上に台帳操作をまとめたサービス。
    """

    def __init__(self, repo: FairnessRepository) -> None:
        """
        Args:
            repo: 台帳の永続化（Firestore / インメモリ）
        """
        self._repo = repo

    def snapshot(self, group_id: str, family_ids: list[str]) -> dict[str, FairnessRecord]:
        """
        指定ファミリーの現在のレコードを返す。

        履歴のないファミリーはゼロのレコードで補完する。
        """
        stored = {r.family_id: r for r in self._repo.list(group_id)}
        return {
            fid: stored.get(fid, FairnessRecord(family_id=fid, group_id=group_id))
            for fid in sorted(family_ids)
        }

    def baseline(
        self,
        group_id: str,
        family_ids: list[str],
        superseded: SchedulingRun | None = None,
    ) -> dict[str, FairnessRecord]:
        """
        割り当て実行の入力となる台帳スナップショット。

        同じスケジュールの前回実行を置き換える場合は、その差分を除いた状態を返す。
        """
        records = self.snapshot(group_id, family_ids)
        if superseded is not None:
            records = self.revert(records, superseded.deltas)
        return records

    @staticmethod
    def revert(
        records: dict[str, FairnessRecord], deltas: list[LedgerDelta]
    ) -> dict[str, FairnessRecord]:
        reverted = dict(records)
        for delta in deltas:
            if delta.family_id in reverted:
                reverted[delta.family_id] = reverted[delta.family_id].without_delta(delta)
        return reverted

    @staticmethod
    def compute_deltas(
        assignments: list[Assignment],
        preferences: list[WeeklyPreferences],
        records: dict[str, FairnessRecord],
    ) -> list[LedgerDelta]:
        """
        1回の実行が台帳に与える差分を計算する（update(assignments) の中身）。

        - 割り当て1件につき運転手の trips_driven +1、最終運転日を更新
        - 参加ファミリーが unavailable とした日1日につき trips_missed +1

        Args:
            assignments: 実行で作られた割り当て
            preferences: 実行で考慮した希望（ロスター内のもの）
            records: 実行前の台帳（last_driven_before の記録用）
        """
        driven: dict[str, int] = {}
        last_dates: dict[str, datetime.date] = {}
        for a in assignments:
            fid = a.driver_family_id
            driven[fid] = driven.get(fid, 0) + 1
            if fid not in last_dates or a.date > last_dates[fid]:
                last_dates[fid] = a.date

        missed: dict[str, int] = {}
        for prefs in preferences:
            count = sum(1 for d in prefs.days if d.is_unavailable)
            if count:
                missed[prefs.family_id] = missed.get(prefs.family_id, 0) + count

        deltas = []
        for fid in sorted(set(driven) | set(missed)):
            before = records[fid].last_driven_date if fid in records else None
            after = last_dates.get(fid)
            deltas.append(
                LedgerDelta(
                    family_id=fid,
                    trips_driven=driven.get(fid, 0),
                    trips_missed=missed.get(fid, 0),
                    last_driven_before=before,
                    last_driven_after=after,
                )
            )
        return deltas

    def update(self, group_id: str, deltas: list[LedgerDelta]) -> None:
        """
        差分を台帳に単独で適用する。

        割り当て実行の差分はここを通らず、ScheduleRepository.commit_run が
        スケジュール更新と同じトランザクションで適用する。
        """
        self._repo.apply_deltas(group_id, deltas)
        logger.info("Ledger updated: group_id=%s, families=%d", group_id, len(deltas))

    def list(self, group_id: str) -> list[FairnessRecord]:
        """グループの台帳を family_id 順で返す"""
        return sorted(self._repo.list(group_id), key=lambda r: r.family_id)

    def outstanding_balance(self, group_id: str, family_id: str) -> int:
        """未消化のメイクアップ回数"""
        record = self._repo.get(group_id, family_id)
        return record.makeup_owed if record else 0

    def record_travel(self, exception: TravelException) -> FairnessRecord:
        """出張で欠けた日数ぶん trips_missed と makeup_owed を加算する"""
        if not exception.dates:
            raise ValidationError("At least one travel date is required")
        trips = len(set(exception.dates))
        record = self._repo.adjust(
            exception.group_id,
            exception.family_id,
            trips_missed=trips,
            makeup_owed=trips,
        )
        logger.info(
            "Travel recorded: group_id=%s, family_id=%s, trips=%d, owed=%d",
            exception.group_id,
            exception.family_id,
            trips,
            record.makeup_owed,
        )
        return record

    def apply_makeup_completion(self, proposal: MakeupProposal) -> FairnessRecord:
        """
        完了したメイクアップを台帳に反映する。

        makeup_owed を減らし、trips_driven と makeup_completed を加算する。
        """
        record = self._repo.adjust(
            proposal.group_id,
            proposal.family_id,
            trips_driven=proposal.trips_to_makeup,
            makeup_owed=-proposal.trips_to_makeup,
            makeup_completed=proposal.trips_to_makeup,
        )
        logger.info(
            "Makeup applied: group_id=%s, family_id=%s, trips=%d, owed=%d",
            proposal.group_id,
            proposal.family_id,
            proposal.trips_to_makeup,
            record.makeup_owed,
        )
        return record
