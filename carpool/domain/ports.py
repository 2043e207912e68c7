"""Ports - 永続化・外部連携のインターフェース定義（ABC）

各Port（抽象基底クラス）は外部サービスとの契約を定義します。
実装クラス（Adapter）はこれらのABCを継承し、全ての抽象メソッドを実装する必要があります。

実装:
- Firestore: carpool.adapters.firestore_repository
- インメモリ: carpool.adapters.memory_repository（LOCAL_MODE・テスト用）
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from carpool.domain.models import (
    Assignment,
    Family,
    FairnessRecord,
    LedgerDelta,
    MakeupProposal,
    MakeupStatus,
    SchedulingRun,
    WeeklyPreferences,
    WeeklySchedule,
)


class RosterProvider(ABC):
    """グループ所属ファミリーの取得"""

    @abstractmethod
    def list_families(self, group_id: str) -> list[Family]:
        """グループに所属するファミリー一覧を返す"""
        pass

    @abstractmethod
    def get_family(self, family_id: str) -> Family | None:
        """ファミリーを取得。存在しない場合はNoneを返す"""
        pass


class ScheduleRepository(ABC):
    """WeeklySchedule・割り当て・実行記録の永続化"""

    @abstractmethod
    def create(self, schedule: WeeklySchedule) -> None:
        """スケジュールを作成"""
        pass

    @abstractmethod
    def get(self, schedule_id: str) -> WeeklySchedule | None:
        """スケジュールを取得。存在しない場合はNoneを返す"""
        pass

    @abstractmethod
    def find_by_week(self, group_id: str, week_start: str) -> WeeklySchedule | None:
        """グループと週開始日（YYYY-MM-DD）でスケジュールを検索"""
        pass

    @abstractmethod
    def list(self, group_id: str) -> list[WeeklySchedule]:
        """グループのスケジュール一覧を週の新しい順で取得"""
        pass

    @abstractmethod
    def update_status(self, schedule: WeeklySchedule, expected_version: int) -> None:
        """
        ステータスを更新する。

        保存済みの version が expected_version と異なる場合は ConflictError。
        """
        pass

    @abstractmethod
    def list_assignments(self, schedule_id: str) -> list[Assignment]:
        """スケジュールの現在の割り当てを日付順で取得"""
        pass

    @abstractmethod
    def get_run(self, schedule_id: str, run_id: str) -> SchedulingRun | None:
        """実行記録を取得"""
        pass

    @abstractmethod
    def commit_run(
        self, schedule: WeeklySchedule, run: SchedulingRun, expected_version: int
    ) -> WeeklySchedule:
        """
        割り当て実行を1トランザクションでコミットする。

        - 実行記録の保存
        - 前回実行の割り当て削除と台帳差分の巻き戻し
        - 新しい割り当ての保存と台帳差分の適用
        - ステータスを assigned に、current_run_id を更新し version を加算

        version 不一致は ConflictError。更新後のスケジュールを返す。
        """
        pass


class PreferenceRepository(ABC):
    """週次希望の永続化（ファミリー×スケジュールで1レコード）"""

    @abstractmethod
    def save(self, preferences: WeeklyPreferences) -> None:
        """希望を保存（既存レコードは丸ごと置き換え）"""
        pass

    @abstractmethod
    def get(self, group_id: str, schedule_id: str, family_id: str) -> WeeklyPreferences | None:
        """希望を取得。存在しない場合はNoneを返す"""
        pass

    @abstractmethod
    def list_for_schedule(self, group_id: str, schedule_id: str) -> list[WeeklyPreferences]:
        """スケジュールに対する全ファミリーの希望を取得"""
        pass


class FairnessRepository(ABC):
    """公平性台帳（FairnessRecord）の永続化"""

    @abstractmethod
    def list(self, group_id: str) -> list[FairnessRecord]:
        """グループの全レコードを取得"""
        pass

    @abstractmethod
    def get(self, group_id: str, family_id: str) -> FairnessRecord | None:
        """レコードを取得。存在しない場合はNoneを返す"""
        pass

    @abstractmethod
    def apply_deltas(self, group_id: str, deltas: list[LedgerDelta]) -> None:
        """差分をアトミックに適用（割り当て実行の差分は commit_run 側で適用される）"""
        pass

    @abstractmethod
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
        """カウンターをアトミックに加減算し、更新後のレコードを返す"""
        pass


class MakeupRepository(ABC):
    """MakeupProposal の永続化"""

    @abstractmethod
    def create(self, proposal: MakeupProposal) -> None:
        """提案を作成"""
        pass

    @abstractmethod
    def get(self, group_id: str, proposal_id: str) -> MakeupProposal | None:
        """提案を取得。存在しない場合はNoneを返す"""
        pass

    @abstractmethod
    def list(
        self,
        group_id: str,
        family_id: str | None = None,
        status: MakeupStatus | None = None,
    ) -> list[MakeupProposal]:
        """提案一覧を取得。family_id / status フィルターはオプション"""
        pass

    @abstractmethod
    def update(self, proposal: MakeupProposal, expected_status: MakeupStatus) -> None:
        """
        提案を更新する。

        保存済みのステータスが expected_status と異なる場合は ConflictError。
        """
        pass


class EventPublisher(ABC):
    """論理イベントの発行（配信は外部の通知サービスが担当）"""

    @abstractmethod
    def publish(self, event_type: str, payload: dict) -> None:
        """イベントを発行"""
        pass
