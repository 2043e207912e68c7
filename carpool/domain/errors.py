"""ドメイン固有の例外クラス

InfeasibilityReport（埋められなかったスロット）は例外ではなく
ResolverResult.unassigned_slots としてデータで返す。
"""

from __future__ import annotations


class CarpoolError(Exception):
    """Carpool エンジンの基底例外"""

    pass


class ValidationError(CarpoolError):
    """入力検証エラー（クォータ超過・不正な希望・メイクアップ残高超過等）

    Attributes:
        category: 超過したクォータ区分（"preferable" 等）。該当しない場合 None
        day: 問題のある曜日（"monday" 等）。該当しない場合 None
    """

    def __init__(
        self, message: str, category: str | None = None, day: str | None = None
    ) -> None:
        super().__init__(message)
        self.category = category
        self.day = day


class NotFoundError(CarpoolError):
    """スケジュール・ファミリー・提案が存在しない"""

    pass


class ConflictError(CarpoolError):
    """状態遷移の競合（二重実行・バージョン不一致・終端状態への操作）"""

    pass


class SchedulingRunError(CarpoolError):
    """割り当て実行の永続化失敗。実行全体が失敗扱いで、再実行しても安全"""

    def __init__(self, message: str, run_id: str) -> None:
        super().__init__(message)
        self.run_id = run_id
