"""共通テストフィクスチャ

全テストから利用可能なモックオブジェクトとサンプルデータを提供。

モックの作成:
- MagicMock(spec=ABC) でABCのメソッドシグネチャを保持
- エンジンのテストはインメモリ Adapter を使う（実際の排他・台帳更新を通す）
"""

import datetime
from unittest.mock import MagicMock

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from carpool.adapters.memory_repository import (
    InMemoryFairnessRepository,
    InMemoryMakeupRepository,
    InMemoryPreferenceRepository,
    InMemoryRosterProvider,
    InMemoryScheduleRepository,
    InMemoryStore,
)
from carpool.config import AppConfig
from carpool.domain.models import (
    WEEKDAYS,
    DayPreference,
    Family,
    PreferredRole,
    ScheduleStatus,
    WeeklyPreferences,
    WeeklySchedule,
)
from carpool.domain.ports import EventPublisher
from carpool.entrypoints.api.app import app
from carpool.entrypoints.api.deps import (
    MemberContext,
    get_ledger,
    get_makeup_manager,
    get_member_context,
    get_preference_store,
    get_scheduler,
)
from carpool.entrypoints.factory import CarpoolServices, create_in_memory_services

GROUP_ID = "group-1"
# 2026-10-19 は月曜日
WEEK_START = datetime.date(2026, 10, 19)
PREFS_DEADLINE = datetime.datetime(2026, 10, 14, 17, 0, tzinfo=datetime.UTC)
BEFORE_DEADLINE = datetime.datetime(2026, 10, 13, 9, 0, tzinfo=datetime.UTC)
AFTER_DEADLINE = datetime.datetime(2026, 10, 15, 9, 0, tzinfo=datetime.UTC)

# 省略記法 → (preferred_role, can_drive)
_TOKENS = {
    "driver": (PreferredRole.DRIVER, True),
    "either": (PreferredRole.EITHER, True),
    "neutral": (PreferredRole.PASSENGER, True),
    "passenger": (PreferredRole.PASSENGER, False),
    "unavailable": (PreferredRole.UNAVAILABLE, False),
}


def build_days(tokens: list[str], max_passengers: int = 4) -> list[DayPreference]:
    """月〜金の順に並べた省略記法から DayPreference を作る"""
    days = []
    for weekday, token in zip(WEEKDAYS, tokens):
        role, can_drive = _TOKENS[token]
        days.append(
            DayPreference(
                weekday=weekday,
                preferred_role=role,
                can_drive=can_drive,
                max_passengers=max_passengers if can_drive else None,
            )
        )
    return days


# ========== サンプルデータ ==========


@pytest.fixture
def make_days():
    """build_days を返す（テストから省略記法で1週間分を作る）"""
    return build_days


@pytest.fixture
def make_prefs():
    """WeeklyPreferences を作るファクトリ"""

    def _make(family_id: str, tokens: list[str], schedule_id: str = "sched-1", **kwargs):
        max_passengers = kwargs.pop("max_passengers", 4)
        return WeeklyPreferences(
            family_id=family_id,
            schedule_id=schedule_id,
            group_id=GROUP_ID,
            days=build_days(tokens, max_passengers),
            submitted_at=BEFORE_DEADLINE,
            **kwargs,
        )

    return _make


@pytest.fixture
def families() -> list[Family]:
    """サンプルファミリー: fam-a / fam-b / fam-c"""
    return [
        Family(id="fam-a", name="青木家", primary_parent_id="p-a", parent_ids=["p-a"]),
        Family(id="fam-b", name="佐藤家", primary_parent_id="p-b", parent_ids=["p-b"]),
        Family(id="fam-c", name="鈴木家", primary_parent_id="p-c", parent_ids=["p-c"]),
    ]


@pytest.fixture
def open_schedule() -> WeeklySchedule:
    """希望受付中のスケジュール"""
    return WeeklySchedule(
        id="sched-1",
        group_id=GROUP_ID,
        week_start_date=WEEK_START,
        week_end_date=WEEK_START + datetime.timedelta(days=4),
        status=ScheduleStatus.PREFERENCES_OPEN,
        preferences_deadline=PREFS_DEADLINE,
        swaps_deadline=datetime.datetime(2026, 10, 17, 17, 0, tzinfo=datetime.UTC),
    )


# ========== インメモリ Adapter ==========


@pytest.fixture
def store(families) -> InMemoryStore:
    """サンプルファミリーを登録済みのインメモリストア"""
    s = InMemoryStore()
    for f in families:
        s.add_family(GROUP_ID, f)
    return s


@pytest.fixture
def roster(store) -> InMemoryRosterProvider:
    return InMemoryRosterProvider(store)


@pytest.fixture
def schedule_repo(store) -> InMemoryScheduleRepository:
    return InMemoryScheduleRepository(store)


@pytest.fixture
def preference_repo(store) -> InMemoryPreferenceRepository:
    return InMemoryPreferenceRepository(store)


@pytest.fixture
def fairness_repo(store) -> InMemoryFairnessRepository:
    return InMemoryFairnessRepository(store)


@pytest.fixture
def makeup_repo(store) -> InMemoryMakeupRepository:
    return InMemoryMakeupRepository(store)


# ========== モック ==========


@pytest.fixture
def mock_publisher() -> MagicMock:
    """EventPublisherのモック"""
    return MagicMock(spec=EventPublisher)


# ========== API ==========


@pytest.fixture
def services(store) -> CarpoolServices:
    """インメモリ Adapter で組み立てたサービス一式"""
    return create_in_memory_services(AppConfig(project_id="test"), store)


@pytest.fixture
def api_client(services):
    """
    認証済みメンバーとして API を呼ぶ TestClient のファクトリ。

    get_member_context とサービス取得関数を dependency_overrides で差し替える。
    メンバー情報はクライアントごとの X-Test-* ヘッダーから組み立てるため、
    保護者と管理者のクライアントを1つのテストで併用できる。
    """

    def _member_from_headers(request: Request) -> MemberContext:
        family_id = request.headers["X-Test-Family"]
        return MemberContext(
            uid=f"uid-{family_id}",
            family_id=family_id,
            group_id=request.headers["X-Test-Group"],
            role=request.headers["X-Test-Role"],
        )

    app.dependency_overrides.update(
        {
            get_member_context: _member_from_headers,
            get_preference_store: lambda: services.preferences,
            get_scheduler: lambda: services.scheduler,
            get_ledger: lambda: services.ledger,
            get_makeup_manager: lambda: services.makeup,
        }
    )

    def _make(family_id: str = "fam-a", role: str = "parent", group_id: str = GROUP_ID):
        headers = {"X-Test-Family": family_id, "X-Test-Role": role, "X-Test-Group": group_id}
        return TestClient(app, headers=headers, raise_server_exceptions=False)

    yield _make
    app.dependency_overrides.clear()
