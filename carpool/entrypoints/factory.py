"""Factory - 依存性注入の組み立て

全AdapterとServiceを組み立て、CarpoolServices を生成する。
API・ワーカー・CLI の全エントリーポイントがここを通る。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from google.cloud import firestore

from carpool.adapters.event_publisher import CloudTasksEventPublisher, LoggingEventPublisher
from carpool.adapters.firestore_repository import (
    FirestoreFairnessRepository,
    FirestoreMakeupRepository,
    FirestorePreferenceRepository,
    FirestoreRosterProvider,
    FirestoreScheduleRepository,
)
from carpool.adapters.memory_repository import (
    InMemoryFairnessRepository,
    InMemoryMakeupRepository,
    InMemoryPreferenceRepository,
    InMemoryRosterProvider,
    InMemoryScheduleRepository,
    InMemoryStore,
)
from carpool.config import AppConfig
from carpool.domain.ports import (
    EventPublisher,
    FairnessRepository,
    MakeupRepository,
    PreferenceRepository,
    RosterProvider,
    ScheduleRepository,
)
from carpool.services.fairness_ledger import FairnessLedger
from carpool.services.makeup_manager import MakeupManager
from carpool.services.preference_store import PreferenceStore
from carpool.services.resolver import ConstraintResolver
from carpool.services.scheduler import WeeklyScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CarpoolServices:
    """組み立て済みのサービス一式"""

    roster: RosterProvider
    preferences: PreferenceStore
    scheduler: WeeklyScheduler
    ledger: FairnessLedger
    makeup: MakeupManager


def build_services(
    config: AppConfig,
    *,
    roster: RosterProvider,
    schedule_repo: ScheduleRepository,
    preference_repo: PreferenceRepository,
    fairness_repo: FairnessRepository,
    makeup_repo: MakeupRepository,
    publisher: EventPublisher,
) -> CarpoolServices:
    """Port 実装からサービスを組み立てる（テストでもそのまま使う）"""
    ledger = FairnessLedger(fairness_repo)
    resolver = ConstraintResolver(config.policy())
    return CarpoolServices(
        roster=roster,
        preferences=PreferenceStore(preference_repo, schedule_repo, roster),
        scheduler=WeeklyScheduler(
            schedule_repo, preference_repo, roster, ledger, resolver, publisher
        ),
        ledger=ledger,
        makeup=MakeupManager(makeup_repo, ledger, publisher),
    )


def create_in_memory_services(
    config: AppConfig, store: InMemoryStore | None = None
) -> CarpoolServices:
    """インメモリ Adapter で組み立てる（LOCAL_MODE・テスト用）"""
    store = store or InMemoryStore()
    return build_services(
        config,
        roster=InMemoryRosterProvider(store),
        schedule_repo=InMemoryScheduleRepository(store),
        preference_repo=InMemoryPreferenceRepository(store),
        fairness_repo=InMemoryFairnessRepository(store),
        makeup_repo=InMemoryMakeupRepository(store),
        publisher=LoggingEventPublisher(),
    )


def create_services(config: AppConfig | None = None, db=None) -> CarpoolServices:
    """
    CarpoolServices を生成（全依存を組み立て）。

    Args:
        config: アプリケーション設定（Noneの場合は環境変数から読み込み）
        db: Firestore クライアント（Noneの場合は ADC で初期化）

    Raises:
        ValueError: 必須設定が不足している場合
    """
    if config is None:
        config = AppConfig.from_env()

    if config.local_mode:
        logger.info("LOCAL_MODE: using in-memory repositories")
        return create_in_memory_services(config)

    logger.info("Creating services with config: project_id=%s", config.project_id)

    if db is None:
        db = firestore.Client(project=config.project_id)

    # 通知先が未設定ならログ出力のみ
    publisher: EventPublisher
    if config.notifier_url and config.service_account_email:
        publisher = CloudTasksEventPublisher(
            project_id=config.project_id,
            location=config.cloud_tasks_location,
            queue_name=config.cloud_tasks_queue,
            notifier_url=config.notifier_url,
            service_account_email=config.service_account_email,
        )
        logger.info("Cloud Tasks event publisher enabled: queue=%s", config.cloud_tasks_queue)
    else:
        publisher = LoggingEventPublisher()
        logger.warning("NOTIFIER_URL not set, events will only be logged")

    services = build_services(
        config,
        roster=FirestoreRosterProvider(db),
        schedule_repo=FirestoreScheduleRepository(db),
        preference_repo=FirestorePreferenceRepository(db),
        fairness_repo=FirestoreFairnessRepository(db),
        makeup_repo=FirestoreMakeupRepository(db),
        publisher=publisher,
    )
    logger.info("Services created successfully")
    return services
