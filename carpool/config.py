"""設定管理 - 環境変数の型安全な読み込み"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from carpool.domain.models import SchedulingPolicy

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if parsed < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {parsed}")
    return parsed


@dataclass(frozen=True)
class AppConfig:
    """アプリケーション設定"""
    project_id: str
    local_mode: bool = False
    include_late_submissions: bool = True
    default_max_passengers: int = 4
    low_driver_threshold: int = 3
    cloud_tasks_location: str = "asia-northeast1"
    cloud_tasks_queue: str = "carpool-events"
    notifier_url: str = ""
    service_account_email: str = ""
    worker_service_account_email: str = ""
    cors_origins: tuple[str, ...] = ("http://localhost:5173",)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """環境変数から設定を読み込む"""
        load_dotenv()

        local_mode = _env_bool("LOCAL_MODE", False)
        project_id = os.getenv("PROJECT_ID", "")
        if not project_id and not local_mode:
            raise ValueError("PROJECT_ID is not set in environment")

        cors_raw = os.getenv("CORS_ORIGINS", "http://localhost:5173")

        return cls(
            project_id=project_id or "local",
            local_mode=local_mode,
            include_late_submissions=_env_bool("CARPOOL_INCLUDE_LATE_SUBMISSIONS", True),
            default_max_passengers=_env_int("CARPOOL_DEFAULT_MAX_PASSENGERS", 4),
            low_driver_threshold=_env_int("CARPOOL_LOW_DRIVER_THRESHOLD", 3, minimum=0),
            cloud_tasks_location=os.getenv("CLOUD_TASKS_LOCATION", "asia-northeast1"),
            cloud_tasks_queue=os.getenv("CLOUD_TASKS_QUEUE", "carpool-events"),
            notifier_url=os.getenv("NOTIFIER_URL", ""),
            service_account_email=os.getenv("SERVICE_ACCOUNT_EMAIL", ""),
            worker_service_account_email=os.getenv("WORKER_SERVICE_ACCOUNT_EMAIL", ""),
            cors_origins=tuple(o.strip() for o in cors_raw.split(",") if o.strip()),
        )

    def policy(self) -> SchedulingPolicy:
        """割り当て実行のポリシー"""
        return SchedulingPolicy(
            include_late_submissions=self.include_late_submissions,
            default_max_passengers=self.default_max_passengers,
            low_driver_warning_threshold=self.low_driver_threshold,
        )
