"""Event Publisher Adapters

EventPublisher ABC の実装。

- LoggingEventPublisher: ログに出すだけ（LOCAL_MODE・通知先未設定時）
- CloudTasksEventPublisher: 外部の通知サービスへ HTTP タスクとして送る

キューに入れるペイロード例:
  {
    "event": "assignments_published",
    "payload": {"groupId": "g1", "scheduleId": "s1", "runId": "r1", ...}
  }
"""

from __future__ import annotations

import json
import logging
from base64 import b64encode

from google.cloud import tasks_v2

from carpool.domain.ports import EventPublisher

logger = logging.getLogger(__name__)


class LoggingEventPublisher(EventPublisher):
    """イベントを INFO ログとして出力する"""

    def publish(self, event_type: str, payload: dict) -> None:
        logger.info(
            "Event published: %s",
            event_type,
            extra={"extra_fields": {"event": event_type, **payload}},
        )


class CloudTasksEventPublisher(EventPublisher):
    """
    Google Cloud Tasks を使った EventPublisher 実装。

    イベントは HTTP ターゲットとして通知サービスの URL に POST される。
    OIDC トークンで通知サービス側のエンドポイントを保護する。
    """

    def __init__(
        self,
        project_id: str,
        location: str,
        queue_name: str,
        notifier_url: str,
        service_account_email: str,
        client: tasks_v2.CloudTasksClient | None = None,
    ) -> None:
        """
        Args:
            project_id: GCP プロジェクト ID
            location: Cloud Tasks のリージョン（例: "asia-northeast1"）
            queue_name: キュー名（例: "carpool-events"）
            notifier_url: 通知サービスのエンドポイント URL
            service_account_email: OIDC トークン発行に使う SA メール
            client: 初期化済みクライアント（省略時は ADC で自動初期化）
        """
        self._client = client or tasks_v2.CloudTasksClient()
        self._queue_path = self._client.queue_path(project_id, location, queue_name)
        self._notifier_url = notifier_url
        self._service_account_email = service_account_email

    def publish(self, event_type: str, payload: dict) -> None:
        """
        イベントを Cloud Tasks キューに追加する。

        create_task の失敗はそのまま呼び出し元へ送出する。
        """
        body = json.dumps({"event": event_type, "payload": payload}).encode("utf-8")

        task = {
            "http_request": {
                "http_method": tasks_v2.HttpMethod.POST,
                "url": self._notifier_url,
                "headers": {"Content-Type": "application/json"},
                "body": b64encode(body).decode("utf-8"),
                "oidc_token": {
                    "service_account_email": self._service_account_email,
                    "audience": self._notifier_url,
                },
            }
        }

        response = self._client.create_task(
            request={"parent": self._queue_path, "task": task}
        )

        logger.info(
            "Enqueued event: queue=%s, task=%s, event=%s",
            self._queue_path,
            response.name,
            event_type,
        )
