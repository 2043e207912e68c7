"""carpool のログ出力設定

API・ワーカー・CLI の起動時に setup_logging() を1回呼ぶ。
Cloud Run 上では Cloud Logging の構造化ログ（1行1 JSON）、手元ではテキストで出す。

割り当て実行のログは run_context() でグループ・スケジュール・実行IDを付け、
Cloud Logging ではラベルとして絞り込めるようにする:

    logger.info(
        "Scheduling run committed: run_id=%s", run_id,
        extra=run_context(group_id=g, schedule_id=s, run_id=run_id),
    )

環境変数:
    LOG_LEVEL: DEBUG / INFO / WARNING / ERROR / CRITICAL（既定 INFO、不正値も INFO）
    LOG_FORMAT: json / text で出力形式を固定する（未指定なら実行環境で判定）
    K_SERVICE / CLOUD_RUN_JOB: Cloud Run が自動で設定する
"""

import json
import logging
import os

# Cloud Logging のラベルに載せるキー
LABEL_KEYS = ("group_id", "schedule_id", "run_id", "family_id")
_LABELS_FIELD = "logging.googleapis.com/labels"
_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def run_context(**fields) -> dict:
    """logger の extra に渡す dict を作る（None の値は落とす）"""
    return {"extra_fields": {k: v for k, v in fields.items() if v is not None}}


class CloudLoggingFormatter(logging.Formatter):
    """Cloud Logging の構造化ログ形式で1レコードを1行の JSON にする

    extra_fields のうち LABEL_KEYS に当たるものはラベルに、
    それ以外（イベントのペイロード等）はトップレベルに出す。
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "severity": _severity(record),
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)

        fields = dict(getattr(record, "extra_fields", {}))
        labels = {k: str(fields.pop(k)) for k in LABEL_KEYS if k in fields}
        if labels:
            entry[_LABELS_FIELD] = labels
        entry.update(fields)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _severity(record: logging.LogRecord) -> str:
    if record.levelno >= logging.CRITICAL:
        return "CRITICAL"
    if record.levelno >= logging.ERROR:
        return "ERROR"
    if record.levelno >= logging.WARNING:
        return "WARNING"
    if record.levelno >= logging.INFO:
        return "INFO"
    if record.levelno >= logging.DEBUG:
        return "DEBUG"
    return "DEFAULT"


def _use_json() -> bool:
    fmt = os.getenv("LOG_FORMAT", "").lower()
    if fmt in ("json", "text"):
        return fmt == "json"
    # K_SERVICE: Cloud Run Services, CLOUD_RUN_JOB: Cloud Run Jobs
    return bool(os.getenv("K_SERVICE") or os.getenv("CLOUD_RUN_JOB"))


def setup_logging() -> None:
    """ルートロガーにハンドラを1つだけ付け直す"""
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), None)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler()
    if _use_json():
        handler.setFormatter(CloudLoggingFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Firestore / Cloud Tasks クライアントの DEBUG ログは出さない
    for noisy in ("google.auth", "urllib3", "grpc"):
        logging.getLogger(noisy).setLevel(max(level, logging.INFO))
