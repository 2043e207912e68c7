#!/usr/bin/env python3
"""CLI Entrypoint - コマンドラインから週次割り当てを実行

使い方:
    python -m carpool.entrypoints.cli GROUP_ID [--week 2026-10-19] [--force]

環境変数:
    LOG_LEVEL: ログレベル (DEBUG, INFO, WARNING, ERROR) デフォルト: INFO
    K_SERVICE / CLOUD_RUN_JOB: Cloud Run 環境では自動設定されJSON形式ログに切替
    PROJECT_ID / LOCAL_MODE: carpool.config を参照
"""

import argparse
import datetime
import logging
import sys

from carpool.domain.errors import CarpoolError
from carpool.entrypoints.factory import create_services
from carpool.entrypoints.worker import run_weekly_generation
from carpool.logging_config import setup_logging
from carpool.services.scheduler import next_monday


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run weekly carpool assignment")
    parser.add_argument("group_id", help="carpool group id")
    parser.add_argument(
        "--week",
        type=datetime.date.fromisoformat,
        default=None,
        help="week start date (Monday, YYYY-MM-DD). defaults to next Monday",
    )
    parser.add_argument(
        "--force", action="store_true", help="re-run an already assigned week"
    )
    return parser.parse_args(argv)


def main(argv=None):
    """メインエントリーポイント"""
    setup_logging()
    logger = logging.getLogger(__name__)
    args = _parse_args(argv)
    week = args.week or next_monday(datetime.date.today())

    logger.info("Carpool scheduler - group=%s week=%s", args.group_id, week.isoformat())

    try:
        services = create_services()
        result = run_weekly_generation(
            services.scheduler, args.group_id, week, force_regenerate=args.force
        )

        if result["status"] == "skipped":
            logger.info("Nothing to do: schedule is %s", result["reason"])
            return

        summary = result["summary"]
        logger.info(
            "Run %s committed - assignments=%d unassigned=%d fairness=%.2f",
            result["runId"],
            summary["assignmentsCreated"],
            summary["unassignedSlots"],
            summary["fairnessScore"],
        )
        for warning in summary["warnings"]:
            logger.warning(warning)

        # 埋められなかったスロットがあれば終了コード2
        if summary["unassignedSlots"]:
            sys.exit(2)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)

    except CarpoolError as e:
        logger.error("Scheduling failed: %s", e)
        sys.exit(1)

    except Exception:
        logger.exception("Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    main()
