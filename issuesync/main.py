"""Command line entry point"""

import argparse
import logging
import threading
from typing import List, Optional

from issuesync.config import Settings, find_config_file, load_settings
from issuesync.exceptions import ConfigurationError, IssueSyncError, SyncCancelled
from issuesync.scheduler import SyncRunner, SyncScheduler
from issuesync.services.github_client import GitHubClient
from issuesync.services.jira_client import new_jira_client
from issuesync.services.retry import ResilientInvoker, log_retry
from issuesync.services.sync_service import SyncService

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="issue-sync",
        description="Mirror GitHub issues and their comments into a Jira project.",
    )
    parser.add_argument("--config", help="JSON or YAML config file (default: ./config-issue-sync.yaml)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="read from both systems but only log the changes to Jira",
    )
    parser.add_argument("--period", type=int, help="sync every PERIOD seconds instead of once")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    return parser.parse_args(argv)


def configure_logging(level: str):
    numeric = getattr(logging, str(level).upper(), None)
    known = isinstance(numeric, int)
    logging.basicConfig(level=numeric if known else logging.INFO, format=LOG_FORMAT)
    if not known:
        logger.warning(f"Unknown log level '{level}', using INFO")


def build_service(settings: Settings, cancel_event: threading.Event) -> SyncService:
    """Connect to GitHub and Jira and wire up the sync service"""

    def invoker(service: str) -> ResilientInvoker:
        return ResilientInvoker(settings.timeout_seconds, notify=log_retry(service), cancel_event=cancel_event)

    github = GitHubClient(settings.github_token, invoker("GitHub"), timeout=settings.timeout_seconds)
    jira = new_jira_client(settings, github, invoker("JIRA"))
    return SyncService(settings, github, jira)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config_path = find_config_file(args.config)
        settings = load_settings(
            config_path,
            dry_run=args.dry_run,
            period_seconds=args.period,
            log_level=args.log_level,
        )
    except ConfigurationError as e:
        configure_logging(args.log_level or "INFO")
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(settings.log_level)
    if settings.dry_run:
        logger.info("Running in dry-run mode; JIRA will not be changed")

    cancel_event = threading.Event()
    try:
        service = build_service(settings, cancel_event)
        runner = SyncRunner(settings, service, config_path)

        if not settings.is_daemon:
            result = runner.run_once()
            logger.info(f"Sync finished: {result}")
            return 0

        scheduler = SyncScheduler(runner, settings.period_seconds, cancel_event)
        scheduler.install_signal_handlers()
        scheduler.start()
        return 0
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except SyncCancelled:
        logger.info("Sync cancelled")
        return 1
    except IssueSyncError as e:
        logger.error(f"Sync failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        return 1
