"""Main entry point for the notification dispatcher service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Tuple

import uvicorn

from dispatcher.api import create_app
from dispatcher.config.environment import EnvironmentConfig
from dispatcher.config.exceptions import ConfigurationError
from dispatcher.config.loader import load_config
from dispatcher.config.models import AppConfig
from dispatcher.logging import get_logger
from dispatcher.logging.config import configure_logging
from dispatcher.notifications.service import NotificationService
from dispatcher.notifications.templates import MessageRenderer
from dispatcher.notifications.transport import ResendTransport
from dispatcher.persistence.database import close_database, get_session, init_database
from dispatcher.persistence.repositories import NotificationQueueRepository
from dispatcher.pipeline import DispatchPipeline, QueueFetchError
from dispatcher.scheduler import SchedulerService

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_pipeline(app_config: AppConfig, env_config: EnvironmentConfig) -> DispatchPipeline:
    """Wire renderer, transport and notification service into a pipeline."""
    transport = ResendTransport(
        api_key=env_config.resend_api_key,
        api_url=app_config.email.api_url,
        timeout=app_config.email.request_timeout,
    )
    notification_service = NotificationService(
        renderer=MessageRenderer(app_url=env_config.app_url),
        transport=transport,
        sender=env_config.from_email,
        send_delay_seconds=app_config.dispatch.send_delay_seconds,
    )
    return DispatchPipeline(config=app_config.dispatch, notification_service=notification_service)


def run_scheduled(pipeline: DispatchPipeline) -> None:
    """Scheduler job: one dispatch run whose fetch errors are logged, not raised."""
    try:
        pipeline.run_once()
    except QueueFetchError as e:
        logger.error(
            f"Scheduled dispatch aborted: {e}",
            extra={"event": "service.scheduled_run.failed"},
            exc_info=True,
        )


def print_stats() -> None:
    with get_session() as session:
        stats = NotificationQueueRepository(session).get_stats()
    print(stats.model_dump_json(indent=2))


def main() -> int:
    """
    Main entry point for the notification dispatcher.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    parser = argparse.ArgumentParser(
        description="Notification Dispatcher - Batched email delivery for the notification queue"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--manual-run",
        action="store_true",
        help="Run a single dispatch immediately and exit",
    )
    mode.add_argument(
        "--serve",
        action="store_true",
        help="Serve the HTTP API (POST /process-notifications and admin routes)",
    )
    mode.add_argument(
        "--stats",
        action="store_true",
        help="Print queue statistics as JSON and exit",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address for --serve")
    parser.add_argument("--port", type=int, default=8000, help="Port for --serve")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    args = parser.parse_args()

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "Notification dispatcher starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "manual_run": args.manual_run,
                "serve": args.serve,
            },
        )

        init_database(env_config.database_url)

        if args.stats:
            print_stats()
            close_database()
            return 0

        logger.info(
            "Configuration loaded",
            extra={
                "event": "config.loaded",
                "batch_size": app_config.dispatch.batch_size,
                "send_delay_ms": app_config.dispatch.send_delay_ms,
                "retention_days": app_config.dispatch.retention_days,
                "max_attempts": app_config.dispatch.max_attempts,
                "schedule_interval_seconds": app_config.dispatch.schedule_interval_seconds,
                "log_format": app_config.logging.format,
            },
        )

        pipeline = build_pipeline(app_config, env_config)

        if args.manual_run:
            logger.info("Executing manual dispatch", extra={"event": "service.manual_run.starting"})
            try:
                result = pipeline.run_once()
            finally:
                close_database()

            logger.info(
                f"Manual dispatch completed: {result.processed} processed, "
                f"{result.sent} sent, {result.failed} failed, {result.retried} retried",
                extra={
                    "event": "service.manual_run.completed",
                    "duration_seconds": result.total_duration_seconds,
                    "had_errors": result.had_errors,
                    "processed": result.processed,
                    "sent": result.sent,
                    "failed": result.failed,
                    "retried": result.retried,
                    "purged": result.purged,
                },
            )
            logger.info(
                "Notification dispatcher stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )
            return 1 if result.had_errors else 0

        if args.serve:
            logger.info(
                f"Serving HTTP API on {args.host}:{args.port}",
                extra={"event": "service.serve.started", "host": args.host, "port": args.port},
            )
            try:
                uvicorn.run(create_app(pipeline), host=args.host, port=args.port, log_config=None)
            finally:
                close_database()
            return 0

        # Daemon mode
        shutdown_event = threading.Event()
        scheduler_service = SchedulerService(
            dispatch_callable=lambda: run_scheduled(pipeline),
            interval_seconds=app_config.dispatch.schedule_interval_seconds,
            shutdown_event=shutdown_event,
        )

        def signal_handler(signum, frame):
            logger.info(
                f"Received signal {signum}, shutting down",
                extra={"event": "service.signal_received", "signal": signum},
            )
            scheduler_service.shutdown(wait=False)
            close_database()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        scheduler_service.start()
        logger.info(
            "Scheduler started. Press Ctrl+C to stop",
            extra={"event": "service.daemon_mode.started"},
        )

        try:
            shutdown_event.wait()
        except KeyboardInterrupt:
            logger.info(
                "Keyboard interrupt received, shutting down",
                extra={"event": "service.keyboard_interrupt"},
            )
            scheduler_service.shutdown(wait=False)
            close_database()

        logger.info(
            "Notification dispatcher stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return 0

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except QueueFetchError as e:
        print(f"Dispatch failed: {e}", file=sys.stderr)
        logger.error(
            f"Dispatch failed: {e}",
            extra={"event": "service.manual_run.failed", "error_type": "QueueFetchError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
