"""Command-line entry point for the task notifier service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from task_notifier.config import AppConfig, ConfigurationError, EnvironmentConfig, load_config
from task_notifier.logging import get_logger
from task_notifier.logging.config import configure_logging
from task_notifier.notifications.models import JobStatus, NotificationTemplateError, TemplateKind
from task_notifier.notifications.templates import render_preview
from task_notifier.pipeline import PipelineManager, build_pipeline
from task_notifier.scheduler import SchedulerService
from task_notifier.store import close_database

logger = get_logger(__name__, component="cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Task notifier - emails task participants when a task changes status"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log messages instead of sending them; SMTP settings are not required",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--manual-transition",
        nargs=3,
        metavar=("TASK_ID", "OLD_STATUS", "NEW_STATUS"),
        help="Process one status change immediately, deliver it and exit",
    )
    mode.add_argument(
        "--preview",
        choices=[kind.value for kind in TemplateKind],
        help="Render a template with sample data and exit",
    )
    parser.add_argument(
        "--actor",
        default="Manual",
        help="Name shown as 'changed by' for --manual-transition (default: Manual)",
    )
    return parser


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str], dry_run: bool
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path, require_smtp=not dry_run)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = str(app_config.logging.level)

    return app_config, env_config


def run_preview(kind: str) -> int:
    try:
        message = render_preview(kind)
    except NotificationTemplateError as e:
        print(f"Preview failed: {e}", file=sys.stderr)
        return 1

    print(f"Subject: {message.subject}")
    print()
    print(message.text)
    return 0


def run_manual_transition(manager: PipelineManager, transition: List[str], actor: str) -> int:
    """Queue one transition, deliver it synchronously and report the outcome."""
    task_id, old_status, new_status = transition
    job_id = manager.run_manual_transition(task_id, old_status.upper(), new_status.upper(), actor=actor)
    if job_id is None:
        logger.warning(
            "Transition did not produce a notification",
            extra={"event": "service.manual_transition.skipped", "task_id": task_id},
        )
        print("No notification queued (see log for the reason)", file=sys.stderr)
        return 1

    manager.queue.drain()
    job = manager.job_status(job_id)
    status = job.status if job else None

    logger.info(
        f"Manual transition finished with job status {status.value if status else 'unknown'}",
        extra={
            "event": "service.manual_transition.completed",
            "job_id": job_id,
            "task_id": task_id,
            "job_status": status.value if status else None,
        },
    )
    print(f"{job_id}: {status.value if status else 'unknown'}")
    if job and job.error_message:
        print(f"  {job.error_message}")
    return 0 if status is JobStatus.SENT else 1


def run_daemon(manager: PipelineManager, scheduler: SchedulerService) -> int:
    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not manager.initialize():
        for line in manager.pipeline_status().summary_lines():
            print(line, file=sys.stderr)
        return 1

    logger.info(
        "Notifier running. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
    finally:
        manager.shutdown()
        scheduler.shutdown(wait=False)

    for line in manager.pipeline_status().summary_lines():
        logger.info(line, extra={"event": "service.final_status"})
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    if args.preview:
        return run_preview(args.preview)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level, args.dry_run)

        configure_logging(
            level=env_config.log_level,
            format_type=str(app_config.logging.format),
            environment=env_config.environment,
        )
        logger.info(
            "Task notifier starting",
            extra={
                "event": "service.starting",
                "log_level": env_config.log_level,
                "dry_run": args.dry_run,
                "manual_transition": bool(args.manual_transition),
            },
        )

        scheduler = SchedulerService()
        manager = build_pipeline(app_config, env_config, dry_run=args.dry_run, scheduler=scheduler)

        try:
            if args.manual_transition:
                return run_manual_transition(manager, args.manual_transition, args.actor)
            return run_daemon(manager, scheduler)
        finally:
            close_database()
            logger.info(
                "Task notifier stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={"event": "service.fatal", "error_type": type(e).__name__},
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
