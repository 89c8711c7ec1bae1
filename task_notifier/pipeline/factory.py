"""Wires configuration into a ready-to-start PipelineManager."""

from typing import Optional

from ..config import AppConfig, ConfigurationError, EnvironmentConfig
from ..events.listener import ChangeEventListener
from ..events.sources import ChangeFeed, EntityStore
from ..logging import EventLogger
from ..notifications.queue import DeliveryQueue
from ..notifications.smtp_client import SMTPTransport
from ..notifications.templates import TemplateRenderer
from ..notifications.transport import LoggingTransport, Transport
from ..scheduler import SchedulerService
from .manager import PipelineManager


def build_transport(app_config: AppConfig, env_config: EnvironmentConfig, dry_run: bool = False) -> Transport:
    """SMTP transport, or the logging transport for dry runs."""
    if dry_run or app_config.transport.dry_run:
        return LoggingTransport()
    if not env_config.smtp_configured:
        raise ConfigurationError(
            "SMTP is not configured",
            errors=["SMTP_HOST and a sender address are required to deliver email"],
            suggestions=["Set SMTP_HOST and SMTP_SENDER_EMAIL", "Use --dry-run to only log messages"],
        )
    return SMTPTransport(
        env_config,
        use_tls=app_config.transport.use_tls,
        timeout=app_config.transport.timeout,
    )


def _default_sources(app_config: AppConfig, env_config: EnvironmentConfig, scheduler: SchedulerService):
    from ..store import PollingChangeFeed, SQLEntityStore, init_database

    if not env_config.database_url:
        raise ConfigurationError(
            "No task database configured",
            errors=["Missing environment variable: DATABASE_URL"],
            suggestions=["Point DATABASE_URL at the task application's database"],
        )
    init_database(env_config.database_url)
    store = SQLEntityStore()
    feed = PollingChangeFeed(
        store,
        scheduler=scheduler,
        interval_seconds=app_config.listener.poll_interval_seconds,
    )
    return store, feed


def build_pipeline(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    dry_run: bool = False,
    transport: Optional[Transport] = None,
    store: Optional[EntityStore] = None,
    feed: Optional[ChangeFeed] = None,
    scheduler: Optional[SchedulerService] = None,
) -> PipelineManager:
    """Assemble event log, renderer, queue, listener and manager.

    Any collaborator passed in is used as is; the rest are built from
    configuration. Without an injected store and feed the SQL adapters are
    used, which requires DATABASE_URL.

    Raises:
        ConfigurationError: If a required setting is missing
    """
    scheduler = scheduler or SchedulerService()
    transport = transport or build_transport(app_config, env_config, dry_run=dry_run)

    if store is None or feed is None:
        default_store, default_feed = _default_sources(app_config, env_config, scheduler)
        store = store or default_store
        feed = feed or default_feed

    event_log = EventLogger(
        capacity=app_config.event_log.capacity,
        level=app_config.event_log.level,
    )
    queue_config = app_config.queue
    queue = DeliveryQueue(
        renderer=TemplateRenderer(),
        transport=transport,
        event_log=event_log,
        scheduler=scheduler,
        max_retries=queue_config.max_retries,
        backoff_unit_seconds=queue_config.backoff_unit_seconds,
        dispatch_interval_seconds=queue_config.dispatch_interval_seconds,
        max_concurrent_sends=queue_config.max_concurrent_sends,
        send_timeout_seconds=queue_config.send_timeout_seconds,
        default_priority=queue_config.default_priority,
    )

    listener_config = app_config.listener
    listener = ChangeEventListener(
        feed=feed,
        store=store,
        queue=queue,
        event_log=event_log,
        notify_statuses=listener_config.notify_statuses,
        dedup_window_seconds=listener_config.dedup_window_seconds,
        dedup_retention_seconds=listener_config.dedup_retention_seconds,
        app_url=env_config.app_url or listener_config.base_url,
    )

    health = app_config.health
    return PipelineManager(
        queue=queue,
        listener=listener,
        event_log=event_log,
        scheduler=scheduler,
        check_interval_seconds=health.check_interval_seconds,
        failed_ratio_error=health.failed_ratio_error,
        pending_error=health.pending_error,
        failed_ratio_warning=health.failed_ratio_warning,
        pending_warning=health.pending_warning,
        sweep_after_hours=health.sweep_after_hours,
        log_retention_hours=health.log_retention_hours,
    )
