"""Wiring of the crisis pipeline.

    signal -> CrisisPatternDetector -> AlertLifecycle.create
           -> CrisisAlertCreated on the DomainEventBus
           -> EventRouter handler -> NotificationDispatcher
           -> NotificationStore (PENDING notification)
"""
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from softfocus.services.crisis_engine import (
    AlertLifecycle,
    AlertQueryService,
    AlertStore,
    CrisisDetectionConfig,
    CrisisIntegrationService,
    CrisisPatternDetector,
    HistoryProvider,
    InMemoryAlertStore,
    PostgresAlertStore,
)
from softfocus.services.notification_service import (
    DeliveryScheduler,
    EventRouter,
    InMemoryNotificationStore,
    InMemoryPreferenceStore,
    NotificationConfig,
    NotificationDispatcher,
    NotificationHistoryService,
    NotificationStore,
    PostgresNotificationStore,
    PostgresPreferenceStore,
    PreferenceService,
    PreferenceStore,
)
from softfocus.shared.database import ConnectionManager, get_connection_manager
from softfocus.shared.events import DomainEventBus
from softfocus.shared.relationships import InMemoryRelationshipDirectory, RelationshipDirectory
from softfocus.shared.utils import configure_log_salt, is_log_salt_configured

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CrisisPipeline:
    """Every collaborator of one wired pipeline, for callers and tests."""
    event_bus: DomainEventBus
    detector: CrisisPatternDetector
    alert_store: AlertStore
    lifecycle: AlertLifecycle
    alerts: AlertQueryService
    notification_store: NotificationStore
    preference_store: PreferenceStore
    scheduler: DeliveryScheduler
    dispatcher: NotificationDispatcher
    router: EventRouter
    history: NotificationHistoryService
    preferences: PreferenceService
    relationships: RelationshipDirectory
    integration: CrisisIntegrationService


def build_pipeline(
    alert_store: AlertStore,
    notification_store: NotificationStore,
    preference_store: PreferenceStore,
    relationships: RelationshipDirectory,
    history_provider: Optional[HistoryProvider] = None,
    detection_config: Optional[CrisisDetectionConfig] = None,
    notification_config: Optional[NotificationConfig] = None,
    clock: Callable[[], datetime] = _utcnow,
    log_salt: Optional[str] = None,
) -> CrisisPipeline:
    """Wire detector, lifecycle, bus, router and dispatcher together.

    Args:
        alert_store: Crisis alert persistence
        notification_store: Notification persistence
        preference_store: Notification preference persistence
        relationships: Patient -> psychologist lookup
        history_provider: Emotion history for window detection
        detection_config: Keywords and thresholds; defaults to CrisisDetectionConfig()
        notification_config: Scheduling settings; defaults to NotificationConfig()
        clock: Returns the current UTC time, shared by every component
        log_salt: Salt for identifier hashing; falls back to the LOG_SALT env var

    Returns:
        CrisisPipeline with the router already subscribed to the bus

    Raises:
        ValueError: If no usable log salt is configured
    """
    if log_salt is not None:
        configure_log_salt(log_salt)
    elif not is_log_salt_configured():
        configure_log_salt(os.getenv("LOG_SALT", ""))

    notification_config = notification_config or NotificationConfig()
    event_bus = DomainEventBus()

    detector = CrisisPatternDetector(detection_config, clock=clock)
    lifecycle = AlertLifecycle(alert_store, event_bus, clock=clock)
    scheduler = DeliveryScheduler(
        notification_store,
        preference_store,
        config=notification_config,
        clock=clock,
    )
    dispatcher = NotificationDispatcher(
        notification_store,
        preference_store,
        scheduler,
        clock=clock,
    )
    router = EventRouter(dispatcher, relationships, config=notification_config)
    router.register(event_bus)

    integration = CrisisIntegrationService(
        detector,
        lifecycle,
        relationships,
        history_provider=history_provider,
        event_bus=event_bus,
    )

    logger.info(
        "CRISIS_PIPELINE_BUILT",
        extra={
            "alert_store": type(alert_store).__name__,
            "notification_store": type(notification_store).__name__,
            "history_provider": type(history_provider).__name__ if history_provider else None,
        }
    )

    return CrisisPipeline(
        event_bus=event_bus,
        detector=detector,
        alert_store=alert_store,
        lifecycle=lifecycle,
        alerts=AlertQueryService(alert_store),
        notification_store=notification_store,
        preference_store=preference_store,
        scheduler=scheduler,
        dispatcher=dispatcher,
        router=router,
        history=NotificationHistoryService(notification_store, clock=clock),
        preferences=PreferenceService(preference_store, clock=clock),
        relationships=relationships,
        integration=integration,
    )


def build_in_memory_pipeline(
    relationships: Optional[RelationshipDirectory] = None,
    **kwargs,
) -> CrisisPipeline:
    """Pipeline over in-memory stores, for tests and local runs."""
    return build_pipeline(
        alert_store=InMemoryAlertStore(),
        notification_store=InMemoryNotificationStore(),
        preference_store=InMemoryPreferenceStore(),
        relationships=relationships or InMemoryRelationshipDirectory(),
        **kwargs,
    )


def build_postgres_pipeline(
    relationships: RelationshipDirectory,
    connection_manager: Optional[ConnectionManager] = None,
    **kwargs,
) -> CrisisPipeline:
    """Pipeline over the PostgreSQL document stores.

    Without a connection manager the process-wide one is used. It is
    initialized here if the caller has not done so.
    """
    if connection_manager is None:
        connection_manager = get_connection_manager()
    if not connection_manager.initialized:
        connection_manager.initialize()

    return build_pipeline(
        alert_store=PostgresAlertStore(connection_manager),
        notification_store=PostgresNotificationStore(connection_manager),
        preference_store=PostgresPreferenceStore(connection_manager),
        relationships=relationships,
        **kwargs,
    )
