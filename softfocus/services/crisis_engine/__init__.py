"""Crisis Engine - Detects crisis signals and manages crisis alerts.

Responsibilities:
- Detect crisis patterns in chat text and emotion observation windows
- Create crisis alerts and enforce their status/severity lifecycle
- Publish CrisisAlertCreated for the notification service
"""
from .config import CrisisDetectionConfig, CRITICAL_PHRASES, NEGATIVE_EMOTIONS
from .detector import (
    CrisisPattern,
    CrisisPatternDetector,
    EmotionObservation,
    HistoryProvider,
    longest_qualifying_run,
    severity_for_run,
)
from .models import ALLOWED_TRANSITIONS, CrisisAlert, EmotionalContext, Location
from .alert_store import AlertStore, InMemoryAlertStore, PostgresAlertStore
from .alerts import AlertLifecycle, AlertQueryService
from .integration import CrisisIntegrationService

__all__ = [
    "CrisisDetectionConfig",
    "CRITICAL_PHRASES",
    "NEGATIVE_EMOTIONS",
    "CrisisPattern",
    "CrisisPatternDetector",
    "EmotionObservation",
    "HistoryProvider",
    "longest_qualifying_run",
    "severity_for_run",
    "ALLOWED_TRANSITIONS",
    "CrisisAlert",
    "EmotionalContext",
    "Location",
    "AlertStore",
    "InMemoryAlertStore",
    "PostgresAlertStore",
    "AlertLifecycle",
    "AlertQueryService",
    "CrisisIntegrationService",
]
