"""Crisis pattern detection over chat text and emotion observation windows.

Detection is an advisory side-channel: every public method catches its own
errors, logs them, and reports "no pattern" so that the user action that
triggered it (sending a chat message, saving a facial analysis) never fails
because of it.

Two independent detectors:
- Text: first configured critical phrase found as a case-insensitive
  substring yields a CRITICAL pattern. Crude and high-recall on purpose.
- Window: longest run of high-confidence negative emotions, in time order,
  over the recent history plus the new observation.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from softfocus.shared.models import AlertSeverity
from softfocus.shared.utils import fingerprint_text, hash_identifier
from .config import CrisisDetectionConfig

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EmotionObservation:
    """One facial-analysis reading, owned by the emotion-tracking context."""
    user_id: str
    emotion: str
    confidence: float
    observed_at: datetime

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be 0.0-1.0, got {self.confidence}")


@dataclass(frozen=True)
class CrisisPattern:
    """A detected crisis pattern. Consumed immediately, never persisted."""
    severity: AlertSeverity
    trigger_reason: str
    detected_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if not self.trigger_reason or not self.trigger_reason.strip():
            raise ValueError("trigger_reason is required")

    @property
    def requires_immediate_attention(self) -> bool:
        return self.severity == AlertSeverity.CRITICAL

    @property
    def requires_professional_review(self) -> bool:
        return self.severity in (AlertSeverity.HIGH, AlertSeverity.CRITICAL)


class HistoryProvider(ABC):
    """Read access to a user's emotion observations (emotion-tracking context)."""

    @abstractmethod
    async def get_observations(self, user_id: str, since: datetime) -> List[EmotionObservation]:
        pass


def is_qualifying(observation: EmotionObservation, config: CrisisDetectionConfig) -> bool:
    """Negative emotion label with confidence strictly above the threshold."""
    return (
        observation.emotion.strip().lower() in config.negative_emotions
        and observation.confidence > config.confidence_threshold
    )


def longest_qualifying_run(
    observations: Iterable[EmotionObservation],
    config: CrisisDetectionConfig,
) -> int:
    """Length of the longest consecutive run of qualifying observations.

    Single left-to-right pass; the input must already be in time order.
    """
    current = 0
    longest = 0
    for observation in observations:
        if is_qualifying(observation, config):
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def severity_for_run(run_length: int, config: CrisisDetectionConfig) -> Optional[AlertSeverity]:
    """Map a run length to a severity; None below the moderate threshold."""
    if run_length >= config.high_run_length:
        return AlertSeverity.HIGH
    if run_length >= config.moderate_run_length:
        return AlertSeverity.MODERATE
    return None


class CrisisPatternDetector:
    """Evaluates chat text and emotion windows for crisis patterns."""

    def __init__(
        self,
        config: Optional[CrisisDetectionConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize detector.

        Args:
            config: Phrases and thresholds; defaults to CrisisDetectionConfig()
            clock: Returns the current UTC time
        """
        self.config = config or CrisisDetectionConfig()
        self._clock = clock
        self._phrases = tuple(phrase.lower() for phrase in self.config.critical_phrases)

        logger.info(
            "CRISIS_DETECTOR_INITIALIZED",
            extra={
                "pattern_version": self.config.pattern_version,
                "phrase_count": len(self._phrases),
                "negative_emotions": sorted(self.config.negative_emotions),
                "confidence_threshold": self.config.confidence_threshold,
            }
        )

    def detect_from_text(self, text: str) -> Optional[CrisisPattern]:
        """Scan text for the first configured critical phrase.

        Args:
            text: Raw chat message

        Returns:
            CRITICAL CrisisPattern naming the first matching phrase in list
            order, or None when nothing matches or the scan fails
        """
        try:
            lowered = text.lower()
            for phrase in self._phrases:
                if phrase in lowered:
                    logger.warning(
                        "CRISIS_KEYWORD_DETECTED",
                        extra={
                            "keyword": phrase,
                            "text_hash": fingerprint_text(text),
                            "pattern_version": self.config.pattern_version,
                        }
                    )
                    return CrisisPattern(
                        severity=AlertSeverity.CRITICAL,
                        trigger_reason=f"Critical keyword detected: '{phrase}'",
                        detected_at=self._clock(),
                    )
            return None

        except Exception as e:
            logger.error(
                "CRISIS_TEXT_DETECTION_FAILED",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return None

    def detect_from_observation_window(
        self,
        user_id: str,
        new_observation: EmotionObservation,
        history: Iterable[EmotionObservation],
    ) -> Optional[CrisisPattern]:
        """Evaluate the recent emotion history plus a new observation.

        Args:
            user_id: User the observations belong to
            new_observation: Observation that triggered the evaluation
            history: Recent observations for the same user, any order

        Returns:
            HIGH or MODERATE CrisisPattern, or None for insufficient
            evidence, a short run, or an internal failure
        """
        try:
            merged = sorted(
                [*history, new_observation],
                key=lambda observation: observation.observed_at,
            )

            if len(merged) < self.config.min_observations:
                logger.debug(
                    "CRISIS_WINDOW_INSUFFICIENT",
                    extra={
                        "observation_count": len(merged),
                        "min_observations": self.config.min_observations,
                    }
                )
                return None

            run_length = longest_qualifying_run(merged, self.config)
            severity = severity_for_run(run_length, self.config)
            if severity is None:
                return None

            logger.warning(
                "CRISIS_PATTERN_DETECTED",
                extra={
                    "user_id_hash": hash_identifier(user_id),
                    "severity": severity.value,
                    "run_length": run_length,
                    "window_length": len(merged),
                }
            )
            return CrisisPattern(
                severity=severity,
                trigger_reason=(
                    f"{run_length} consecutive days of negative emotions with high confidence"
                ),
                detected_at=self._clock(),
            )

        except Exception as e:
            logger.error(
                "CRISIS_WINDOW_DETECTION_FAILED",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return None

    async def detect_from_history(
        self,
        user_id: str,
        new_observation: EmotionObservation,
        history_provider: HistoryProvider,
    ) -> Optional[CrisisPattern]:
        """Fetch the configured history window, then run the window detector.

        A history lookup failure is logged and reported as no pattern.
        """
        since = self._clock() - timedelta(days=self.config.window_days)
        try:
            history = await history_provider.get_observations(user_id, since)
        except Exception as e:
            logger.error(
                "CRISIS_HISTORY_LOOKUP_FAILED",
                extra={
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "window_days": self.config.window_days,
                }
            )
            return None

        return self.detect_from_observation_window(user_id, new_observation, history)
