"""Crisis detection configuration.

One configuration value feeds both detection paths (chat text and emotion
windows). Pass an alternate CrisisDetectionConfig to the detector to test
with a different vocabulary or thresholds.
"""
import logging
import os
from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple

logger = logging.getLogger(__name__)


# Self-harm / suicide-risk phrases, checked in this order.
# Product copy is Spanish; matching is case-insensitive substring.
CRITICAL_PHRASES: Tuple[str, ...] = (
    "suicidio",
    "suicidarme",
    "matarme",
    "hacerme daño",
    "terminar con todo",
    "acabar con mi vida",
    "no vale la pena vivir",
    "mejor muerto",
    "quiero morir",
    "desaparecer para siempre",
)

# Emotion labels from the facial-analysis vocabulary that count toward a run
NEGATIVE_EMOTIONS: FrozenSet[str] = frozenset({
    "sadness",
    "fear",
    "anger",
})


@dataclass(frozen=True)
class CrisisDetectionConfig:
    """Keywords and thresholds for crisis pattern detection."""

    critical_phrases: Tuple[str, ...] = CRITICAL_PHRASES
    negative_emotions: FrozenSet[str] = NEGATIVE_EMOTIONS

    # Observation must be strictly above this to qualify
    confidence_threshold: float = 0.85

    # Fewer merged observations than this is insufficient evidence
    min_observations: int = 3

    # Longest-run thresholds
    moderate_run_length: int = 3
    high_run_length: int = 5

    # How far back the emotion history is fetched
    window_days: int = 7

    # Version tracking for audit trail
    pattern_version: str = "2026.10.19"

    def __post_init__(self):
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError(
                f"Confidence threshold must be 0.0-1.0, got {self.confidence_threshold}"
            )
        if self.moderate_run_length > self.high_run_length:
            raise ValueError("moderate_run_length cannot exceed high_run_length")
        if self.window_days < 1:
            raise ValueError("window_days must be at least 1")

    @classmethod
    def from_env(cls) -> "CrisisDetectionConfig":
        """Create config from environment variables.

        Environment variables:
            CRISIS_CONFIDENCE_THRESHOLD: Per-observation confidence bar (default 0.85)
            CRISIS_WINDOW_DAYS: History window in days (default 7)
            CRISIS_PHRASES_FILE: Optional file, one phrase per line, replacing
                the built-in list (blank lines and # comments ignored)
        """
        phrases = CRITICAL_PHRASES
        phrases_file: Optional[str] = os.getenv("CRISIS_PHRASES_FILE")
        if phrases_file:
            phrases = load_phrases(phrases_file)

        return cls(
            critical_phrases=phrases,
            confidence_threshold=float(os.getenv("CRISIS_CONFIDENCE_THRESHOLD", "0.85")),
            window_days=int(os.getenv("CRISIS_WINDOW_DAYS", "7")),
        )


def load_phrases(path: str) -> Tuple[str, ...]:
    """Read an ordered phrase list from a text file."""
    with open(path, encoding="utf-8") as handle:
        phrases = tuple(
            line.strip().lower()
            for line in handle
            if line.strip() and not line.lstrip().startswith("#")
        )

    if not phrases:
        raise ValueError(f"No crisis phrases found in {path}")

    logger.info(
        "CRISIS_PHRASES_LOADED",
        extra={"path": path, "phrase_count": len(phrases)}
    )
    return phrases
