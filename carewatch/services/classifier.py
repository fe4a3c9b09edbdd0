"""
Risk Classifier: decides whether a log event needs a reviewer's attention.

Rules (OR'd; any one makes the event risk-worthy)
-------------------------------------------------
  EMERGENCY       the patient pressed "I need help now"
  KEYWORDS        the intake scanner flagged at least one keyword
  HIGH_INTENSITY  intensity >= policy.high_intensity_threshold (8)
  DEVIATION       intensity >= mean(window) + policy.deviation_margin (3)
                  only when the policy enables it and a window is given

A bad intensity only switches off HIGH_INTENSITY and DEVIATION.

The deviation window is always an explicit argument: the same event and
the same window give the same answer. No I/O, no session.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Optional

from carewatch.core.errors import MalformedLogEventError
from carewatch.models.log_event import LogEvent

INTENSITY_MIN = 1
INTENSITY_MAX = 10


class ReasonCode(str, enum.Enum):
    EMERGENCY = "EMERGENCY"
    KEYWORDS = "KEYWORDS"
    HIGH_INTENSITY = "HIGH_INTENSITY"
    DEVIATION = "DEVIATION"


@dataclass(frozen=True)
class ClassifierPolicy:
    high_intensity_threshold: int = 8
    deviation_enabled: bool = False
    deviation_margin: float = 3.0


@dataclass(frozen=True)
class Classification:
    is_risk_worthy: bool
    reasons: frozenset[ReasonCode]


def _valid_intensity(value) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and INTENSITY_MIN <= value <= INTENSITY_MAX
    )


def window_mean_intensity(window: Iterable[LogEvent]) -> Optional[float]:
    """Mean intensity over the well-formed events of a window, None if empty."""
    values = [e.intensity for e in window if _valid_intensity(e.intensity)]
    if not values:
        return None
    return sum(values) / len(values)


def classify(
    event: LogEvent,
    window: Optional[Iterable[LogEvent]] = None,
    policy: ClassifierPolicy = ClassifierPolicy(),
) -> Classification:
    """
    Classify a single event.

    An unusable intensity only disables the intensity-based rules. It raises
    MalformedLogEventError when no other rule fired, so an emergency or a
    keyword hit is still reported whatever else is wrong with the record.
    """
    reasons: set[ReasonCode] = set()

    if event.is_emergency:
        reasons.add(ReasonCode.EMERGENCY)
    if event.detected_keywords:
        reasons.add(ReasonCode.KEYWORDS)

    if _valid_intensity(event.intensity):
        if event.intensity >= policy.high_intensity_threshold:
            reasons.add(ReasonCode.HIGH_INTENSITY)
        if policy.deviation_enabled and window is not None:
            mean = window_mean_intensity(window)
            if mean is not None and event.intensity >= mean + policy.deviation_margin:
                reasons.add(ReasonCode.DEVIATION)
    elif not reasons:
        raise MalformedLogEventError(
            event.id, f"intensity {event.intensity!r} is not an integer in 1-10"
        )

    return Classification(is_risk_worthy=bool(reasons), reasons=frozenset(reasons))
