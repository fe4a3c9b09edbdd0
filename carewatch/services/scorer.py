"""
Priority Scorer: coarse additive weights a reviewer can audit by eye.

  +100  EMERGENCY
  + 40  HIGH_INTENSITY or DEVIATION (counted once)
  + 20  KEYWORDS
  + 15  event not yet reviewed
  + 10  no intervention references the event
"""
from __future__ import annotations

from typing import AbstractSet

from carewatch.models.log_event import LogEvent
from carewatch.services.classifier import ReasonCode

WEIGHT_EMERGENCY = 100
WEIGHT_INTENSITY = 40
WEIGHT_KEYWORDS = 20
WEIGHT_UNREVIEWED = 15
WEIGHT_NO_INTERVENTION = 10


def score(event: LogEvent, reasons: AbstractSet[ReasonCode], has_intervention: bool) -> int:
    total = 0
    if ReasonCode.EMERGENCY in reasons:
        total += WEIGHT_EMERGENCY
    if ReasonCode.HIGH_INTENSITY in reasons or ReasonCode.DEVIATION in reasons:
        total += WEIGHT_INTENSITY
    if ReasonCode.KEYWORDS in reasons:
        total += WEIGHT_KEYWORDS
    if not event.is_reviewed:
        total += WEIGHT_UNREVIEWED
    if not has_intervention:
        total += WEIGHT_NO_INTERVENTION
    return total
