from .patient import Patient
from .reviewer import Reviewer, ReviewerRole
from .log_event import LogEvent
from .intervention import InterventionRecord, RiskLevel, ActionCode

__all__ = [
    "Patient",
    "Reviewer",
    "ReviewerRole",
    "LogEvent",
    "InterventionRecord",
    "RiskLevel",
    "ActionCode",
]
