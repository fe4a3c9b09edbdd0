"""
Process-wide logging setup.

Service modules log with upper-snake event names and structured `extra`
fields, e.g. ``logger.warning("TRIAGE_EVENT_MALFORMED", extra={...})``.
"""
import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=_FORMAT)
    logging.getLogger("carewatch").setLevel(level.upper())
