import logging
from typing import Any, Mapping, Optional, Protocol


class TelemetrySink(Protocol):
    def track_event(self, name: str, properties: Optional[Mapping[str, Any]] = None) -> None: ...

    def track_metric(self, name: str, value: float, properties: Optional[Mapping[str, Any]] = None) -> None: ...

    def track_exception(self, exc: BaseException, properties: Optional[Mapping[str, Any]] = None) -> None: ...


class LoggingTelemetry:
    """
    Telemetry over plain logging. Inside the Functions host these records are
    shipped to Application Insights as traces.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("blob_tokens.telemetry")

    def track_event(self, name, properties=None):
        self.logger.info("event %s %s", name, dict(properties or {}))

    def track_metric(self, name, value, properties=None):
        self.logger.debug("metric %s=%.2f %s", name, value, dict(properties or {}))

    def track_exception(self, exc, properties=None):
        self.logger.error(
            "exception %s: %s %s", type(exc).__name__, exc, dict(properties or {}),
            exc_info=(type(exc), exc, exc.__traceback__),
        )
