"""Mutable per-process state shared by the route handlers."""
import time
from dataclasses import dataclass, field

from .metrics import Metrics
from .ratelimit import Cooldown
from ..utils.logging import BoundedLog


@dataclass
class GatewayState:
    info_log: BoundedLog
    error_log: BoundedLog
    cooldown: Cooldown
    metrics: Metrics = field(default_factory=Metrics)
    started_at: float = field(default_factory=time.time)

    @classmethod
    def from_settings(cls, settings, clock=time.time) -> "GatewayState":
        return cls(
            info_log=BoundedLog(settings.info_log_capacity),
            error_log=BoundedLog(settings.error_log_capacity),
            cooldown=Cooldown(settings.diagnostics_cooldown, clock=clock),
        )

    def record_failure(self, message: str) -> None:
        self.error_log.error(message)
        self.metrics.record_error()
