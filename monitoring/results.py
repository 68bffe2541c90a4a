"""
Check result value object produced by the probes and persisted by the
result sink.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from config.constants import CheckStatus, ProbeType
from utils.helpers import TimeHelper


def _probe_type_of(monitor):
    """The monitor's probe type as an enum member when it is a known one."""
    try:
        return ProbeType.parse(monitor.probe_type)
    except ValueError:
        return monitor.probe_type


@dataclass(frozen=True)
class CheckResult:
    """
    Outcome of one probe attempt.

    ``status_code`` holds the HTTP status for HTTP probes and the port for
    TCP probes; ping leaves it empty. ``response_time`` is in milliseconds
    and is None only when the probe never reached the network.
    """

    monitor_id: Optional[int]
    probe_type: ProbeType
    status: CheckStatus
    response_time: Optional[float] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    checked_at: datetime = field(default_factory=TimeHelper.get_utc_now)

    @property
    def is_up(self) -> bool:
        return CheckStatus.is_successful(self.status)

    @classmethod
    def up(cls, monitor, response_time: float, status_code: Optional[int] = None) -> "CheckResult":
        return cls(
            monitor_id=monitor.id,
            probe_type=_probe_type_of(monitor),
            status=CheckStatus.UP,
            response_time=response_time,
            status_code=status_code,
        )

    @classmethod
    def down(
        cls,
        monitor,
        error_message: str,
        response_time: Optional[float] = None,
        status_code: Optional[int] = None
    ) -> "CheckResult":
        return cls(
            monitor_id=monitor.id,
            probe_type=_probe_type_of(monitor),
            status=CheckStatus.DOWN,
            response_time=response_time,
            status_code=status_code,
            error_message=error_message,
        )

    @classmethod
    def error(cls, monitor, error_message: str, response_time: Optional[float] = None) -> "CheckResult":
        return cls(
            monitor_id=monitor.id,
            probe_type=_probe_type_of(monitor),
            status=CheckStatus.ERROR,
            response_time=response_time,
            error_message=error_message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monitor_id": self.monitor_id,
            "probe_type": getattr(self.probe_type, "value", self.probe_type),
            "status": getattr(self.status, "value", self.status),
            "status_code": self.status_code,
            "response_time": self.response_time,
            "error_message": self.error_message,
            "checked_at": self.checked_at.isoformat(),
        }
