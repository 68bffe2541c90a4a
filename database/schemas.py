"""
Request schemas for monitor writes.

Pydantic checks shapes and simple ranges; target format and interval
bounds depend on the probe type and on runtime settings, so
``MonitorRepository`` checks those through ``MonitorValidator``.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.constants import Limits, ProbeType


class MonitorCreate(BaseModel):
    """Fields accepted when registering a monitor."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    target: str = Field(min_length=1, max_length=Limits.MAX_TARGET_LENGTH)
    probe_type: ProbeType = ProbeType.HTTP
    # None takes MONITOR_DEFAULT_INTERVAL
    interval_seconds: Optional[int] = None
    timeout_seconds: Optional[int] = Field(default=None, ge=Limits.MIN_TIMEOUT, le=Limits.MAX_TIMEOUT)
    is_active: bool = True

    @field_validator("probe_type", mode="before")
    @classmethod
    def parse_probe_type(cls, v):
        try:
            return ProbeType.parse(v)
        except ValueError:
            raise ValueError("probe_type must be one of: http, https, ping, tcp")


class MonitorUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    target: Optional[str] = Field(default=None, min_length=1, max_length=Limits.MAX_TARGET_LENGTH)
    probe_type: Optional[ProbeType] = None
    interval_seconds: Optional[int] = None
    timeout_seconds: Optional[int] = Field(default=None, ge=Limits.MIN_TIMEOUT, le=Limits.MAX_TIMEOUT)
    is_active: Optional[bool] = None

    @field_validator("probe_type", mode="before")
    @classmethod
    def parse_probe_type(cls, v):
        if v is None:
            return v
        try:
            return ProbeType.parse(v)
        except ValueError:
            raise ValueError("probe_type must be one of: http, https, ping, tcp")
