"""Append-only endpoint activity log."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now


class LogAction(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"
    TRIGGERED = "TRIGGERED"
    FAILED = "FAILED"


class LogOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class EndpointLog(BaseModel):
    """One entry of an endpoint's activity log.

    ``details`` is always sanitized before an entry is built.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("log"))
    endpoint_id: str = Field(description="Endpoint this entry belongs to")
    action: LogAction = Field(description="What happened")
    details: dict[str, Any] = Field(default_factory=dict, description="Sanitized context")
    outcome: LogOutcome = Field(default=LogOutcome.SUCCESS)
    timestamp: datetime = Field(default_factory=utc_now)


__all__ = ["EndpointLog", "LogAction", "LogOutcome"]
