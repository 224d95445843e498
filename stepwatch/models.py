from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field

# --- Broker status and workflow states ---

class ServiceAvailability(str, Enum):
    """Tri-state status of the external health-data broker."""
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    UPDATE_REQUIRED = "update_required"


class WorkflowState(str, Enum):
    CHECKING_AVAILABILITY = "checking_availability"
    AWAITING_PERMISSION_DECISION = "awaiting_permission_decision"
    READING = "reading"
    DONE = "done"
    BLOCKED = "blocked"


class ReadErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    UPSTREAM_HTTP = "upstream_http"
    TRANSPORT = "transport"
    MALFORMED_RESPONSE = "malformed_response"
    UNEXPECTED = "unexpected"

# --- Step data ---

class AggregateBucket(BaseModel):
    """One time-sliced aggregation result. `count` is None when the metric is absent."""
    start: datetime
    end: datetime
    count: Optional[int] = Field(default=None, ge=0)


class StepRecord(BaseModel):
    """A single step-count record from the per-record read path."""
    start: datetime
    end: datetime
    count: int = Field(ge=0)
    origin: Optional[str] = None


class StepTotal(BaseModel):
    count: int = Field(ge=0)
    start: datetime
    end: datetime


class StepReadResult(BaseModel):
    """Outcome of a step read; failures stay distinguishable until display."""
    total: Optional[int] = Field(default=None, ge=0)
    error: Optional[ReadErrorKind] = None
    detail: Optional[str] = None

    @classmethod
    def success(cls, total: int) -> "StepReadResult":
        return cls(total=total)

    @classmethod
    def failure(cls, kind: ReadErrorKind, detail: Optional[str] = None) -> "StepReadResult":
        return cls(error=kind, detail=detail)

    @property
    def ok(self) -> bool:
        return self.error is None

    def display_total(self) -> int:
        # A failed read is shown as zero steps
        return self.total if self.ok and self.total is not None else 0

# --- User-visible surface ---

class Notification(BaseModel):
    """A dialog or toast shown on the screen."""
    kind: str  # "dialog" or "toast"
    message: str
    title: Optional[str] = None
    action: Optional[str] = None
    duration: Optional[str] = None  # "short" | "long" for toasts


class ScreenSnapshot(BaseModel):
    """The root response object returned by the /screen endpoints."""
    user_id: str
    state: WorkflowState
    availability: Optional[ServiceAvailability] = None
    consent_url: Optional[str] = None
    step_total: Optional[int] = None
    steps: Optional[StepTotal] = None
    read_error: Optional[ReadErrorKind] = None
    notifications: List[Notification] = Field(default_factory=list)
