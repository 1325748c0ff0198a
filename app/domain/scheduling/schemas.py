"""Scheduling schemas - engine inputs, suggestions and review session payloads"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ...shared.validators import validate_date_string, validate_time_string
from ..jobs.schemas import ChangeRequest


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    CREATING = "creating"
    CREATED = "created"
    ERROR = "error"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SkillMatch(str, Enum):
    PREFERRED = "preferred"
    AVOID = "avoid"
    NONE = "none"


# ============================================================================
# ENGINE INPUTS
# ============================================================================


class JobToSchedule(BaseModel):
    """The job needing a technician and a time"""

    model_config = ConfigDict(frozen=True)

    remoteJobId: Optional[str] = None
    serviceType: str
    customerName: str = ""
    customerPhone: Optional[str] = None
    customerEmail: Optional[str] = None
    address: str = ""
    city: str = ""
    state: str = ""
    zip: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    durationMinutes: int = 60
    candidateDates: tuple[str, ...]
    preferredTimeStart: Optional[str] = None
    preferredTimeEnd: Optional[str] = None
    notes: Optional[str] = None


class TechnicianCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str  # Technician profile id
    name: str
    hcpEmployeeId: Optional[str] = None
    homeLat: Optional[float] = None
    homeLng: Optional[float] = None
    workStart: str = "08:00"
    workEnd: str = "17:00"
    skills: dict[str, str] = Field(default_factory=dict)  # normalized service type -> level
    drivingDistanceMiles: Optional[float] = None
    drivingDurationMinutes: Optional[float] = None


class ScheduledJob(BaseModel):
    """A job already on the calendar"""

    model_config = ConfigDict(frozen=True)

    remoteJobId: str
    scheduledDate: str
    scheduledTime: Optional[str] = None
    scheduledEnd: Optional[str] = None
    technicianId: Optional[str] = None  # HCP employee id
    technicianName: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class ServiceZone(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    ring: tuple[tuple[float, float], ...]  # (lng, lat) points of the outer ring


# ============================================================================
# SUGGESTIONS
# ============================================================================


class Suggestion(BaseModel):
    """A proposed technician/time assignment awaiting operator confirmation"""

    id: str
    remoteJobId: Optional[str] = None
    serviceType: str
    customerName: str = ""
    customerPhone: Optional[str] = None
    customerEmail: Optional[str] = None
    address: str = ""
    city: str = ""
    state: str = ""
    zip: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    technicianId: Optional[str] = None  # HCP employee id used for dispatch
    technicianName: str
    scheduledDate: str
    scheduledTime: str
    durationMinutes: int = 60
    confidence: Confidence
    skillMatch: SkillMatch = SkillMatch.NONE
    reasoning: str
    nearbyJobsCount: int = 0
    estimatedDistanceMiles: Optional[float] = None
    notes: Optional[str] = None
    status: SuggestionStatus = SuggestionStatus.PENDING
    error: Optional[str] = None
    createdJobId: Optional[str] = None
    createdJobUrl: Optional[str] = None

    # Change request sent by the last confirm, replayed as-is by retry
    lastRequest: Optional[ChangeRequest] = Field(default=None, exclude=True)

    @field_validator("reasoning")
    @classmethod
    def validate_reasoning(cls, v):
        if not v or not v.strip():
            raise ValueError("Suggestion reasoning must not be empty")
        return v


class SuggestionRequest(BaseModel):
    """Job details submitted by the dispatcher to get suggestions"""

    remoteJobId: Optional[str] = None
    serviceType: str
    customerName: str = ""
    customerPhone: Optional[str] = None
    customerEmail: Optional[str] = None
    address: str = ""
    city: str = ""
    state: str = ""
    zip: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    durationMinutes: int = Field(default=60, gt=0, le=24 * 60)
    candidateDates: list[str] = Field(default_factory=list)  # YYYY-MM-DD, defaults to the next days
    preferredDays: list[str] = Field(default_factory=list)  # e.g. ["monday", "tuesday"]
    preferredTimeStart: Optional[str] = None
    preferredTimeEnd: Optional[str] = None
    notes: Optional[str] = None
    limit: int = Field(default=5, gt=0, le=20)

    @field_validator("candidateDates")
    @classmethod
    def validate_dates(cls, v):
        return [validate_date_string(d) for d in v]

    @field_validator("preferredTimeStart", "preferredTimeEnd")
    @classmethod
    def validate_time(cls, v):
        return validate_time_string(v)

    @field_validator("preferredDays")
    @classmethod
    def normalize_days(cls, v):
        return [d.strip().lower() for d in v if d and d.strip()]

    @model_validator(mode="after")
    def validate_window(self):
        if (
            self.preferredTimeStart
            and self.preferredTimeEnd
            and self.preferredTimeEnd <= self.preferredTimeStart
        ):
            raise ValueError("preferredTimeEnd must be after preferredTimeStart")
        return self


class SuggestionUpdate(BaseModel):
    """Operator edits to a pending suggestion"""

    technicianId: Optional[str] = None
    technicianName: Optional[str] = None
    scheduledDate: Optional[str] = None
    scheduledTime: Optional[str] = None
    durationMinutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    serviceType: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("scheduledDate")
    @classmethod
    def validate_date(cls, v):
        return validate_date_string(v)

    @field_validator("scheduledTime")
    @classmethod
    def validate_time(cls, v):
        return validate_time_string(v)


class SuggestionSessionResponse(BaseModel):
    sessionId: str
    organizationId: str
    createdAt: datetime
    suggestions: list[Suggestion]
