"""Job sync schemas - change requests sent to HouseCall Pro and their results"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ...config import HCP_SYNC_DAYS
from ...shared.validators import validate_date_string, validate_time_string


class JobStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NEEDS_SCHEDULING = "needs_scheduling"


class ChangeRequest(BaseModel):
    """
    Changes to apply to one HouseCall Pro job.
    Field presence decides which steps run; omit a field to leave it untouched.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    organizationId: str
    remoteJobId: str
    scheduledDate: Optional[str] = None  # YYYY-MM-DD
    scheduledTime: Optional[str] = None  # HH:MM start
    scheduledEnd: Optional[str] = None  # HH:MM, defaults to start + 60 min
    technicianId: Optional[str] = None  # HCP employee ID
    status: Optional[JobStatus] = None
    notes: Optional[str] = None
    services: Optional[list[str]] = None  # Full replacement list of line items

    @field_validator("scheduledDate")
    @classmethod
    def validate_date(cls, v):
        return validate_date_string(v)

    @field_validator("scheduledTime", "scheduledEnd")
    @classmethod
    def validate_time(cls, v):
        return validate_time_string(v)

    @field_validator("organizationId", "remoteJobId")
    @classmethod
    def validate_identifier(cls, v):
        if not v or not v.strip():
            raise ValueError("Identifier must not be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_schedule_fields(self):
        if bool(self.scheduledDate) != bool(self.scheduledTime):
            raise ValueError("scheduledDate and scheduledTime must be provided together")
        if self.scheduledEnd and not self.scheduledTime:
            raise ValueError("scheduledEnd requires scheduledDate and scheduledTime")
        return self

    @property
    def has_schedule(self) -> bool:
        return bool(self.scheduledDate and self.scheduledTime)

    @property
    def has_note(self) -> bool:
        return bool(self.notes and self.notes.strip())


class UpdateJobResult(BaseModel):
    success: bool
    error: Optional[str] = None


class ProvisionJobRequest(BaseModel):
    """Customer and address details needed to create a job in HouseCall Pro"""

    organizationId: str
    customerName: str
    customerPhone: Optional[str] = None
    customerEmail: Optional[str] = None
    address: str
    city: str
    state: str
    zip: Optional[str] = None
    serviceType: str
    lat: Optional[float] = None
    lng: Optional[float] = None


# ============================================================================
# INBOUND SYNC
# ============================================================================


class SyncRequest(BaseModel):
    days: int = Field(default=HCP_SYNC_DAYS, gt=0, le=365)  # Jobs scheduled from today through today + days


class SyncCounts(BaseModel):
    jobs: int = 0
    employees: int = 0
    services: int = 0
    serviceZones: int = 0


class SyncResult(BaseModel):
    success: bool
    error: Optional[str] = None
    synced: SyncCounts = Field(default_factory=SyncCounts)
    fetched: SyncCounts = Field(default_factory=SyncCounts)


class ConnectionTestRequest(BaseModel):
    """Test a key before saving it; without one the stored credential is tested"""

    apiKey: Optional[str] = None


class ConnectionTestResult(BaseModel):
    success: bool
    companyName: Optional[str] = None
    error: Optional[str] = None
