import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    name = Column(String(255), nullable=False)
    hcp_api_key = Column(Text, nullable=True)  # Encrypted
    hcp_company_id = Column(String(255), nullable=True)
    hcp_web_url = Column(String(500), nullable=True)  # Overrides HCP_WEB_URL for deep links
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    jobs = relationship("HcpJob", back_populates="organization", cascade="all, delete-orphan")
    technicians = relationship(
        "TechnicianProfile", back_populates="organization", cascade="all, delete-orphan"
    )


class HcpJob(Base):
    """Local mirror of a HouseCall Pro job. Best-effort cache - HCP is authoritative."""

    __tablename__ = "hcp_jobs"
    __table_args__ = (UniqueConstraint("hcp_job_id", "organization_id", name="uq_hcp_job_org"),)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    hcp_job_id = Column(String(255), nullable=False, index=True)  # Assigned by HCP, never generated locally

    # Customer
    customer_name = Column(String(255), nullable=True)
    customer_hcp_id = Column(String(255), nullable=True)

    # Address
    address = Column(String(500), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(10), nullable=True)
    zip = Column(String(20), nullable=True)
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)

    # Scheduling
    scheduled_date = Column(String(10), nullable=True, index=True)  # YYYY-MM-DD
    scheduled_time = Column(String(5), nullable=True)  # HH:MM
    scheduled_end = Column(String(5), nullable=True)  # HH:MM

    # Status: scheduled, in_progress, completed, cancelled, needs_scheduling
    status = Column(String(50), default="needs_scheduling", nullable=False, index=True)

    # Assignment
    technician_hcp_id = Column(String(255), nullable=True)
    technician_name = Column(String(255), nullable=True)

    services = Column(JSON, nullable=True)  # [{"name": "Carpet Cleaning", "price": 149.5, ...}, ...]
    total_amount = Column(Float, nullable=True)  # Dollars
    notes = Column(Text, nullable=True)  # Append-only

    synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    organization = relationship("Organization", back_populates="jobs")


class HcpEmployee(Base):
    """Technician directory synced from HouseCall Pro"""

    __tablename__ = "hcp_employees"
    __table_args__ = (
        UniqueConstraint("organization_id", "hcp_employee_id", name="uq_hcp_employee_org"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    hcp_employee_id = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)  # Digits only
    linked_profile_id = Column(String(36), nullable=True)
    synced_at = Column(DateTime, server_default=func.now())


class HcpService(Base):
    """Price book services synced from HouseCall Pro"""

    __tablename__ = "hcp_services"
    __table_args__ = (
        UniqueConstraint("organization_id", "hcp_service_id", name="uq_hcp_service_org"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    hcp_service_id = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=True)  # Dollars
    is_active = Column(Boolean, default=True, nullable=False)
    synced_at = Column(DateTime, server_default=func.now())


class TechnicianProfile(Base):
    __tablename__ = "technician_profiles"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    hcp_employee_id = Column(String(255), nullable=True)  # Links to hcp_employees
    is_active = Column(Boolean, default=True, nullable=False)

    # Home location - used as the start/end point of the day
    address = Column(String(500), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(10), nullable=True)
    zip = Column(String(20), nullable=True)
    home_lat = Column(Float, nullable=True)
    home_lng = Column(Float, nullable=True)

    # Working hours (HH:MM)
    work_start = Column(String(5), default="08:00", nullable=False)
    work_end = Column(String(5), default="17:00", nullable=False)

    organization = relationship("Organization", back_populates="technicians")
    skills = relationship(
        "TechnicianSkill", back_populates="technician", cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or "Unknown"


class TechnicianSkill(Base):
    __tablename__ = "technician_skills"
    __table_args__ = (UniqueConstraint("profile_id", "service_type", name="uq_skill_profile_service"),)

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(String(36), ForeignKey("technician_profiles.id"), nullable=False, index=True)
    service_type = Column(String(100), nullable=False)  # e.g. carpet_cleaning
    # preferred, standard, avoid, never
    skill_level = Column(String(20), default="standard", nullable=False)
    notes = Column(Text, nullable=True)

    technician = relationship("TechnicianProfile", back_populates="skills")


class HcpServiceZone(Base):
    __tablename__ = "hcp_service_zones"
    __table_args__ = (UniqueConstraint("organization_id", "hcp_zone_id", name="uq_hcp_zone_org"),)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    hcp_zone_id = Column(String(255), nullable=True)  # Null for zones drawn locally
    name = Column(String(255), nullable=False)
    color = Column(String(20), nullable=True)
    polygon_geojson = Column(JSON, nullable=True)  # {"type": "Polygon", "coordinates": [[[lng, lat], ...]]}
    synced_at = Column(DateTime, nullable=True)
