"""Job repository - Mirror store, technician directory and service catalog queries"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import HcpEmployee, HcpJob, HcpService, HcpServiceZone


class MirrorRecordNotFound(Exception):
    """No local copy of the job exists for this organization"""


class JobMirrorRepository:
    """Repository for the local copy of HouseCall Pro jobs"""

    @staticmethod
    def get_job(db: Session, organization_id: str, remote_job_id: str) -> Optional[HcpJob]:
        return (
            db.query(HcpJob)
            .filter(HcpJob.hcp_job_id == remote_job_id, HcpJob.organization_id == organization_id)
            .first()
        )

    @staticmethod
    def apply_update(
        db: Session, organization_id: str, remote_job_id: str, **updates: Any
    ) -> HcpJob:
        """
        Write changed fields and stamp synced_at.
        `append_note` is appended to the existing notes instead of replacing them.
        """
        job = JobMirrorRepository.get_job(db, organization_id, remote_job_id)
        if not job:
            raise MirrorRecordNotFound(
                f"No local record for HCP job {remote_job_id} in org {organization_id}"
            )

        note = updates.pop("append_note", None)
        for key, value in updates.items():
            if hasattr(job, key):
                setattr(job, key, value)

        if note:
            job.notes = f"{job.notes}\n{note}" if job.notes else note

        job.synced_at = datetime.utcnow()
        db.commit()
        db.refresh(job)
        return job

    @staticmethod
    def upsert_job(db: Session, organization_id: str, remote_job_id: str, **fields: Any) -> HcpJob:
        """Insert or update a job record keyed by (hcp_job_id, organization_id)"""
        job = JobMirrorRepository.get_job(db, organization_id, remote_job_id)
        if not job:
            job = HcpJob(organization_id=organization_id, hcp_job_id=remote_job_id)
            db.add(job)

        for key, value in fields.items():
            if hasattr(job, key):
                setattr(job, key, value)

        job.synced_at = datetime.utcnow()
        db.commit()
        db.refresh(job)
        return job

    @staticmethod
    def get_jobs_between(
        db: Session, organization_id: str, start_date: str, end_date: str
    ) -> list[HcpJob]:
        """Jobs scheduled between two YYYY-MM-DD dates (inclusive)"""
        return (
            db.query(HcpJob)
            .filter(
                HcpJob.organization_id == organization_id,
                HcpJob.scheduled_date >= start_date,
                HcpJob.scheduled_date <= end_date,
                HcpJob.status != "cancelled",
            )
            .order_by(HcpJob.scheduled_date.asc(), HcpJob.scheduled_time.asc())
            .all()
        )


class HcpDirectoryRepository:
    """Upserts for the employee, price book and service zone copies kept by the sync"""

    @staticmethod
    def _upsert(db: Session, model, keys: dict[str, Any], fields: dict[str, Any]):
        record = db.query(model).filter_by(**keys).first()
        if not record:
            record = model(**keys)
            db.add(record)

        for key, value in fields.items():
            if hasattr(record, key):
                setattr(record, key, value)

        record.synced_at = datetime.utcnow()
        db.commit()
        return record

    @staticmethod
    def upsert_employee(db: Session, organization_id: str, hcp_employee_id: str, **fields: Any) -> HcpEmployee:
        return HcpDirectoryRepository._upsert(
            db, HcpEmployee, {"organization_id": organization_id, "hcp_employee_id": hcp_employee_id}, fields
        )

    @staticmethod
    def upsert_service(db: Session, organization_id: str, hcp_service_id: str, **fields: Any) -> HcpService:
        return HcpDirectoryRepository._upsert(
            db, HcpService, {"organization_id": organization_id, "hcp_service_id": hcp_service_id}, fields
        )

    @staticmethod
    def upsert_zone(db: Session, organization_id: str, hcp_zone_id: str, **fields: Any) -> HcpServiceZone:
        return HcpDirectoryRepository._upsert(
            db, HcpServiceZone, {"organization_id": organization_id, "hcp_zone_id": hcp_zone_id}, fields
        )


class TechnicianDirectory:
    """Read-only lookup of HCP employees"""

    def __init__(self, db: Session):
        self.db = db

    def display_name(self, organization_id: str, technician_id: str) -> Optional[str]:
        employee = (
            self.db.query(HcpEmployee)
            .filter(
                HcpEmployee.organization_id == organization_id,
                HcpEmployee.hcp_employee_id == technician_id,
            )
            .first()
        )
        return employee.name if employee else None


@dataclass(frozen=True)
class CatalogEntry:
    service_id: str
    name: str
    price: Optional[float] = None  # Dollars


class ServiceCatalog:
    """Read-only, case-insensitive lookup of price book services"""

    def __init__(self, db: Session, organization_id: str):
        self.db = db
        self.organization_id = organization_id

    def resolve(self, name: str) -> Optional[CatalogEntry]:
        """
        Raises:
            SQLAlchemyError: lookup failed; the session is rolled back first
        """
        try:
            service = (
                self.db.query(HcpService)
                .filter(
                    HcpService.organization_id == self.organization_id,
                    func.lower(HcpService.name) == name.strip().lower(),
                )
                .order_by(HcpService.is_active.desc())
                .first()
            )
        except SQLAlchemyError:
            self.db.rollback()
            raise
        if not service:
            return None
        return CatalogEntry(service_id=service.hcp_service_id, name=service.name, price=service.price)
