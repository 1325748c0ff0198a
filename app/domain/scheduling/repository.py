"""Scheduling repository - Technician, calendar and zone queries for the suggestion engine"""

from sqlalchemy.orm import Session, selectinload

from ...models import HcpJob, HcpServiceZone, TechnicianProfile
from ..jobs.repository import JobMirrorRepository


class SchedulingRepository:
    """Repository for scheduling inputs"""

    @staticmethod
    def get_active_technicians(db: Session, organization_id: str) -> list[TechnicianProfile]:
        return (
            db.query(TechnicianProfile)
            .options(selectinload(TechnicianProfile.skills))
            .filter(
                TechnicianProfile.organization_id == organization_id,
                TechnicianProfile.is_active.is_(True),
            )
            .order_by(TechnicianProfile.first_name.asc(), TechnicianProfile.last_name.asc())
            .all()
        )

    @staticmethod
    def get_scheduled_jobs(
        db: Session, organization_id: str, start_date: str, end_date: str
    ) -> list[HcpJob]:
        return JobMirrorRepository.get_jobs_between(db, organization_id, start_date, end_date)

    @staticmethod
    def get_zones(db: Session, organization_id: str) -> list[HcpServiceZone]:
        return (
            db.query(HcpServiceZone)
            .filter(HcpServiceZone.organization_id == organization_id)
            .order_by(HcpServiceZone.name.asc())
            .all()
        )
