"""Scheduling service - Business logic for suggestion generation and review"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...services.mapbox_service import MapboxService
from ..jobs.orchestrator import JobUpdateOrchestrator
from .engine import normalize_service_type, suggest_assignments
from .geo import haversine_miles, outer_ring
from .lifecycle import SuggestionBridge
from .repository import SchedulingRepository
from .schemas import (
    JobToSchedule,
    ScheduledJob,
    ServiceZone,
    Suggestion,
    SuggestionRequest,
    SuggestionUpdate,
    TechnicianCandidate,
)
from .sessions import SuggestionSession, SuggestionSessionStore, session_store

logger = logging.getLogger(__name__)

LOOKAHEAD_DAYS = 14
DRIVING_DISTANCE_TECHNICIANS = 5


def default_candidate_dates(today: date, days: int = LOOKAHEAD_DAYS) -> list[str]:
    return [(today + timedelta(days=offset)).isoformat() for offset in range(1, days + 1)]


def filter_preferred_days(dates: list[str], preferred_days: list[str]) -> list[str]:
    if not preferred_days:
        return dates
    return [
        d for d in dates if datetime.strptime(d, "%Y-%m-%d").strftime("%A").lower() in preferred_days
    ]


class SuggestionService:
    """Service for generating and acting on scheduling suggestions"""

    def __init__(
        self,
        db: Session,
        mapbox: Optional[MapboxService] = None,
        store: SuggestionSessionStore = session_store,
        bridge: Optional[SuggestionBridge] = None,
        today: Optional[date] = None,
    ):
        self.db = db
        self.mapbox = mapbox or MapboxService()
        self.store = store
        self.bridge = bridge or SuggestionBridge(JobUpdateOrchestrator(db))
        self.today = today

    async def generate(self, organization_id: str, request: SuggestionRequest) -> SuggestionSession:
        today = self.today or date.today()
        dates = sorted(set(request.candidateDates)) or default_candidate_dates(today)
        dates = filter_preferred_days(dates, request.preferredDays)

        job = JobToSchedule(
            remoteJobId=request.remoteJobId,
            serviceType=request.serviceType,
            customerName=request.customerName,
            customerPhone=request.customerPhone,
            customerEmail=request.customerEmail,
            address=request.address,
            city=request.city,
            state=request.state,
            zip=request.zip,
            lat=request.lat,
            lng=request.lng,
            durationMinutes=request.durationMinutes,
            candidateDates=tuple(dates),
            preferredTimeStart=request.preferredTimeStart,
            preferredTimeEnd=request.preferredTimeEnd,
            notes=request.notes,
        )

        logger.info(
            f"🧭 Suggesting times for {request.serviceType} at {request.address or 'unknown address'} "
            f"({len(dates)} candidate dates)"
        )

        technicians = await self._with_driving_distances(job, self.load_technicians(organization_id))
        existing_jobs = self.load_scheduled_jobs(organization_id, dates)
        zones = self.load_zones(organization_id)

        suggestions = suggest_assignments(job, technicians, existing_jobs, zones, limit=request.limit)
        logger.info(f"💡 Generated {len(suggestions)} suggestions from {len(technicians)} technicians")
        return self.store.create(organization_id, suggestions)

    def load_technicians(self, organization_id: str) -> list[TechnicianCandidate]:
        profiles = SchedulingRepository.get_active_technicians(self.db, organization_id)
        return [
            TechnicianCandidate(
                id=profile.id,
                name=profile.display_name,
                hcpEmployeeId=profile.hcp_employee_id,
                homeLat=profile.home_lat,
                homeLng=profile.home_lng,
                workStart=profile.work_start or "08:00",
                workEnd=profile.work_end or "17:00",
                skills={normalize_service_type(s.service_type): s.skill_level for s in profile.skills},
            )
            for profile in profiles
        ]

    def load_scheduled_jobs(self, organization_id: str, dates: list[str]) -> list[ScheduledJob]:
        if not dates:
            return []
        records = SchedulingRepository.get_scheduled_jobs(self.db, organization_id, min(dates), max(dates))
        return [
            ScheduledJob(
                remoteJobId=record.hcp_job_id,
                scheduledDate=record.scheduled_date,
                scheduledTime=record.scheduled_time,
                scheduledEnd=record.scheduled_end,
                technicianId=record.technician_hcp_id,
                technicianName=record.technician_name,
                city=record.city,
                lat=record.lat,
                lng=record.lng,
            )
            for record in records
            if record.scheduled_date
        ]

    def load_zones(self, organization_id: str) -> list[ServiceZone]:
        zones = []
        for zone in SchedulingRepository.get_zones(self.db, organization_id):
            ring = outer_ring(zone.polygon_geojson)
            if ring:
                zones.append(ServiceZone(name=zone.name, ring=tuple(ring)))
        return zones

    async def _with_driving_distances(
        self, job: JobToSchedule, technicians: list[TechnicianCandidate]
    ) -> list[TechnicianCandidate]:
        """Driving distance for the technicians living closest to the job"""
        if not self.mapbox.enabled or job.lat is None or job.lng is None:
            return technicians

        located = [t for t in technicians if t.homeLat is not None and t.homeLng is not None]
        located.sort(key=lambda t: haversine_miles(job.lat, job.lng, t.homeLat, t.homeLng))
        closest = located[:DRIVING_DISTANCE_TECHNICIANS]

        routes = await asyncio.gather(
            *(self.mapbox.get_driving_distance(t.homeLng, t.homeLat, job.lng, job.lat) for t in closest)
        )
        driving = {
            t.id: route for t, route in zip(closest, routes) if route is not None
        }

        return [
            t.model_copy(
                update={
                    "drivingDistanceMiles": driving[t.id]["distance_miles"],
                    "drivingDurationMinutes": driving[t.id]["duration_minutes"],
                }
            )
            if t.id in driving
            else t
            for t in technicians
        ]

    # ------------------------------------------------------------------
    # Review actions
    # ------------------------------------------------------------------

    def get_session(self, session_id: str, organization_id: str) -> SuggestionSession:
        return self.store.get(session_id, organization_id)

    def modify(
        self, session_id: str, suggestion_id: str, organization_id: str, update: SuggestionUpdate
    ) -> Suggestion:
        suggestion = self.store.get_suggestion(session_id, suggestion_id, organization_id)
        return self.bridge.modify(suggestion, update)

    async def confirm(self, session_id: str, suggestion_id: str, organization_id: str) -> Suggestion:
        suggestion = self.store.get_suggestion(session_id, suggestion_id, organization_id)
        return await self.bridge.confirm(suggestion, organization_id)

    async def retry(self, session_id: str, suggestion_id: str, organization_id: str) -> Suggestion:
        suggestion = self.store.get_suggestion(session_id, suggestion_id, organization_id)
        return await self.bridge.retry(suggestion, organization_id)
