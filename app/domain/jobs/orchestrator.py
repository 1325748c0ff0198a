"""
Job update orchestrator
Applies a change request to one HouseCall Pro job, then refreshes the local mirror

HCP exposes separate endpoints for schedule/status, dispatch, notes and line
items with no transaction across them. Steps therefore run in a fixed order:

1. schedule/status patch   - fatal: failure aborts the run
2. technician dispatch     - best-effort
3. note append             - best-effort
4. line item replacement   - best-effort, per item
5. mirror reconciliation   - best-effort

The verdict depends on step 1 alone (see outcomes.derive_result).
"""

import logging
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...auth import OrganizationContext, resolve_organization_context
from ...config import HCP_REQUEST_TIMEOUT
from ...services.housecallpro_client import HousecallProClient, HousecallProError
from .line_items import DeleteThenAddReplacer, LineItemReplacer
from .outcomes import RunReport, Step, StepOutcome
from .repository import JobMirrorRepository, MirrorRecordNotFound, ServiceCatalog, TechnicianDirectory
from .schemas import ChangeRequest, UpdateJobResult
from .time_calculator import compute_schedule_window, format_hcp_datetime, map_status_to_hcp

logger = logging.getLogger(__name__)

ClientFactory = Callable[[OrganizationContext], HousecallProClient]


def default_client_factory(context: OrganizationContext) -> HousecallProClient:
    return HousecallProClient(context.api_key)


def build_job_patch(request: ChangeRequest) -> Optional[dict[str, Any]]:
    """PUT /jobs/{id} body for the schedule/status step, None when neither changed"""
    payload: dict[str, Any] = {}

    if request.has_schedule:
        start, end = compute_schedule_window(
            request.scheduledDate, request.scheduledTime, request.scheduledEnd
        )
        payload["schedule"] = {
            "scheduled_start": format_hcp_datetime(start),
            "scheduled_end": format_hcp_datetime(end),
        }

    if request.status:
        payload["work_status"] = map_status_to_hcp(request.status)

    return payload or None


def build_mirror_updates(request: ChangeRequest) -> dict[str, Any]:
    """Local fields touched by the request"""
    updates: dict[str, Any] = {}

    if request.has_schedule:
        _, end = compute_schedule_window(
            request.scheduledDate, request.scheduledTime, request.scheduledEnd
        )
        updates["scheduled_date"] = request.scheduledDate
        updates["scheduled_time"] = request.scheduledTime
        updates["scheduled_end"] = end.strftime("%H:%M")
    if request.status:
        updates["status"] = request.status
    if request.technicianId:
        updates["technician_hcp_id"] = request.technicianId
    if request.has_note:
        updates["append_note"] = request.notes.strip()
    if request.services is not None:
        updates["services"] = [{"name": s.strip()} for s in request.services if s and s.strip()]

    return updates


class JobUpdateOrchestrator:
    """Runs change requests against HouseCall Pro for one database session"""

    def __init__(
        self,
        db: Session,
        client_factory: ClientFactory = default_client_factory,
        replacer: Optional[LineItemReplacer] = None,
        step_timeout: float = HCP_REQUEST_TIMEOUT,
    ):
        self.db = db
        self.client_factory = client_factory
        self.replacer = replacer or DeleteThenAddReplacer()
        self.step_timeout = step_timeout

    def resolve_context(self, organization_id: str) -> OrganizationContext:
        """Raises ConfigurationError before any remote call is made"""
        return resolve_organization_context(self.db, organization_id)

    async def execute(self, request: ChangeRequest) -> UpdateJobResult:
        report = await self.run(request)
        return report.result

    async def run(
        self, request: ChangeRequest, context: Optional[OrganizationContext] = None
    ) -> RunReport:
        context = context or self.resolve_context(request.organizationId)
        client = self.client_factory(context)
        job_id = request.remoteJobId
        report = RunReport(organization_id=request.organizationId, remote_job_id=job_id)

        logger.info(f"🔄 Updating HCP job {job_id} for org {request.organizationId}")

        # Step 1: schedule/status - everything else assumes this landed
        patch = build_job_patch(request)
        if patch is not None:
            logger.info(f"📅 Patching HCP job {job_id}: {patch}")
            try:
                await client.update_job(job_id, patch, timeout=self.step_timeout)
                report.record(StepOutcome.success(Step.SCHEDULE_STATUS))
            except HousecallProError as e:
                report.record(StepOutcome.failure(Step.SCHEDULE_STATUS, f"HCP update failed: {e}"))
                return report

        # Step 2: dispatch
        if request.technicianId:
            try:
                await client.dispatch_job(job_id, [request.technicianId], timeout=self.step_timeout)
                report.record(StepOutcome.success(Step.DISPATCH, detail=request.technicianId))
            except HousecallProError as e:
                report.record(StepOutcome.failure(Step.DISPATCH, str(e), detail=request.technicianId))

        # Step 3: note
        if request.has_note:
            try:
                await client.add_note(job_id, request.notes.strip(), timeout=self.step_timeout)
                report.record(StepOutcome.success(Step.NOTE))
            except HousecallProError as e:
                report.record(StepOutcome.failure(Step.NOTE, str(e)))

        # Step 4: line items
        if request.services is not None:
            catalog = ServiceCatalog(self.db, request.organizationId)
            outcomes = await self.replacer.replace(
                client, job_id, list(request.services), catalog, timeout=self.step_timeout
            )
            for outcome in outcomes:
                report.record(outcome)

        # Step 5: mirror
        self._reconcile_mirror(request, report)

        logger.info(f"🏁 HCP job {job_id} update complete ({len(report.failures())} non-fatal failures)")
        return report

    def _reconcile_mirror(self, request: ChangeRequest, report: RunReport) -> None:
        updates = build_mirror_updates(request)

        try:
            if request.technicianId:
                name = TechnicianDirectory(self.db).display_name(
                    request.organizationId, request.technicianId
                )
                if name:
                    updates["technician_name"] = name

            JobMirrorRepository.apply_update(
                self.db, request.organizationId, request.remoteJobId, **updates
            )
            report.record(StepOutcome.success(Step.MIRROR))
        except (MirrorRecordNotFound, SQLAlchemyError) as e:
            self.db.rollback()
            report.record(StepOutcome.failure(Step.MIRROR, str(e)))
