"""
Suggestion lifecycle

    pending  --confirm--> creating --success--> created
    pending  --confirm--> creating --failure--> error
    error    --retry----> creating
    pending  --modify---> pending (fields edited in place)

`creating` is entered synchronously before the first await, so a second
confirm/retry of the same suggestion is rejected while a run is in flight.
Runs are also serialized per HCP job id within the process.
"""

import logging
from typing import Optional

from ...auth import OrganizationContext
from ...config import DEFAULT_JOB_DURATION_MINUTES
from ...services.housecallpro_client import HousecallProError
from ..jobs.orchestrator import JobUpdateOrchestrator
from ..jobs.provisioning import JobProvisioner
from ..jobs.schemas import ChangeRequest, JobStatus, ProvisionJobRequest
from ..jobs.time_calculator import add_minutes
from .schemas import Suggestion, SuggestionStatus, SuggestionUpdate

logger = logging.getLogger(__name__)


class SuggestionStateError(Exception):
    """Action not allowed in the suggestion's current state"""


TRANSITIONS: dict[SuggestionStatus, frozenset] = {
    SuggestionStatus.PENDING: frozenset({SuggestionStatus.CREATING}),
    SuggestionStatus.CREATING: frozenset({SuggestionStatus.CREATED, SuggestionStatus.ERROR}),
    SuggestionStatus.CREATED: frozenset(),
    SuggestionStatus.ERROR: frozenset({SuggestionStatus.CREATING}),
}


def transition(suggestion: Suggestion, target: SuggestionStatus) -> None:
    current = SuggestionStatus(suggestion.status)
    if target not in TRANSITIONS[current]:
        raise SuggestionStateError(
            f"Suggestion {suggestion.id} cannot go from {current.value} to {target.value}"
        )
    suggestion.status = target


def build_change_request(suggestion: Suggestion, organization_id: str, remote_job_id: str) -> ChangeRequest:
    """The one change request a confirmed suggestion turns into"""
    duration = suggestion.durationMinutes or DEFAULT_JOB_DURATION_MINUTES
    return ChangeRequest(
        organizationId=organization_id,
        remoteJobId=remote_job_id,
        scheduledDate=suggestion.scheduledDate,
        scheduledTime=suggestion.scheduledTime,
        scheduledEnd=add_minutes(suggestion.scheduledTime, duration),
        technicianId=suggestion.technicianId,
        status=JobStatus.SCHEDULED,
        notes=suggestion.notes or None,
    )


def build_provision_request(suggestion: Suggestion, organization_id: str) -> ProvisionJobRequest:
    return ProvisionJobRequest(
        organizationId=organization_id,
        customerName=suggestion.customerName,
        customerPhone=suggestion.customerPhone,
        customerEmail=suggestion.customerEmail,
        address=suggestion.address,
        city=suggestion.city,
        state=suggestion.state,
        zip=suggestion.zip,
        serviceType=suggestion.serviceType,
        lat=suggestion.lat,
        lng=suggestion.lng,
    )


# Suggestion fields an operator may set back to null
CLEARABLE_FIELDS = frozenset({"technicianId", "notes"})

# HCP job ids with a run in flight in this process
_jobs_in_flight: set[str] = set()


class SuggestionBridge:
    """Turns confirmed suggestions into orchestrator runs and reports the outcome back"""

    def __init__(
        self,
        orchestrator: JobUpdateOrchestrator,
        provisioner: Optional[JobProvisioner] = None,
        jobs_in_flight: Optional[set[str]] = None,
    ):
        self.orchestrator = orchestrator
        self.provisioner = provisioner or JobProvisioner(orchestrator.db)
        self.jobs_in_flight = jobs_in_flight if jobs_in_flight is not None else _jobs_in_flight

    def modify(self, suggestion: Suggestion, update: SuggestionUpdate) -> Suggestion:
        if suggestion.status != SuggestionStatus.PENDING:
            raise SuggestionStateError(
                f"Suggestion {suggestion.id} can only be modified while pending"
            )
        for key, value in update.model_dump(exclude_unset=True).items():
            if value is not None or key in CLEARABLE_FIELDS:
                setattr(suggestion, key, value)
        logger.info(f"✏️ Suggestion {suggestion.id} modified")
        return suggestion

    async def confirm(self, suggestion: Suggestion, organization_id: str) -> Suggestion:
        if suggestion.status != SuggestionStatus.PENDING:
            raise SuggestionStateError(
                f"Suggestion {suggestion.id} is {SuggestionStatus(suggestion.status).value}, not pending"
            )
        return await self._run(suggestion, organization_id, replay=False)

    async def retry(self, suggestion: Suggestion, organization_id: str) -> Suggestion:
        if suggestion.status != SuggestionStatus.ERROR:
            raise SuggestionStateError(f"Suggestion {suggestion.id} can only be retried from error")
        return await self._run(suggestion, organization_id, replay=True)

    async def _run(self, suggestion: Suggestion, organization_id: str, replay: bool) -> Suggestion:
        # Raises ConfigurationError with the suggestion untouched
        context = self.orchestrator.resolve_context(organization_id)

        job_id = suggestion.remoteJobId
        if job_id and job_id in self.jobs_in_flight:
            raise SuggestionStateError(f"HCP job {job_id} is already being updated")

        transition(suggestion, SuggestionStatus.CREATING)
        suggestion.error = None
        locked = []
        if job_id:
            self.jobs_in_flight.add(job_id)
            locked.append(job_id)

        try:
            request = suggestion.lastRequest if replay else None
            if request is None:
                if not job_id:
                    try:
                        job_id = await self._provision(suggestion, organization_id, context)
                    except HousecallProError as e:
                        self._fail(suggestion, f"HCP job creation failed: {e}")
                        return suggestion
                    self.jobs_in_flight.add(job_id)
                    locked.append(job_id)
                request = build_change_request(suggestion, organization_id, job_id)
                suggestion.lastRequest = request
            else:
                logger.info(f"🔁 Replaying change request for suggestion {suggestion.id}")

            report = await self.orchestrator.run(request, context)
            result = report.result
            if result.success:
                transition(suggestion, SuggestionStatus.CREATED)
                suggestion.createdJobId = request.remoteJobId
                suggestion.createdJobUrl = context.job_url(request.remoteJobId)
                logger.info(f"✅ Suggestion {suggestion.id} created HCP job {request.remoteJobId}")
            else:
                self._fail(suggestion, result.error or "HCP update failed")
        except Exception as e:
            # Never leave a suggestion stuck in creating
            if suggestion.status == SuggestionStatus.CREATING:
                self._fail(suggestion, str(e))
            raise
        finally:
            for key in locked:
                self.jobs_in_flight.discard(key)

        return suggestion

    async def _provision(
        self, suggestion: Suggestion, organization_id: str, context: OrganizationContext
    ) -> str:
        client = self.orchestrator.client_factory(context)
        job_id = await self.provisioner.provision(
            build_provision_request(suggestion, organization_id), context, client
        )
        # Remembered so a retry updates this job instead of creating another
        suggestion.remoteJobId = job_id
        return job_id

    def _fail(self, suggestion: Suggestion, message: str) -> None:
        transition(suggestion, SuggestionStatus.ERROR)
        suggestion.error = message
        logger.error(f"❌ Suggestion {suggestion.id} failed: {message}")
