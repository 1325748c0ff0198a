"""
Job provisioning
Creates the HouseCall Pro customer/job for a suggestion that has no remote job yet
"""

import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...auth import OrganizationContext
from ...config import HCP_REQUEST_TIMEOUT
from ...services.housecallpro_client import HousecallProClient, HousecallProError
from ...shared.validators import digits_only, normalize_state
from .line_items import build_line_item_payload
from .repository import CatalogEntry, JobMirrorRepository, ServiceCatalog
from .schemas import JobStatus, ProvisionJobRequest

logger = logging.getLogger(__name__)


def split_customer_name(full_name: str) -> tuple[str, str]:
    parts = full_name.strip().split(" ")
    first_name = parts[0] if parts and parts[0] else full_name
    last_name = " ".join(parts[1:])
    return first_name, last_name


class JobProvisioner:
    """Find-or-create the customer, create an unscheduled job and mirror it locally"""

    def __init__(self, db: Session, timeout: float = HCP_REQUEST_TIMEOUT):
        self.db = db
        self.timeout = timeout

    async def provision(
        self, request: ProvisionJobRequest, context: OrganizationContext, client: HousecallProClient
    ) -> str:
        """
        Returns:
            The HCP job id

        Raises:
            HousecallProError: customer or job creation was rejected
        """
        state = normalize_state(request.state)
        customer_id = await self._find_or_create_customer(request, state, client)

        catalog = ServiceCatalog(self.db, request.organizationId)
        service_names = [s.strip() for s in request.serviceType.split(",") if s.strip()]
        line_items = [build_line_item_payload(name, self._lookup(catalog, name)) for name in service_names]

        job_payload: dict[str, Any] = {
            "customer_id": customer_id,
            "address": {
                "street": request.address,
                "city": request.city,
                "state": state,
                "zip": request.zip or "",
            },
            "line_items": line_items,
            "work_status": "needs scheduling",
        }

        logger.info(f"🆕 Creating HCP job for {request.customerName} ({request.city}, {state})")
        job = await client.create_job(job_payload, timeout=self.timeout)
        job_id = job.get("id")
        if not job_id:
            raise HousecallProError(f"HCP job creation returned no job id: {job}")

        logger.info(f"✅ Created HCP job {job_id} with {len(line_items)} line items")

        try:
            JobMirrorRepository.upsert_job(
                self.db,
                request.organizationId,
                job_id,
                customer_name=request.customerName,
                customer_hcp_id=customer_id,
                address=request.address,
                city=request.city,
                state=state,
                zip=request.zip,
                lat=request.lat,
                lng=request.lng,
                status=JobStatus.NEEDS_SCHEDULING.value,
                services=[{"name": name} for name in service_names],
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Failed to store HCP job {job_id} locally (non-fatal): {e}")

        return job_id

    @staticmethod
    def _lookup(catalog: ServiceCatalog, name: str) -> Optional[CatalogEntry]:
        try:
            return catalog.resolve(name)
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Service catalog lookup for '{name}' failed, using the name only: {e}")
            return None

    async def _find_or_create_customer(
        self, request: ProvisionJobRequest, state: str, client: HousecallProClient
    ) -> str:
        phone = digits_only(request.customerPhone)
        if phone:
            try:
                existing = await client.find_customer_by_phone(phone, timeout=self.timeout)
            except HousecallProError as e:
                logger.warning(f"⚠️ Customer lookup failed, creating a new customer: {e}")
                existing = None
            if existing and existing.get("id"):
                logger.info(f"👤 Found existing HCP customer {existing['id']}")
                return existing["id"]

        first_name, last_name = split_customer_name(request.customerName)
        payload: dict[str, Any] = {
            "first_name": first_name,
            "last_name": last_name,
            "addresses": [
                {
                    "street": request.address,
                    "city": request.city,
                    "state": state,
                    "zip": request.zip or "",
                    "type": "service",
                }
            ],
        }
        if request.customerPhone:
            payload["mobile_number"] = request.customerPhone
        if request.customerEmail:
            payload["email"] = request.customerEmail

        customer = await client.create_customer(payload, timeout=self.timeout)
        customer_id: Optional[str] = customer.get("id")
        if not customer_id:
            raise HousecallProError(f"HCP customer creation returned no id: {customer}")
        logger.info(f"👤 Created HCP customer {customer_id}")
        return customer_id
