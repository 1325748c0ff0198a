"""
Line item replacement for HouseCall Pro jobs

HCP has no "set line items" call and assigns its own ids on creation, so the
replacement deletes what is there and adds the requested services. The
strategy sits behind LineItemReplacer so the orchestrator does not depend on
how replacement happens.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ...services.housecallpro_client import HousecallProClient, HousecallProError
from ...services.pacing import LINE_ITEM_ADD, LINE_ITEM_DELETE, RequestPacer
from .outcomes import Step, StepOutcome
from .repository import CatalogEntry

logger = logging.getLogger(__name__)


class Catalog(Protocol):
    def resolve(self, name: str) -> Optional[CatalogEntry]: ...


def build_line_item_payload(service_name: str, entry: Optional[CatalogEntry]) -> dict[str, Any]:
    """Line item body for a service, using price book data when the catalog knows it"""
    payload: dict[str, Any] = {
        "name": entry.name if entry else service_name,
        "quantity": 1,
    }
    if entry and entry.service_id:
        payload["service_item_id"] = entry.service_id
    if entry and entry.price:
        payload["unit_price"] = round(entry.price * 100)  # HCP expects cents
    return payload


class LineItemReplacer(ABC):
    @abstractmethod
    async def replace(
        self,
        client: HousecallProClient,
        remote_job_id: str,
        services: list[str],
        catalog: Catalog,
        timeout: Optional[float] = None,
    ) -> list[StepOutcome]:
        """Make the job's line items match `services`; one outcome per remote call"""


class DeleteThenAddReplacer(LineItemReplacer):
    """Delete every existing line item, then add the requested services in order"""

    def __init__(self, pacer: Optional[RequestPacer] = None):
        self.pacer = pacer or RequestPacer()

    async def replace(
        self,
        client: HousecallProClient,
        remote_job_id: str,
        services: list[str],
        catalog: Catalog,
        timeout: Optional[float] = None,
    ) -> list[StepOutcome]:
        outcomes: list[StepOutcome] = []

        # Always read the current items, a previous run may have left some behind
        try:
            existing = await client.list_line_items(remote_job_id, timeout=timeout)
        except HousecallProError as e:
            outcomes.append(StepOutcome.failure(Step.LINE_ITEMS, str(e), detail="list"))
            existing = []

        survivors: list[str] = []
        first = True
        for item in existing:
            item_id = item.get("id")
            if not item_id:
                # Cannot be deleted, so it stays on the job
                if item.get("name"):
                    survivors.append(item["name"].strip().lower())
                continue
            if not first:
                await self.pacer.pause(LINE_ITEM_DELETE)
            first = False

            item_name = item.get("name") or ""
            try:
                await client.delete_line_item(remote_job_id, item_id, timeout=timeout)
                outcomes.append(StepOutcome.success(Step.LINE_ITEMS, detail=f"delete {item_name or item_id}"))
            except HousecallProError as e:
                outcomes.append(
                    StepOutcome.failure(Step.LINE_ITEMS, str(e), detail=f"delete {item_name or item_id}")
                )
                survivors.append(item_name.strip().lower())

        first = True
        for service_name in services:
            if not service_name or not service_name.strip():
                continue

            key = service_name.strip().lower()
            if key in survivors:
                # Its old line item could not be deleted - keep that one instead of adding a duplicate
                survivors.remove(key)
                logger.info(f"♻️ Keeping existing line item '{service_name}' on HCP job {remote_job_id}")
                continue

            if not first:
                await self.pacer.pause(LINE_ITEM_ADD)
            first = False

            try:
                entry = catalog.resolve(service_name)
            except SQLAlchemyError as e:
                # HCP already has the schedule change; add by name instead
                outcomes.append(
                    StepOutcome.failure(Step.LINE_ITEMS, str(e), detail=f"catalog {service_name}")
                )
                entry = None

            payload = build_line_item_payload(service_name.strip(), entry)
            try:
                await client.add_line_item(remote_job_id, payload, timeout=timeout)
                outcomes.append(StepOutcome.success(Step.LINE_ITEMS, detail=f"add {service_name}"))
            except HousecallProError as e:
                outcomes.append(StepOutcome.failure(Step.LINE_ITEMS, str(e), detail=f"add {service_name}"))

        return outcomes
