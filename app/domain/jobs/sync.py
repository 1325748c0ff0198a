"""
Inbound HouseCall Pro sync
Pulls upcoming jobs, employees, price book services and service zones from HCP
into the local copies the orchestrator and the suggestion engine read.

Jobs are the required part: if they cannot be listed the sync fails. The
other lists are best-effort and come back empty when HCP refuses them.
Every record is upserted on its own, so one bad row does not stop the rest.
"""

import logging
from datetime import date, timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...auth import OrganizationContext, resolve_organization_context
from ...config import HCP_REQUEST_TIMEOUT, HCP_SYNC_PAGE_SIZE, HCP_WEB_URL
from ...services.housecallpro_client import HousecallProClient, HousecallProError
from ...services.pacing import SYNC_REQUEST, RequestPacer
from ...shared.validators import digits_only
from .orchestrator import ClientFactory, default_client_factory
from .repository import HcpDirectoryRepository, JobMirrorRepository
from .schemas import ConnectionTestResult, SyncCounts, SyncResult
from .time_calculator import map_status_from_hcp, split_hcp_datetime

logger = logging.getLogger(__name__)

MAX_PAGES = 100
SERVICES_PAGE_SIZE = 200
MAX_SERVICE_PAGES = 50
# Price book paths differ between HCP accounts; the first one that answers wins
PRICE_BOOK_PATHS = ("/api/price_book/services", "/price_book/services")


# ============================================================================
# HCP payload -> local record
# ============================================================================


def _coerce_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _join_name(*parts: Optional[str]) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip())


def extract_lat_lng(job: dict[str, Any]) -> tuple[Optional[float], Optional[float]]:
    """Coordinates from whichever of the known shapes the job carries"""
    for key in ("location", "coordinates", "address"):
        source = job.get(key)
        if not isinstance(source, dict):
            continue
        for lat_key, lng_key in (("lat", "lng"), ("latitude", "longitude")):
            lat = _coerce_float(source.get(lat_key))
            lng = _coerce_float(source.get(lng_key))
            if lat is not None and lng is not None:
                return lat, lng
    return None, None


def job_notes(job: dict[str, Any]) -> Optional[str]:
    notes = job.get("notes")
    if isinstance(notes, list):
        parts = [n.get("content", "").strip() for n in notes if isinstance(n, dict)]
    else:
        parts = [
            n.strip()
            for n in (notes, job.get("description"), job.get("work_order_notes"))
            if isinstance(n, str)
        ]
    parts = [p for p in parts if p]
    return "\n\n".join(parts) or None


def _dollars(cents: Any) -> Optional[float]:
    amount = _coerce_float(cents)
    return amount / 100 if amount is not None else None  # HCP amounts are in cents


def line_item_summary(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": item.get("name"),
        "price": _dollars(item.get("unit_price") if item.get("unit_price") is not None else item.get("price")),
        "quantity": item.get("quantity"),
        "service_item_id": item.get("service_item_id"),
    }


def job_record_fields(job: dict[str, Any], line_items: list[dict[str, Any]]) -> dict[str, Any]:
    """Mirror columns for an HCP job"""
    schedule = job.get("schedule") or {}
    scheduled_date, scheduled_time = split_hcp_datetime(schedule.get("scheduled_start"))
    _, scheduled_end = split_hcp_datetime(schedule.get("scheduled_end"))

    customer = job.get("customer") or {}
    address = job.get("address") or {}
    employees = job.get("assigned_employees") or []
    technician = employees[0] if employees else None
    lat, lng = extract_lat_lng(job)

    if not line_items:
        line_items = job.get("total_items") or job.get("line_items") or []

    return {
        "customer_hcp_id": customer.get("id"),
        "customer_name": (
            _join_name(customer.get("first_name"), customer.get("last_name"))
            or customer.get("company")
            or "Unknown"
        )
        if customer
        else None,
        "address": address.get("street"),
        "city": address.get("city"),
        "state": address.get("state"),
        "zip": address.get("zip"),
        "lat": lat,
        "lng": lng,
        "scheduled_date": scheduled_date,
        "scheduled_time": scheduled_time,
        "scheduled_end": scheduled_end,
        "technician_hcp_id": technician.get("id") if technician else None,
        "technician_name": (
            _join_name(technician.get("first_name"), technician.get("last_name")) if technician else None
        ),
        "status": map_status_from_hcp(job.get("work_status")),
        "total_amount": _dollars(job.get("total_amount")),
        "services": [line_item_summary(item) for item in line_items if isinstance(item, dict)],
        "notes": job_notes(job),
    }


def service_record_fields(item: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Price book item -> hcp_services columns, None when it has no usable id"""
    service_id = item.get("id") or item.get("service_id") or item.get("item_id") or item.get("pricebook_item_id")
    if not service_id:
        return None

    cents = item.get("price") if isinstance(item.get("price"), (int, float)) else item.get("unit_price")
    price = _dollars(cents)
    active = item.get("active")
    if active is None:
        active = item.get("is_active", True)

    return {
        "hcp_service_id": str(service_id),
        "name": item.get("name") or item.get("service_name") or "Unknown Service",
        "description": item.get("description") or item.get("service_description"),
        "price": price,
        "is_active": bool(active),
    }


def zone_polygon(zone: dict[str, Any]) -> Optional[dict[str, Any]]:
    """GeoJSON Polygon for a zone, from its polygon or its boundary points"""
    polygon = zone.get("polygon")
    if isinstance(polygon, dict) and polygon.get("type") == "Polygon" and polygon.get("coordinates"):
        return polygon

    points = zone.get("boundary") or zone.get("vertices") or []
    ring = []
    for point in points:
        lat = _coerce_float(point.get("lat")) if isinstance(point, dict) else None
        lng = _coerce_float(point.get("lng")) if isinstance(point, dict) else None
        if lat is not None and lng is not None:
            ring.append([lng, lat])
    if len(ring) < 3:
        return None
    if ring[0] != ring[-1]:
        ring.append(ring[0])
    return {"type": "Polygon", "coordinates": [ring]}


# ============================================================================
# SERVICE
# ============================================================================


class JobSyncService:
    """Copies HouseCall Pro data into the local tables for one organization"""

    def __init__(
        self,
        db: Session,
        client_factory: ClientFactory = default_client_factory,
        pacer: Optional[RequestPacer] = None,
        timeout: float = HCP_REQUEST_TIMEOUT,
        page_size: int = HCP_SYNC_PAGE_SIZE,
        today: Optional[date] = None,
    ):
        self.db = db
        self.client_factory = client_factory
        self.pacer = pacer or RequestPacer()
        self.timeout = timeout
        self.page_size = page_size
        self.today = today

    async def sync(self, organization_id: str, days: int) -> SyncResult:
        """
        Raises:
            ConfigurationError: organization or credential missing
        """
        context = resolve_organization_context(self.db, organization_id)
        client = self.client_factory(context)

        today = self.today or date.today()
        date_from = today.isoformat()
        date_to = (today + timedelta(days=days)).isoformat()
        logger.info(f"🔄 Syncing HCP data for org {organization_id} ({date_from} to {date_to})")

        try:
            jobs = await self._fetch_jobs(client, date_from, date_to)
        except HousecallProError as e:
            logger.error(f"❌ HCP job sync failed for org {organization_id}: {e}")
            return SyncResult(success=False, error=str(e))

        employees = await self._fetch_optional("employees", client.list_employees(timeout=self.timeout))
        services = await self._fetch_services(client)
        zones = await self._fetch_optional("service zones", client.list_service_zones(timeout=self.timeout))

        fetched = SyncCounts(
            jobs=len(jobs), employees=len(employees), services=len(services), serviceZones=len(zones)
        )
        synced = SyncCounts(
            services=self._store_services(organization_id, services),
            employees=self._store_employees(organization_id, employees),
            serviceZones=self._store_zones(organization_id, zones),
            jobs=await self._store_jobs(organization_id, client, jobs),
        )

        logger.info(f"✅ HCP sync for org {organization_id}: synced {synced.model_dump()} of {fetched.model_dump()}")
        return SyncResult(success=True, synced=synced, fetched=fetched)

    async def test_connection(
        self, organization_id: str, api_key: Optional[str] = None
    ) -> ConnectionTestResult:
        """
        Check a credential against the company endpoint. A key passed in is
        tested as-is; otherwise the stored one is used.

        Raises:
            ConfigurationError: no key given and none stored
        """
        if api_key:
            context = OrganizationContext(
                organization_id=organization_id, api_key=api_key, web_base_url=HCP_WEB_URL
            )
        else:
            context = resolve_organization_context(self.db, organization_id)

        try:
            data = await self.client_factory(context).get_company(timeout=self.timeout)
        except HousecallProError as e:
            logger.warning(f"⚠️ HCP connection test failed for org {organization_id}: {e}")
            if e.status_code == 401:
                error = "Invalid API key. Please check your credentials."
            elif e.status_code == 403:
                error = "Access denied. Please check your API key permissions."
            elif e.status_code:
                error = f"HouseCall Pro API error: {e.status_code}"
            else:
                error = str(e)
            return ConnectionTestResult(success=False, error=error)

        company = data.get("company") if isinstance(data, dict) and isinstance(data.get("company"), dict) else data
        name = (company.get("name") if isinstance(company, dict) else None) or "Unknown Company"
        logger.info(f"✅ HCP connection OK for org {organization_id}: {name}")
        return ConnectionTestResult(success=True, companyName=name)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _fetch_jobs(
        self, client: HousecallProClient, date_from: str, date_to: str
    ) -> list[dict[str, Any]]:
        jobs: list[dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            if page > 1:
                await self.pacer.pause(SYNC_REQUEST)
            batch = await client.list_jobs(
                page, self.page_size, date_from, date_to, timeout=self.timeout
            )
            jobs.extend(job for job in batch if job.get("id"))
            if len(batch) < self.page_size:
                break
        return jobs

    async def _fetch_optional(self, label: str, call) -> list[dict[str, Any]]:
        try:
            return await call
        except HousecallProError as e:
            logger.warning(f"⚠️ Could not fetch HCP {label}, skipping: {e}")
            return []

    async def _fetch_services(self, client: HousecallProClient) -> list[dict[str, Any]]:
        for path in PRICE_BOOK_PATHS:
            services: list[dict[str, Any]] = []
            try:
                for page in range(1, MAX_SERVICE_PAGES + 1):
                    if page > 1:
                        await self.pacer.pause(SYNC_REQUEST)
                    result = await client.list_price_book_services(
                        path, page, SERVICES_PAGE_SIZE, timeout=self.timeout
                    )
                    items = result["items"]
                    services.extend(items)
                    if not items:
                        break
                    if page >= result["total_pages"] and not result["has_more"]:
                        break
                    if len(items) < SERVICES_PAGE_SIZE and not result["has_more"]:
                        break
            except HousecallProError as e:
                logger.debug(f"Price book path {path} failed: {e}")
            if services:
                return services
        logger.warning("⚠️ No HCP price book services found")
        return []

    # ------------------------------------------------------------------
    # Storing
    # ------------------------------------------------------------------

    def _store(self, label: str, upsert, *args, **fields) -> bool:
        try:
            upsert(self.db, *args, **fields)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Failed to store HCP {label} {args[-1]}: {e}")
            return False
        return True

    def _store_services(self, organization_id: str, services: list[dict[str, Any]]) -> int:
        stored = 0
        for item in services:
            fields = service_record_fields(item)
            if fields is None:
                continue
            service_id = fields.pop("hcp_service_id")
            stored += self._store(
                "service", HcpDirectoryRepository.upsert_service, organization_id, service_id, **fields
            )
        return stored

    def _store_employees(self, organization_id: str, employees: list[dict[str, Any]]) -> int:
        stored = 0
        for employee in employees:
            if not employee.get("id"):
                continue
            phone = digits_only(employee.get("mobile_number"))
            stored += self._store(
                "employee",
                HcpDirectoryRepository.upsert_employee,
                organization_id,
                str(employee["id"]),
                name=_join_name(employee.get("first_name"), employee.get("last_name")) or "Unknown",
                email=employee.get("email"),
                phone=phone if len(phone) >= 10 else None,
            )
        return stored

    def _store_zones(self, organization_id: str, zones: list[dict[str, Any]]) -> int:
        stored = 0
        for zone in zones:
            if not zone.get("id"):
                continue
            stored += self._store(
                "service zone",
                HcpDirectoryRepository.upsert_zone,
                organization_id,
                str(zone["id"]),
                name=zone.get("name") or "Unnamed zone",
                color=zone.get("color"),
                polygon_geojson=zone_polygon(zone),
            )
        return stored

    async def _store_jobs(
        self, organization_id: str, client: HousecallProClient, jobs: list[dict[str, Any]]
    ) -> int:
        stored = 0
        for index, job in enumerate(jobs):
            if index:
                await self.pacer.pause(SYNC_REQUEST)
            try:
                line_items = await client.list_line_items(job["id"], timeout=self.timeout)
            except HousecallProError as e:
                # Embedded line items are used instead
                logger.debug(f"Line items for HCP job {job['id']} unavailable: {e}")
                line_items = []

            stored += self._store(
                "job",
                JobMirrorRepository.upsert_job,
                organization_id,
                str(job["id"]),
                **job_record_fields(job, line_items),
            )
        return stored
