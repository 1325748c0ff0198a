import json
import os

# Test settings must be in place before app.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["REDIS_URL"] = ""
os.environ["REDIS_HOST"] = ""
os.environ["MAPBOX_TOKEN"] = ""

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import encrypt_token
from app.database import Base
from app.domain.jobs.line_items import DeleteThenAddReplacer
from app.domain.jobs.orchestrator import JobUpdateOrchestrator
from app.models import HcpEmployee, HcpJob, HcpService, Organization
from app.services.housecallpro_client import HousecallProClient
from app.services.pacing import RequestPacer

HCP_TEST_URL = "https://hcp.test"


class FakeHousecallPro:
    """In-memory HouseCall Pro API behind httpx.MockTransport"""

    def __init__(self):
        self.calls: list[tuple[str, str, object]] = []
        self.failures: dict[tuple[str, str], int] = {}
        self.timeouts: set[tuple[str, str]] = set()
        self.line_items: dict[str, list[dict]] = {}
        self.customers: list[dict] = []
        self.created_job_id = "job_new_1"
        self.jobs: list[dict] = []
        self.employees: list[dict] = []
        self.services: list[dict] = []
        self.zones: list[dict] = []
        self.company: dict = {"id": "co_1", "name": "Acme Carpet Care"}
        self.rate_limited: dict[tuple[str, str], int] = {}
        self.sleeps: list[float] = []
        self.job_queries: list[dict] = []

    def fail(self, method: str, path: str, status: int = 500) -> None:
        self.failures[(method, path)] = status

    def rate_limit(self, method: str, path: str, times: int = 1) -> None:
        self.rate_limited[(method, path)] = times

    async def record_sleep(self, delay: float) -> None:
        self.sleeps.append(delay)

    def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        body = json.loads(request.content) if request.content else None
        self.calls.append((method, path, body))

        if (method, path) in self.timeouts:
            raise httpx.ReadTimeout("timed out", request=request)
        if (method, path) in self.failures:
            return httpx.Response(self.failures[(method, path)], text=f"{method} {path} rejected")
        if self.rate_limited.get((method, path)):
            self.rate_limited[(method, path)] -= 1
            return httpx.Response(429, headers={"Retry-After": "2"}, text="Too Many Requests")

        parts = path.strip("/").split("/")
        if method == "GET" and parts[-1] == "line_items":
            return httpx.Response(200, json={"line_items": self.line_items.get(parts[1], [])})
        if method == "GET" and path == "/jobs":
            self.job_queries.append(dict(request.url.params))
            page = int(request.url.params.get("page", "1"))
            size = int(request.url.params.get("page_size", "100"))
            return httpx.Response(200, json={"jobs": self.jobs[(page - 1) * size : page * size]})
        if method == "GET" and path == "/employees":
            return httpx.Response(200, json={"employees": self.employees})
        if method == "GET" and path == "/api/price_book/services":
            return httpx.Response(200, json={"services": self.services, "total_pages": 1})
        if method == "GET" and path == "/service_zones":
            return httpx.Response(200, json={"service_zones": self.zones})
        if method == "GET" and path == "/company":
            return httpx.Response(200, json=self.company)
        if method == "POST" and path == "/jobs":
            return httpx.Response(201, json={"id": self.created_job_id})
        if method == "GET" and path == "/customers":
            return httpx.Response(200, json={"customers": self.customers})
        if method == "POST" and path == "/customers":
            return httpx.Response(201, json={"id": "cus_new_1"})
        if method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(200, json={"ok": True})

    def client_factory(self, context) -> HousecallProClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return HousecallProClient(
            context.api_key, base_url=HCP_TEST_URL, http_client=http_client, sleep=self.record_sleep
        )

    def calls_to(self, method: str, path_suffix: str = "") -> list[tuple[str, str, object]]:
        return [c for c in self.calls if c[0] == method and c[1].endswith(path_suffix)]


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def organization(db):
    org = Organization(id="org-1", name="Acme Carpet Care", hcp_api_key=encrypt_token("hcp-secret"))
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def mirrored_job(db, organization):
    job = HcpJob(
        organization_id=organization.id,
        hcp_job_id="job_1",
        customer_name="Pat Doe",
        city="Springfield",
        state="PA",
        status="needs_scheduling",
        notes="Gate code 1234",
    )
    db.add(job)
    db.add(HcpEmployee(organization_id=organization.id, hcp_employee_id="emp_jane", name="Jane Smith"))
    db.add(
        HcpService(
            organization_id=organization.id,
            hcp_service_id="svc_carpet",
            name="Carpet Cleaning",
            price=149.5,
        )
    )
    db.commit()
    return job


@pytest.fixture
def hcp():
    return FakeHousecallPro()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def pacer(sleep):
    return RequestPacer(sleep=sleep)


@pytest.fixture
def orchestrator(db, hcp, pacer):
    return JobUpdateOrchestrator(
        db, client_factory=hcp.client_factory, replacer=DeleteThenAddReplacer(pacer)
    )
