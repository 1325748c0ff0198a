import asyncio
import json

import httpx
import pytest

from app.services.housecallpro_client import HousecallProClient, HousecallProError


def _client(handler) -> HousecallProClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HousecallProClient("secret-key", base_url="https://hcp.test/", http_client=http_client)


def test_update_job_sends_token_and_payload():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "job_1"})

    payload = {"work_status": "canceled"}
    result = asyncio.run(_client(handler).update_job("job_1", payload))

    assert result == {"id": "job_1"}
    assert captured["method"] == "PUT"
    assert captured["url"] == "https://hcp.test/jobs/job_1"
    assert captured["auth"] == "Token secret-key"
    assert captured["body"] == payload


def test_rejection_raises_with_status_and_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, text="employee not available")

    with pytest.raises(HousecallProError) as exc_info:
        asyncio.run(_client(handler).dispatch_job("job_1", ["emp_1"]))

    assert exc_info.value.status_code == 422
    assert exc_info.value.body == "employee not available"
    assert "employee not available" in str(exc_info.value)


def test_timeout_becomes_housecallpro_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(HousecallProError, match="timed out"):
        asyncio.run(_client(handler).add_note("job_1", "hello", timeout=2))


def test_transport_error_becomes_housecallpro_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(HousecallProError) as exc_info:
        asyncio.run(_client(handler).get_job("job_1"))
    assert exc_info.value.status_code is None


def test_list_line_items_accepts_bare_list():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"id": "li_1", "name": "Carpet"}, "junk"])

    items = asyncio.run(_client(handler).list_line_items("job_1"))
    assert items == [{"id": "li_1", "name": "Carpet"}]


def test_empty_response_body_is_empty_dict():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    assert asyncio.run(_client(handler).add_line_item("job_1", {"name": "Carpet"})) == {}


def test_find_customer_by_phone_queries_digits():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["phone"] = request.url.params["phone_number"]
        return httpx.Response(200, json={"customers": [{"id": "cus_1"}, {"id": "cus_2"}]})

    customer = asyncio.run(_client(handler).find_customer_by_phone("2155550100"))
    assert seen["phone"] == "2155550100"
    assert customer == {"id": "cus_1"}


def test_list_jobs_sends_page_and_window():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"data": [{"id": "job_1"}]})

    jobs = asyncio.run(_client(handler).list_jobs(2, 50, "2024-06-01", "2024-07-01"))

    assert jobs == [{"id": "job_1"}]
    assert seen["path"] == "/jobs"
    assert seen["params"] == {
        "page": "2",
        "page_size": "50",
        "scheduled_start_min": "2024-06-01",
        "scheduled_start_max": "2024-07-01",
    }


def test_rate_limited_reads_give_up_after_max_retries():
    sleeps = []
    attempts = []

    async def record_sleep(delay):
        sleeps.append(delay)

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request.url.path)
        return httpx.Response(429, text="slow down")

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = HousecallProClient(
        "secret-key", base_url="https://hcp.test", http_client=http_client, max_retries=3, sleep=record_sleep
    )

    with pytest.raises(HousecallProError) as exc_info:
        asyncio.run(client.list_employees())

    assert exc_info.value.status_code == 429
    assert len(attempts) == 3
    # No Retry-After header, so the default wait is used
    assert sleeps == [5, 5]


def test_price_book_page_reports_paging():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"price_book_services": [{"id": "svc_1"}], "totalPages": 3})

    page = asyncio.run(_client(handler).list_price_book_services("/price_book/services", 1, 200))

    assert page == {"items": [{"id": "svc_1"}], "total_pages": 3, "has_more": False}
