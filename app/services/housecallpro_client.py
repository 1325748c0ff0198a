"""
HouseCall Pro API client
Typed wrapper around the job, dispatch, note, line item, customer, employee,
price book, service zone and company endpoints
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..config import HCP_API_URL, HCP_MAX_RETRIES, HCP_REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 5  # Seconds to wait on a 429 without a Retry-After header


class HousecallProError(Exception):
    """A HouseCall Pro call failed: rejected, timed out or unreachable"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.retry_after = retry_after


def _parse_retry_after(value: Optional[str]) -> float:
    try:
        return max(0.0, float(value)) if value else DEFAULT_RETRY_AFTER
    except ValueError:
        return DEFAULT_RETRY_AFTER


def _items(data: Any, *keys: str) -> list[dict[str, Any]]:
    """List payload under the first present key, or a bare list"""
    if isinstance(data, dict):
        items: Any = []
        for key in keys:
            if data.get(key):
                items = data[key]
                break
    else:
        items = data or []
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


class HousecallProClient:
    """Client for the HouseCall Pro public API"""

    def __init__(
        self,
        api_key: str,
        base_url: str = HCP_API_URL,
        timeout: float = HCP_REQUEST_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = HCP_MAX_RETRIES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self._http_client = http_client
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        effective_timeout = timeout if timeout is not None else self.timeout

        try:
            if self._http_client is not None:
                response = await self._http_client.request(
                    method, url, headers=self._headers(), json=json, params=params,
                    timeout=effective_timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=effective_timeout) as client:
                    response = await client.request(
                        method, url, headers=self._headers(), json=json, params=params
                    )
        except httpx.TimeoutException:
            logger.debug(f"⏰ HCP {method} {path} timed out after {effective_timeout}s")
            raise HousecallProError(
                f"HCP {method} {path} timed out after {effective_timeout}s"
            ) from None
        except httpx.HTTPError as e:
            logger.debug(f"❌ HCP {method} {path} transport error: {e}")
            raise HousecallProError(f"HCP {method} {path} failed: {e}") from e

        if response.status_code >= 400:
            error_body = response.text
            logger.debug(f"❌ HCP {method} {path} failed: {response.status_code} {error_body}")
            raise HousecallProError(
                f"HCP {method} {path} failed ({response.status_code}): {error_body}",
                status_code=response.status_code,
                body=error_body,
                retry_after=(
                    _parse_retry_after(response.headers.get("Retry-After"))
                    if response.status_code == 429
                    else None
                ),
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    async def _get_with_retry(
        self, path: str, params: Optional[dict[str, Any]] = None, timeout: Optional[float] = None
    ) -> Any:
        """GET that waits out HCP rate limiting (429) up to max_retries times"""
        attempt = 0
        while True:
            try:
                return await self._request("GET", path, params=params, timeout=timeout)
            except HousecallProError as e:
                attempt += 1
                if e.status_code != 429 or attempt >= self.max_retries:
                    raise
                logger.info(f"⏳ HCP rate limited on {path}, waiting {e.retry_after}s")
                await self._sleep(e.retry_after)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def get_job(self, job_id: str, timeout: Optional[float] = None) -> dict[str, Any]:
        """Fetch a job"""
        return await self._request("GET", f"/jobs/{job_id}", timeout=timeout)

    async def list_jobs(
        self,
        page: int,
        page_size: int,
        scheduled_start_min: Optional[str] = None,
        scheduled_start_max: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> list[dict[str, Any]]:
        """One page of jobs, optionally limited to a scheduled start range (YYYY-MM-DD)"""
        params: dict[str, Any] = {"page": page, "page_size": page_size}
        if scheduled_start_min:
            params["scheduled_start_min"] = scheduled_start_min
        if scheduled_start_max:
            params["scheduled_start_max"] = scheduled_start_max
        data = await self._get_with_retry("/jobs", params=params, timeout=timeout)
        return _items(data, "jobs", "data")

    async def create_job(self, payload: dict[str, Any], timeout: Optional[float] = None) -> dict[str, Any]:
        """Create a job, returns the created job (with its HCP id)"""
        return await self._request("POST", "/jobs", json=payload, timeout=timeout)

    async def update_job(
        self, job_id: str, payload: dict[str, Any], timeout: Optional[float] = None
    ) -> dict[str, Any]:
        """Update schedule and/or work status of a job"""
        return await self._request("PUT", f"/jobs/{job_id}", json=payload, timeout=timeout)

    async def dispatch_job(
        self, job_id: str, employee_ids: list[str], timeout: Optional[float] = None
    ) -> dict[str, Any]:
        """Assign a job to employees"""
        return await self._request(
            "POST",
            f"/jobs/{job_id}/dispatch",
            json={"assigned_employee_ids": employee_ids},
            timeout=timeout,
        )

    async def add_note(self, job_id: str, note: str, timeout: Optional[float] = None) -> dict[str, Any]:
        """Append a note to a job"""
        return await self._request("POST", f"/jobs/{job_id}/notes", json={"note": note}, timeout=timeout)

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    async def list_line_items(self, job_id: str, timeout: Optional[float] = None) -> list[dict[str, Any]]:
        """List line items of a job"""
        data = await self._get_with_retry(f"/jobs/{job_id}/line_items", timeout=timeout)
        # The endpoint returns either {"line_items": [...]} or a bare list
        return _items(data, "line_items", "data")

    async def delete_line_item(self, job_id: str, line_item_id: str, timeout: Optional[float] = None) -> None:
        """Delete a line item"""
        await self._request("DELETE", f"/jobs/{job_id}/line_items/{line_item_id}", timeout=timeout)

    async def add_line_item(
        self, job_id: str, item: dict[str, Any], timeout: Optional[float] = None
    ) -> dict[str, Any]:
        """Add a line item"""
        return await self._request("POST", f"/jobs/{job_id}/line_items", json=item, timeout=timeout)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    async def find_customer_by_phone(
        self, phone_digits: str, timeout: Optional[float] = None
    ) -> Optional[dict[str, Any]]:
        """Return the first customer matching a phone number, if any"""
        data = await self._request(
            "GET", "/customers", params={"phone_number": phone_digits}, timeout=timeout
        )
        customers = data.get("customers", []) if isinstance(data, dict) else []
        return customers[0] if customers else None

    async def create_customer(self, payload: dict[str, Any], timeout: Optional[float] = None) -> dict[str, Any]:
        """Create a customer"""
        return await self._request("POST", "/customers", json=payload, timeout=timeout)

    # ------------------------------------------------------------------
    # Directory data: employees, price book, service zones, company
    # ------------------------------------------------------------------

    async def list_employees(self, timeout: Optional[float] = None) -> list[dict[str, Any]]:
        data = await self._get_with_retry("/employees", timeout=timeout)
        return _items(data, "employees", "data")

    async def list_price_book_services(
        self, path: str, page: int, page_size: int, timeout: Optional[float] = None
    ) -> dict[str, Any]:
        """
        One page of price book services from `path`.

        Returns:
            {"items": [...], "total_pages": int, "has_more": bool}
        """
        data = await self._get_with_retry(
            path, params={"page": page, "page_size": page_size}, timeout=timeout
        )
        meta = data if isinstance(data, dict) else {}
        return {
            "items": _items(data, "services", "price_book_services", "data", "items"),
            "total_pages": meta.get("total_pages") or meta.get("totalPages") or 1,
            "has_more": bool(meta.get("has_more") or meta.get("hasMore")),
        }

    async def list_service_zones(self, timeout: Optional[float] = None) -> list[dict[str, Any]]:
        data = await self._get_with_retry("/service_zones", timeout=timeout)
        return _items(data, "service_zones", "data")

    async def get_company(self, timeout: Optional[float] = None) -> dict[str, Any]:
        """Company profile, used to check a credential"""
        return await self._request("GET", "/company", timeout=timeout)
