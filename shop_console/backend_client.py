"""
Backend API Client for the Shop Console

Communicates with the PrintHub backend to:
- Fetch the print queue and its counters
- Move jobs through the queue
- Request signed URLs for direct printing
"""

import logging
from typing import Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[Optional[str]]]


class BackendClient:
    """
    HTTP client for backend API communication.

    Every call asks the token provider for a valid bearer token first, so a
    refresh happens transparently before the request goes out.
    """

    def __init__(self, backend_url: str, token_provider: TokenProvider, transport: httpx.AsyncBaseTransport = None):
        """
        Args:
            backend_url: Base URL of the backend (e.g., http://localhost:8000)
            token_provider: coroutine returning the current access token
        """
        self.backend_url = backend_url.rstrip('/')
        self.token_provider = token_provider
        self.client = httpx.AsyncClient(base_url=self.backend_url, timeout=30, transport=transport)

    async def _headers(self) -> dict:
        token = await self.token_provider()
        if not token:
            raise httpx.HTTPError("No valid session token")
        return {"Authorization": f"Bearer {token}"}

    async def test_connection(self) -> bool:
        """
        Returns:
            True if backend is reachable, False otherwise
        """
        try:
            response = await self.client.get("/health", timeout=10)
            response.raise_for_status()
            health = response.json()
            logger.info(f"Backend health: {health}")
            return health.get('status') in ['healthy', 'degraded']

        except httpx.HTTPError as e:
            logger.error(f"Backend connection test failed: {e}")
            return False

    async def list_jobs(self, query: str = "", tab: str = "all") -> Optional[list]:
        """
        Fetch the shop's print queue, newest first.

        Returns:
            List of job dicts or None if failed
        """
        try:
            response = await self.client.get(
                "/api/v1/print-jobs",
                params={"q": query, "tab": tab},
                headers=await self._headers(),
            )
            response.raise_for_status()
            return response.json()["jobs"]

        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch print queue: {e}")
            return None

    async def get_queue_stats(self) -> Optional[dict]:
        try:
            response = await self.client.get("/api/v1/print-jobs/stats", headers=await self._headers())
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch queue stats: {e}")
            return None

    async def update_job_status(self, job_id: str, status: str) -> Optional[dict]:
        """
        Update print job status in backend.

        Args:
            job_id: UUID of the print job
            status: New status (queued, printing, completed, cancelled)

        Returns:
            The updated job, or None if the update failed
        """
        try:
            response = await self.client.put(
                f"/api/v1/print-jobs/{job_id}/status",
                params={"status": status},
                headers=await self._headers(),
            )
            response.raise_for_status()
            logger.info(f"Updated job {job_id} status to {status}")
            return response.json()["job"]

        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error updating job {job_id}: {e.response.text}")
            return None

        except httpx.HTTPError as e:
            logger.error(f"Failed to update job {job_id} status: {e}")
            return None

    async def direct_print(self, job_id: str) -> Optional[dict]:
        """
        Returns:
            {"job": {...}, "file_url": signed URL} or None if failed
        """
        try:
            response = await self.client.post(
                f"/api/v1/print-jobs/{job_id}/direct-print",
                headers=await self._headers(),
            )
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            if e.response.status_code == 410:
                logger.error(f"File for job {job_id} has expired")
            else:
                logger.error(f"HTTP error printing job {job_id}: {e.response.text}")
            return None

        except httpx.HTTPError as e:
            logger.error(f"Failed to print job {job_id}: {e}")
            return None

    async def aclose(self):
        await self.client.aclose()
