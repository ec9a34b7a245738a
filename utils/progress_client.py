#!/usr/bin/env python3
"""
Generation Service Client

A utility client for starting generations, listing in-flight jobs and
waiting for outcomes through the orchestrator's REST API.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)


@dataclass
class ClientResult:
    """Result of one API call."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    timestamp: Optional[str] = None


class GenerationServiceClient:
    """Client for the orchestrator REST API, acting as one user."""

    def __init__(self, user_id: str, api_base_url: Optional[str] = None, timeout: float = 30.0):
        self.user_id = user_id
        self.api_base_url = (api_base_url or "http://localhost:8000").rstrip("/")
        self.timeout = timeout
        self._http_session: Optional[aiohttp.ClientSession] = None

    async def get_http_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession(
                headers={"X-User-Id": self.user_id},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._http_session

    async def _request(self, method: str, path: str, **kwargs) -> ClientResult:
        url = f"{self.api_base_url}{path}"
        try:
            session = await self.get_http_session()
            async with session.request(method, url, **kwargs) as response:
                try:
                    data = await response.json()
                except (aiohttp.ContentTypeError, ValueError):
                    data = None

                if 200 <= response.status < 300:
                    return ClientResult(
                        success=True,
                        data=data,
                        status_code=response.status,
                        timestamp=datetime.now().isoformat()
                    )

                detail = data.get("detail") if isinstance(data, dict) else None
                return ClientResult(
                    success=False,
                    data=data,
                    error=str(detail) if detail else f"HTTP {response.status}",
                    status_code=response.status,
                    timestamp=datetime.now().isoformat()
                )

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"{method} {url} failed: {e}")
            return ClientResult(
                success=False,
                error=str(e) or type(e).__name__,
                timestamp=datetime.now().isoformat()
            )

    async def generate(self, body: Dict[str, Any]) -> ClientResult:
        """Start a generate action; data carries the request id."""
        return await self._request("POST", "/generate", json=body)

    async def list_jobs(self) -> ClientResult:
        """List in-flight jobs."""
        return await self._request("GET", "/jobs")

    async def get_outcome(self, request_id: str) -> ClientResult:
        """Fetch the outcome of a generate action (404 while still running)."""
        return await self._request("GET", f"/outcomes/{request_id}")

    async def cancel_job(self, job_id: str) -> ClientResult:
        """Stop waiting for an in-flight job."""
        return await self._request("POST", f"/jobs/{job_id}/cancel")

    async def list_results(self) -> ClientResult:
        """List committed results."""
        return await self._request("GET", "/results")

    async def wait_for_outcome(
        self,
        request_id: str,
        poll_interval: float = 2.0,
        timeout: float = 600.0
    ) -> ClientResult:
        """Poll for an outcome until it is available.

        Args:
            request_id: Request to wait for
            poll_interval: Seconds between queries
            timeout: Seconds before giving up

        Returns:
            ClientResult with the outcome, or an error result on timeout or
            on any response other than "still in progress"
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            result = await self.get_outcome(request_id)
            if result.success or result.status_code != 404:
                return result

            if loop.time() + poll_interval > deadline:
                logger.warning(f"Gave up waiting for request {request_id} after {timeout}s")
                return ClientResult(
                    success=False,
                    error=f"Timed out waiting for request {request_id}",
                    timestamp=datetime.now().isoformat()
                )
            await asyncio.sleep(poll_interval)

    def format_outcome(self, result: ClientResult) -> str:
        """Format an outcome result for display."""
        if not result.success:
            return f"❌ Error - {result.error}"

        outcome = result.data or {}
        kind = outcome.get("kind", "unknown")
        status_emoji = {
            "succeeded": "✅",
            "filtered": "🚫",
            "empty": "⚠️",
            "transient_error": "🔄",
            "terminal_error": "❌",
            "timed_out": "⏳",
            "cancelled": "🚫",
            "rejected": "⛔"
        }.get(kind, "❓")
        count = len(outcome.get("results") or [])
        return f"{status_emoji} {outcome.get('request_id')}: {kind} - {count} result(s) - {outcome.get('message', '')}"

    async def close(self):
        """Close the HTTP session."""
        if self._http_session:
            await self._http_session.close()
            self._http_session = None


async def main():
    """Wait for one request and print its outcome."""
    import sys

    if len(sys.argv) < 3:
        print("Usage: python -m utils.progress_client <user_id> <request_id> [api_base_url]")
        return

    api_base_url = sys.argv[3] if len(sys.argv) > 3 else None
    client = GenerationServiceClient(sys.argv[1], api_base_url)

    try:
        jobs = await client.list_jobs()
        if jobs.success:
            for item in jobs.data or []:
                print(f"🔄 {item['id']}: {item['progress']}% - {item['current_step']}")

        result = await client.wait_for_outcome(sys.argv[2])
        print(client.format_outcome(result))
    finally:
        await client.close()


if __name__ == "__main__":
    asyncio.run(main())
