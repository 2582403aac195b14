"""HTTP client for the scan API: submit, then poll the status endpoint with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"completed", "failed"})


class ScanClientError(Exception):
    """Raised when the scan API returns an error envelope or the wait times out."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None) -> None:
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


def _raise_for_error(resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = str(body.get("error") or resp.reason_phrase)
        details = body.get("details")
    else:
        message, details = resp.text[:500] or resp.reason_phrase, None
    raise ScanClientError(message, resp.status_code, details)


class ScanClient:
    """
    Talks to /api/v1/scans. The server keeps no per-connection state, so every poll
    is an independent request; transient poll failures are retried with backoff.
    """

    def __init__(
        self,
        base_url: str,
        *,
        access_token: str | None = None,
        initial_delay: float = 1.0,
        max_delay: float = 15.0,
        backoff_factor: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=30.0)
        self._headers = headers
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._backoff_factor = backoff_factor

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ScanClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def submit(self, repo_url: str, github_token: str | None = None) -> str:
        """Submit a scan and return its job id."""
        payload: dict[str, Any] = {"repo_url": repo_url}
        if github_token:
            payload["github_token"] = github_token
        resp = await self._client.post("/api/v1/scans", json=payload, headers=self._headers)
        _raise_for_error(resp)
        return resp.json()["job_id"]

    async def get_status(self, job_id: str) -> dict[str, Any]:
        resp = await self._client.get(
            "/api/v1/scans/status", params={"job_id": job_id}, headers=self._headers
        )
        _raise_for_error(resp)
        return resp.json()

    async def wait_for_result(self, job_id: str, timeout: float = 900.0) -> dict[str, Any]:
        """
        Poll until the job is terminal. Delay grows by backoff_factor up to max_delay;
        network errors and 5xx responses are retried, client errors are raised.
        """
        deadline = time.monotonic() + timeout
        delay = self._initial_delay
        while True:
            try:
                status = await self.get_status(job_id)
                if status.get("status") in TERMINAL_STATUSES:
                    return status
            except httpx.TransportError as e:
                logger.warning("Status poll failed; retrying", extra={"job_id": job_id, "reason": str(e)[:200]})
            except ScanClientError as e:
                if e.status_code is None or e.status_code < 500:
                    raise
                logger.warning("Status poll returned %s; retrying", e.status_code, extra={"job_id": job_id})
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ScanClientError(f"Scan {job_id} did not finish within {timeout:.0f}s")
            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * self._backoff_factor, self._max_delay)

    async def scan(self, repo_url: str, github_token: str | None = None, timeout: float = 900.0) -> dict[str, Any]:
        """Submit and wait for the terminal status body."""
        job_id = await self.submit(repo_url, github_token)
        return await self.wait_for_result(job_id, timeout=timeout)
