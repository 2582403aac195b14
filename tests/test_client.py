"""Unit tests for app.client.ScanClient: submit, polling with backoff, error envelopes."""

import asyncio
import json
import unittest

import httpx

from app.client import ScanClient, ScanClientError


def _client(handler, **kwargs) -> ScanClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")
    kwargs.setdefault("initial_delay", 0.001)
    kwargs.setdefault("max_delay", 0.004)
    return ScanClient("http://api.test", client=http, **kwargs)


class TestSubmit(unittest.TestCase):
    def test_posts_body_and_returns_job_id(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(202, json={"job_id": "j1", "status": "pending"})

        client = _client(handler, access_token="viewer-jwt")
        job_id = asyncio.run(client.submit("https://github.com/acme/widgets", "ghp_x"))
        self.assertEqual(job_id, "j1")
        self.assertEqual(seen["path"], "/api/v1/scans")
        self.assertEqual(seen["body"], {"repo_url": "https://github.com/acme/widgets", "github_token": "ghp_x"})
        self.assertEqual(seen["auth"], "Bearer viewer-jwt")

    def test_error_envelope_is_raised(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "Invalid GitHub repository URL", "details": {"repo_url": "x"}})

        with self.assertRaises(ScanClientError) as ctx:
            asyncio.run(_client(handler).submit("x"))
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.message, "Invalid GitHub repository URL")
        self.assertEqual(ctx.exception.details, {"repo_url": "x"})


class TestWaitForResult(unittest.TestCase):
    def test_polls_until_terminal(self) -> None:
        statuses = iter(["pending", "running", "running", "completed"])
        polls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            polls.append(request.url.params["job_id"])
            return httpx.Response(200, json={"job_id": "j1", "status": next(statuses)})

        body = asyncio.run(_client(handler).wait_for_result("j1", timeout=5))
        self.assertEqual(body["status"], "completed")
        self.assertEqual(polls, ["j1"] * 4)

    def test_retries_server_and_transport_errors(self) -> None:
        attempts = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise httpx.ConnectError("refused", request=request)
            if attempts["n"] == 2:
                return httpx.Response(503, json={"error": "unavailable", "details": None})
            return httpx.Response(200, json={"job_id": "j1", "status": "failed"})

        body = asyncio.run(_client(handler).wait_for_result("j1", timeout=5))
        self.assertEqual(body["status"], "failed")
        self.assertEqual(attempts["n"], 3)

    def test_not_found_is_raised_immediately(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": "Scan job not found", "details": {"job_id": "j1"}})

        with self.assertRaises(ScanClientError) as ctx:
            asyncio.run(_client(handler).wait_for_result("j1", timeout=5))
        self.assertEqual(ctx.exception.status_code, 404)

    def test_times_out(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"job_id": "j1", "status": "running"})

        with self.assertRaises(ScanClientError) as ctx:
            asyncio.run(_client(handler).wait_for_result("j1", timeout=0.02))
        self.assertIsNone(ctx.exception.status_code)


if __name__ == "__main__":
    unittest.main()
