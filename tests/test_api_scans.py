"""API tests for /api/v1/scans: submit, status polling, error envelope, gating per viewer, CORS."""

import unittest
from datetime import datetime, timezone

import jwt
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.v1.scans import get_orchestrator
from app.core.config import settings
from app.core.database import get_db
from app.main import app
from app.models import Base, ScanCredit
from app.schemas.scan import Finding, JobRecord, ScanResult
from app.services.jobs import JobNotFoundError

SCANS = f"{settings.API_V1_PREFIX}/scans"

RESULT = ScanResult(
    secrets=[
        Finding(file=f"s{i}.js", rule="AWS Access Key", severity="Critical", count=1)
        for i in range(5)
    ],
)


class StubOrchestrator:
    """Records submissions; poll answers from a dict of JobRecords."""

    def __init__(self) -> None:
        self.jobs: dict[str, JobRecord] = {}
        self.submitted: list[tuple[str, str | None]] = []

    async def submit(self, ref, credential=None) -> JobRecord:
        job = JobRecord(
            job_id=f"job-{len(self.jobs) + 1}",
            status="pending",
            repo_owner=ref.owner,
            repo_name=ref.name,
            created_at=datetime.now(timezone.utc),
        )
        self.jobs[job.job_id] = job
        self.submitted.append((ref.full_name, credential))
        return job

    def poll_status(self, job_id: str) -> JobRecord:
        if job_id not in self.jobs:
            raise JobNotFoundError(job_id)
        return self.jobs[job_id]


def _token(sub: str) -> str:
    return jwt.encode({"sub": sub}, settings.JWT_SECRET.get_secret_value(), algorithm=settings.JWT_ALGORITHM)


class ScanApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        self.Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
        self.orchestrator = StubOrchestrator()

        def override_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_orchestrator] = lambda: self.orchestrator
        app.dependency_overrides[get_db] = override_db
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _completed_job(self) -> str:
        self.orchestrator.jobs["done"] = JobRecord(
            job_id="done",
            status="completed",
            repo_owner="acme",
            repo_name="widgets",
            result=RESULT.model_dump(mode="json"),
        )
        return "done"


class TestSubmit(ScanApiTestCase):
    def test_accepts_and_returns_pending(self) -> None:
        resp = self.client.post(SCANS, json={"repo_url": "https://github.com/acme/widgets"})
        self.assertEqual(resp.status_code, 202)
        body = resp.json()
        self.assertEqual(body["status"], "pending")
        self.assertTrue(body["job_id"])
        self.assertEqual(self.orchestrator.submitted, [("acme/widgets", None)])

    def test_camel_case_body_and_token(self) -> None:
        resp = self.client.post(
            SCANS, json={"repoUrl": "git@github.com:acme/widgets.git", "githubToken": "ghp_user"}
        )
        self.assertEqual(resp.status_code, 202)
        self.assertEqual(self.orchestrator.submitted, [("acme/widgets", "ghp_user")])

    def test_wrong_content_type_is_415(self) -> None:
        resp = self.client.post(
            SCANS, content="repo_url=x", headers={"Content-Type": "text/plain"}
        )
        self.assertEqual(resp.status_code, 415)
        self.assertEqual(resp.json()["error"], "Invalid request body")

    def test_malformed_bodies_are_400(self) -> None:
        bodies = ["", "{not json", "[1, 2]", '{"github_token": "x"}']
        for raw in bodies:
            with self.subTest(raw=raw):
                resp = self.client.post(
                    SCANS, content=raw, headers={"Content-Type": "application/json"}
                )
                self.assertEqual(resp.status_code, 400)
                body = resp.json()
                self.assertEqual(body["error"], "Invalid request body")
                self.assertIn("details", body)
        self.assertEqual(self.orchestrator.submitted, [])

    def test_invalid_repository_url_is_400(self) -> None:
        resp = self.client.post(SCANS, json={"repo_url": "https://gitlab.com/acme/widgets"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Invalid GitHub repository URL")
        self.assertEqual(self.orchestrator.submitted, [])


class TestStatus(ScanApiTestCase):
    def test_pending_job_has_no_result(self) -> None:
        job_id = self.client.post(SCANS, json={"repo_url": "https://github.com/acme/widgets"}).json()["job_id"]
        resp = self.client.get(f"{SCANS}/status", params={"job_id": job_id})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["status"], "pending")
        self.assertEqual(body["repository"], {"owner": "acme", "name": "widgets"})
        self.assertIsNone(body["result"])
        self.assertIsNone(body["error"])

    def test_unknown_job_is_404(self) -> None:
        resp = self.client.get(f"{SCANS}/status", params={"job_id": "missing"})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"error": "Scan job not found", "details": {"job_id": "missing"}})

    def test_missing_job_id_is_400(self) -> None:
        resp = self.client.get(f"{SCANS}/status")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Invalid request")

    def test_failed_job_reports_error(self) -> None:
        self.orchestrator.jobs["bad"] = JobRecord(
            job_id="bad",
            status="failed",
            repo_owner="acme",
            repo_name="private",
            error_code="repository_not_accessible",
            error_message="Repository not found or not accessible.",
        )
        body = self.client.get(f"{SCANS}/status", params={"job_id": "bad"}).json()
        self.assertEqual(body["status"], "failed")
        self.assertEqual(body["error"]["code"], "repository_not_accessible")
        self.assertIsNone(body["result"])

    def test_anonymous_viewer_gets_truncated_result(self) -> None:
        job_id = self._completed_job()
        body = self.client.get(f"{SCANS}/status", params={"job_id": job_id}).json()
        self.assertFalse(body["result"]["full_access"])
        self.assertEqual(len(body["result"]["secrets"]["items"]), 1)
        self.assertEqual(body["result"]["secrets"]["total"], 5)
        self.assertEqual(body["result"]["secrets"]["hidden"], 4)

    def test_entitled_viewer_gets_full_result(self) -> None:
        with self.Session() as db:
            db.add(ScanCredit(viewer_id="viewer-1", credits_remaining=3, package_type="free"))
            db.commit()
        job_id = self._completed_job()
        headers = {"Authorization": f"Bearer {_token('viewer-1')}"}
        body = self.client.get(f"{SCANS}/status", params={"job_id": job_id}, headers=headers).json()
        self.assertTrue(body["result"]["full_access"])
        self.assertEqual(len(body["result"]["secrets"]["items"]), 5)

        # The stored result is unchanged by an earlier truncated render.
        anonymous = self.client.get(f"{SCANS}/status", params={"job_id": job_id}).json()
        self.assertEqual(len(anonymous["result"]["secrets"]["items"]), 1)
        again = self.client.get(f"{SCANS}/status", params={"job_id": job_id}, headers=headers).json()
        self.assertEqual(again, body)

    def test_viewer_without_credits_is_truncated(self) -> None:
        with self.Session() as db:
            db.add(ScanCredit(viewer_id="viewer-2", credits_remaining=0, package_type="free"))
            db.commit()
        job_id = self._completed_job()
        headers = {"Authorization": f"Bearer {_token('viewer-2')}"}
        body = self.client.get(f"{SCANS}/status", params={"job_id": job_id}, headers=headers).json()
        self.assertFalse(body["result"]["full_access"])

    def test_invalid_token_is_401(self) -> None:
        job_id = self._completed_job()
        resp = self.client.get(
            f"{SCANS}/status", params={"job_id": job_id}, headers={"Authorization": "Bearer not-a-jwt"}
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"], "Invalid or expired token")


class TestCors(ScanApiTestCase):
    def test_options_is_204(self) -> None:
        for path in (SCANS, f"{SCANS}/status"):
            with self.subTest(path=path):
                self.assertEqual(self.client.options(path).status_code, 204)

    def test_allow_origin_header(self) -> None:
        resp = self.client.get(
            f"{SCANS}/status", params={"job_id": "missing"}, headers={"Origin": "https://app.example.com"}
        )
        self.assertEqual(resp.headers.get("access-control-allow-origin"), "*")

    def test_preflight_is_answered(self) -> None:
        resp = self.client.options(
            SCANS,
            headers={
                "Origin": "https://app.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        self.assertLess(resp.status_code, 300)
        self.assertIn("POST", resp.headers.get("access-control-allow-methods", ""))


if __name__ == "__main__":
    unittest.main()
