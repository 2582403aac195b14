"""Test environment: in-memory SQLite and no service credential unless a test sets one."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.pop("GITHUB_SERVICE_TOKEN", None)
