"""Pytest configuration and fixtures."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from models.identity import Identity
from services.config import Settings
from services.supabase import DataError, QueryResult
from services.utils import normalize_date, normalize_day


NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
OWNER_ID = "owner-1"


class FakeStore:
    """
    In-memory stand-in for SupabaseClient.

    Same helper surface, same QueryResult contract (never raises).
    Set `failures[method_name] = DataError(...)` to make a helper fail.
    """

    def __init__(self) -> None:
        self.connected = True
        self.auth_users: dict[str, dict[str, Any]] = {}
        self.meetings: list[dict[str, Any]] = []
        self.clients: list[dict[str, Any]] = []
        self.projects: list[dict[str, Any]] = []
        self.project_counts: dict[str, int] = {}
        self.invoice_counts: dict[str, int] = {}
        self.communications: dict[str, list[datetime]] = {}
        self.project_updates: dict[str, list[datetime]] = {}
        self.task_updates: dict[str, list[datetime]] = {}
        self.executions: dict[str, int] = {}
        self.company_settings: dict[str, dict[str, Any]] = {}
        self.profiles: dict[str, dict[str, Any]] = {}
        self.inserted: dict[str, list[dict[str, Any]]] = {
            "tasks": [],
            "user_notifications": [],
            "client_communications": [],
            "proposals": [],
        }
        self.tasks: list[dict[str, Any]] = []
        self.failures: dict[str, DataError] = {}
        self.calls: list[str] = []

    @property
    def is_connected(self) -> bool:
        return self.connected

    def _result(self, method: str, data: list[dict[str, Any]] | None = None, count: int | None = None) -> QueryResult:
        self.calls.append(method)
        if method in self.failures:
            error = self.failures[method]
            return QueryResult.failure(error.code, error.message)
        return QueryResult(data=data or [], count=count)

    # ── Auth ──

    async def get_auth_user(self, access_token: str) -> dict[str, Any] | None:
        self.calls.append("get_auth_user")
        return self.auth_users.get(access_token)

    # ── Automations ──

    async def increment_execution(self, automation_id: str, executed_at: datetime) -> QueryResult:
        if "increment_execution" in self.failures:
            return self._result("increment_execution")
        self.executions[automation_id] = self.executions.get(automation_id, 0) + 1
        return self._result(
            "increment_execution",
            [{
                "id": automation_id,
                "execution_count": self.executions[automation_id],
                "last_executed": executed_at.isoformat(),
            }],
        )

    # ── Calendar ──

    async def list_upcoming_meetings(self, owner_id, start, end, statuses) -> QueryResult:
        rows = [
            row for row in self.meetings
            if row.get("status", "scheduled") in statuses
            and start <= normalize_date(row["start_time"]) <= end
        ]
        rows.sort(key=lambda row: normalize_date(row["start_time"]))
        return self._result("list_upcoming_meetings", rows)

    # ── Clients ──

    async def list_clients(self, owner_id: str) -> QueryResult:
        rows = sorted(self.clients, key=lambda row: row.get("name") or "")
        return self._result("list_clients", rows)

    async def get_client(self, owner_id: str, client_id: str) -> QueryResult:
        rows = [row for row in self.clients if row["id"] == client_id]
        return self._result("get_client", rows)

    async def count_client_projects(self, owner_id: str, client_id: str) -> QueryResult:
        return self._result("count_client_projects", count=self.project_counts.get(client_id, 0))

    async def count_client_invoices(self, owner_id: str, client_id: str) -> QueryResult:
        return self._result("count_client_invoices", count=self.invoice_counts.get(client_id, 0))

    # ── Activity ──

    def _latest(self, method: str, source: dict[str, list[datetime]], column: str, client_id: str, since) -> QueryResult:
        stamps = [ts for ts in source.get(client_id, []) if since is None or ts >= since]
        rows = [{column: max(stamps).isoformat()}] if stamps else []
        return self._result(method, rows)

    async def latest_communication(self, owner_id, client_id, since=None) -> QueryResult:
        return self._latest("latest_communication", self.communications, "created_at", client_id, since)

    async def latest_project_update(self, owner_id, client_id, since=None) -> QueryResult:
        return self._latest("latest_project_update", self.project_updates, "updated_at", client_id, since)

    async def latest_task_update(self, owner_id, client_id, since=None) -> QueryResult:
        return self._latest("latest_task_update", self.task_updates, "updated_at", client_id, since)

    # ── Projects ──

    async def list_delayed_projects(self, owner_id, before, statuses) -> QueryResult:
        rows = [
            row for row in self.projects
            if row.get("status") in statuses
            and row.get("end_date") is not None
            and normalize_day(row["end_date"]) < before
        ]
        rows.sort(key=lambda row: normalize_day(row["end_date"]))
        return self._result("list_delayed_projects", rows)

    async def update_project_status(self, owner_id, project_id, status, updated_at) -> QueryResult:
        rows = []
        for row in self.projects:
            if row["id"] == project_id:
                row["status"] = status
                rows.append(dict(row))
        return self._result("update_project_status", rows)

    # ── Writes ──

    def _insert(self, method: str, table: str, data: dict[str, Any]) -> QueryResult:
        if method in self.failures:
            return self._result(method)
        row = {"id": f"{table}-{len(self.inserted[table]) + 1}", **data}
        self.inserted[table].append(row)
        return self._result(method, [row])

    async def insert_task(self, data: dict[str, Any]) -> QueryResult:
        return self._insert("insert_task", "tasks", data)

    async def insert_notification(self, data: dict[str, Any]) -> QueryResult:
        return self._insert("insert_notification", "user_notifications", data)

    async def insert_communication(self, data: dict[str, Any]) -> QueryResult:
        return self._insert("insert_communication", "client_communications", data)

    async def insert_proposal(self, data: dict[str, Any]) -> QueryResult:
        return self._insert("insert_proposal", "proposals", data)

    async def list_open_tasks(self, owner_id: str, statuses: list[str]) -> QueryResult:
        rows = [dict(row) for row in self.tasks if row.get("status") in statuses]
        return self._result("list_open_tasks", rows)

    async def update_task(self, owner_id: str, task_id: str, values: dict[str, Any]) -> QueryResult:
        rows = []
        for row in self.tasks:
            if row["id"] == task_id:
                row.update(values)
                rows.append(dict(row))
        return self._result("update_task", rows)

    async def get_company_settings(self, owner_id: str) -> QueryResult:
        row = self.company_settings.get(owner_id)
        return self._result("get_company_settings", [row] if row else [])

    async def get_profile(self, owner_id: str) -> QueryResult:
        row = self.profiles.get(owner_id)
        return self._result("get_profile", [row] if row else [])


def make_client(client_id: str, name: str, email: str = "", company: str = "", **extra: Any) -> dict[str, Any]:
    return {
        "id": client_id,
        "name": name,
        "email": email or f"{client_id}@example.com",
        "company": company,
        "phone": "",
        "created_at": "2026-01-10T10:00:00+00:00",
        **extra,
    }


def make_meeting(meeting_id: str, start: str, client: dict[str, Any], **extra: Any) -> dict[str, Any]:
    return {
        "id": meeting_id,
        "title": f"Réunion {meeting_id}",
        "description": "",
        "start_time": start,
        "end_time": None,
        "location": "Bureau",
        "status": "scheduled",
        "client_id": client["id"],
        "clients": {k: client[k] for k in ("id", "name", "email", "company")},
        **extra,
    }


def make_project(project_id: str, end_date: str, client: dict[str, Any], **extra: Any) -> dict[str, Any]:
    return {
        "id": project_id,
        "name": f"Projet {project_id}",
        "description": "",
        "end_date": end_date,
        "status": "active",
        "budget": 1500,
        "client_id": client["id"],
        "clients": {k: client[k] for k in ("id", "name", "email", "company")},
        **extra,
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        supabase_url="https://test.supabase.co",
        supabase_service_key="service-key",
        display_timezone="Europe/Madrid",
        log_format="text",
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def user() -> Identity:
    return Identity(id=OWNER_ID, email="marie@studio.fr", metadata={"full_name": "Marie Dupont"})


@pytest.fixture
def clock():
    return lambda: NOW
