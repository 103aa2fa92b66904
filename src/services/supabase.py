"""
SupabaseClient — Client Supabase + helpers de requêtes typés.

UN client, initialisé UNE fois, partagé partout.

Tables utilisées :
  - automations            → AutomationRule (lecture, compteurs)
  - calendar_events        → rappels de réunion
  - clients                → clients (+ jointures)
  - projects / invoices    → comptages, projets en retard
  - client_communications  → activité client, emails envoyés
  - tasks                  → activité client, tâches créées
  - user_notifications     → notifications internes
  - company_settings / profiles → coordonnées de l'expéditeur

Contrat : AUCUNE méthode ne lève. Chaque requête retourne un
QueryResult avec `error` (code + message) en cas d'échec.

Usage :
    from services.supabase import SupabaseClient

    db = SupabaseClient()
    result = await db.list_clients(owner_id)
    if result.ok:
        rows = result.data
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable

from postgrest.exceptions import APIError
from postgrest.types import CountMethod
from pydantic import BaseModel, Field
from supabase import Client, create_client

from services.config import Settings, get_settings


logger = logging.getLogger("clyra.supabase")

INCREMENT_RPC = "increment_automation_execution"
RPC_NOT_FOUND = "PGRST202"
NOT_CONFIGURED = "not_configured"
CAS_MAX_ATTEMPTS = 5


# ══════════════════════════════════════════════════════════════
# RÉSULTATS
# ══════════════════════════════════════════════════════════════


class DataError(BaseModel):
    """Erreur structurée renvoyée par le store."""
    code: str = ""
    message: str = ""

    def __str__(self) -> str:
        return f"{self.message} (code {self.code})" if self.code else self.message


class QueryResult(BaseModel):
    """Résultat d'une requête : données, comptage, ou erreur."""
    data: list[dict[str, Any]] = Field(default_factory=list)
    count: int | None = None
    error: DataError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def first(self) -> dict[str, Any] | None:
        return self.data[0] if self.data else None

    @classmethod
    def failure(cls, code: str, message: str) -> "QueryResult":
        return cls(error=DataError(code=code, message=message))


# ══════════════════════════════════════════════════════════════
# CLIENT
# ══════════════════════════════════════════════════════════════


class SupabaseClient:
    """
    Client Supabase avec helpers typés.

    Encapsule la librairie supabase-py.
    Expose des méthodes spécifiques par table.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: Client | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client: Client | None = client

        if self._client is None and self._settings.has_supabase:
            self._init_client()

    def _init_client(self) -> None:
        """Initialise le client Supabase."""
        try:
            self._client = create_client(
                self._settings.supabase_url,
                self._settings.supabase_key,
            )
        except Exception as e:
            logger.error(f"Supabase client init failed: {type(e).__name__}: {e}")
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    # ──────────────────────────────────────────────────────
    # AUTH
    # ──────────────────────────────────────────────────────

    async def get_auth_user(self, access_token: str) -> dict[str, Any] | None:
        """Utilisateur associé à un JWT de session, ou None."""
        if not self.is_connected or not access_token:
            return None

        try:
            response = self._client.auth.get_user(access_token)
        except Exception as e:
            logger.warning(f"Auth lookup failed: {type(e).__name__}: {e}")
            return None

        user = getattr(response, "user", None)
        if user is None:
            return None
        return {
            "id": str(user.id),
            "email": user.email or "",
            "user_metadata": dict(user.user_metadata or {}),
        }

    # ──────────────────────────────────────────────────────
    # AUTOMATIONS
    # ──────────────────────────────────────────────────────

    async def get_automation(self, automation_id: str) -> QueryResult:
        """Récupère une règle d'automatisation."""
        return self._run(
            "automations.get",
            lambda c: c.table("automations").select("*").eq("id", automation_id).limit(1),
        )

    async def list_automations(self, owner_id: str | None = None) -> QueryResult:
        """Liste les règles, les plus récentes d'abord."""
        def build(c: Client) -> Any:
            query = c.table("automations").select("*")
            if owner_id:
                query = query.eq("user_id", owner_id)
            return query.order("created_at", desc=True)

        return self._run("automations.list", build)

    async def set_automation_active(self, automation_id: str, is_active: bool) -> QueryResult:
        """Active ou désactive une règle."""
        return self._run(
            "automations.toggle",
            lambda c: c.table("automations").update({"is_active": is_active}).eq("id", automation_id),
        )

    async def increment_execution(
        self,
        automation_id: str,
        executed_at: datetime,
    ) -> QueryResult:
        """
        Incrémente execution_count de façon atomique.

        1. RPC Postgres `increment_automation_execution` (UPDATE ... SET
           execution_count = execution_count + 1)
        2. Si la fonction n'est pas déployée : UPDATE conditionnel
           (compare-and-set sur la valeur lue), rejoué en cas de conflit.

        data = [{"id", "execution_count", "last_executed"}]
        """
        params = {
            "automation_id": automation_id,
            "executed_at": executed_at.isoformat(),
        }
        result = self._run("automations.increment", lambda c: c.rpc(INCREMENT_RPC, params))
        if result.ok:
            return self._normalize_increment(result, automation_id, executed_at)
        if result.error.code != RPC_NOT_FOUND:
            return result

        logger.debug(f"RPC {INCREMENT_RPC} missing, falling back to conditional update")
        return await self._increment_conditional(automation_id, executed_at)

    async def _increment_conditional(
        self,
        automation_id: str,
        executed_at: datetime,
    ) -> QueryResult:
        for _ in range(CAS_MAX_ATTEMPTS):
            current = self._run(
                "automations.read_count",
                lambda c: c.table("automations")
                .select("id, execution_count")
                .eq("id", automation_id)
                .limit(1),
            )
            if not current.ok:
                return current
            if current.first is None:
                return QueryResult.failure("not_found", f"Automation {automation_id} introuvable")

            observed = int(current.first.get("execution_count") or 0)
            updated = self._run(
                "automations.cas_update",
                lambda c: self._cas_query(c, automation_id, observed, executed_at),
            )
            if not updated.ok:
                return updated
            if updated.data:
                return updated

        return QueryResult.failure(
            "conflict",
            f"Compteur de {automation_id} modifié en concurrence ({CAS_MAX_ATTEMPTS} tentatives)",
        )

    @staticmethod
    def _cas_query(c: Client, automation_id: str, observed: int, executed_at: datetime) -> Any:
        query = c.table("automations").update(
            {"execution_count": observed + 1, "last_executed": executed_at.isoformat()}
        ).eq("id", automation_id)
        if observed == 0:
            # Une colonne NULL compte comme 0
            return query.or_("execution_count.is.null,execution_count.eq.0")
        return query.eq("execution_count", observed)

    @staticmethod
    def _normalize_increment(
        result: QueryResult,
        automation_id: str,
        executed_at: datetime,
    ) -> QueryResult:
        """Une RPC scalaire renvoie un entier : on le remet en ligne."""
        if result.data and isinstance(result.data[0], dict):
            return result
        return QueryResult(
            data=[{
                "id": automation_id,
                "execution_count": result.count,
                "last_executed": executed_at.isoformat(),
            }],
        )

    # ──────────────────────────────────────────────────────
    # CALENDAR
    # ──────────────────────────────────────────────────────

    async def list_upcoming_meetings(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
        statuses: list[str],
    ) -> QueryResult:
        """Réunions (avec client) dont le début est dans [start, end]."""
        return self._run(
            "calendar_events.upcoming",
            lambda c: c.table("calendar_events")
            .select(
                "id, title, description, start_time, end_time, location, "
                "meeting_url, meeting_platform, client_id, project_id, "
                "clients!inner(id, name, email, company)"
            )
            .eq("user_id", owner_id)
            .eq("type", "meeting")
            .gte("start_time", start.isoformat())
            .lte("start_time", end.isoformat())
            .in_("status", statuses)
            .order("start_time", desc=False),
        )

    # ──────────────────────────────────────────────────────
    # CLIENTS
    # ──────────────────────────────────────────────────────

    async def list_clients(self, owner_id: str) -> QueryResult:
        """Clients du propriétaire, triés par nom."""
        return self._run(
            "clients.list",
            lambda c: c.table("clients")
            .select("id, name, email, company, phone, created_at")
            .eq("user_id", owner_id)
            .order("name", desc=False),
        )

    async def get_client(self, owner_id: str, client_id: str) -> QueryResult:
        return self._run(
            "clients.get",
            lambda c: c.table("clients")
            .select("id, name, email, company, phone, created_at")
            .eq("id", client_id)
            .eq("user_id", owner_id)
            .limit(1),
        )

    async def count_client_projects(self, owner_id: str, client_id: str) -> QueryResult:
        return self._count("projects", owner_id, client_id)

    async def count_client_invoices(self, owner_id: str, client_id: str) -> QueryResult:
        return self._count("invoices", owner_id, client_id)

    # ──────────────────────────────────────────────────────
    # ACTIVITÉ
    # ──────────────────────────────────────────────────────

    async def latest_communication(
        self,
        owner_id: str,
        client_id: str,
        since: datetime | None = None,
    ) -> QueryResult:
        """Dernière communication (optionnellement depuis `since`)."""
        return self._latest("client_communications", "created_at", owner_id, client_id, since)

    async def latest_project_update(
        self,
        owner_id: str,
        client_id: str,
        since: datetime | None = None,
    ) -> QueryResult:
        return self._latest("projects", "updated_at", owner_id, client_id, since)

    async def latest_task_update(
        self,
        owner_id: str,
        client_id: str,
        since: datetime | None = None,
    ) -> QueryResult:
        return self._latest("tasks", "updated_at", owner_id, client_id, since)

    # ──────────────────────────────────────────────────────
    # PROJETS
    # ──────────────────────────────────────────────────────

    async def list_delayed_projects(
        self,
        owner_id: str,
        before: date,
        statuses: list[str],
    ) -> QueryResult:
        """Projets actifs dont end_date < before (comparaison sur la date)."""
        return self._run(
            "projects.delayed",
            lambda c: c.table("projects")
            .select(
                "id, name, description, end_date, status, budget, "
                "client_id, created_at, clients!inner(id, name, email, company)"
            )
            .eq("user_id", owner_id)
            .in_("status", statuses)
            .not_.is_("end_date", "null")
            .lt("end_date", before.isoformat())
            .order("end_date", desc=False),
        )

    async def update_project_status(
        self,
        owner_id: str,
        project_id: str,
        status: str,
        updated_at: datetime,
    ) -> QueryResult:
        return self._run(
            "projects.update_status",
            lambda c: c.table("projects")
            .update({"status": status, "updated_at": updated_at.isoformat()})
            .eq("id", project_id)
            .eq("user_id", owner_id),
        )

    # ──────────────────────────────────────────────────────
    # ÉCRITURES DES ACTIONS
    # ──────────────────────────────────────────────────────

    async def insert_task(self, data: dict[str, Any]) -> QueryResult:
        return self._run("tasks.insert", lambda c: c.table("tasks").insert([data]))

    async def insert_notification(self, data: dict[str, Any]) -> QueryResult:
        return self._run(
            "user_notifications.insert",
            lambda c: c.table("user_notifications").insert(data),
        )

    async def insert_communication(self, data: dict[str, Any]) -> QueryResult:
        return self._run(
            "client_communications.insert",
            lambda c: c.table("client_communications").insert(data),
        )

    async def insert_proposal(self, data: dict[str, Any]) -> QueryResult:
        return self._run("proposals.insert", lambda c: c.table("proposals").insert(data))

    async def list_open_tasks(self, owner_id: str, statuses: list[str]) -> QueryResult:
        """Tâches du propriétaire encore à faire."""
        return self._run(
            "tasks.open",
            lambda c: c.table("tasks")
            .select("id, title, description, due_date, priority, status")
            .eq("user_id", owner_id)
            .in_("status", statuses),
        )

    async def update_task(self, owner_id: str, task_id: str, values: dict[str, Any]) -> QueryResult:
        return self._run(
            "tasks.update",
            lambda c: c.table("tasks").update(values).eq("id", task_id).eq("user_id", owner_id),
        )

    async def get_company_settings(self, owner_id: str) -> QueryResult:
        return self._run(
            "company_settings.get",
            lambda c: c.table("company_settings")
            .select("company_name, phone")
            .eq("user_id", owner_id)
            .limit(1),
        )

    async def get_profile(self, owner_id: str) -> QueryResult:
        return self._run(
            "profiles.get",
            lambda c: c.table("profiles").select("company, phone").eq("id", owner_id).limit(1),
        )

    # ──────────────────────────────────────────────────────
    # REQUÊTES GÉNÉRIQUES
    # ──────────────────────────────────────────────────────

    def _count(self, table: str, owner_id: str, client_id: str) -> QueryResult:
        """COUNT exact, sans rapatrier les lignes."""
        return self._run(
            f"{table}.count",
            lambda c: c.table(table)
            .select("id", count=CountMethod.exact, head=True)
            .eq("client_id", client_id)
            .eq("user_id", owner_id),
        )

    def _latest(
        self,
        table: str,
        column: str,
        owner_id: str,
        client_id: str,
        since: datetime | None,
    ) -> QueryResult:
        """Ligne la plus récente selon `column`."""
        def build(c: Client) -> Any:
            query = (
                c.table(table)
                .select(column)
                .eq("user_id", owner_id)
                .eq("client_id", client_id)
            )
            if since is not None:
                query = query.gte(column, since.isoformat())
            return query.order(column, desc=True).limit(1)

        return self._run(f"{table}.latest", build)

    def _run(self, label: str, build: Callable[[Client], Any]) -> QueryResult:
        """Exécute une requête construite par `build`, sans jamais lever."""
        if not self.is_connected:
            return QueryResult.failure(NOT_CONFIGURED, "Supabase non configuré")

        try:
            response = build(self._client).execute()
        except APIError as e:
            logger.warning(f"{label} failed: {e.code} {e.message}")
            return QueryResult.failure(str(e.code or ""), e.message or str(e))
        except Exception as e:
            logger.warning(f"{label} failed: {type(e).__name__}: {e}")
            return QueryResult.failure(type(e).__name__, str(e))

        data = response.data
        if data is None:
            rows: list[dict[str, Any]] = []
        elif isinstance(data, list):
            rows = data
        elif isinstance(data, dict):
            rows = [data]
        else:
            # RPC scalaire
            return QueryResult(data=[], count=int(data))
        return QueryResult(data=rows, count=getattr(response, "count", None))
