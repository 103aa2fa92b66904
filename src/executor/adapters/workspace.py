"""
Workspace Adapter — Tâches, projets, notifications internes.

Écritures dans les tables de l'espace de travail du propriétaire.
Toujours scopées à `payload.user.id`.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from models.action import ActionResult, ActionSpec
from models.payload import ExecutionPayload
from executor.templating import render_template
from services.supabase import SupabaseClient
from services.utils import normalize_date, safe_int


Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkspaceAdapter:
    """Chaque méthode reçoit (ActionSpec, ExecutionPayload) et retourne un ActionResult."""

    def __init__(self, db: SupabaseClient, clock: Clock | None = None) -> None:
        self._db = db
        self._clock = clock or _utcnow

    # ──────────────────────────────────────────────────────
    # TASKS
    # ──────────────────────────────────────────────────────

    async def assign_task(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        """Crée une tâche (titre requis, échéance optionnelle)."""
        params = action.parameters
        if not params.get("title"):
            return ActionResult.failed(
                action.type,
                "Le titre de la tâche est requis",
                "Missing required parameter: title",
            )

        variables = payload.template_variables()
        title = render_template(params["title"], variables)
        description = render_template(
            params.get("description") or f"Tâche automatique pour {payload.client.name}",
            variables,
        )

        project_id = params.get("project_id")
        if not project_id and payload.project is not None:
            project_id = payload.project.project_id

        record = {
            "user_id": payload.user.id,
            "project_id": project_id or None,
            "title": title,
            "description": description,
            "status": params.get("status") or "pending",
            "priority": params.get("priority") or "medium",
            "category": params.get("category") or "general",
            "due_date": self._due_date(params),
        }

        result = await self._db.insert_task(record)
        if not result.ok:
            return ActionResult.failed(
                action.type,
                f"Erreur lors de la création de la tâche : {result.error.message or result.error.code}",
                str(result.error),
            )

        created = result.first or record
        return ActionResult.ok(
            action.type,
            f'Tâche "{title}" créée et assignée',
            {
                "task_id": created.get("id"),
                "title": created.get("title", title),
                "due_date": created.get("due_date"),
                "priority": created.get("priority"),
                "client": payload.client.name,
            },
        )

    def _due_date(self, params: dict[str, Any]) -> str | None:
        if params.get("due_in_days") not in (None, ""):
            days = safe_int(params["due_in_days"], default=-1)
            if days >= 0:
                return (self._clock() + timedelta(days=days)).isoformat()
        due = normalize_date(params.get("due_date"))
        return due.isoformat() if due else None

    # ──────────────────────────────────────────────────────
    # PROJECTS
    # ──────────────────────────────────────────────────────

    async def update_project_status(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        """Change le statut d'un projet du propriétaire."""
        params = action.parameters
        project_id = params.get("project_id")
        if not project_id and payload.project is not None:
            project_id = payload.project.project_id
        if not project_id:
            return ActionResult.failed(
                action.type,
                "L'ID du projet est requis",
                "Missing required parameter: project_id",
            )

        status = params.get("status") or "updated"
        result = await self._db.update_project_status(
            owner_id=payload.user.id,
            project_id=str(project_id),
            status=status,
            updated_at=self._clock(),
        )
        if not result.ok:
            return ActionResult.failed(
                action.type,
                "Erreur lors de la mise à jour du projet",
                str(result.error),
            )
        if not result.data:
            return ActionResult.failed(
                action.type,
                f"Projet {project_id} introuvable",
                "Project not found",
            )

        updated = result.first
        return ActionResult.ok(
            action.type,
            f"Projet mis à jour au statut : {status}",
            {"project_id": updated.get("id"), "status": updated.get("status"), "name": updated.get("name")},
        )

    # ──────────────────────────────────────────────────────
    # NOTIFICATIONS
    # ──────────────────────────────────────────────────────

    async def create_notification(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        """Crée une notification interne pour le propriétaire."""
        params = action.parameters
        if not params.get("title") or not params.get("message"):
            return ActionResult.failed(
                action.type,
                "Paramètres requis manquants : title et message",
                "Missing required parameters",
            )

        variables = payload.template_variables()
        title = render_template(params["title"], variables)
        message = render_template(params["message"], variables)

        record: dict[str, Any] = {
            "user_id": payload.user.id,
            "title": title,
            "message": message,
            "is_read": False,
            "action_data": {
                "automationId": payload.rule.id,
                "clientId": payload.client.id,
                "executionId": payload.execution_id,
                **(params.get("action_data") or {}),
            },
        }
        if params.get("type"):
            record["type"] = params["type"]
        if params.get("route"):
            record["route"] = params["route"]

        result = await self._db.insert_notification(record)
        if not result.ok:
            return ActionResult.failed(
                action.type,
                f"Erreur lors de la création de la notification : {result.error.message}",
                result.error.code,
            )

        return ActionResult.ok(
            action.type,
            f"Notification créée : {title}",
            {"notification_id": (result.first or {}).get("id"), "title": title},
        )
