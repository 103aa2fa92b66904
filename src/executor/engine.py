"""
ActionExecutor — Routeur des actions d'automatisation.

Reçoit (ActionSpec, ExecutionPayload), route vers le bon adapter,
exécute, logge le résultat.

Contrat envers l'orchestrateur :
  - execute() ne lève JAMAIS : toute exception devient un échec
  - le payload reçu n'est jamais modifié
  - dry-run : succès sans effet de bord
"""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable

from models.action import ActionLog, ActionResult, ActionSpec
from models.payload import ExecutionPayload
from services.notifications import NotificationService
from services.supabase import SupabaseClient

from executor.adapters.ai import AIAdapter
from executor.adapters.messaging import MessagingAdapter
from executor.adapters.workspace import WorkspaceAdapter


logger = logging.getLogger("clyra.executor")

# Type pour les handlers
ActionHandler = Callable[[ActionSpec, ExecutionPayload], Awaitable[ActionResult]]

NOT_IMPLEMENTED = (
    "create_invoice",
    "create_calendar_event",
    "send_whatsapp",
    "generate_report",
    "create_proposal",
)


class ActionExecutor:
    """
    Routeur principal des actions.

    Usage :
        executor = ActionExecutor(db)
        result = await executor.execute(action, payload)

    Dry-run :
        executor = ActionExecutor(db, dry_run=True)
    """

    def __init__(
        self,
        db: SupabaseClient,
        notifications: NotificationService | None = None,
        dry_run: bool = False,
        messaging: MessagingAdapter | None = None,
        workspace: WorkspaceAdapter | None = None,
        ai: AIAdapter | None = None,
    ) -> None:
        self.dry_run = dry_run

        # Adapters
        self._messaging = messaging or MessagingAdapter(db, notifications)
        self._workspace = workspace or WorkspaceAdapter(db)
        self._ai = ai or AIAdapter(db)

        # Logs
        self._logs: list[ActionLog] = []
        self._executed_count: int = 0
        self._failed_count: int = 0

        # Handler registry
        self._handlers: dict[str, ActionHandler] = self._build_registry()

    def _build_registry(self) -> dict[str, ActionHandler]:
        """Construit le mapping type d'action → handler."""
        registry: dict[str, ActionHandler] = {
            # Messaging
            "send_email": self._messaging.send_email,

            # Workspace
            "assign_task": self._workspace.assign_task,
            "update_project_status": self._workspace.update_project_status,
            "create_notification": self._workspace.create_notification,

            # IA
            "analyze_sentiment": self._ai.analyze_sentiment,
            "generate_ai_proposal": self._ai.generate_ai_proposal,
            "optimize_pricing": self._ai.optimize_pricing,
            "prioritize_tasks_ai": self._ai.prioritize_tasks_ai,
        }
        for action_type in NOT_IMPLEMENTED:
            registry[action_type] = self._not_implemented
        return registry

    def register(self, action_type: str, handler: ActionHandler) -> None:
        """Ajoute ou remplace un handler."""
        self._handlers[action_type] = handler

    @property
    def supported_actions(self) -> list[str]:
        return sorted(self._handlers.keys())

    # ──────────────────────────────────────────────────────
    # EXECUTE
    # ──────────────────────────────────────────────────────

    async def execute(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        """
        Exécute une action pour un payload.

        Séquence :
          1. Valider le type
          2. Trouver le handler
          3. Exécuter (ou dry-run) sur une copie du payload
          4. Logger
        """
        started = time.perf_counter()
        log = ActionLog(
            execution_id=payload.execution_id,
            automation_id=payload.rule.id,
            action_type=action.type,
            target=payload.client.email or payload.client.id,
        )

        try:
            handler = self._handlers.get(action.type)
            if handler is None:
                result = ActionResult.failed(
                    action.type,
                    f"Type d'action non reconnu : {action.type}",
                    "UNKNOWN_ACTION_TYPE",
                )
            elif self.dry_run:
                result = ActionResult.ok(
                    action.type,
                    f"Dry-run : {action.label} → {log.target}",
                    {"dry_run": True, "parameters": action.parameters},
                )
            else:
                result = await handler(action.model_copy(deep=True), payload.model_copy(deep=True))

        except Exception as e:
            error_msg = f"{type(e).__name__}: {str(e)}"
            logger.exception(f"Action {action.type} crashed (execution {payload.execution_id})")
            result = ActionResult.failed(
                action.type,
                "Erreur critique pendant l'exécution",
                error_msg,
            )

        finally:
            log.latency_ms = round((time.perf_counter() - started) * 1000, 1)

        log.success = result.success
        log.error = result.error
        log.description = result.detail
        if result.success:
            self._executed_count += 1
        else:
            self._failed_count += 1
            logger.warning(f"Action {action.type} failed: {result.detail}")
        self._logs.append(log)

        if not result.action_ref:
            result = result.model_copy(update={"action_ref": action.type})
        return result

    async def _not_implemented(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        return ActionResult.failed(
            action.type,
            f"Action '{action.type}' pas encore implémentée",
            "NOT_IMPLEMENTED",
        )

    # ──────────────────────────────────────────────────────
    # STATS
    # ──────────────────────────────────────────────────────

    @property
    def stats(self) -> dict[str, Any]:
        """Statistiques d'exécution."""
        return {
            "total_executed": self._executed_count,
            "total_failed": self._failed_count,
            "total_logs": len(self._logs),
            "dry_run": self.dry_run,
            "supported_actions": len(self._handlers),
        }

    def get_logs(self, limit: int = 20) -> list[dict[str, Any]]:
        """Retourne les derniers logs."""
        return [
            {
                "execution_id": log.execution_id,
                "action_type": log.action_type,
                "description": log.description,
                "success": log.success,
                "error": log.error,
                "latency_ms": log.latency_ms,
                "timestamp": log.timestamp.isoformat(),
            }
            for log in self._logs[-limit:]
        ]
