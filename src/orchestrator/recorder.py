"""
ExecutionRecorder — Compteurs de la règle après un run.

execution_count += 1 et last_executed = maintenant, UNE fois par run.
Best effort : un échec ne change pas le verdict du run, il part
uniquement dans les logs de diagnostic.
"""

from __future__ import annotations

import logging
from datetime import datetime

from models.automation import AutomationRule
from models.errors import PersistenceError
from services.supabase import SupabaseClient


logger = logging.getLogger("clyra.recorder")


class ExecutionRecorder:

    def __init__(self, db: SupabaseClient) -> None:
        self._db = db
        self.last_error: PersistenceError | None = None

    async def record(self, rule: AutomationRule, executed_at: datetime) -> AutomationRule:
        """
        Incrémente le compteur côté base (atomique) et retourne la règle à jour.

        En cas d'échec, la règle retournée reflète quand même l'exécution.
        """
        self.last_error = None
        try:
            result = await self._db.increment_execution(rule.id, executed_at)
        except Exception as e:
            self._fail(PersistenceError(f"{type(e).__name__}: {e}", raw_error=e), rule)
            return rule.with_execution(None, executed_at)

        if not result.ok:
            self._fail(PersistenceError(str(result.error)), rule)
            return rule.with_execution(None, executed_at)

        row = result.first or {}
        count = row.get("execution_count")
        updated = rule.with_execution(int(count) if count is not None else None, executed_at)
        logger.info(f"Automation {rule.id} executed {updated.execution_count} time(s)")
        return updated

    def _fail(self, error: PersistenceError, rule: AutomationRule) -> None:
        self.last_error = error
        logger.error(f"Execution counter not updated for automation {rule.id}: {error.message}")
