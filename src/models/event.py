"""
RunEvent — Ce qu'une couche de présentation peut observer.

Contrat in-process, pas un protocole réseau.
Aucun schéma persisté.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from models.report import LogLine


class RunState(str, Enum):
    """États de la machine d'exécution. UNE seule valeur par run."""
    IDLE = "idle"
    RESOLVING = "resolving"
    NO_CANDIDATES = "no_candidates"
    CANDIDATES_READY = "candidates_ready"
    EXECUTING = "executing"
    COMPLETED = "completed"
    HARD_FAILURE = "hard_failure"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.NO_CANDIDATES, RunState.COMPLETED, RunState.HARD_FAILURE)


class RunEventType(str, Enum):
    STATE_CHANGED = "state_changed"
    CANDIDATES_RESOLVED = "candidates_resolved"
    LOG_APPENDED = "log_appended"
    RUN_COMPLETED = "run_completed"


class RunEvent(BaseModel):
    """Notification émise par un AutomationRun."""
    type: RunEventType
    run_id: str
    rule_id: str = ""
    state: RunState
    line: LogLine | None = None
    candidate_count: int | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
