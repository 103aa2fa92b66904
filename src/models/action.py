"""
Action — Déclaration, résultat et traçabilité.

Une ActionSpec est déclarative : l'orchestrateur ne connaît
que son ordre. L'ActionExecutor la route vers un handler,
qui retourne un ActionResult.

RIEN ne se passe sans trace : chaque appel produit un ActionLog.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActionSpec(BaseModel):
    """Une étape déclarée dans une règle d'automatisation."""
    type: str = Field(..., min_length=1, description="Type d'action (send_email, ...)")
    name: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("parameters", mode="before")
    @classmethod
    def _none_to_dict(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def label(self) -> str:
        """Nom lisible dans les logs."""
        return self.name or self.type


class ActionResult(BaseModel):
    """Résultat d'UNE action pour UN payload."""
    action_ref: str = ""
    success: bool
    message: str | None = None
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        action_ref: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> "ActionResult":
        return cls(action_ref=action_ref, success=True, message=message, data=data or {})

    @classmethod
    def failed(
        cls,
        action_ref: str,
        message: str,
        error: str | None = None,
    ) -> "ActionResult":
        return cls(action_ref=action_ref, success=False, message=message, error=error)

    @property
    def detail(self) -> str:
        """Message unique pour le log (message puis erreur)."""
        parts = [p for p in (self.message, self.error) if p]
        return " — ".join(parts)


class ActionLog(BaseModel):
    """
    Log d'audit d'une invocation d'action.

    Tenu par l'ActionExecutor, jamais persisté par l'orchestrateur.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=_utcnow)
    execution_id: str = ""
    automation_id: str = ""
    action_type: str = ""
    target: str = ""
    description: str = ""
    latency_ms: float = Field(default=0, ge=0)
    success: bool = True
    error: str | None = None
