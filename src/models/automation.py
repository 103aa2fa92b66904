"""
AutomationRule — La règle définie par le propriétaire.

Une règle = UN type de déclencheur + UNE liste ordonnée d'actions.

Le déclencheur décide QUI est concerné (réunions, clients inactifs,
projets en retard, clients). Les actions décident QUOI faire.

Design decisions :
  - `actions` reste brut (JSON sérialisé ou liste) jusqu'à la
    normalisation unique faite par le PayloadBuilder
  - Un trigger_type inconnu est classé `generic`
  - execution_count ne fait que croître
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from models.action import ActionSpec


class TriggerType(str, Enum):
    """Types de déclencheurs supportés par l'orchestrateur."""
    MEETING_REMINDER = "meeting_reminder"
    CLIENT_INACTIVE = "client_inactive"
    PROJECT_DELAYED = "project_delayed"
    GENERIC = "generic"

    @classmethod
    def classify(cls, value: Any) -> "TriggerType":
        """Classe une valeur stockée. Tout ce qui est inconnu → GENERIC."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return cls.GENERIC

    @property
    def is_sweep(self) -> bool:
        """Balayage automatique : aucune sélection manuelle requise."""
        return self in (TriggerType.CLIENT_INACTIVE, TriggerType.PROJECT_DELAYED)

    @property
    def requires_selection(self) -> bool:
        return not self.is_sweep


class AutomationRule(BaseModel):
    """
    Règle d'automatisation telle que stockée dans la table `automations`.

    Créée et activée/désactivée en dehors de l'orchestrateur.
    """
    id: str
    name: str = ""
    description: str = ""
    trigger_type: str = TriggerType.GENERIC.value
    actions: Any = Field(default_factory=list)
    is_active: bool = True
    execution_count: int = Field(default=0, ge=0)
    last_executed: datetime | None = None
    owner_id: str = ""
    created_at: datetime | None = None

    @field_validator("name", "description", "owner_id", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("execution_count", mode="before")
    @classmethod
    def _none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "AutomationRule":
        """Construit une règle depuis une ligne Supabase (`user_id` → owner_id)."""
        data = dict(row)
        if not data.get("owner_id"):
            data["owner_id"] = data.get("user_id") or ""
        data["id"] = str(data.get("id", ""))
        return cls.model_validate(data)

    @property
    def trigger(self) -> TriggerType:
        return TriggerType.classify(self.trigger_type)

    def snapshot(self, actions: list[ActionSpec]) -> "RuleSnapshot":
        """Copie figée de la règle avec ses actions déjà normalisées."""
        return RuleSnapshot(
            id=self.id,
            name=self.name,
            description=self.description,
            trigger_type=self.trigger,
            actions=list(actions),
        )

    def with_execution(
        self,
        execution_count: int | None,
        executed_at: datetime,
    ) -> "AutomationRule":
        """
        Retourne la règle après une exécution.

        Le compteur ne redescend jamais, même si le store
        renvoie une valeur plus ancienne.
        """
        floor = self.execution_count + 1
        count = floor if execution_count is None else max(execution_count, floor)
        return self.model_copy(
            update={"execution_count": count, "last_executed": executed_at}
        )


class RuleSnapshot(BaseModel):
    """Règle figée transmise dans chaque payload d'exécution."""
    id: str
    name: str = ""
    description: str = ""
    trigger_type: TriggerType = TriggerType.GENERIC
    actions: list[ActionSpec] = Field(default_factory=list)

    model_config = {"frozen": True}
