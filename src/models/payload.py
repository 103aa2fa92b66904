"""
ExecutionPayload — Le paquet de données remis à chaque action.

UN payload par paire (candidat, règle). Figé : une action
ne peut pas modifier ce que verra l'action suivante.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from models.automation import RuleSnapshot
from models.candidate import ContactInfo, TargetCandidate
from models.identity import Identity


class MeetingDetails(BaseModel):
    """Champs propres aux rappels de réunion."""
    meeting_title: str = "Réunion programmée"
    meeting_date: str = "À confirmer"
    meeting_time: str = "À confirmer"
    meeting_location: str = "À confirmer"
    project_name: str = "Réunion générale"

    model_config = {"frozen": True}


class OverdueProjectDetails(BaseModel):
    """Champs propres aux projets en retard."""
    project_id: str
    project_name: str
    days_overdue: int = 0
    end_date: str = ""
    project_status: str = ""
    budget: str = "0"

    model_config = {"frozen": True}


class ExecutionPayload(BaseModel):
    """Contexte complet d'une invocation d'action."""
    candidate: TargetCandidate
    client: ContactInfo
    rule: RuleSnapshot
    user: Identity
    execution_id: str
    meeting: MeetingDetails | None = None
    project: OverdueProjectDetails | None = None

    model_config = {"frozen": True}

    def template_variables(self) -> dict[str, str]:
        """
        Variables à plat pour les templates `{{variable}}`.

        Les valeurs sont toujours des chaînes (jamais None).
        """
        variables: dict[str, Any] = {
            "client_name": self.client.name,
            "client_email": self.client.email,
            "client_company": self.client.company or self.client.name,
            "user_name": self.user.display_name,
            "user_email": self.user.email,
            "automation_name": self.rule.name,
            "execution_id": self.execution_id,
        }
        if self.meeting is not None:
            variables.update(self.meeting.model_dump())
        if self.project is not None:
            variables.update(self.project.model_dump())
        return {k: "" if v is None else str(v) for k, v in variables.items()}
