"""
TargetCandidate — Les entités éligibles pour UNE exécution.

Union taguée par `trigger_type` :
  meeting_reminder  → MeetingCandidate
  client_inactive   → InactiveClientCandidate
  project_delayed   → DelayedProjectCandidate
  generic           → ClientCandidate

Éphémères : recalculés à chaque exécution, jamais persistés.
Aucun champ de contact n'est None : des placeholders à la place.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


UNKNOWN_CLIENT = "Client non spécifié"


class ContactInfo(BaseModel):
    """Coordonnées uniformes du client ciblé."""
    id: str = ""
    name: str = UNKNOWN_CLIENT
    email: str = ""
    company: str = ""
    phone: str = ""

    model_config = {"frozen": True}


class InactivityReason(str, Enum):
    """Pourquoi un client est considéré inactif."""
    NO_COMMUNICATION = "no_communication"
    NO_PROJECT_WORK = "no_project_work"
    BOTH = "both"

    @property
    def label(self) -> str:
        return {
            "no_communication": "Sans communication",
            "no_project_work": "Sans travail sur projet",
            "both": "Sans communication ni travail",
        }[self.value]


class _Candidate(BaseModel):
    id: str
    display_label: str = ""

    model_config = {"frozen": True}


class MeetingCandidate(_Candidate):
    """Réunion à venir avec son client."""
    trigger_type: Literal["meeting_reminder"] = "meeting_reminder"
    title: str = "Réunion sans titre"
    description: str = ""
    location: str = ""
    meeting_url: str = ""
    project_id: str | None = None
    project_name: str = ""
    client_id: str = ""
    client_name: str = UNKNOWN_CLIENT
    client_email: str = ""
    client_company: str = ""
    start_time: datetime
    end_time: datetime | None = None
    duration_minutes: int = 0
    meeting_date: str = ""
    meeting_time: str = ""
    meeting_end_time: str = ""

    @property
    def contact(self) -> ContactInfo:
        return ContactInfo(
            id=self.client_id,
            name=self.client_name,
            email=self.client_email,
            company=self.client_company,
        )


class InactiveClientCandidate(_Candidate):
    """Client sans activité récente."""
    trigger_type: Literal["client_inactive"] = "client_inactive"
    name: str = UNKNOWN_CLIENT
    email: str = ""
    company: str = ""
    inactivity_reason: InactivityReason
    days_since_last_activity: int = Field(default=0, ge=0)
    last_communication: datetime | None = None
    last_project_activity: datetime | None = None

    @property
    def contact(self) -> ContactInfo:
        return ContactInfo(id=self.id, name=self.name, email=self.email, company=self.company)


class DelayedProjectCandidate(_Candidate):
    """Projet actif dont la date de fin est dépassée."""
    trigger_type: Literal["project_delayed"] = "project_delayed"
    name: str = "Projet sans nom"
    description: str = ""
    status: str = ""
    budget: float | None = None
    end_date: date
    days_overdue: int = Field(default=0, ge=0)
    client_id: str = ""
    client_name: str = UNKNOWN_CLIENT
    client_email: str = ""
    client_company: str = ""

    @property
    def contact(self) -> ContactInfo:
        return ContactInfo(
            id=self.client_id,
            name=self.client_name,
            email=self.client_email,
            company=self.client_company,
        )


class ClientCandidate(_Candidate):
    """Client générique avec ses compteurs."""
    trigger_type: Literal["generic"] = "generic"
    name: str = UNKNOWN_CLIENT
    email: str = ""
    company: str = ""
    phone: str = ""
    created_at: datetime | None = None
    project_count: int = Field(default=0, ge=0)
    invoice_count: int = Field(default=0, ge=0)

    @property
    def contact(self) -> ContactInfo:
        return ContactInfo(
            id=self.id,
            name=self.name,
            email=self.email,
            company=self.company,
            phone=self.phone,
        )


TargetCandidate = Annotated[
    Union[
        MeetingCandidate,
        InactiveClientCandidate,
        DelayedProjectCandidate,
        ClientCandidate,
    ],
    Field(discriminator="trigger_type"),
]

candidate_adapter: TypeAdapter[TargetCandidate] = TypeAdapter(TargetCandidate)
