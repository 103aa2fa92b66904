"""
Entity Enricher — Ligne brute → TargetCandidate prêt à afficher.

Une fonction par variant. Chacune :
  - calcule les champs dérivés (durée, retard, dates locales)
  - remplit `display_label` (sélection uniquement, jamais persisté)
  - remplace toute donnée de contact absente par un placeholder
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from models.candidate import (
    UNKNOWN_CLIENT,
    ClientCandidate,
    DelayedProjectCandidate,
    InactiveClientCandidate,
    MeetingCandidate,
)
from services.activity import InactiveClient
from services.config import Settings, get_settings
from services.utils import (
    meeting_duration_minutes,
    normalize_date,
    normalize_day,
    safe_float,
    text_or,
)


NO_CLIENT = "Sans client"
UNTITLED_MEETING = "Réunion sans titre"
NO_LOCATION = "Sans lieu"
UNNAMED_PROJECT = "Projet sans nom"


class EnrichmentError(ValueError):
    """La ligne ne contient pas le minimum requis (id, date clé)."""


class EntityEnricher:
    """Formate les candidats dans le fuseau et les formats d'affichage configurés."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._tz = ZoneInfo(self._settings.display_timezone)

    # ──────────────────────────────────────────────────────
    # FORMATAGE
    # ──────────────────────────────────────────────────────

    def format_date(self, value: datetime | date) -> str:
        if isinstance(value, datetime):
            value = value.astimezone(self._tz)
        return value.strftime(self._settings.display_date_format)

    def format_time(self, value: datetime) -> str:
        return value.astimezone(self._tz).strftime(self._settings.display_time_format)

    # ──────────────────────────────────────────────────────
    # VARIANTS
    # ──────────────────────────────────────────────────────

    def meeting(self, row: dict[str, Any]) -> MeetingCandidate:
        """Réunion + client joint (`clients`)."""
        start = normalize_date(row.get("start_time"))
        if start is None or row.get("id") is None:
            raise EnrichmentError(f"Réunion invalide : {row.get('id')!r}")
        end = normalize_date(row.get("end_time"))

        client = _joined(row, "clients")
        title = text_or(row.get("title") or row.get("summary"), UNTITLED_MEETING)
        location = text_or(row.get("location"))
        duration = meeting_duration_minutes(start, end)
        meeting_date = self.format_date(start)
        meeting_time = self.format_time(start)
        contact_label = text_or(client.get("company")) or text_or(client.get("name"), NO_CLIENT)

        label = " • ".join([
            f"📅 {title}",
            f"👤 {contact_label}",
            f"🕐 {meeting_date} {meeting_time}",
            f"📍 {location or NO_LOCATION}",
            f"⏱️ {duration} min",
        ])

        return MeetingCandidate(
            id=str(row["id"]),
            display_label=label,
            title=title,
            description=text_or(row.get("description")),
            location=location,
            meeting_url=text_or(row.get("meeting_url")),
            project_id=str(row["project_id"]) if row.get("project_id") else None,
            project_name=text_or(row.get("project_name")),
            client_id=text_or(client.get("id") or row.get("client_id")),
            client_name=text_or(client.get("name"), UNKNOWN_CLIENT),
            client_email=text_or(client.get("email")),
            client_company=text_or(client.get("company")),
            start_time=start,
            end_time=end,
            duration_minutes=duration,
            meeting_date=meeting_date,
            meeting_time=meeting_time,
            meeting_end_time=self.format_time(end) if end else "",
        )

    def inactive_client(self, client: InactiveClient) -> InactiveClientCandidate:
        name = text_or(client.name, UNKNOWN_CLIENT)
        reason = client.inactivity_reason
        return InactiveClientCandidate(
            id=client.id,
            display_label=f"{name} - {reason.label} ({client.days_since_last_activity} jours)",
            name=name,
            email=text_or(client.email),
            company=text_or(client.company),
            inactivity_reason=reason,
            days_since_last_activity=client.days_since_last_activity,
            last_communication=client.last_communication,
            last_project_activity=client.last_project_activity,
        )

    def delayed_project(self, row: dict[str, Any], today: date) -> DelayedProjectCandidate:
        """Projet + client joint ; `days_overdue` au jour près."""
        end_date = normalize_day(row.get("end_date"))
        if end_date is None or row.get("id") is None:
            raise EnrichmentError(f"Projet invalide : {row.get('id')!r}")

        client = _joined(row, "clients")
        name = text_or(row.get("name"), UNNAMED_PROJECT)
        days_overdue = max((today - end_date).days, 0)
        budget = row.get("budget")

        return DelayedProjectCandidate(
            id=str(row["id"]),
            display_label=f"{name} ({days_overdue} jours de retard)",
            name=name,
            description=text_or(row.get("description")),
            status=text_or(row.get("status")),
            budget=safe_float(budget) if budget is not None else None,
            end_date=end_date,
            days_overdue=days_overdue,
            client_id=text_or(client.get("id") or row.get("client_id")),
            client_name=text_or(client.get("name"), "Client sans nom"),
            client_email=text_or(client.get("email")),
            client_company=text_or(client.get("company")),
        )

    def client(
        self,
        row: dict[str, Any],
        project_count: int,
        invoice_count: int,
    ) -> ClientCandidate:
        if row.get("id") is None:
            raise EnrichmentError("Client sans id")

        company = text_or(row.get("company"))
        email = text_or(row.get("email"))
        label = " • ".join(part for part in [
            company,
            email,
            f"{project_count} projets",
            f"{invoice_count} factures",
        ] if part)

        return ClientCandidate(
            id=str(row["id"]),
            display_label=label,
            name=text_or(row.get("name"), UNKNOWN_CLIENT),
            email=email,
            company=company,
            phone=text_or(row.get("phone")),
            created_at=normalize_date(row.get("created_at")),
            project_count=project_count,
            invoice_count=invoice_count,
        )


def _joined(row: dict[str, Any], key: str) -> dict[str, Any]:
    """Relation jointe PostgREST : objet, liste d'un élément ou NULL."""
    value = row.get(key)
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else {}
