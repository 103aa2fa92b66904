"""
ClientActivityDetector — Détection des clients inactifs.

Deux signaux, vérifiés sur une fenêtre de `days_threshold` jours :
  - communication : une ligne récente dans client_communications
  - travail       : un projet OU une tâche du client mis à jour récemment

Un client est inactif dès qu'UN signal vérifié manque.
Raison : both | no_communication | no_project_work (exactement une).

Usage :
    detector = ClientActivityDetector(db)
    inactive = await detector.detect(owner_id)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pydantic import BaseModel, Field

from models.candidate import InactivityReason
from models.errors import ResolutionError
from services.supabase import SupabaseClient
from services.utils import days_between, normalize_date


logger = logging.getLogger("clyra.activity")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityDetectionConfig(BaseModel):
    """Paramètres de détection."""
    days_threshold: int = Field(default=30, ge=1)
    check_communications: bool = True
    check_project_work: bool = True


class InactiveClient(BaseModel):
    """Client détecté comme inactif."""
    id: str
    name: str = ""
    email: str = ""
    company: str = ""
    created_at: datetime | None = None
    last_communication: datetime | None = None
    last_project_activity: datetime | None = None
    days_since_last_activity: int = Field(default=0, ge=0)
    inactivity_reason: InactivityReason


class ActivityReport(BaseModel):
    """Synthèse de l'activité du portefeuille client."""
    total_clients: int = 0
    active_clients: int = 0
    inactive_clients: int = 0
    inactive_clients_list: list[InactiveClient] = Field(default_factory=list)


class _Signals(BaseModel):
    recent_communication: bool = False
    recent_project_work: bool = False
    last_communication: datetime | None = None
    last_project_activity: datetime | None = None
    last_task_activity: datetime | None = None


class ClientActivityDetector:
    """
    Détecteur d'inactivité paramétrable.

    Lecture seule. Un échec de requête sur un signal est loggé
    et compte comme « aucun signal trouvé ».
    """

    def __init__(
        self,
        db: SupabaseClient,
        config: ActivityDetectionConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._db = db
        self.config = config or ActivityDetectionConfig()
        self._clock = clock or _utcnow

    # ──────────────────────────────────────────────────────
    # API
    # ──────────────────────────────────────────────────────

    async def detect(self, owner_id: str) -> list[InactiveClient]:
        """
        Clients inactifs du propriétaire, triés par nom.

        Raises:
            ResolutionError: si la liste des clients est illisible.
        """
        clients = await self._db.list_clients(owner_id)
        if not clients.ok:
            raise ResolutionError(
                f"Erreur lors du chargement des clients : {clients.error.message}",
                code=clients.error.code,
            )

        now = self._clock()
        threshold = now - timedelta(days=self.config.days_threshold)

        inactive: list[InactiveClient] = []
        for client in clients.data:
            analysed = await self._analyse(owner_id, client, threshold, now)
            if analysed is not None:
                inactive.append(analysed)

        logger.info(
            f"Inactivity scan: owner={owner_id} clients={len(clients.data)} "
            f"inactive={len(inactive)}"
        )
        return inactive

    async def is_client_inactive(self, owner_id: str, client_id: str) -> InactiveClient | None:
        """Le client s'il est inactif, sinon None."""
        result = await self._db.get_client(owner_id, client_id)
        if not result.ok:
            raise ResolutionError(
                f"Erreur lors du chargement du client : {result.error.message}",
                code=result.error.code,
            )
        if result.first is None:
            return None

        now = self._clock()
        threshold = now - timedelta(days=self.config.days_threshold)
        return await self._analyse(owner_id, result.first, threshold, now)

    async def activity_report(self, owner_id: str) -> ActivityReport:
        clients = await self._db.list_clients(owner_id)
        if not clients.ok:
            raise ResolutionError(
                f"Erreur lors du chargement des clients : {clients.error.message}",
                code=clients.error.code,
            )
        inactive = await self.detect(owner_id)
        total = len(clients.data)
        return ActivityReport(
            total_clients=total,
            active_clients=total - len(inactive),
            inactive_clients=len(inactive),
            inactive_clients_list=inactive,
        )

    # ──────────────────────────────────────────────────────
    # ANALYSE
    # ──────────────────────────────────────────────────────

    async def _analyse(
        self,
        owner_id: str,
        client: dict[str, Any],
        threshold: datetime,
        now: datetime,
    ) -> InactiveClient | None:
        client_id = str(client.get("id", ""))
        signals = await self._collect_signals(owner_id, client_id, threshold)

        reason = self.classify(signals.recent_communication, signals.recent_project_work)
        if reason is None:
            return None

        created_at = normalize_date(client.get("created_at"))
        known = [
            ts for ts in (
                signals.last_communication,
                signals.last_project_activity,
                signals.last_task_activity,
            )
            if ts is not None
        ]
        reference = max(known) if known else created_at
        days = days_between(reference, now) if reference else self.config.days_threshold

        return InactiveClient(
            id=client_id,
            name=client.get("name") or "",
            email=client.get("email") or "",
            company=client.get("company") or "",
            created_at=created_at,
            last_communication=signals.last_communication,
            last_project_activity=signals.last_project_activity,
            days_since_last_activity=days,
            inactivity_reason=reason,
        )

    def classify(
        self,
        recent_communication: bool,
        recent_project_work: bool,
    ) -> InactivityReason | None:
        """Raison d'inactivité, ou None si le client est actif."""
        missing_comm = self.config.check_communications and not recent_communication
        missing_work = self.config.check_project_work and not recent_project_work

        if missing_comm and missing_work:
            return InactivityReason.BOTH
        if missing_comm:
            return InactivityReason.NO_COMMUNICATION
        if missing_work:
            return InactivityReason.NO_PROJECT_WORK
        return None

    async def _collect_signals(
        self,
        owner_id: str,
        client_id: str,
        threshold: datetime,
    ) -> _Signals:
        signals = _Signals()

        if self.config.check_communications:
            recent = await self._db.latest_communication(owner_id, client_id, since=threshold)
            if recent.ok and recent.first:
                signals.recent_communication = True
                signals.last_communication = normalize_date(recent.first.get("created_at"))
            else:
                self._warn(recent, "communications", client_id)
                last = await self._db.latest_communication(owner_id, client_id)
                if last.ok and last.first:
                    signals.last_communication = normalize_date(last.first.get("created_at"))

        if self.config.check_project_work:
            recent = await self._db.latest_project_update(owner_id, client_id, since=threshold)
            if recent.ok and recent.first:
                signals.recent_project_work = True
                signals.last_project_activity = normalize_date(recent.first.get("updated_at"))
            else:
                self._warn(recent, "projects", client_id)
                last = await self._db.latest_project_update(owner_id, client_id)
                if last.ok and last.first:
                    signals.last_project_activity = normalize_date(last.first.get("updated_at"))

            tasks = await self._db.latest_task_update(owner_id, client_id, since=threshold)
            if tasks.ok and tasks.first:
                signals.recent_project_work = True
                signals.last_task_activity = normalize_date(tasks.first.get("updated_at"))
            else:
                self._warn(tasks, "tasks", client_id)

        return signals

    @staticmethod
    def _warn(result: Any, signal: str, client_id: str) -> None:
        if not result.ok:
            logger.warning(f"Activity check on {signal} failed for client {client_id}: {result.error}")
