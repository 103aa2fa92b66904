"""
TriggerResolver — Quels candidats sont éligibles MAINTENANT ?

Un résolveur par type de déclencheur :
  meeting_reminder → réunions confirmées/planifiées des 30 prochains jours
  client_inactive  → ClientActivityDetector (30 jours, 2 signaux)
  project_delayed  → projets actifs dont end_date < aujourd'hui
  generic          → tous les clients, avec nb de projets / factures

Design decisions :
  - Lecture seule, sans état : sûr pour des appelants concurrents
  - Ne lève JAMAIS : un échec de requête → liste vide + ligne de diagnostic
  - Un comptage en échec dégrade le compteur à 0, pas la résolution
  - Retourne aussi les lignes de guidage à afficher
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from pydantic import BaseModel, Field

from models.automation import TriggerType
from models.candidate import (
    ClientCandidate,
    DelayedProjectCandidate,
    InactiveClientCandidate,
    MeetingCandidate,
    TargetCandidate,
)
from models.errors import ResolutionError
from models.report import LogLevel, LogLine
from services.activity import ActivityDetectionConfig, ClientActivityDetector
from services.config import Settings, get_settings
from services.supabase import QueryResult, SupabaseClient

from orchestrator.enricher import EnrichmentError, EntityEnricher


logger = logging.getLogger("clyra.resolver")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Resolution(BaseModel):
    """Candidats résolus + lignes de journal associées."""
    trigger_type: TriggerType
    candidates: list[TargetCandidate] = Field(default_factory=list)
    lines: list[LogLine] = Field(default_factory=list)
    error: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.candidates

    def log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        self.lines.append(LogLine(level=level, message=message))


class TriggerResolver:
    """
    Résout les candidats d'un déclencheur pour un propriétaire.

    Usage :
        resolver = TriggerResolver(db)
        resolution = await resolver.resolve(TriggerType.GENERIC, owner_id)
    """

    def __init__(
        self,
        db: SupabaseClient,
        settings: Settings | None = None,
        detector: ClientActivityDetector | None = None,
        enricher: EntityEnricher | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._db = db
        self._settings = settings or get_settings()
        self._clock = clock or _utcnow
        self._enricher = enricher or EntityEnricher(self._settings)
        self._detector = detector or ClientActivityDetector(
            db,
            ActivityDetectionConfig(
                days_threshold=self._settings.inactivity_days_threshold,
                check_communications=True,
                check_project_work=True,
            ),
            clock=self._clock,
        )

    async def resolve(self, trigger_type: TriggerType | str, owner_id: str) -> Resolution:
        """Point d'entrée unique. Dispatch par type de déclencheur."""
        trigger = TriggerType.classify(trigger_type)
        resolvers = {
            TriggerType.MEETING_REMINDER: self._meetings,
            TriggerType.CLIENT_INACTIVE: self._inactive_clients,
            TriggerType.PROJECT_DELAYED: self._delayed_projects,
            TriggerType.GENERIC: self._clients,
        }
        resolution = Resolution(trigger_type=trigger)

        try:
            await resolvers[trigger](owner_id, resolution)
        except ResolutionError as e:
            self._fail(resolution, e.message, owner_id, code=e.code)
        except Exception as e:
            logger.exception(f"Unexpected resolution error for {trigger.value}")
            self._fail(resolution, f"Erreur : {type(e).__name__}: {e}", owner_id)

        logger.info(
            f"Resolved {len(resolution.candidates)} candidate(s) "
            f"for trigger={trigger.value} owner={owner_id}"
        )
        return resolution

    # ──────────────────────────────────────────────────────
    # MEETING REMINDER
    # ──────────────────────────────────────────────────────

    async def _meetings(self, owner_id: str, resolution: Resolution) -> None:
        now = self._clock()
        days = self._settings.automation_lookahead_days
        resolution.log("🗓️ Recherche des réunions à venir...")

        result = await self._db.list_upcoming_meetings(
            owner_id,
            start=now,
            end=now + timedelta(days=days),
            statuses=self._settings.meeting_statuses,
        )
        self._raise_on_error(result, "Erreur lors du chargement des réunions")

        meetings: list[MeetingCandidate] = []
        for row in result.data:
            try:
                meetings.append(self._enricher.meeting(row))
            except EnrichmentError as e:
                logger.warning(f"Skipping meeting: {e}")

        if not meetings:
            resolution.log(
                f"⚠️ Aucune réunion programmée pour les {days} prochains jours",
                LogLevel.WARNING,
            )
            resolution.log("📋 Créez des réunions depuis votre calendrier")
            resolution.log("🔧 Seules les réunions avec un client assigné sont affichées")
            return

        resolution.candidates.extend(meetings)
        resolution.log(f"✅ {len(meetings)} réunion(s) trouvée(s)", LogLevel.SUCCESS)
        resolution.log("🎯 Sélectionnez une réunion pour envoyer le rappel")

    # ──────────────────────────────────────────────────────
    # CLIENT INACTIVE
    # ──────────────────────────────────────────────────────

    async def _inactive_clients(self, owner_id: str, resolution: Resolution) -> None:
        resolution.log("🔍 Détection des clients inactifs...")
        inactive = await self._detector.detect(owner_id)

        candidates: list[InactiveClientCandidate] = [
            self._enricher.inactive_client(client) for client in inactive
        ]
        threshold = self._detector.config.days_threshold
        if not candidates:
            resolution.log("✅ Tous vos clients sont actifs", LogLevel.SUCCESS)
            resolution.log(f"📊 Aucun client sans activité depuis {threshold} jours")
            return

        resolution.candidates.extend(candidates)
        resolution.log(
            f"🎯 {len(candidates)} client(s) inactif(s) détecté(s)",
            LogLevel.WARNING,
        )
        resolution.log(
            f"📊 Critères : sans communication OU sans travail sur projet depuis {threshold}+ jours"
        )

    # ──────────────────────────────────────────────────────
    # PROJECT DELAYED
    # ──────────────────────────────────────────────────────

    async def _delayed_projects(self, owner_id: str, resolution: Resolution) -> None:
        today = self._clock().date()
        resolution.log("🔍 Recherche des projets en retard...")

        result = await self._db.list_delayed_projects(
            owner_id,
            before=today,
            statuses=self._settings.delayed_project_statuses,
        )
        self._raise_on_error(result, "Erreur lors de la détection des projets en retard")

        projects: list[DelayedProjectCandidate] = []
        for row in result.data:
            try:
                project = self._enricher.delayed_project(row, today)
            except EnrichmentError as e:
                logger.warning(f"Skipping project: {e}")
                continue
            if project.end_date < today:
                projects.append(project)

        if not projects:
            resolution.log("✅ Tous vos projets sont à jour", LogLevel.SUCCESS)
            resolution.log("📊 Aucun projet en retard détecté")
            return

        resolution.candidates.extend(projects)
        resolution.log(
            f"⚠️ {len(projects)} projet(s) en retard détecté(s)",
            LogLevel.WARNING,
        )

    # ──────────────────────────────────────────────────────
    # GENERIC
    # ──────────────────────────────────────────────────────

    async def _clients(self, owner_id: str, resolution: Resolution) -> None:
        resolution.log("🔍 Chargement des clients disponibles...")

        result = await self._db.list_clients(owner_id)
        self._raise_on_error(result, "Erreur lors du chargement des clients")

        clients: list[ClientCandidate] = []
        for row in result.data:
            client_id = str(row.get("id", ""))
            projects = await self._count(self._db.count_client_projects, owner_id, client_id)
            invoices = await self._count(self._db.count_client_invoices, owner_id, client_id)
            try:
                clients.append(self._enricher.client(row, projects, invoices))
            except EnrichmentError as e:
                logger.warning(f"Skipping client: {e}")

        if not clients:
            resolution.log(
                f"⚠️ Aucun client trouvé pour l'utilisateur {owner_id}",
                LogLevel.WARNING,
            )
            resolution.log("👤 Créez un client depuis la section Clients")
            return

        resolution.candidates.extend(clients)
        resolution.log(f"✅ {len(clients)} client(s) trouvé(s)", LogLevel.SUCCESS)
        resolution.log("👤 Sélectionnez un client pour appliquer l'automatisation")

    @staticmethod
    async def _count(query: Callable, owner_id: str, client_id: str) -> int:
        """Comptage isolé : un échec → 0."""
        try:
            result: QueryResult = await query(owner_id, client_id)
        except Exception as e:
            logger.warning(f"Count failed for client {client_id}: {type(e).__name__}: {e}")
            return 0
        if not result.ok:
            logger.warning(f"Count failed for client {client_id}: {result.error}")
            return 0
        return max(int(result.count or 0), 0)

    # ──────────────────────────────────────────────────────
    # HELPERS
    # ──────────────────────────────────────────────────────

    @staticmethod
    def _raise_on_error(result: QueryResult, context: str) -> None:
        if not result.ok:
            raise ResolutionError(
                f"{context} : {result.error.message}",
                code=result.error.code,
            )

    @staticmethod
    def _fail(resolution: Resolution, message: str, owner_id: str, code: str = "") -> None:
        logger.error(f"Resolution failed for owner {owner_id}: {message} (code={code or 'N/A'})")
        resolution.candidates.clear()
        resolution.error = message
        resolution.log(f"❌ {message}", LogLevel.ERROR)
        resolution.log("🔧 Vérifiez la connexion à la base de données")
