"""
AutomationRun — Le cœur du système.

Machine à états d'UNE exécution de règle :

    IDLE → RESOLVING → {NO_CANDIDATES | CANDIDATES_READY}
         → EXECUTING → {COMPLETED | HARD_FAILURE}

Responsabilités :
  1. Vérifier la configuration et l'identité (fatal si absentes)
  2. Résoudre les candidats via le TriggerResolver
  3. Gérer la sélection (manuelle ou balayage automatique)
  4. Normaliser les actions UNE fois, construire les payloads
  5. Exécuter chaque (candidat, action) dans l'ordre déclaré
  6. Enregistrer le run UNE fois, terminer par le résumé

Design decisions :
  - UN seul champ `state`, jamais de drapeaux booléens combinés
  - Ordre strict : l'action N+1 démarre après la fin de l'await de
    l'action N et voit donc tout ce que N a committé avant de rendre
    la main. Un effet lancé sans await par N n'est pas couvert.
  - Un échec d'action est compté puis on continue
  - Auth / config / actions illisibles → HARD_FAILURE, compteur intact
  - La dernière ligne du journal est TOUJOURS le résumé
  - project_delayed : un balayage = UN incrément
"""

from __future__ import annotations

import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Protocol

from pydantic import BaseModel, Field

from models.action import ActionResult, ActionSpec
from models.automation import AutomationRule, RuleSnapshot, TriggerType
from models.candidate import TargetCandidate
from models.errors import (
    ActionExecutionError,
    AuthenticationError,
    AutomationError,
    ConfigurationError,
    MalformedActionsError,
    RunStateError,
)
from models.event import RunEvent, RunEventType, RunState
from models.identity import Identity
from models.payload import ExecutionPayload
from models.report import ExecutionReport, LogLevel, LogLine
from executor.engine import ActionExecutor
from services.auth import IdentityProvider
from services.config import Settings, get_settings
from services.supabase import SupabaseClient

from orchestrator.payload import PayloadBuilder, normalize_actions
from orchestrator.recorder import ExecutionRecorder
from orchestrator.resolver import TriggerResolver


logger = logging.getLogger("clyra.orchestrator")


# ══════════════════════════════════════════════════════════════
# PROTOCOLS — Collaborateurs dont le run a besoin
# ══════════════════════════════════════════════════════════════


class ActionExecutorProtocol(Protocol):
    """Exécute une action. Ne doit pas lever, ne doit pas muter le payload."""

    async def execute(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult: ...


class IdentityProviderProtocol(Protocol):

    async def current_user(self) -> Identity | None: ...


RunListener = Callable[[RunEvent], Awaitable[None] | None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunSnapshot(BaseModel):
    """Vue figée d'un run pour une couche de présentation."""
    run_id: str
    rule: AutomationRule
    state: RunState
    candidates: list[TargetCandidate] = Field(default_factory=list)
    selected_id: str | None = None
    can_execute: bool = False
    report: ExecutionReport


# ══════════════════════════════════════════════════════════════
# RUN
# ══════════════════════════════════════════════════════════════


class AutomationRun:
    """
    Une exécution de règle, observable.

    Usage :
        run = AutomationRun(rule, db, executor=ActionExecutor(db))
        run.subscribe(print)

        await run.open()
        if run.state is RunState.CANDIDATES_READY:
            await run.select(candidate_id)      # meeting_reminder / generic
            report = await run.execute()
    """

    def __init__(
        self,
        rule: AutomationRule,
        db: SupabaseClient,
        executor: ActionExecutorProtocol | None = None,
        identity: IdentityProviderProtocol | None = None,
        resolver: TriggerResolver | None = None,
        builder: PayloadBuilder | None = None,
        recorder: ExecutionRecorder | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or _utcnow
        self._db = db
        self.rule = rule

        self._executor = executor or ActionExecutor(db)
        self._identity = identity or IdentityProvider(db)
        self._resolver = resolver or TriggerResolver(db, self._settings, clock=self._clock)
        self._builder = builder or PayloadBuilder(self._settings)
        self._recorder = recorder or ExecutionRecorder(db)

        self._listeners: list[RunListener] = []
        self._state = RunState.IDLE
        self._report = ExecutionReport(rule_id=rule.id)
        self._candidates: list[TargetCandidate] = []
        self._selected: TargetCandidate | None = None
        self._user: Identity | None = None

    # ──────────────────────────────────────────────────────
    # ÉTAT
    # ──────────────────────────────────────────────────────

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def trigger(self) -> TriggerType:
        return self.rule.trigger

    @property
    def report(self) -> ExecutionReport:
        return self._report

    @property
    def candidates(self) -> list[TargetCandidate]:
        return list(self._candidates)

    @property
    def selected(self) -> TargetCandidate | None:
        return self._selected

    @property
    def can_execute(self) -> bool:
        """Prêt + (balayage automatique OU exactement un candidat sélectionné)."""
        if self._state is not RunState.CANDIDATES_READY:
            return False
        return self.trigger.is_sweep or self._selected is not None

    def snapshot(self) -> RunSnapshot:
        return RunSnapshot(
            run_id=self._report.run_id,
            rule=self.rule,
            state=self._state,
            candidates=list(self._candidates),
            selected_id=self._selected.id if self._selected else None,
            can_execute=self.can_execute,
            report=self._report.model_copy(deep=True),
        )

    def subscribe(self, listener: RunListener) -> Callable[[], None]:
        """Abonne un observateur. Retourne la fonction de désabonnement."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ──────────────────────────────────────────────────────
    # OPEN — IDLE → RESOLVING → NO_CANDIDATES | CANDIDATES_READY
    # ──────────────────────────────────────────────────────

    async def open(self) -> RunState:
        """Réinitialise le run, vérifie config + identité, résout les candidats."""
        if self._state in (RunState.RESOLVING, RunState.EXECUTING):
            raise RunStateError(f"Run déjà en cours ({self._state.value})")

        self._report = ExecutionReport(rule_id=self.rule.id)
        self._candidates = []
        self._selected = None
        self._user = None
        await self._transition(RunState.IDLE)

        await self._log(f"🚀 Démarrage de l'automatisation : {self.rule.name}")
        logger.info(f"Opening run {self._report.run_id} for automation {self.rule.id} ({self.trigger.value})")

        try:
            self._check_configuration()
            self._user = await self._authenticate()
        except AutomationError as e:
            await self._abort(e)
            return self._state

        await self._transition(RunState.RESOLVING)
        resolution = await self._resolver.resolve(self.trigger, self._user.id)
        for line in resolution.lines:
            await self._append(line)

        self._candidates = list(resolution.candidates)
        if resolution.error:
            logger.warning(f"Run {self._report.run_id}: resolution failed: {resolution.error}")
        await self._emit(
            RunEventType.CANDIDATES_RESOLVED,
            candidate_count=len(self._candidates),
            payload={"error": resolution.error} if resolution.error else {},
        )

        if not self._candidates:
            await self._transition(RunState.NO_CANDIDATES)
            await self._finish()
            return self._state

        await self._transition(RunState.CANDIDATES_READY)
        if self.trigger.is_sweep:
            await self._log("▶️ Prêt à exécuter sur tous les candidats détectés")
        return self._state

    # ──────────────────────────────────────────────────────
    # SELECT
    # ──────────────────────────────────────────────────────

    async def select(self, candidate_id: str | None) -> TargetCandidate | None:
        """Sélectionne exactement un candidat (None → désélection)."""
        if self._state is not RunState.CANDIDATES_READY:
            raise RunStateError(f"Sélection impossible dans l'état {self._state.value}")

        if candidate_id is None:
            self._selected = None
            return None

        for candidate in self._candidates:
            if candidate.id == candidate_id:
                self._selected = candidate
                await self._log(f"🎯 Sélectionné : {candidate.display_label or candidate.id}")
                return candidate

        raise RunStateError(f"Candidat introuvable : {candidate_id}")

    # ──────────────────────────────────────────────────────
    # EXECUTE — EXECUTING → COMPLETED | HARD_FAILURE
    # ──────────────────────────────────────────────────────

    async def execute(self) -> ExecutionReport:
        """
        Exécute les actions de la règle sur les cibles.

        Séquence :
          1. Re-vérifier l'identité
          2. Normaliser les actions (une fois)
          3. Pour chaque cible, chaque action dans l'ordre
          4. Enregistrer le run (une fois)
          5. Résumé
        """
        if not self.can_execute:
            if self._state is RunState.CANDIDATES_READY:
                raise RunStateError("Sélectionnez un candidat avant d'exécuter")
            raise RunStateError(f"Exécution impossible dans l'état {self._state.value}")

        await self._transition(RunState.EXECUTING)
        await self._log(f"🔄 Exécution de l'automatisation : {self.rule.name}")

        try:
            user = await self._authenticate()
            actions = normalize_actions(self.rule.actions)
        except (AuthenticationError, MalformedActionsError) as e:
            await self._abort(e)
            return self._report

        self._user = user
        snapshot = self.rule.snapshot(actions)
        targets = self._targets()
        await self._log(f"⚙️ {len(actions)} action(s) × {len(targets)} cible(s)")

        for candidate in targets:
            await self._process(candidate, snapshot, actions, user)

        self.rule = await self._recorder.record(self.rule, self._clock())
        await self._finish()
        return self._report

    def _targets(self) -> list[TargetCandidate]:
        """Cibles selon le déclencheur."""
        if self.trigger is TriggerType.PROJECT_DELAYED:
            return list(self._candidates)
        if self.trigger is TriggerType.CLIENT_INACTIVE and self._selected is None:
            return list(self._candidates)
        return [self._selected] if self._selected is not None else []

    async def _process(
        self,
        candidate: TargetCandidate,
        snapshot: RuleSnapshot,
        actions: list[ActionSpec],
        user: Identity,
    ) -> None:
        """Toutes les actions d'un candidat, strictement dans l'ordre."""
        payload = self._builder.build(candidate, snapshot, user, execution_id=self._report.run_id)
        await self._log(f"👤 Cible : {candidate.display_label or candidate.id}")

        for index, action in enumerate(actions, start=1):
            await self._log(f"⚙️ Action {index}/{len(actions)} : {action.label}")
            result = await self._invoke(action, payload)

            if result.success:
                self._report.success_count += 1
                await self._log(f"✅ {result.message or action.label}", LogLevel.SUCCESS)
            else:
                self._report.error_count += 1
                await self._log(f"❌ {action.label} : {result.detail}", LogLevel.ERROR)

        self._report.candidates_processed += 1

    async def _invoke(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        """Un executor qui lève = une action en échec, jamais un run avorté."""
        try:
            return await self._executor.execute(action, payload)
        except Exception as e:
            error = ActionExecutionError(action.type, f"{type(e).__name__}: {e}", raw_error=e)
            logger.exception(f"Executor raised on {action.type} (execution {payload.execution_id})")
            return ActionResult.failed(action.type, "Erreur pendant l'exécution", error.message)

    # ──────────────────────────────────────────────────────
    # HELPERS
    # ──────────────────────────────────────────────────────

    def _check_configuration(self) -> None:
        if not self._db.is_connected:
            raise ConfigurationError(
                "Supabase non configuré - Impossible d'exécuter l'automatisation"
            )

    async def _authenticate(self) -> Identity:
        user = await self._identity.current_user()
        if user is None:
            raise AuthenticationError("Utilisateur non authentifié")
        return user

    async def _abort(self, error: AutomationError) -> None:
        logger.error(f"Run {self._report.run_id} aborted: {type(error).__name__}: {error.message}")
        await self._log(f"❌ {error.message}", LogLevel.ERROR)
        await self._transition(RunState.HARD_FAILURE)
        await self._finish()

    async def _finish(self) -> None:
        """Résumé en dernière ligne, puis run_completed."""
        level = LogLevel.SUCCESS if self._report.error_count == 0 else LogLevel.WARNING
        if self._state is RunState.HARD_FAILURE:
            level = LogLevel.ERROR
        if self._state is RunState.EXECUTING:
            await self._transition(RunState.COMPLETED)

        await self._log(self._report.summary_message, level)
        self._report.completed_at = self._clock()

        logger.info(
            f"Run {self._report.run_id} {self._state.value}: "
            f"{self._report.success_count} ok, {self._report.error_count} error(s)"
        )
        await self._emit(RunEventType.RUN_COMPLETED, payload=self._report.summary)

    async def _log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        line = self._report.append(message, level)
        await self._emit(RunEventType.LOG_APPENDED, line=line)

    async def _append(self, line: LogLine) -> None:
        self._report.lines.append(line)
        await self._emit(RunEventType.LOG_APPENDED, line=line)

    async def _transition(self, state: RunState) -> None:
        previous = self._state
        self._state = state
        logger.debug(f"Run {self._report.run_id}: {previous.value} → {state.value}")
        await self._emit(RunEventType.STATE_CHANGED, payload={"previous": previous.value})

    async def _emit(self, event_type: RunEventType, **fields: Any) -> None:
        if not self._listeners:
            return
        event = RunEvent(
            type=event_type,
            run_id=self._report.run_id,
            rule_id=self.rule.id,
            state=self._state,
            **fields,
        )
        for listener in list(self._listeners):
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception(f"Run listener failed on {event_type.value}")


# ══════════════════════════════════════════════════════════════
# RACCOURCI
# ══════════════════════════════════════════════════════════════


async def run_automation(
    rule: AutomationRule,
    db: SupabaseClient,
    candidate_id: str | None = None,
    executor: ActionExecutorProtocol | None = None,
    identity: IdentityProviderProtocol | None = None,
    listeners: Iterable[RunListener] = (),
    settings: Settings | None = None,
) -> ExecutionReport:
    """
    Ouvre, sélectionne (si demandé), exécute, retourne le journal.

    Lève RunStateError si le déclencheur exige une sélection
    et qu'aucun candidate_id n'est fourni.
    """
    run = AutomationRun(rule, db, executor=executor, identity=identity, settings=settings)
    for listener in listeners:
        run.subscribe(listener)

    state = await run.open()
    if state.is_terminal:
        return run.report

    if candidate_id is not None:
        await run.select(candidate_id)
    return await run.execute()
