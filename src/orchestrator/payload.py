"""
Payload Builder — (candidat, règle) → ExecutionPayload.

Deux responsabilités :
  1. normalize_actions() : UNE seule normalisation des actions
     (JSON sérialisé, liste ou objet unique), UN seul chemin d'erreur
  2. PayloadBuilder.build() : UN payload par candidat, avec les
     champs propres au déclencheur (réunion, projet en retard)

Le match sur le variant du candidat est fait ICI et nulle part ailleurs.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from models.action import ActionSpec
from models.automation import RuleSnapshot
from models.candidate import (
    ClientCandidate,
    DelayedProjectCandidate,
    InactiveClientCandidate,
    MeetingCandidate,
    TargetCandidate,
)
from models.errors import MalformedActionsError
from models.identity import Identity
from models.payload import ExecutionPayload, MeetingDetails, OverdueProjectDetails
from services.config import Settings
from services.utils import format_amount

from orchestrator.enricher import EntityEnricher


logger = logging.getLogger("clyra.payload")


def normalize_actions(raw: Any) -> list[ActionSpec]:
    """
    Normalise la valeur `actions` d'une règle.

    Accepte :
      - une chaîne JSON (liste ou objet)
      - une liste de dicts ou d'ActionSpec
      - un dict seul (une action)

    Lève MalformedActionsError si la valeur est illisible,
    vide, ou si une entrée n'a pas de `type`.
    """
    value = raw
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")

    if isinstance(value, str):
        if not value.strip():
            raise MalformedActionsError("Aucune action configurée")
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise MalformedActionsError(f"Format des actions invalide : {e.msg}", raw_error=e)

    if isinstance(value, (dict, ActionSpec)):
        value = [value]

    if not isinstance(value, list):
        raise MalformedActionsError(
            f"Format des actions invalide : {type(value).__name__} reçu, liste attendue"
        )
    if not value:
        raise MalformedActionsError("Aucune action configurée")

    actions: list[ActionSpec] = []
    for index, entry in enumerate(value, start=1):
        if isinstance(entry, ActionSpec):
            actions.append(entry)
            continue
        if not isinstance(entry, dict):
            raise MalformedActionsError(
                f"Action #{index} invalide : {type(entry).__name__} reçu, objet attendu"
            )
        if not entry.get("type"):
            raise MalformedActionsError(f"Action #{index} sans type")
        try:
            actions.append(ActionSpec.model_validate(entry))
        except ValidationError as e:
            raise MalformedActionsError(f"Action #{index} invalide : {e.errors()[0]['msg']}", raw_error=e)

    return actions


class PayloadBuilder:
    """
    Construit les payloads d'exécution.

    Usage :
        builder = PayloadBuilder(settings)
        payload = builder.build(candidate, snapshot, user)
    """

    def __init__(self, settings: Settings | None = None, enricher: EntityEnricher | None = None) -> None:
        self._enricher = enricher or EntityEnricher(settings)

    def build(
        self,
        candidate: TargetCandidate,
        rule: RuleSnapshot,
        user: Identity,
        execution_id: str | None = None,
    ) -> ExecutionPayload:
        meeting: MeetingDetails | None = None
        project: OverdueProjectDetails | None = None

        match candidate:
            case MeetingCandidate():
                meeting = MeetingDetails(
                    meeting_title=candidate.title or "Réunion programmée",
                    meeting_date=candidate.meeting_date or "À confirmer",
                    meeting_time=candidate.meeting_time or "À confirmer",
                    meeting_location=candidate.location or candidate.meeting_url or "À confirmer",
                    project_name=candidate.project_name or "Réunion générale",
                )
            case DelayedProjectCandidate():
                project = OverdueProjectDetails(
                    project_id=candidate.id,
                    project_name=candidate.name,
                    days_overdue=candidate.days_overdue,
                    end_date=self._enricher.format_date(candidate.end_date),
                    project_status=candidate.status,
                    budget=format_amount(candidate.budget),
                )
            case InactiveClientCandidate() | ClientCandidate():
                pass
            case _:
                raise TypeError(f"Candidat non supporté : {type(candidate).__name__}")

        payload = ExecutionPayload(
            candidate=candidate,
            client=candidate.contact,
            rule=rule,
            user=user,
            execution_id=execution_id or str(uuid4()),
            meeting=meeting,
            project=project,
        )
        logger.debug(
            f"Payload {payload.execution_id} built for {rule.trigger_type.value} "
            f"candidate {candidate.id}"
        )
        return payload
