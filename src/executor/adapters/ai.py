"""
AI Adapter — Actions assistées par LLM.

  analyze_sentiment     → sentiment d'un message client (+ tâche urgente si négatif)
  generate_ai_proposal  → brouillon de proposition commerciale
  optimize_pricing      → prix recommandé (notification au propriétaire)
  prioritize_tasks_ai   → repriorisation des tâches ouvertes

Design decisions :
  - Prompt → LLMClient.complete_structured → ResponseParser.parse_as
  - Fournisseur indisponible ou réponse inexploitable = action en échec
  - Les écritures de suivi (communication, proposition) sont best effort
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Type, TypeVar

from pydantic import BaseModel

from models.action import ActionResult, ActionSpec
from models.ai import (
    BudgetLine,
    PricingRecommendation,
    ProposalDraft,
    SentimentAnalysis,
    TaskPrioritization,
)
from models.payload import ExecutionPayload
from executor.templating import render_template
from services.llm import LLMClient, ParseError, ResponseParser
from services.supabase import SupabaseClient
from services.utils import format_amount, safe_float, safe_int


logger = logging.getLogger("clyra.executor.ai")

T = TypeVar("T", bound=BaseModel)
Clock = Callable[[], datetime]

OPEN_TASK_STATUSES = ["pending", "in_progress"]


# ══════════════════════════════════════════════════════════════
# PROMPTS
# ══════════════════════════════════════════════════════════════

SENTIMENT_SYSTEM = """Tu es expert en analyse de sentiment pour les échanges entre un freelance et ses clients.
Analyse le ton, les émotions et l'urgence. Structure attendue :
{"sentiment": "positive|negative|neutral", "confidence": 0.0-1.0, "urgency": "low|medium|high",
 "keywords": ["mot1", "mot2"], "summary": "résumé en 30 mots", "action_required": true/false,
 "suggested_response": "suggestion si action_required"}"""

SENTIMENT_PROMPT = """Analyse ce message du client {{client_name}} :

Texte : "{{text}}"
{{context}}"""

PROPOSAL_SYSTEM = """Tu rédiges des propositions commerciales pour freelances : détaillées, professionnelles, convaincantes.
Structure attendue :
{"title": "titre", "executive_summary": "résumé", "scope_of_work": ["tâche1", "tâche2"],
 "timeline": "calendrier", "budget_breakdown": [{"item": "poste", "cost": 0, "description": "desc"}],
 "total_budget": 0, "terms_and_conditions": ["condition1"], "next_steps": ["étape1"]}"""

PROPOSAL_PROMPT = """Rédige une proposition professionnelle :

Client : {{client_name}}
Type : {{project_type}}
Brief : {{client_brief}}
{{budget}}
{{timeline}}
{{requirements}}
{{user_expertise}}"""

PRICING_SYSTEM = """Tu es consultant en tarification pour freelances.
Recommande un prix fondé sur la valeur, le marché et l'expérience. Structure attendue :
{"recommended_price": 0, "price_range": {"min": 0, "max": 0}, "reasoning": ["raison1"],
 "confidence": 0.0-1.0, "market_position": "competitive|premium|budget"}"""

PRICING_PROMPT = """Optimise le prix de ce projet :

Type : {{project_type}}
Périmètre : {{project_scope}}
Complexité : {{complexity}}
Délai : {{timeline}}
Mon expérience : {{user_experience}}
{{client_budget}}
{{average_rate}}"""

TASKS_SYSTEM = """Tu es expert en gestion de projet pour freelances.
Priorise les tâches selon les échéances, l'impact et les dépendances. Structure attendue :
{"prioritized_tasks": [{"id": "...", "title": "...", "priority_score": 0-100,
  "priority_level": "high|medium|low", "reasoning": "...", "suggested_order": 1}],
 "workload_analysis": {"total_estimated_hours": 0, "critical_path": ["..."], "bottlenecks": ["..."]}}"""

TASKS_PROMPT = """Priorise ces tâches :

Tâches : {{tasks}}
Charge hebdomadaire : {{workload}} h
{{priorities}}"""


class LLMUnavailable(Exception):
    """Aucun fournisseur n'a produit de réponse."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _param(params: dict[str, Any], *keys: str) -> Any:
    """Premier paramètre renseigné parmi les alias (camelCase stocké ou snake_case)."""
    for key in keys:
        value = params.get(key)
        if value not in (None, "", []):
            return value
    return None


def _line(label: str, value: Any) -> str:
    return f"{label} : {value}" if value not in (None, "", []) else ""


class AIAdapter:
    """Chaque méthode reçoit (ActionSpec, ExecutionPayload) et retourne un ActionResult."""

    def __init__(
        self,
        db: SupabaseClient,
        llm: LLMClient | None = None,
        parser: ResponseParser | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._db = db
        self._llm = llm or LLMClient()
        self._parser = parser or ResponseParser()
        self._clock = clock or _utcnow

    # ──────────────────────────────────────────────────────
    # SENTIMENT
    # ──────────────────────────────────────────────────────

    async def analyze_sentiment(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        """Analyse un message client ; négatif + action requise → tâche urgente."""
        params = action.parameters
        text = _param(params, "text")
        if not text:
            return ActionResult.failed(action.type, "Le texte à analyser est requis", "MISSING_TEXT")

        prompt = render_template(SENTIMENT_PROMPT, {
            "client_name": payload.client.name,
            "text": str(text),
            "context": _line("Contexte", params.get("context")),
        })
        try:
            analysis = await self._ask(SENTIMENT_SYSTEM, prompt, SentimentAnalysis, max_tokens=300)
        except (LLMUnavailable, ParseError) as e:
            return self._failed(action, "Erreur lors de l'analyse de sentiment IA", e)

        record_id = await self._record_sentiment(payload, str(text), analysis)
        task_id = None
        if analysis.needs_follow_up:
            task_id = await self._create_follow_up_task(payload, analysis)

        return ActionResult.ok(
            action.type,
            f"Analyse terminée : {analysis.sentiment} ({analysis.confidence_pct}% de confiance)",
            {
                **analysis.model_dump(),
                "record_id": record_id,
                "task_id": task_id,
            },
        )

    async def _record_sentiment(
        self,
        payload: ExecutionPayload,
        text: str,
        analysis: SentimentAnalysis,
    ) -> str | None:
        result = await self._db.insert_communication({
            "user_id": payload.user.id,
            "client_id": payload.client.id or None,
            "type": "sentiment_analysis",
            "content": text,
            "sentiment_score": analysis.confidence,
            "sentiment_label": analysis.sentiment,
            "keywords": analysis.keywords,
            "metadata": {
                "urgency": analysis.urgency,
                "summary": analysis.summary,
                "actionRequired": analysis.action_required,
                "suggestedResponse": analysis.suggested_response,
                "automationId": payload.rule.id,
            },
        })
        if not result.ok:
            logger.warning(f"Sentiment analysis not recorded: {result.error}")
            return None
        return (result.first or {}).get("id")

    async def _create_follow_up_task(self, payload: ExecutionPayload, analysis: SentimentAnalysis) -> str | None:
        description = (
            f"Sentiment négatif détecté ({analysis.confidence_pct}% de confiance).\n\n"
            f"Résumé : {analysis.summary}\n\n"
            f"Suggestion : {analysis.suggested_response or 'Contacter le client rapidement'}"
        )
        result = await self._db.insert_task({
            "user_id": payload.user.id,
            "title": f"🚨 Client à recontacter : {payload.client.name}",
            "description": description,
            "priority": "high",
            "category": "client_management",
            "due_date": (self._clock() + timedelta(hours=24)).isoformat(),
            "status": "pending",
        })
        if not result.ok:
            logger.warning(f"Follow-up task not created: {result.error}")
            return None
        return (result.first or {}).get("id")

    # ──────────────────────────────────────────────────────
    # PROPOSAL
    # ──────────────────────────────────────────────────────

    async def generate_ai_proposal(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        """Génère un brouillon de proposition et l'enregistre."""
        params = action.parameters
        brief = _param(params, "clientBrief", "client_brief")
        if not brief:
            return ActionResult.failed(action.type, "Le brief du client est requis", "MISSING_BRIEF")

        budget = _param(params, "budget")
        requirements = _param(params, "requirements") or []
        prompt = render_template(PROPOSAL_PROMPT, {
            "client_name": payload.client.name,
            "project_type": _param(params, "projectType", "project_type") or "consulting",
            "client_brief": str(brief),
            "budget": f"Budget indicatif : {format_amount(budget)} €" if budget else "",
            "timeline": _line("Délai", params.get("timeline")),
            "requirements": _line("Exigences", ", ".join(map(str, requirements))),
            "user_expertise": _line("Mon expertise", _param(params, "userExpertise", "user_expertise")),
        })
        try:
            draft = await self._ask(PROPOSAL_SYSTEM, prompt, ProposalDraft, max_tokens=800, temperature=0.4)
        except (LLMUnavailable, ParseError) as e:
            return self._failed(action, "Erreur lors de la génération de la proposition IA", e)

        draft = self._complete_draft(draft, payload.client.name, safe_float(budget))
        proposal_id = await self._record_proposal(payload, draft)

        return ActionResult.ok(
            action.type,
            f'Proposition "{draft.title}" générée automatiquement',
            {
                "proposal_id": proposal_id,
                "title": draft.title,
                "budget": draft.total_budget,
                "scope": f"{len(draft.scope_of_work)} éléments",
                "timeline": draft.timeline,
                "proposal": draft.model_dump(),
            },
        )

    @staticmethod
    def _complete_draft(draft: ProposalDraft, client_name: str, budget: float) -> ProposalDraft:
        """Titre, total et ventilation par défaut quand le LLM les omet."""
        total = draft.total_budget or budget or 1000
        updates: dict[str, Any] = {"total_budget": total}
        if not draft.title:
            updates["title"] = f"Proposition pour {client_name}"
        if not draft.budget_breakdown:
            updates["budget_breakdown"] = [
                BudgetLine(item="Réalisation", cost=total, description="Travail principal")
            ]
        return draft.model_copy(update=updates)

    async def _record_proposal(self, payload: ExecutionPayload, draft: ProposalDraft) -> str | None:
        content = draft.model_dump(exclude={"title", "total_budget"})
        content.update({"generated_by_ai": True, "automation_id": payload.rule.id})
        result = await self._db.insert_proposal({
            "user_id": payload.user.id,
            "client_id": payload.client.id or None,
            "title": draft.title,
            "description": draft.executive_summary,
            "total_amount": draft.total_budget,
            "currency": "EUR",
            "status": "draft",
            "content": json.dumps(content, ensure_ascii=False),
            "created_at": self._clock().isoformat(),
        })
        if not result.ok:
            logger.warning(f"Proposal not recorded: {result.error}")
            return None
        return (result.first or {}).get("id")

    # ──────────────────────────────────────────────────────
    # PRICING
    # ──────────────────────────────────────────────────────

    async def optimize_pricing(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        """Recommande un prix et notifie le propriétaire."""
        params = action.parameters
        project_type = _param(params, "projectType", "project_type")
        project_scope = _param(params, "projectScope", "project_scope")
        if not project_type or not project_scope:
            return ActionResult.failed(
                action.type,
                "Le type et le périmètre du projet sont requis",
                "MISSING_PROJECT_DATA",
            )

        client_budget = _param(params, "clientBudget", "client_budget")
        market = _param(params, "marketData", "market_data")
        average_rate = _param(market, "averageRate", "average_rate") if isinstance(market, dict) else None
        prompt = render_template(PRICING_PROMPT, {
            "project_type": str(project_type),
            "project_scope": str(project_scope),
            "complexity": params.get("complexity") or "medium",
            "timeline": params.get("timeline") or "4 à 6 semaines",
            "user_experience": _param(params, "userExperience", "user_experience") or "mid",
            "client_budget": f"Budget client : {format_amount(client_budget)} €" if client_budget else "",
            "average_rate": f"Tarif moyen du marché : {format_amount(average_rate)} €" if average_rate else "",
        })
        try:
            pricing = await self._ask(PRICING_SYSTEM, prompt, PricingRecommendation, max_tokens=400, temperature=0.3)
        except (LLMUnavailable, ParseError) as e:
            return self._failed(action, "Erreur lors de l'optimisation du prix IA", e)

        price = format_amount(pricing.recommended_price)
        result = await self._db.insert_notification({
            "user_id": payload.user.id,
            "title": f"💰 Prix optimisé pour {payload.client.name}",
            "message": (
                f"L'IA recommande {price} € ({pricing.market_position}). "
                f"Fourchette : {format_amount(pricing.price_range.min)} € - "
                f"{format_amount(pricing.price_range.max)} €"
            ),
            "type": "pricing_recommendation",
            "is_read": False,
            "action_data": {
                "clientId": payload.client.id,
                "automationId": payload.rule.id,
                "pricingData": pricing.model_dump(),
            },
        })
        if not result.ok:
            logger.warning(f"Pricing notification not created: {result.error}")

        return ActionResult.ok(
            action.type,
            f"Prix optimisé : {price} € (confiance : {pricing.confidence_pct}%)",
            pricing.model_dump(),
        )

    # ──────────────────────────────────────────────────────
    # TASK PRIORITIZATION
    # ──────────────────────────────────────────────────────

    async def prioritize_tasks_ai(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        """Repriorise les tâches ouvertes du propriétaire."""
        params = action.parameters
        owner_id = payload.user.id

        tasks = await self._db.list_open_tasks(owner_id, OPEN_TASK_STATUSES)
        if not tasks.ok or not tasks.data:
            return ActionResult.failed(action.type, "Aucune tâche à prioriser", "NO_TASKS_FOUND")

        hours = safe_int(_param(params, "estimatedHours", "estimated_hours"), default=2) or 2
        originals = {str(task["id"]): task for task in tasks.data if task.get("id") is not None}
        listed = [
            {
                "id": task_id,
                "title": task.get("title"),
                "description": task.get("description"),
                "deadline": task.get("due_date"),
                "estimatedHours": hours,
            }
            for task_id, task in originals.items()
        ]
        priorities = _param(params, "priorities") or []
        prompt = render_template(TASKS_PROMPT, {
            "tasks": json.dumps(listed, ensure_ascii=False),
            "workload": str(safe_int(params.get("workload"), default=40) or 40),
            "priorities": _line("Priorités particulières", ", ".join(map(str, priorities))),
        })
        try:
            plan = await self._ask(TASKS_SYSTEM, prompt, TaskPrioritization, max_tokens=600, temperature=0.2)
        except (LLMUnavailable, ParseError) as e:
            return self._failed(action, "Erreur lors de la priorisation IA", e)

        updated = 0
        for task in plan.prioritized_tasks:
            original = originals.get(task.id)
            if original is None:
                logger.warning(f"Ignoring unknown task id from LLM: {task.id}")
                continue
            note = f"🤖 IA : {task.reasoning}"
            description = f"{original['description']}\n\n{note}" if original.get("description") else note
            result = await self._db.update_task(
                owner_id, task.id, {"priority": task.priority_level, "description": description}
            )
            if result.ok:
                updated += 1
            else:
                logger.warning(f"Task {task.id} not updated: {result.error}")

        return ActionResult.ok(
            action.type,
            f"{updated} tâche(s) repriorisée(s) par l'IA",
            {
                "prioritized_tasks": [t.model_dump() for t in plan.prioritized_tasks],
                "workload_analysis": plan.workload_analysis.model_dump(),
                "updated_count": updated,
            },
        )

    # ──────────────────────────────────────────────────────
    # HELPERS
    # ──────────────────────────────────────────────────────

    async def _ask(
        self,
        system: str,
        prompt: str,
        model: Type[T],
        max_tokens: int,
        temperature: float = 0.1,
    ) -> T:
        response = await self._llm.complete_structured(
            prompt,
            system=system,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not response.success:
            raise LLMUnavailable(response.error or "Réponse IA vide")
        return self._parser.parse_as(response.content, model)

    @staticmethod
    def _failed(action: ActionSpec, message: str, error: Exception) -> ActionResult:
        logger.warning(f"{action.type} failed: {type(error).__name__}: {error}")
        return ActionResult.failed(action.type, message, str(error))

