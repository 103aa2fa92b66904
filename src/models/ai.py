"""
Résultats structurés des actions IA.

Chaque modèle décrit le JSON attendu du LLM. Les champs ont tous une
valeur par défaut : une réponse partielle reste exploitable, une réponse
hors schéma (type incompatible) est rejetée par le parser.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator


def _lowered(value: object) -> object:
    return value.strip().lower() if isinstance(value, str) else value


# ──────────────────────────────────────────────────────
# SENTIMENT
# ──────────────────────────────────────────────────────


class SentimentAnalysis(BaseModel):
    sentiment: Literal["positive", "negative", "neutral"] = "neutral"
    confidence: float = Field(default=0.5, ge=0, le=1)
    urgency: Literal["low", "medium", "high"] = "low"
    keywords: list[str] = Field(default_factory=list)
    summary: str = "Analyse non disponible"
    action_required: bool = False
    suggested_response: str | None = None

    @field_validator("sentiment", "urgency", mode="before")
    @classmethod
    def _lower_labels(cls, value: object) -> object:
        return _lowered(value)

    @property
    def confidence_pct(self) -> int:
        return round(self.confidence * 100)

    @property
    def needs_follow_up(self) -> bool:
        return self.action_required and self.sentiment == "negative"


# ──────────────────────────────────────────────────────
# PROPOSITION
# ──────────────────────────────────────────────────────


class BudgetLine(BaseModel):
    item: str
    cost: float = Field(default=0, ge=0)
    description: str = ""


class ProposalDraft(BaseModel):
    title: str = ""
    executive_summary: str = "Proposition professionnelle personnalisée"
    scope_of_work: list[str] = Field(
        default_factory=lambda: ["Réalisation du projet selon le brief"]
    )
    timeline: str = "À définir selon le périmètre"
    budget_breakdown: list[BudgetLine] = Field(default_factory=list)
    total_budget: float = Field(default=0, ge=0)
    terms_and_conditions: list[str] = Field(
        default_factory=lambda: ["Paiement 50 % au démarrage, 50 % à la livraison", "2 révisions incluses"]
    )
    next_steps: list[str] = Field(
        default_factory=lambda: ["Relire la proposition", "Réunion de lancement", "Démarrage du projet"]
    )


# ──────────────────────────────────────────────────────
# PRIX
# ──────────────────────────────────────────────────────


class PriceRange(BaseModel):
    min: float = Field(default=800, ge=0)
    max: float = Field(default=1200, ge=0)


class PricingRecommendation(BaseModel):
    recommended_price: float = Field(default=1000, ge=0)
    price_range: PriceRange = Field(default_factory=PriceRange)
    reasoning: list[str] = Field(
        default_factory=lambda: ["Prix fondé sur la complexité et l'expérience"]
    )
    confidence: float = Field(default=0.7, ge=0, le=1)
    market_position: Literal["competitive", "premium", "budget"] = "competitive"

    @field_validator("market_position", mode="before")
    @classmethod
    def _lower_position(cls, value: object) -> object:
        return _lowered(value)

    @property
    def confidence_pct(self) -> int:
        return round(self.confidence * 100)


# ──────────────────────────────────────────────────────
# PRIORISATION
# ──────────────────────────────────────────────────────


class PrioritizedTask(BaseModel):
    id: str
    title: str = ""
    priority_score: float = Field(default=0, ge=0, le=100)
    priority_level: Literal["high", "medium", "low"] = "medium"
    reasoning: str = ""
    suggested_order: int = 0

    @field_validator("priority_level", mode="before")
    @classmethod
    def _lower_level(cls, value: object) -> object:
        return _lowered(value)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value


class WorkloadAnalysis(BaseModel):
    total_estimated_hours: float = Field(default=0, ge=0)
    critical_path: list[str] = Field(default_factory=list)
    bottlenecks: list[str] = Field(default_factory=list)


class TaskPrioritization(BaseModel):
    prioritized_tasks: list[PrioritizedTask] = Field(default_factory=list)
    workload_analysis: WorkloadAnalysis = Field(default_factory=WorkloadAnalysis)
