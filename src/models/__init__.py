"""
Clyra Models — Le vocabulaire de l'orchestrateur.

  AutomationRule   → règle stockée (déclencheur + actions)
  TargetCandidate  → entité éligible (union taguée par trigger_type)
  ExecutionPayload → contexte remis à chaque action
  ActionSpec       → une action déclarée
  ActionResult     → verdict d'une action
  ExecutionReport  → journal ordonné d'un run
  RunEvent         → ce qu'une couche de présentation observe
  SentimentAnalysis, ProposalDraft, ... → réponses typées des actions IA
"""

from models.action import ActionLog, ActionResult, ActionSpec
from models.ai import (
    PricingRecommendation,
    ProposalDraft,
    SentimentAnalysis,
    TaskPrioritization,
)
from models.automation import AutomationRule, RuleSnapshot, TriggerType
from models.candidate import (
    ClientCandidate,
    ContactInfo,
    DelayedProjectCandidate,
    InactiveClientCandidate,
    InactivityReason,
    MeetingCandidate,
    TargetCandidate,
    candidate_adapter,
)
from models.errors import (
    ActionExecutionError,
    AuthenticationError,
    AutomationError,
    ConfigurationError,
    MalformedActionsError,
    PersistenceError,
    ResolutionError,
    RunStateError,
)
from models.event import RunEvent, RunEventType, RunState
from models.identity import Identity
from models.payload import ExecutionPayload, MeetingDetails, OverdueProjectDetails
from models.report import ExecutionReport, LogLevel, LogLine

__all__ = [
    # Rules
    "AutomationRule",
    "RuleSnapshot",
    "TriggerType",
    # Candidates
    "TargetCandidate",
    "MeetingCandidate",
    "InactiveClientCandidate",
    "DelayedProjectCandidate",
    "ClientCandidate",
    "ContactInfo",
    "InactivityReason",
    "candidate_adapter",
    # Execution
    "ActionSpec",
    "ActionResult",
    "ActionLog",
    "ExecutionPayload",
    "MeetingDetails",
    "OverdueProjectDetails",
    "Identity",
    "ExecutionReport",
    "LogLevel",
    "LogLine",
    "RunEvent",
    "RunEventType",
    "RunState",
    # AI
    "SentimentAnalysis",
    "ProposalDraft",
    "PricingRecommendation",
    "TaskPrioritization",
    # Errors
    "AutomationError",
    "ConfigurationError",
    "AuthenticationError",
    "ResolutionError",
    "MalformedActionsError",
    "ActionExecutionError",
    "PersistenceError",
    "RunStateError",
]
