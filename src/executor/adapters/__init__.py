"""
Clyra Executor Adapters.

Chaque adapter encapsule UNE catégorie d'actions :
  - messaging.py → Email (Resend) + trace client_communications
  - workspace.py → Tâches, statut projet, notifications internes
  - ai.py        → Sentiment, propositions, prix, priorisation (LLM)
"""

from executor.adapters.ai import AIAdapter
from executor.adapters.messaging import MessagingAdapter
from executor.adapters.workspace import WorkspaceAdapter

__all__ = [
    "AIAdapter",
    "MessagingAdapter",
    "WorkspaceAdapter",
]
