"""
Clyra Services — Clients partagés.

UN client, UNE config, partagé partout.
Aucun module ne crée sa propre connexion.

Modules :
  - config.py          → Settings centralisés (.env → Pydantic)
  - log.py             → Configuration du logging (json / text)
  - supabase.py        → Client Supabase + requêtes typées
  - auth.py            → Utilisateur courant (Supabase Auth)
  - activity.py        → Détection des clients inactifs
  - notifications.py   → Resend (email)
  - llm/              → Client LLM + parsing des réponses (actions IA)
"""

from services.config import Settings, get_settings
from services.log import configure_logging
from services.supabase import DataError, QueryResult, SupabaseClient
from services.auth import IdentityProvider, StaticIdentityProvider
from services.activity import ActivityDetectionConfig, ClientActivityDetector, InactiveClient
from services.notifications import NotificationService
from services.llm import LLMClient, LLMResponse, ResponseParser

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "DataError",
    "QueryResult",
    "SupabaseClient",
    "IdentityProvider",
    "StaticIdentityProvider",
    "ActivityDetectionConfig",
    "ClientActivityDetector",
    "InactiveClient",
    "NotificationService",
    "LLMClient",
    "LLMResponse",
    "ResponseParser",
]
