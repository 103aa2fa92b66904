"""
Settings — Configuration centralisée.

Toutes les variables d'environnement sont validées ICI.
Aucun os.getenv() ailleurs dans le code.

Usage :
    from services.config import get_settings

    settings = get_settings()
    settings.supabase_url
    settings.automation_lookahead_days
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Environnement d'exécution."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LLMProvider(str, Enum):
    """Fournisseurs LLM supportés pour les actions IA."""
    CLAUDE = "claude"
    OPENAI = "openai"


class Settings(BaseSettings):
    """
    Configuration centralisée de Clyra Automations.

    Charge depuis .env ou variables d'environnement.
    Chaque champ a une valeur par défaut raisonnable pour le dev.
    """

    # ── Environnement ──
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    app_name: str = "clyra-automations"
    app_version: str = "0.1.0"

    # ── Supabase ──
    supabase_url: str = Field(
        default="",
        description="URL du projet Supabase",
    )
    supabase_anon_key: str = Field(
        default="",
        description="Clé anonyme Supabase (publique)",
    )
    supabase_service_key: str = Field(
        default="",
        description="Clé service Supabase (privée, accès complet)",
    )
    supabase_access_token: str = Field(
        default="",
        description="JWT de session du propriétaire qui invoque l'exécution",
    )

    # ── Email (Resend) ──
    resend_api_key: str = Field(default="")
    resend_from_email: str = Field(
        default="noreply@taskelio.app",
        description="Adresse d'envoi (domaine vérifié)",
    )
    resend_reply_to: str = Field(default="")
    resend_timeout_seconds: float = Field(default=30.0, ge=1, le=120)

    # ── LLM : Claude ──
    claude_api_key: str = Field(default="", description="Clé API Anthropic")
    claude_default_model: str = Field(default="claude-sonnet-4-20250514")
    claude_fast_model: str = Field(default="claude-haiku-4-20250514")

    # ── LLM : OpenAI ──
    openai_api_key: str = Field(default="", description="Clé API OpenAI")
    openai_default_model: str = Field(default="gpt-4o-mini")
    openai_fast_model: str = Field(default="gpt-4o-mini")

    # ── LLM : Global ──
    default_llm_provider: LLMProvider = Field(
        default=LLMProvider.OPENAI,
        description="Fournisseur utilisé par les actions IA",
    )
    llm_max_retries: int = Field(default=3, ge=1, le=10)
    llm_retry_delay_seconds: float = Field(default=1.0, ge=0, le=30.0)
    llm_timeout_seconds: float = Field(default=60.0, ge=5, le=600)
    llm_default_temperature: float = Field(default=0.3, ge=0, le=1.0)
    llm_default_max_tokens: int = Field(default=1024, ge=64, le=32768)

    # ── Déclencheurs ──
    automation_lookahead_days: int = Field(
        default=30, ge=1, le=365,
        description="Fenêtre des rappels de réunion (jours à venir)",
    )
    inactivity_days_threshold: int = Field(
        default=30, ge=1, le=365,
        description="Jours sans activité pour considérer un client inactif",
    )
    meeting_statuses: list[str] = Field(
        default_factory=lambda: ["scheduled", "confirmed"],
    )
    delayed_project_statuses: list[str] = Field(
        default_factory=lambda: ["active", "in_progress", "pending"],
    )

    # ── Affichage ──
    display_timezone: str = Field(default="Europe/Madrid")
    display_date_format: str = Field(default="%d/%m/%Y")
    display_time_format: str = Field(default="%H:%M")

    # ── Logging ──
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # ── Validators ──

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in {"json", "text"}:
            raise ValueError("log_format must be 'json' or 'text'")
        return v_lower

    # ── Properties ──

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def has_supabase(self) -> bool:
        return bool(
            self.supabase_url.startswith("https://")
            and (self.supabase_service_key or self.supabase_anon_key)
        )

    @property
    def supabase_key(self) -> str:
        """Clé service si disponible, sinon clé anonyme."""
        return self.supabase_service_key or self.supabase_anon_key

    @property
    def has_resend(self) -> bool:
        return bool(self.resend_api_key)

    @property
    def has_claude(self) -> bool:
        return bool(self.claude_api_key)

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)

    def get_default_model(self, provider: LLMProvider) -> str:
        """Modèle par défaut d'un fournisseur."""
        return {
            LLMProvider.CLAUDE: self.claude_default_model,
            LLMProvider.OPENAI: self.openai_default_model,
        }[provider]

    def get_fast_model(self, provider: LLMProvider) -> str:
        """Modèle rapide/économique d'un fournisseur."""
        return {
            LLMProvider.CLAUDE: self.claude_fast_model,
            LLMProvider.OPENAI: self.openai_fast_model,
        }[provider]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """
    Singleton des settings.

    Chargé une seule fois, mis en cache.
    Usage : from services.config import get_settings
    """
    return Settings()
