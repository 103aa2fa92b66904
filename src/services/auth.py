"""
IdentityProvider — Qui invoque l'exécution ?

Résout le propriétaire à partir du JWT de session configuré
(ou passé explicitement) via Supabase Auth.
`current_user()` retourne None si personne n'est authentifié.
"""

from __future__ import annotations

import logging

from models.identity import Identity
from services.config import get_settings
from services.supabase import SupabaseClient


logger = logging.getLogger("clyra.auth")


class IdentityProvider:
    """Fournit l'utilisateur courant."""

    def __init__(
        self,
        db: SupabaseClient,
        access_token: str | None = None,
    ) -> None:
        self._db = db
        self._access_token = (
            access_token if access_token is not None else get_settings().supabase_access_token
        )

    async def current_user(self) -> Identity | None:
        if not self._access_token:
            logger.debug("No access token configured")
            return None

        user = await self._db.get_auth_user(self._access_token)
        if user is None or not user.get("id"):
            return None

        return Identity(
            id=user["id"],
            email=user.get("email") or "",
            metadata=user.get("user_metadata") or {},
        )


class StaticIdentityProvider:
    """Identité fixe (jobs planifiés avec clé service, scripts)."""

    def __init__(self, identity: Identity | None) -> None:
        self._identity = identity

    async def current_user(self) -> Identity | None:
        return self._identity
