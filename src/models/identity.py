"""Identity — Le propriétaire qui invoque une exécution."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class Identity(BaseModel):
    """Utilisateur authentifié (id + email)."""
    id: str
    email: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        """full_name → partie locale de l'email → valeur par défaut."""
        full_name = self.metadata.get("full_name")
        if full_name:
            return str(full_name)
        if self.email:
            return self.email.split("@")[0]
        return "Équipe Clyra"
