"""
NotificationService — Envoi d'emails via Resend.

Usage :
    from services.notifications import NotificationService

    notif = NotificationService()
    record = await notif.send_email(
        to="client@acme.com",
        subject="Rappel de réunion",
        html="<p>...</p>",
        from_name="Marie Dupont",
    )
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

import httpx
from pydantic import BaseModel, Field

from services.config import Settings, get_settings


logger = logging.getLogger("clyra.notifications")

RESEND_URL = "https://api.resend.com/emails"


# ══════════════════════════════════════════════════════════════
# MODÈLES
# ══════════════════════════════════════════════════════════════


class NotificationStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class NotificationRecord(BaseModel):
    """Trace d'un email envoyé (ou non)."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    status: NotificationStatus
    recipient: str = ""
    subject: str = ""
    provider_id: str | None = None
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None

    @property
    def sent(self) -> bool:
        return self.status == NotificationStatus.SENT


# ══════════════════════════════════════════════════════════════
# SERVICE
# ══════════════════════════════════════════════════════════════


class NotificationService:
    """
    Service d'envoi d'emails.

    Trace chaque envoi. Ne lève jamais : un échec HTTP ou réseau
    devient un NotificationRecord FAILED.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._http = http_client
        self._history: list[NotificationRecord] = []

    @property
    def can_email(self) -> bool:
        return self._settings.has_resend

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_sent": len([n for n in self._history if n.status == NotificationStatus.SENT]),
            "total_failed": len([n for n in self._history if n.status == NotificationStatus.FAILED]),
            "can_email": self.can_email,
        }

    async def send_email(
        self,
        to: str | list[str],
        subject: str,
        html: str,
        from_name: str | None = None,
    ) -> NotificationRecord:
        """
        Envoie un email HTML via Resend.

        Args:
            to: Destinataire(s).
            subject: Sujet (variables déjà remplacées).
            html: Corps HTML.
            from_name: Nom affiché de l'expéditeur.
        """
        recipients = [to] if isinstance(to, str) else list(to)

        if not self.can_email:
            record = NotificationRecord(
                status=NotificationStatus.SKIPPED,
                recipient=", ".join(recipients),
                subject=subject,
                error="Resend non configuré",
            )
            self._history.append(record)
            return record

        sender = self._settings.resend_from_email
        payload: dict[str, Any] = {
            "from": f"{from_name} <{sender}>" if from_name else sender,
            "to": recipients,
            "subject": subject,
            "html": html,
        }
        if self._settings.resend_reply_to:
            payload["reply_to"] = self._settings.resend_reply_to

        try:
            response = await self._post(payload)
            if response.status_code in (200, 201):
                body = response.json() if response.content else {}
                record = NotificationRecord(
                    status=NotificationStatus.SENT,
                    recipient=", ".join(recipients),
                    subject=subject,
                    provider_id=body.get("id") if isinstance(body, dict) else None,
                )
            else:
                record = NotificationRecord(
                    status=NotificationStatus.FAILED,
                    recipient=", ".join(recipients),
                    subject=subject,
                    error=f"HTTP {response.status_code}: {response.text[:200]}",
                )
        except (httpx.HTTPError, ValueError) as e:
            record = NotificationRecord(
                status=NotificationStatus.FAILED,
                recipient=", ".join(recipients),
                subject=subject,
                error=f"{type(e).__name__}: {str(e)}",
            )

        if record.status == NotificationStatus.FAILED:
            logger.warning(f"Email to {record.recipient} failed: {record.error}")

        self._history.append(record)
        return record

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self._settings.resend_api_key}",
            "Content-Type": "application/json",
        }
        timeout = self._settings.resend_timeout_seconds
        if self._http is not None:
            return await self._http.post(RESEND_URL, headers=headers, json=payload, timeout=timeout)
        async with httpx.AsyncClient() as client:
            return await client.post(RESEND_URL, headers=headers, json=payload, timeout=timeout)

    def get_history(self, limit: int = 20) -> list[dict[str, Any]]:
        """Retourne l'historique des envois."""
        return [
            {
                "id": n.id,
                "status": n.status.value,
                "recipient": n.recipient,
                "subject": n.subject,
                "sent_at": n.sent_at.isoformat(),
                "error": n.error,
            }
            for n in self._history[-limit:]
        ]
