"""
Messaging Adapter — Emails aux clients (ou au propriétaire).

Toutes les communications sortantes passent par ici.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from models.action import ActionResult, ActionSpec
from models.payload import ExecutionPayload
from executor.templating import render_template
from services.notifications import NotificationService
from services.supabase import SupabaseClient


logger = logging.getLogger("clyra.executor.messaging")

DEFAULT_COMPANY = "Mon Entreprise"
DEFAULT_POSITION = "Directeur de projets"

ONBOARDING_TRIGGER = "client_onboarding"
ONBOARDING_SUBJECT = "Bienvenue chez {{user_company}} !"
ONBOARDING_TEMPLATE = """
<p>Bonjour {{client_name}},</p>
<p>Nous sommes ravis de vous accueillir chez {{user_company}}. Nous avons hâte de démarrer cette collaboration et de vous aider à atteindre vos objectifs.</p>
<p>Pour que votre arrivée se passe au mieux, voici les premières étapes :</p>
<ol>
  <li><strong>Planifier un appel de bienvenue :</strong> nous aimerions mieux connaître vos besoins et répondre à vos questions.</li>
  <li><strong>Parcourir notre documentation :</strong> elle vous présente nos services et notre façon de travailler.</li>
</ol>
<p>Pour toute question, écrivez-moi directement à {{user_email}} ou appelez le <b>{{user_phone}}</b>.</p>
<p>Au plaisir de travailler ensemble !</p>
<p>Bien cordialement,<br>{{user_name}}<br>{{user_position}}<br>{{user_company}}</p>
"""


def _truthy(value: Any) -> bool:
    """`to_user` peut arriver en booléen ou en chaîne depuis le JSON."""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


class MessagingAdapter:
    """
    Adapter de messaging.

    Délègue à NotificationService pour l'envoi réel.
    Ajoute le rendu des templates et la trace dans client_communications.
    """

    def __init__(
        self,
        db: SupabaseClient,
        notification_service: NotificationService | None = None,
    ) -> None:
        self._db = db
        self._notif = notification_service or NotificationService()

    # ──────────────────────────────────────────────────────
    # EMAIL
    # ──────────────────────────────────────────────────────

    async def send_email(self, action: ActionSpec, payload: ExecutionPayload) -> ActionResult:
        """Envoie un email templatisé au client (ou au propriétaire si `to_user`)."""
        params = dict(action.parameters)
        if params.get("trigger") == ONBOARDING_TRIGGER:
            params["subject"] = ONBOARDING_SUBJECT
            params["template"] = ONBOARDING_TEMPLATE

        if not params.get("subject") or not params.get("template"):
            return ActionResult.failed(
                action.type,
                "Paramètres requis manquants : subject et template",
                "Missing required parameters",
            )

        company, phone = await self._sender_details(payload.user.id)

        variables: dict[str, Any] = payload.template_variables()
        variables.update({
            "user_company": company,
            "user_phone": phone,
            "user_position": DEFAULT_POSITION,
        })
        variables.update(params.get("variables") or {})

        subject = render_template(params["subject"], variables)
        content = render_template(params["template"], variables)

        send_to_user = _truthy(params.get("to_user"))
        recipient = payload.user.email if send_to_user else payload.client.email
        if not recipient:
            return ActionResult.failed(
                action.type,
                "Aucun email valide pour le destinataire",
                "Missing recipient email",
            )

        communication_id = await self._record_communication(payload, subject, content)

        record = await self._notif.send_email(
            to=recipient,
            subject=subject,
            html=content,
            from_name=str(variables.get("user_name") or "") or None,
        )
        if not record.sent:
            return ActionResult.failed(
                action.type,
                f"Erreur lors de l'envoi de l'email : {record.error or record.status.value}",
                record.error,
            )

        return ActionResult.ok(
            action.type,
            f'Email "{subject}" envoyé à {recipient}',
            {
                "communication_id": communication_id,
                "recipient": recipient,
                "subject": subject,
                "provider_id": record.provider_id,
                "sent_to_user": send_to_user,
            },
        )

    # ──────────────────────────────────────────────────────
    # HELPERS
    # ──────────────────────────────────────────────────────

    async def _sender_details(self, owner_id: str) -> tuple[str, str]:
        """Entreprise + téléphone : company_settings, puis profiles."""
        settings = await self._db.get_company_settings(owner_id)
        if settings.ok and settings.first:
            row = settings.first
            return (row.get("company_name") or DEFAULT_COMPANY, row.get("phone") or "")

        profile = await self._db.get_profile(owner_id)
        if profile.ok and profile.first:
            row = profile.first
            return (row.get("company") or DEFAULT_COMPANY, row.get("phone") or "")

        return (DEFAULT_COMPANY, "")

    async def _record_communication(
        self,
        payload: ExecutionPayload,
        subject: str,
        content: str,
    ) -> str | None:
        """Trace l'email dans client_communications. Best effort."""
        result = await self._db.insert_communication({
            "user_id": payload.user.id,
            "client_id": payload.client.id or None,
            "type": "email",
            "subject": subject,
            "content": content,
            "status": "sent",
            "created_at": datetime.now(timezone.utc).isoformat(),
        })
        if not result.ok:
            logger.warning(f"Communication not recorded: {result.error}")
            return None
        return str(result.first["id"]) if result.first and "id" in result.first else None
