"""
Utilitaires partagés : dates, conversions sûres, textes.

Les lignes Supabase arrivent avec des timestamps ISO (avec ou sans
fuseau), des nombres en chaînes et des champs NULL : tout est
normalisé ici avant d'entrer dans les modèles.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from dateutil import parser as dateutil_parser


# ──────────────────────────────────────────────
# DATES
# ──────────────────────────────────────────────


def normalize_date(
    value: Any,
    default: Optional[datetime] = None,
) -> Optional[datetime]:
    """Timestamp quelconque → datetime UTC aware (ou `default`)."""
    if value is None:
        return default
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and not value.strip():
        return default
    if isinstance(value, (int, float)):
        try:
            if value > 1e12:
                value = value / 1000
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return default
    if isinstance(value, str):
        try:
            parsed = dateutil_parser.parse(value)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
        except (ValueError, OverflowError):
            return default
    return default


def normalize_day(value: Any) -> Optional[date]:
    """Date seule (sans heure), pour les comparaisons au jour près."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return dateutil_parser.parse(value).date()
        except (ValueError, OverflowError):
            return None
    return None


def days_between(earlier: datetime, later: datetime) -> int:
    """Jours entiers écoulés (arrondi inférieur, jamais négatif)."""
    if later <= earlier:
        return 0
    return int((later - earlier).total_seconds() // 86400)


def meeting_duration_minutes(start: datetime, end: Optional[datetime]) -> int:
    """Durée d'une réunion en minutes (0 si fin absente ou incohérente)."""
    if end is None or end <= start:
        return 0
    return round((end - start).total_seconds() / 60)


# ──────────────────────────────────────────────
# CONVERSIONS SÛRES
# ──────────────────────────────────────────────


def safe_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.strip()
        for char in ("€", "$", "£", "\u00a0", " ", "%"):
            cleaned = cleaned.replace(char, "")
        if not cleaned:
            return default
        if "," in cleaned and "." in cleaned:
            if cleaned.rfind(",") > cleaned.rfind("."):
                cleaned = cleaned.replace(".", "").replace(",", ".")
            else:
                cleaned = cleaned.replace(",", "")
        elif "," in cleaned:
            parts = cleaned.split(",")
            if len(parts) == 2 and len(parts[1]) <= 2:
                cleaned = cleaned.replace(",", ".")
            else:
                cleaned = cleaned.replace(",", "")
        try:
            return float(cleaned)
        except ValueError:
            return default
    return default


def safe_int(value: Any, default: int = 0) -> int:
    return int(round(safe_float(value, float(default))))


def format_amount(value: Any) -> str:
    """Montant pour l'affichage : 2500.0 → "2500", None → "0"."""
    amount = safe_float(value)
    return str(int(amount)) if amount.is_integer() else str(amount)


# ──────────────────────────────────────────────
# TEXTE
# ──────────────────────────────────────────────


def text_or(value: Any, placeholder: str = "") -> str:
    """Chaîne non vide, sinon le placeholder. Jamais None."""
    if value is None:
        return placeholder
    text = str(value).strip()
    return text or placeholder
