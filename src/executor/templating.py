"""Remplacement des variables `{{nom}}` dans les textes d'actions."""

from __future__ import annotations

import re
from typing import Mapping

_PLACEHOLDER = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")


def render_template(text: str | None, variables: Mapping[str, object]) -> str:
    """
    Remplace chaque `{{clé}}` connue par sa valeur.

    Les clés inconnues restent telles quelles.
    """
    if not text:
        return ""

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(substitute, str(text))
