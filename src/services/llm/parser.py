"""
ResponseParser — Réponse LLM → modèle Pydantic.

Les LLMs retournent du texte, les actions IA veulent des données typées.
On extrait le premier objet JSON puis on le valide.

Usage :
    parser = ResponseParser()
    analysis = parser.parse_as(response.content, SentimentAnalysis)
"""

from __future__ import annotations

import json
import re
from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError


T = TypeVar("T", bound=BaseModel)

_CODE_BLOCK = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


class ParseError(Exception):
    """Réponse LLM inexploitable."""

    def __init__(self, message: str, raw_content: str = "") -> None:
        self.raw_content = raw_content
        super().__init__(message)


class ResponseParser:
    """Extraction JSON tolérante + validation Pydantic."""

    def extract_json(self, content: str) -> dict[str, Any] | list[Any]:
        """
        Premier JSON valide du contenu.

        Essaie dans l'ordre : JSON pur, code block markdown,
        première sous-chaîne {...} / [...], puis sans virgules finales.
        """
        content = (content or "").strip()
        attempts = [content]

        block = _CODE_BLOCK.search(content)
        if block:
            attempts.append(block.group(1).strip())

        substring = self._find_json_substring(content)
        if substring:
            attempts.append(substring)
            attempts.append(_TRAILING_COMMA.sub(r"\1", substring))

        for candidate in attempts:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                continue

        raise ParseError(
            f"Aucun JSON valide dans la réponse ({len(content)} caractères)",
            raw_content=content,
        )

    def parse_as(self, content: str, model: Type[T]) -> T:
        """Parse un objet JSON et le valide contre `model`."""
        data = self.extract_json(content)
        if not isinstance(data, dict):
            raise ParseError(
                f"Objet JSON attendu, reçu {type(data).__name__}",
                raw_content=content,
            )
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ParseError(
                f"Réponse invalide pour {model.__name__} : {e.errors()[0]['msg']}",
                raw_content=content,
            )

    @staticmethod
    def _find_json_substring(content: str) -> str | None:
        """Premier objet (ou tableau) équilibré du texte."""
        for start_char, end_char in (("{", "}"), ("[", "]")):
            start = content.find(start_char)
            if start == -1:
                continue
            depth = 0
            for i in range(start, len(content)):
                if content[i] == start_char:
                    depth += 1
                elif content[i] == end_char:
                    depth -= 1
                    if depth == 0:
                        return content[start : i + 1]
        return None
