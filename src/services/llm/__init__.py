"""
Clyra LLM — Client multi-fournisseur pour les actions IA.

2 modules :
  - client.py → Connexion, retry, fallback, token tracking
  - parser.py → Extraction JSON, validation Pydantic
"""

from services.llm.client import LLMClient, LLMResponse
from services.llm.parser import ParseError, ResponseParser

__all__ = [
    "LLMClient",
    "LLMResponse",
    "ParseError",
    "ResponseParser",
]
