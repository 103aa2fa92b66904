"""
ExecutionReport — Le journal d'une exécution.

Append-only, ordonné. Chaque ligne a un niveau (info, success,
warning, error) : succès et erreurs sont visuellement distincts.

La dernière ligne d'un run terminé donne TOUJOURS le verdict :
nombre d'actions réussies et nombre d'erreurs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class LogLine(BaseModel):
    """Une ligne du journal d'exécution."""
    level: LogLevel = LogLevel.INFO
    message: str
    timestamp: datetime = Field(default_factory=_utcnow)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return self.message


class ExecutionReport(BaseModel):
    """Journal + compteurs agrégés d'une exécution."""
    run_id: str = Field(default_factory=lambda: str(uuid4()))
    rule_id: str = ""
    lines: list[LogLine] = Field(default_factory=list)
    success_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    candidates_processed: int = Field(default=0, ge=0)
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None

    def append(self, message: str, level: LogLevel = LogLevel.INFO) -> LogLine:
        line = LogLine(level=level, message=message)
        self.lines.append(line)
        return line

    @property
    def total_actions(self) -> int:
        return self.success_count + self.error_count

    @property
    def summary_message(self) -> str:
        return (
            f"📊 Résumé : {self.success_count} action(s) réussie(s), "
            f"{self.error_count} erreur(s)"
        )

    @property
    def messages(self) -> list[str]:
        return [line.message for line in self.lines]

    def lines_at(self, level: LogLevel) -> list[LogLine]:
        return [line for line in self.lines if line.level == level]

    @property
    def summary(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "rule_id": self.rule_id,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "candidates_processed": self.candidates_processed,
            "lines": len(self.lines),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
