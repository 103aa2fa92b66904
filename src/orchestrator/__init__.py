"""
Clyra Orchestrator — Du déclencheur au verdict.

5 modules :
  - resolver.py  → Quels candidats sont éligibles maintenant ?
  - enricher.py  → Ligne brute → candidat affichable
  - payload.py   → Normalisation des actions + payloads
  - recorder.py  → Compteurs de la règle
  - engine.py    → AutomationRun, la machine à états
"""

from orchestrator.engine import AutomationRun, RunSnapshot, run_automation
from orchestrator.enricher import EnrichmentError, EntityEnricher
from orchestrator.payload import PayloadBuilder, normalize_actions
from orchestrator.recorder import ExecutionRecorder
from orchestrator.resolver import Resolution, TriggerResolver

__all__ = [
    "AutomationRun",
    "RunSnapshot",
    "run_automation",
    "EntityEnricher",
    "EnrichmentError",
    "PayloadBuilder",
    "normalize_actions",
    "ExecutionRecorder",
    "Resolution",
    "TriggerResolver",
]
