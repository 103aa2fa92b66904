"""
Clyra Executor — Le pont entre une règle et le monde réel.

L'orchestrateur DÉCIDE qui est ciblé. L'Executor FAIT.

Flux :
  ActionSpec + ExecutionPayload → ActionExecutor.execute() → Adapter → Supabase / Resend

Tout est loggé. Une action qui plante devient un échec, jamais une exception.
"""

from executor.engine import ActionExecutor, NOT_IMPLEMENTED

__all__ = [
    "ActionExecutor",
    "NOT_IMPLEMENTED",
]
