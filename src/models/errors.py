"""
Erreurs de l'orchestrateur.

`recoverable` dit si le run continue (True) ou s'arrête (False).
"""

from __future__ import annotations

from typing import Optional


class AutomationError(Exception):
    def __init__(
        self,
        message: str,
        recoverable: bool = True,
        raw_error: Optional[Exception] = None,
    ):
        self.message = message
        self.recoverable = recoverable
        self.raw_error = raw_error
        super().__init__(message)


class ConfigurationError(AutomationError):
    """Base de données non configurée ou injoignable."""

    def __init__(self, message: str = "Supabase non configuré", raw_error: Optional[Exception] = None):
        super().__init__(message, recoverable=False, raw_error=raw_error)


class AuthenticationError(AutomationError):
    """Aucun utilisateur authentifié."""

    def __init__(self, message: str = "Utilisateur non authentifié", raw_error: Optional[Exception] = None):
        super().__init__(message, recoverable=False, raw_error=raw_error)


class ResolutionError(AutomationError):
    """Une requête de résolution des candidats a échoué."""

    def __init__(self, message: str, code: str = "", raw_error: Optional[Exception] = None):
        self.code = code
        super().__init__(message, recoverable=True, raw_error=raw_error)


class MalformedActionsError(AutomationError):
    """Les actions de la règle ne sont pas exploitables."""

    def __init__(self, message: str, raw_error: Optional[Exception] = None):
        super().__init__(message, recoverable=False, raw_error=raw_error)


class ActionExecutionError(AutomationError):
    """Une action a levé une exception."""

    def __init__(self, action_type: str, message: str, raw_error: Optional[Exception] = None):
        self.action_type = action_type
        super().__init__(f"[{action_type}] {message}", recoverable=True, raw_error=raw_error)


class PersistenceError(AutomationError):
    """La mise à jour des compteurs a échoué."""

    def __init__(self, message: str, raw_error: Optional[Exception] = None):
        super().__init__(message, recoverable=True, raw_error=raw_error)


class RunStateError(AutomationError):
    """Opération impossible dans l'état courant du run."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=True)
