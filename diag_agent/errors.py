"""Exception types raised across the diagnostic agent."""

from __future__ import annotations


class DiagnosticAgentError(Exception):
    """Base class for agent errors."""


class InvalidTurnError(DiagnosticAgentError, ValueError):
    """A turn was submitted without usable query text."""


class UnroutableEnvironmentError(DiagnosticAgentError, ValueError):
    """An environment with no backend tier reached a backend call."""

    def __init__(self, environment) -> None:
        super().__init__(f"No backend tier for environment {environment!r}")
        self.environment = environment


class StartupError(DiagnosticAgentError, RuntimeError):
    """Required credentials or storage are unavailable at startup."""
