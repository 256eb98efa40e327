"""Utility functions and classes."""

from .logger import AgentLogger, agent_logger, console
from .state import SessionState

__all__ = [
    "AgentLogger",
    "agent_logger",
    "console",
    "SessionState",
]
