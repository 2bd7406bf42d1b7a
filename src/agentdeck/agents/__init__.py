"""Agent kinds and registry exports."""

from .loader import AgentConfigError, AgentRegistry, AgentUnavailableError
from .models import DEFAULT_AGENT_CONFIGS, AgentConfig, AgentKind

__all__ = [
    "AgentConfig",
    "AgentConfigError",
    "AgentKind",
    "AgentRegistry",
    "AgentUnavailableError",
    "DEFAULT_AGENT_CONFIGS",
]
