"""Agent registry loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from pydantic import ValidationError

from .models import DEFAULT_AGENT_CONFIGS, AgentConfig, AgentKind


class AgentConfigError(RuntimeError):
    """Raised when agent override files cannot be parsed."""


class AgentUnavailableError(AgentConfigError):
    """Raised when a disabled agent kind is requested."""


class AgentRegistry:
    """Static registry of agent kinds, optionally overridden by YAML files on disk.

    Each YAML document maps agent kind ids to partial configs, e.g.::

        codex:
          available: true
          args: ["--full-auto"]
    """

    def __init__(
        self,
        search_paths: Iterable[Path] | None = None,
        *,
        overrides: Mapping[AgentKind, AgentConfig] | None = None,
    ) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]
        self._configs: dict[AgentKind, AgentConfig] = dict(DEFAULT_AGENT_CONFIGS)
        self._configs.update(self._load_files())
        if overrides:
            self._configs.update(overrides)

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def _load_files(self) -> dict[AgentKind, AgentConfig]:
        """Merge YAML overrides; later search paths win when kinds collide."""

        loaded: dict[AgentKind, AgentConfig] = {}
        errors: list[str] = []

        for base in self._search_paths:
            for path in sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")):
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue
                if not isinstance(document, dict):
                    errors.append(f"Agent file {path} must contain a mapping of agent ids")
                    continue

                for raw_kind, raw_config in document.items():
                    try:
                        kind = AgentKind(str(raw_kind))
                    except ValueError:
                        errors.append(f"Unknown agent kind '{raw_kind}' in {path}")
                        continue

                    if raw_config is not None and not isinstance(raw_config, dict):
                        errors.append(f"Agent '{raw_kind}' in {path} must be a mapping")
                        continue

                    base_config = loaded.get(kind, DEFAULT_AGENT_CONFIGS[kind])
                    merged: dict[str, Any] = base_config.model_dump()
                    merged.update(raw_config or {})
                    try:
                        loaded[kind] = AgentConfig.model_validate(merged)
                    except ValidationError as exc:
                        errors.append(f"Agent validation error in {path}: {exc}")

        if errors:
            raise AgentConfigError("; ".join(errors))

        return loaded

    def all(self) -> dict[AgentKind, AgentConfig]:
        return dict(self._configs)

    def get(self, kind: AgentKind | str) -> AgentConfig:
        """Return the config for a kind, whether or not it is available."""

        try:
            return self._configs[AgentKind(kind)]
        except ValueError as exc:
            raise AgentConfigError(f"Unknown agent kind '{kind}'") from exc

    def require_available(self, kind: AgentKind | str) -> AgentConfig:
        """Return the config for a kind, raising if it is disabled."""

        config = self.get(kind)
        if not config.available:
            raise AgentUnavailableError(f"Agent {config.name} is not yet available")
        return config


__all__ = ["AgentConfigError", "AgentRegistry", "AgentUnavailableError"]
