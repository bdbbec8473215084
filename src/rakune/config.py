"""Project configuration loaded from YAML and validated with pydantic."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_NAME = "rakune.yaml"


class ConfigError(RuntimeError):
    """Raised when the configuration file is missing or invalid."""


class SectionModel(BaseModel):
    """Base model with strict field handling."""

    model_config = ConfigDict(extra="forbid")


class ProjectSettings(SectionModel):
    repo_root: str = "."
    language: Optional[str] = None


class BuildSettings(SectionModel):
    command: List[str] = Field(default_factory=lambda: ["cargo", "build"])
    lint_command: Optional[List[str]] = Field(default_factory=lambda: ["cargo", "fmt"])
    error_marker: str = "error"
    timeout: Optional[float] = None

    @field_validator("command")
    @classmethod
    def _command_not_empty(cls, value: List[str]) -> List[str]:
        if not value or not str(value[0]).strip():
            raise ValueError("build.command must name an executable")
        return value

    @field_validator("lint_command")
    @classmethod
    def _empty_lint_is_none(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return value or None


class LoopSettings(SectionModel):
    max_cycles: int = Field(default=5, ge=1)
    max_parse_attempts: int = Field(default=3, ge=1)
    context_lines: int = Field(default=10, ge=0)
    commit: bool = False


class ModelSettings(SectionModel):
    backend: Literal["ollama", "responses"] = "ollama"
    model: str = "codellama:7b-instruct"
    endpoint: Optional[str] = None
    timeout: float = Field(default=120.0, gt=0)
    api_key: Optional[str] = None


class PathSettings(SectionModel):
    logs: Optional[str] = "data/logs"


class RakuneConfig(SectionModel):
    """Top-level configuration document."""

    project: ProjectSettings = Field(default_factory=ProjectSettings)
    build: BuildSettings = Field(default_factory=BuildSettings)
    loop: LoopSettings = Field(default_factory=LoopSettings)
    models: ModelSettings = Field(default_factory=ModelSettings)
    paths: PathSettings = Field(default_factory=PathSettings)

    # Set by the loader; not part of the YAML document.
    config_dir: Path = Field(default_factory=Path.cwd, exclude=True)

    def repo_root(self) -> Path:
        root = Path(self.project.repo_root)
        if not root.is_absolute():
            root = self.config_dir / root
        return root.resolve()

    def logs_root(self) -> Optional[Path]:
        if not self.paths.logs:
            return None
        logs = Path(self.paths.logs)
        if not logs.is_absolute():
            logs = self.repo_root() / logs
        return logs


def default_config_document() -> dict[str, Any]:
    """Return the default configuration as a plain mapping for ``init``."""
    return RakuneConfig().model_dump(mode="json", exclude={"config_dir"})


def _apply_env_overrides(config: RakuneConfig, env: Mapping[str, str]) -> None:
    raw = env.get("RAKUNE_MAX_CYCLES")
    if raw is None:
        return
    try:
        parsed = int(raw.strip())
    except ValueError as error:
        raise ConfigError(f"RAKUNE_MAX_CYCLES must be an integer, got {raw!r}") from error
    if parsed <= 0:
        raise ConfigError(f"RAKUNE_MAX_CYCLES must be positive, got {parsed}")
    config.loop.max_cycles = parsed


def parse_config(
    data: Mapping[str, Any],
    *,
    config_dir: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> RakuneConfig:
    """Validate an already-loaded mapping."""
    try:
        config = RakuneConfig.model_validate(dict(data))
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration: {error}") from error
    config.config_dir = Path(config_dir or Path.cwd()).resolve()
    _apply_env_overrides(config, os.environ if env is None else env)
    return config


def load_config(config_path: Path | str, *, env: Mapping[str, str] | None = None) -> RakuneConfig:
    """Load YAML configuration from disk."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {path}: {error}") from error
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")
    return parse_config(data, config_dir=path.resolve().parent, env=env)


def write_config(config_path: Path | str, document: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(document), handle, sort_keys=False)


__all__ = [
    "BuildSettings",
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "LoopSettings",
    "ModelSettings",
    "PathSettings",
    "ProjectSettings",
    "RakuneConfig",
    "default_config_document",
    "load_config",
    "parse_config",
    "write_config",
]
