"""Configuration loading for Altsync."""

from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

DEFAULT_CONFIG_PATH = Path("config/default.yaml")
LOCAL_CONFIG_PATH = Path("config/local.yaml")
PACKAGED_CONFIG = ("altsync.config", "default.yaml")


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")

    path: Path | None = None
    level: str = Field(default="info")

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().lower()
        if normalized not in {"debug", "info", "warn", "warning", "error", "critical"}:
            raise ValueError(f"Unsupported logging level: {value!r}")
        return normalized


class StorageSettings(BaseModel):
    """Record store configuration."""

    model_config = ConfigDict(extra="forbid")

    path: Path = Path("altsync.sqlite")


class SyncSettings(BaseModel):
    """Limits applied to sync operations and listings."""

    model_config = ConfigDict(extra="forbid")

    batch_limit: int = Field(default=500, ge=1)
    page_size: int = Field(default=50, ge=1)


class AccessSettings(BaseModel):
    """Role assignments consumed by the access policy."""

    model_config = ConfigDict(extra="forbid")

    admins: list[str] = Field(default_factory=list)
    editors: list[str] = Field(default_factory=list)
    authors: list[str] = Field(default_factory=list)
    default_actor: str | None = None

    @field_validator("admins", "editors", "authors", mode="before")
    @classmethod
    def _normalize_actors(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("Role assignments must be a list of actor names.")
        cleaned: list[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ValueError("Actor names must be strings.")
            name = item.strip()
            if name and name not in cleaned:
                cleaned.append(name)
        return cleaned

    @field_validator("default_actor", mode="before")
    @classmethod
    def _normalize_default_actor(cls, value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("default_actor must be a string.")
        return value.strip() or None

    @model_validator(mode="after")
    def _validate_roles(self) -> AccessSettings:
        seen: dict[str, str] = {}
        for role in ("admins", "editors", "authors"):
            for actor in getattr(self, role):
                if actor in seen:
                    raise ValueError(
                        f"Actor '{actor}' is listed under both {seen[actor]} and {role}."
                    )
                seen[actor] = role
        return self


class ConfigModel(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    access: AccessSettings = Field(default_factory=AccessSettings)


@dataclass(slots=True)
class Config:
    """Validated configuration with convenience helpers."""

    model: ConfigModel
    loaded_from: tuple[str, ...] = field(default_factory=tuple, repr=False)

    @property
    def logging(self) -> LoggingSettings:
        return self.model.logging

    @property
    def storage(self) -> StorageSettings:
        return self.model.storage

    @property
    def sync(self) -> SyncSettings:
        return self.model.sync

    @property
    def access(self) -> AccessSettings:
        return self.model.access

    def storage_path(self) -> Path:
        """Return the database path resolved against the working directory."""

        path = self.model.storage.path
        return path if path.is_absolute() else Path.cwd() / path


def load_config(path: Path | None = None) -> Config:
    """Build the effective configuration.

    An explicit `path` is the only document read. Otherwise the first default document found
    (working directory, frozen bundle, then the copy shipped in the package) is merged with
    an optional `config/local.yaml`.
    """

    sources = [_explicit_source(path)] if path is not None else list(_default_sources())
    if not sources:
        raise FileNotFoundError("No configuration data could be loaded.")

    merged: dict[str, Any] = {}
    for _, payload in sources:
        merged = _merge_dicts(merged, payload)

    try:
        model = ConfigModel.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc

    return Config(
        model=model,
        loaded_from=tuple(label for label, _ in sources),
    )


def _explicit_source(path: Path) -> tuple[str, dict[str, Any]]:
    resolved = _resolve_path(path)
    if not resolved.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    return str(resolved), _read_yaml(resolved)


def _default_sources() -> Iterator[tuple[str, dict[str, Any]]]:
    frozen = _resolve_frozen_path(DEFAULT_CONFIG_PATH)
    for candidate in (_resolve_path(DEFAULT_CONFIG_PATH), frozen):
        if candidate is not None and candidate.exists():
            yield str(candidate), _read_yaml(candidate)
            break
    else:
        packaged = _read_packaged_yaml(*PACKAGED_CONFIG)
        if packaged is not None:
            yield ":".join(PACKAGED_CONFIG), packaged

    local = _resolve_path(LOCAL_CONFIG_PATH)
    if local.exists():
        yield str(local), _read_yaml(local)


def _resolve_path(path: Path) -> Path:
    """Resolve configuration paths relative to the current working directory."""

    return path if path.is_absolute() else Path.cwd() / path


def _resolve_frozen_path(path: Path) -> Path | None:
    """Resolve paths embedded in frozen binaries (e.g., PyInstaller)."""

    base = getattr(sys, "_MEIPASS", None)
    if not base:
        return None
    return Path(base) / path


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML file into a dictionary."""

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must define a mapping at the top level.")
    return data


def _read_packaged_yaml(package: str, name: str) -> dict[str, Any] | None:
    """Read YAML embedded in a Python package via importlib.resources."""

    try:
        content = resources.files(package).joinpath(name).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    data = yaml.safe_load(content) or {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Packaged configuration {package}:{name} must define a mapping at the top level."
        )
    return data


def _merge_dicts(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge two dictionaries, with override values taking precedence."""

    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dicts(result[key], value)
        else:
            result[key] = value
    return result
