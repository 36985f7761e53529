"""
reqtrace runtime config loader.

Purpose
- Load effective settings from defaults, a ``reqtrace.toml`` file, ``REQTRACE_``
  environment variables, and explicit overrides.

Functional requirements
- Precedence: overrides > env > file > defaults.
- Unknown sections or keys are rejected, as in declaration files.
- ``observability.log_dir`` is resolved relative to the config file.

Non-functional requirements
- Loading is deterministic and has no side effects beyond reading the file.
"""

from __future__ import annotations

import codecs
import json
import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Literal

from reqtrace.constants import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_ENCODING,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_FILE_BYTES,
    ENV_PREFIX,
)

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

ValueKind = Literal["str", "int", "bool"]

# section -> key -> expected kind
_SCHEMA: Final[dict[str, dict[str, ValueKind]]] = {
    "ingest": {
        "encoding": "str",
        "max_file_bytes": "int",
        "max_concurrency": "int",
    },
    "observability": {
        "log_level": "str",
        "log_dir": "str",
        "log_to_stdout": "bool",
    },
}


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded, coerced, or validated."""


@dataclass(frozen=True, slots=True)
class IngestSettings:
    """How source units are read."""

    encoding: str = DEFAULT_ENCODING
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    def __post_init__(self) -> None:
        try:
            codecs.lookup(self.encoding)
        except LookupError as exc:
            raise ConfigLoadError(f"ingest.encoding: unknown codec {self.encoding!r}") from exc
        if self.max_file_bytes <= 0:
            raise ConfigLoadError("ingest.max_file_bytes must be > 0")
        if self.max_concurrency <= 0:
            raise ConfigLoadError("ingest.max_concurrency must be > 0")


@dataclass(frozen=True, slots=True)
class ObservabilitySettings:
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_to_stdout: bool = False

    def __post_init__(self) -> None:
        level = self.log_level.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ConfigLoadError(f"observability.log_level: unsupported level {self.log_level!r}")
        object.__setattr__(self, "log_level", level)
        object.__setattr__(self, "log_dir", Path(self.log_dir))


@dataclass(frozen=True, slots=True)
class ReqtraceConfig:
    ingest: IngestSettings = field(default_factory=IngestSettings)
    observability: ObservabilitySettings = field(default_factory=ObservabilitySettings)

    def to_dict(self) -> dict[str, dict[str, object]]:
        return {
            "ingest": {
                "encoding": self.ingest.encoding,
                "max_file_bytes": self.ingest.max_file_bytes,
                "max_concurrency": self.ingest.max_concurrency,
            },
            "observability": {
                "log_level": self.observability.log_level,
                "log_dir": self.observability.log_dir.as_posix(),
                "log_to_stdout": self.observability.log_to_stdout,
            },
        }


def default_config() -> ReqtraceConfig:
    return ReqtraceConfig()


def load_config(
    config_path: str | Path | None = None,
    *,
    overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ReqtraceConfig:
    """Load effective config with precedence overrides > env > file > defaults.

    ``overrides`` uses dotted keys such as ``"ingest.encoding"``. A missing file
    is an error only when ``config_path`` was given explicitly.
    """

    resolved_path = _resolve_config_path(config_path)
    env_map = dict(os.environ if environ is None else environ)

    merged: dict[str, dict[str, object]] = default_config().to_dict()
    _merge_layer(merged, _load_toml_file(resolved_path, required=config_path is not None), "file")
    _merge_layer(merged, _collect_env_overrides(env_map), "environment")
    _merge_layer(merged, _materialize_overrides(overrides or {}), "override")

    log_dir = Path(os.path.expanduser(str(merged["observability"]["log_dir"])))
    if not log_dir.is_absolute():
        log_dir = resolved_path.parent / log_dir
    merged["observability"]["log_dir"] = Path(os.path.normpath(log_dir))

    ingest = merged["ingest"]
    observability = merged["observability"]
    return ReqtraceConfig(
        ingest=IngestSettings(
            encoding=_typed(ingest["encoding"], str),
            max_file_bytes=_typed(ingest["max_file_bytes"], int),
            max_concurrency=_typed(ingest["max_concurrency"], int),
        ),
        observability=ObservabilitySettings(
            log_level=_typed(observability["log_level"], str),
            log_dir=_typed(observability["log_dir"], Path),
            log_to_stdout=_typed(observability["log_to_stdout"], bool),
        ),
    )


def dump_effective_config(config: ReqtraceConfig) -> str:
    """Return a deterministic JSON dump of the effective config."""

    return json.dumps(config.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _merge_layer(
    target: dict[str, dict[str, object]], layer: Mapping[str, object], origin: str
) -> None:
    for section_name in sorted(layer):
        section = layer[section_name]
        schema = _SCHEMA.get(section_name)
        if schema is None:
            raise ConfigLoadError(f"{origin}: unknown config section {section_name!r}")
        if not isinstance(section, Mapping):
            raise ConfigLoadError(f"{origin}: [{section_name}] must be a table")
        for key in sorted(section):
            kind = schema.get(key)
            if kind is None:
                raise ConfigLoadError(f"{origin}: unknown config key {section_name}.{key}")
            value = section[key]
            if not _matches_kind(value, kind):
                raise ConfigLoadError(
                    f"{origin}: {section_name}.{key} must be of type {kind}, "
                    f"got {type(value).__name__}"
                )
            target[section_name][key] = value


def _matches_kind(value: object, kind: ValueKind) -> bool:
    if kind == "bool":
        return isinstance(value, bool)
    if kind == "int":
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, str)


def _collect_env_overrides(environ: Mapping[str, str]) -> dict[str, dict[str, object]]:
    overrides: dict[str, dict[str, object]] = {}
    for section_name, keys in _SCHEMA.items():
        for key, kind in keys.items():
            env_name = _env_name(section_name, key)
            raw = environ.get(env_name)
            if raw is None:
                continue
            overrides.setdefault(section_name, {})[key] = _coerce_env(raw, kind, env_name)
    return overrides


def _coerce_env(raw: str, kind: ValueKind, env_name: str) -> object:
    value = raw.strip()
    if kind == "str":
        return value
    if kind == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} must be an integer") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(f"{env_name} must be a boolean (true/false/1/0/yes/no/on/off)")


def _materialize_overrides(overrides: Mapping[str, object]) -> dict[str, dict[str, object]]:
    payload: dict[str, dict[str, object]] = {}
    for dotted in sorted(overrides):
        section_name, _, key = dotted.partition(".")
        if not section_name or not key:
            raise ConfigLoadError(f"override key must look like 'section.key', got {dotted!r}")
        payload.setdefault(section_name, {})[key] = overrides[dotted]
    return payload


def _env_name(section_name: str, key: str) -> str:
    return f"{ENV_PREFIX}{section_name.upper()}_{key.upper()}"


def _typed(value: object, expected: type[Any]) -> Any:
    if not isinstance(value, expected):
        raise ConfigLoadError(f"expected {expected.__name__}, got {type(value).__name__}")
    return value


__all__ = [
    "ConfigLoadError",
    "IngestSettings",
    "ObservabilitySettings",
    "ReqtraceConfig",
    "default_config",
    "dump_effective_config",
    "load_config",
]
