"""
reqtrace config package public API.

Purpose
- Export config loading entrypoints, settings types, and the load error.

Functional requirements
- Support loading from ``reqtrace.toml`` + ``REQTRACE_`` env overrides.
- Fail fast with clear load/validation errors.
"""

from reqtrace.config.loader import (
    ConfigLoadError,
    IngestSettings,
    ObservabilitySettings,
    ReqtraceConfig,
    default_config,
    dump_effective_config,
    load_config,
)

__all__ = [
    "ConfigLoadError",
    "IngestSettings",
    "ObservabilitySettings",
    "ReqtraceConfig",
    "default_config",
    "dump_effective_config",
    "load_config",
]
