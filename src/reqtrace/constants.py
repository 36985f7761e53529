"""Stable constants shared across reqtrace modules."""

from __future__ import annotations

from typing import Final

# Schema version of the canonical AnnotationSet JSON form.
ANNOTATION_SCHEMA_VERSION: Final[int] = 1

# Runtime configuration.
DEFAULT_CONFIG_FILE: Final[str] = "reqtrace.toml"
ENV_PREFIX: Final[str] = "REQTRACE_"

# Source file reading.
DEFAULT_ENCODING: Final[str] = "utf-8"
DEFAULT_MAX_FILE_BYTES: Final[int] = 8 * 1024 * 1024
DEFAULT_MAX_CONCURRENCY: Final[int] = 8

__all__ = [
    "ANNOTATION_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_ENCODING",
    "DEFAULT_MAX_CONCURRENCY",
    "DEFAULT_MAX_FILE_BYTES",
    "ENV_PREFIX",
]
