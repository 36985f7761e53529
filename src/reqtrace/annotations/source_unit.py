"""
Source units: the two places annotations come from.

A ``ScannedUnit`` is an ordinary source file whose comments are searched by an
external comment pattern engine. A ``DeclarativeUnit`` is a TOML declaration
file parsed by ``reqtrace.annotations.declarations``. Both produce an
``AnnotationSet`` through ``extract_annotations``; callers never need to know
which variant a record came from.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, TypeAlias

import structlog

from reqtrace.annotations.declarations import load_declaration_annotations
from reqtrace.annotations.errors import ExtractionError, SourceReadError
from reqtrace.annotations.models import Annotation, AnnotationSet
from reqtrace.config.loader import IngestSettings


class CommentPattern(Protocol):
    """Language-specific comment pattern engine used on scanned files."""

    def extract(self, text: str, path: Path) -> Iterable[Annotation]:
        """Return the annotations found in ``text``, with real positions."""
        ...


@dataclass(frozen=True, slots=True)
class ScannedUnit:
    pattern: CommentPattern
    path: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))


@dataclass(frozen=True, slots=True)
class DeclarativeUnit:
    path: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))


SourceUnit: TypeAlias = ScannedUnit | DeclarativeUnit


def extract_annotations(
    unit: SourceUnit,
    *,
    settings: IngestSettings | None = None,
    logger: Any | None = None,
) -> AnnotationSet:
    """Read ``unit`` and return every annotation it yields.

    Raises ``SourceReadError`` when the file cannot be read, the declaration
    errors from ``reqtrace.annotations.errors`` for bad declaration files, and
    ``ExtractionError`` when the pattern engine fails.
    """

    resolved = settings if settings is not None else IngestSettings()
    log = logger if logger is not None else structlog.get_logger(__name__)

    match unit:
        case ScannedUnit(pattern=pattern, path=path):
            variant = "scanned"
            annotations = _scan(pattern, read_source_text(path, settings=resolved), path)
        case DeclarativeUnit(path=path):
            variant = "declarative"
            annotations = load_declaration_annotations(
                read_source_text(path, settings=resolved), source=path
            )
        case _:
            raise TypeError(f"unsupported source unit: {type(unit).__name__}")

    log.debug(
        "annotation_unit_extracted",
        source_path=path.as_posix(),
        variant=variant,
        annotation_count=len(annotations),
    )
    return annotations


def read_source_text(path: Path, *, settings: IngestSettings | None = None) -> str:
    """Read a whole source file, bounded by ``settings.max_file_bytes``."""

    resolved = settings if settings is not None else IngestSettings()
    try:
        with path.open("rb") as handle:
            data = handle.read(resolved.max_file_bytes + 1)
    except OSError as exc:
        raise SourceReadError(
            path=path,
            section="I/O",
            message="Failed to read source file",
            hint=str(exc),
        ) from exc

    if len(data) > resolved.max_file_bytes:
        raise SourceReadError(
            path=path,
            section="I/O",
            message=f"Source file exceeds {resolved.max_file_bytes} bytes",
            hint="raise ingest.max_file_bytes or exclude the file",
        )

    try:
        return data.decode(resolved.encoding)
    except UnicodeDecodeError as exc:
        raise SourceReadError(
            path=path,
            section="I/O",
            message=f"Source file is not valid {resolved.encoding}",
            hint=str(exc),
        ) from exc


def _scan(pattern: CommentPattern, text: str, path: Path) -> AnnotationSet:
    try:
        extracted = list(pattern.extract(text, path))
    except Exception as exc:  # noqa: BLE001 - pattern engines are external code.
        raise ExtractionError(
            path=path,
            section="extract",
            message="Comment pattern extraction failed",
            hint=str(exc) or type(exc).__name__,
        ) from exc

    annotations = AnnotationSet()
    for index, item in enumerate(extracted):
        if not isinstance(item, Annotation):
            raise ExtractionError(
                path=path,
                section=f"extract[{index}]",
                message=f"pattern returned {type(item).__name__}, expected Annotation",
            )
        annotations.add(item)
    return annotations


__all__ = [
    "CommentPattern",
    "DeclarativeUnit",
    "ScannedUnit",
    "SourceUnit",
    "extract_annotations",
    "read_source_text",
]
