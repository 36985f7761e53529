"""Failures raised while turning a source unit into annotations."""

from __future__ import annotations

from pathlib import Path


class AnnotationSourceError(Exception):
    """Structured failure tied to the file that produced it."""

    path: Path
    section: str
    message: str
    hint: str | None

    def __init__(
        self,
        *,
        path: Path,
        section: str,
        message: str,
        hint: str | None = None,
    ) -> None:
        self.path = path
        self.section = section
        self.message = message
        self.hint = hint
        text = f"{path} [{section}] {message}"
        if hint:
            text = f"{text} (hint: {hint})"
        super().__init__(text)


class SourceReadError(AnnotationSourceError):
    """The file could not be read or decoded."""


class DeclarationParseError(AnnotationSourceError):
    """The declaration document is malformed or breaks the closed schema."""


class DeclarationValidationError(AnnotationSourceError):
    """A declaration entry parsed but cannot become a valid annotation."""


class MissingTargetError(DeclarationValidationError):
    """Neither the entry nor the document names a target."""


class ExtractionError(AnnotationSourceError):
    """The comment pattern engine failed on a scanned file."""


__all__ = [
    "AnnotationSourceError",
    "DeclarationParseError",
    "DeclarationValidationError",
    "ExtractionError",
    "MissingTargetError",
    "SourceReadError",
]
