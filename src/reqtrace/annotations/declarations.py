"""
Declaration files: annotations listed explicitly in TOML instead of source comments.

A declaration document carries an optional top-level ``target`` and three arrays
of tables::

    target = "https://www.rfc-editor.org/rfc/rfc9000#section-4.1"

    [[spec]]
    level = "MUST"
    quote = '''
    A receiver MUST NOT renege on an advertisement
    '''

    [[exception]]
    quote = "Endpoints MAY send ..."
    reason = "Not applicable to the client"

    [[TODO]]
    quote = "..."
    tracking-issue = "#123"
    tags = ["flow-control"]

Every table is parsed against a closed schema; unknown keys are rejected so that
typos in hand-written files surface immediately.
"""

from __future__ import annotations

import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Final, TypeVar

from reqtrace.annotations.errors import (
    DeclarationParseError,
    DeclarationValidationError,
    MissingTargetError,
)
from reqtrace.annotations.models import (
    Annotation,
    AnnotationLevel,
    AnnotationSet,
    CitationDetails,
    ExceptionDetails,
    QuoteFormat,
    TodoDetails,
)
from reqtrace.annotations.quote import normalize_quote

TLabel = TypeVar("TLabel")

# Accepted spellings, mapped to the canonical key.
_DOCUMENT_KEYS: Final[dict[str, str]] = {
    "target": "target",
    "spec": "citations",
    "specs": "citations",
    "citation": "citations",
    "citations": "citations",
    "exception": "exceptions",
    "exceptions": "exceptions",
    "todo": "todos",
    "todos": "todos",
    "TODO": "todos",
}
_CITATION_KEYS: Final[dict[str, str]] = {
    "target": "target",
    "level": "level",
    "format": "format",
    "quote": "quote",
}
_EXCEPTION_KEYS: Final[dict[str, str]] = {
    "target": "target",
    "quote": "quote",
    "reason": "reason",
}
_TODO_KEYS: Final[dict[str, str]] = {
    "target": "target",
    "quote": "quote",
    "feature": "feature",
    "tracking_issue": "tracking_issue",
    "tracking-issue": "tracking_issue",
    "reason": "reason",
    "tags": "tags",
}


@dataclass(frozen=True, slots=True)
class CitationEntry:
    quote: str
    target: str | None = None
    level: str | None = None
    format: str | None = None  # noqa: A003

    @classmethod
    def from_mapping(
        cls, data: object, *, source: Path, section: str = "spec"
    ) -> CitationEntry:
        fields = _canonical_table(data, _CITATION_KEYS, source=source, section=section)
        return cls(
            quote=_required_str(fields, "quote", source=source, section=section),
            target=_optional_str(fields, "target", source=source, section=section),
            level=_optional_str(fields, "level", source=source, section=section),
            format=_optional_str(fields, "format", source=source, section=section),
        )

    def to_annotation(
        self, *, source: Path, default_target: str | None, section: str = "spec"
    ) -> Annotation:
        target = _resolve_target(self.target, default_target, source=source, section=section)
        quote = _normalized_quote(self.quote, source=source, section=section, required=True)
        level = _parse_label(
            AnnotationLevel.parse,
            self.level,
            AnnotationLevel.AUTO,
            source=source,
            section=f"{section}.level",
        )
        quote_format = _parse_label(
            QuoteFormat.parse,
            self.format,
            QuoteFormat.AUTO,
            source=source,
            section=f"{section}.format",
        )
        return Annotation(
            target=target,
            quote=quote,
            comment=self.quote,
            source=source,
            manifest_dir=source,
            details=CitationDetails(level=level, format=quote_format),
        )


@dataclass(frozen=True, slots=True)
class ExceptionEntry:
    quote: str
    reason: str
    target: str | None = None

    @classmethod
    def from_mapping(
        cls, data: object, *, source: Path, section: str = "exception"
    ) -> ExceptionEntry:
        fields = _canonical_table(data, _EXCEPTION_KEYS, source=source, section=section)
        return cls(
            quote=_required_str(fields, "quote", source=source, section=section),
            reason=_required_str(fields, "reason", source=source, section=section),
            target=_optional_str(fields, "target", source=source, section=section),
        )

    def to_annotation(
        self, *, source: Path, default_target: str | None, section: str = "exception"
    ) -> Annotation:
        target = _resolve_target(self.target, default_target, source=source, section=section)
        quote = _normalized_quote(self.quote, source=source, section=section, required=True)
        return Annotation(
            target=target,
            quote=quote,
            comment=self.reason,
            source=source,
            manifest_dir=source,
            details=ExceptionDetails(),
        )


@dataclass(frozen=True, slots=True)
class TodoEntry:
    quote: str
    target: str | None = None
    feature: str | None = None
    tracking_issue: str | None = None
    reason: str | None = None
    tags: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: object, *, source: Path, section: str = "todo") -> TodoEntry:
        fields = _canonical_table(data, _TODO_KEYS, source=source, section=section)
        return cls(
            quote=_required_str(fields, "quote", source=source, section=section),
            target=_optional_str(fields, "target", source=source, section=section),
            feature=_optional_str(fields, "feature", source=source, section=section),
            tracking_issue=_optional_str(fields, "tracking_issue", source=source, section=section),
            reason=_optional_str(fields, "reason", source=source, section=section),
            tags=_str_array(fields, "tags", source=source, section=section),
        )

    def to_annotation(
        self, *, source: Path, default_target: str | None, section: str = "todo"
    ) -> Annotation:
        target = _resolve_target(self.target, default_target, source=source, section=section)
        quote = _normalized_quote(self.quote, source=source, section=section, required=False)
        return Annotation(
            target=target,
            quote=quote,
            comment=self.reason or "",
            source=source,
            manifest_dir=source,
            details=TodoDetails(
                feature=self.feature or "",
                tracking_issue=self.tracking_issue or "",
                tags=frozenset(self.tags),
            ),
        )


DeclarationEntry = CitationEntry | ExceptionEntry | TodoEntry


@dataclass(frozen=True, slots=True)
class DeclarationDocument:
    """Parsed declaration file, before conversion into annotations."""

    target: str | None = None
    citations: tuple[CitationEntry, ...] = ()
    exceptions: tuple[ExceptionEntry, ...] = ()
    todos: tuple[TodoEntry, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, object], *, source: Path) -> DeclarationDocument:
        fields = _canonical_table(data, _DOCUMENT_KEYS, source=source, section="document")
        return cls(
            target=_optional_str(fields, "target", source=source, section="document"),
            citations=tuple(
                CitationEntry.from_mapping(item, source=source, section=f"spec[{index}]")
                for index, item in enumerate(
                    _table_array(fields, "citations", source=source, section="spec")
                )
            ),
            exceptions=tuple(
                ExceptionEntry.from_mapping(item, source=source, section=f"exception[{index}]")
                for index, item in enumerate(
                    _table_array(fields, "exceptions", source=source, section="exception")
                )
            ),
            todos=tuple(
                TodoEntry.from_mapping(item, source=source, section=f"todo[{index}]")
                for index, item in enumerate(
                    _table_array(fields, "todos", source=source, section="todo")
                )
            ),
        )

    def sections(self) -> list[tuple[str, DeclarationEntry]]:
        """Entries in declaration order, labelled for error reporting."""

        labelled: list[tuple[str, DeclarationEntry]] = []
        labelled.extend((f"spec[{index}]", entry) for index, entry in enumerate(self.citations))
        labelled.extend(
            (f"exception[{index}]", entry) for index, entry in enumerate(self.exceptions)
        )
        labelled.extend((f"todo[{index}]", entry) for index, entry in enumerate(self.todos))
        return labelled

    def to_annotations(self, source: Path) -> AnnotationSet:
        """Convert every entry; the first invalid entry rejects the whole document."""

        annotations = AnnotationSet()
        for section, entry in self.sections():
            annotations.add(
                entry.to_annotation(source=source, default_target=self.target, section=section)
            )
        return annotations


def parse_declaration_document(text: str, *, source: Path) -> DeclarationDocument:
    try:
        parsed = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise DeclarationParseError(
            path=source,
            section="document",
            message="Declaration file is not valid TOML",
            hint=str(exc),
        ) from exc
    return DeclarationDocument.from_mapping(parsed, source=source)


def load_declaration_annotations(text: str, *, source: Path) -> AnnotationSet:
    return parse_declaration_document(text, source=source).to_annotations(source)


def _canonical_table(
    data: object,
    aliases: Mapping[str, str],
    *,
    source: Path,
    section: str,
) -> dict[str, object]:
    if not isinstance(data, Mapping):
        raise DeclarationParseError(
            path=source,
            section=section,
            message=f"expected a table, got {type(data).__name__}",
        )

    unknown = sorted(str(key) for key in data if key not in aliases)
    if unknown:
        raise DeclarationParseError(
            path=source,
            section=section,
            message=f"unknown fields: {unknown}",
            hint=f"allowed fields are {sorted(aliases)}",
        )

    fields: dict[str, object] = {}
    spelled: dict[str, str] = {}
    for key, value in data.items():
        canonical = aliases[key]
        if canonical in fields:
            raise DeclarationParseError(
                path=source,
                section=section,
                message=f"field {key!r} duplicates {spelled[canonical]!r}",
                hint="use a single spelling per field",
            )
        fields[canonical] = value
        spelled[canonical] = key
    return fields


def _required_str(fields: Mapping[str, object], key: str, *, source: Path, section: str) -> str:
    if key not in fields:
        raise DeclarationParseError(
            path=source,
            section=section,
            message=f"missing required field {key!r}",
        )
    value = _optional_str(fields, key, source=source, section=section)
    assert value is not None
    return value


def _optional_str(
    fields: Mapping[str, object], key: str, *, source: Path, section: str
) -> str | None:
    value = fields.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DeclarationParseError(
            path=source,
            section=f"{section}.{key}",
            message=f"expected a string, got {type(value).__name__}",
        )
    return value


def _str_array(
    fields: Mapping[str, object], key: str, *, source: Path, section: str
) -> tuple[str, ...]:
    value = fields.get(key, [])
    if not isinstance(value, list):
        raise DeclarationParseError(
            path=source,
            section=f"{section}.{key}",
            message=f"expected an array of strings, got {type(value).__name__}",
        )
    for index, item in enumerate(value):
        if not isinstance(item, str):
            raise DeclarationParseError(
                path=source,
                section=f"{section}.{key}[{index}]",
                message=f"expected a string, got {type(item).__name__}",
            )
    return tuple(value)


def _table_array(
    fields: Mapping[str, object], key: str, *, source: Path, section: str
) -> list[object]:
    value = fields.get(key, [])
    if not isinstance(value, list):
        raise DeclarationParseError(
            path=source,
            section=section,
            message=f"expected an array of tables, got {type(value).__name__}",
            hint=f"declare entries with [[{section}]]",
        )
    return value


def _resolve_target(
    own: str | None, default: str | None, *, source: Path, section: str
) -> str:
    for candidate, where in ((own, f"{section}.target"), (default, "document.target")):
        if candidate is None:
            continue
        if not candidate.strip():
            raise DeclarationValidationError(
                path=source,
                section=where,
                message="target must not be blank",
            )
        return candidate
    raise MissingTargetError(
        path=source,
        section=section,
        message="missing target",
        hint="set 'target' on the entry or at the top of the declaration file",
    )


def _normalized_quote(raw: str, *, source: Path, section: str, required: bool) -> str:
    quote = normalize_quote(raw)
    if required and not quote:
        raise DeclarationValidationError(
            path=source,
            section=f"{section}.quote",
            message="quote must not be empty",
        )
    return quote


def _parse_label(
    parse: Callable[[str], TLabel],
    label: str | None,
    default: TLabel,
    *,
    source: Path,
    section: str,
) -> TLabel:
    if label is None:
        return default
    try:
        return parse(label)
    except ValueError as exc:
        raise DeclarationParseError(path=source, section=section, message=str(exc)) from exc


__all__ = [
    "CitationEntry",
    "DeclarationDocument",
    "DeclarationEntry",
    "ExceptionEntry",
    "TodoEntry",
    "load_declaration_annotations",
    "parse_declaration_document",
]
