"""Annotation records shared by the scanned and declarative ingestion paths."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum, StrEnum
from pathlib import Path
from typing import NoReturn, TypeAlias, TypeVar, assert_never

from reqtrace.annotations.quote import normalize_quote
from reqtrace.constants import ANNOTATION_SCHEMA_VERSION

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TEnum = TypeVar("TEnum", bound=Enum)

_ANNOTATION_FIELDS: frozenset[str] = frozenset(
    {
        "kind",
        "target",
        "quote",
        "comment",
        "source",
        "manifest_dir",
        "anno_line",
        "anno_column",
        "item_line",
        "item_column",
        "path",
        "level",
        "format",
        "feature",
        "tracking_issue",
        "tags",
    }
)


class AnnotationKind(StrEnum):
    CITATION = "citation"
    EXCEPTION = "exception"
    TODO = "todo"


# Serialized default of every kind-specific field.
_FOREIGN_DEFAULTS: dict[str, object] = {
    "level": "AUTO",
    "format": "auto",
    "feature": "",
    "tracking_issue": "",
    "tags": [],
}
_KIND_FIELDS: dict[AnnotationKind, frozenset[str]] = {
    AnnotationKind.CITATION: frozenset({"level", "format"}),
    AnnotationKind.TODO: frozenset({"feature", "tracking_issue", "tags"}),
}


class AnnotationLevel(StrEnum):
    """Compliance strength claimed by a citation."""

    AUTO = "AUTO"
    MAY = "MAY"
    SHOULD = "SHOULD"
    MUST = "MUST"

    @classmethod
    def parse(cls, label: str) -> AnnotationLevel:
        """Match ``label`` exactly against the canonical upper-case labels."""

        for level in cls:
            if level.value == label:
                return level
        allowed = ", ".join(level.value for level in cls)
        raise ValueError(f"invalid annotation level {label!r}; expected one of: {allowed}")


class QuoteFormat(StrEnum):
    """How a citation quote is interpreted when matched against specification text."""

    AUTO = "auto"
    IETF = "ietf"
    MARKDOWN = "markdown"

    @classmethod
    def parse(cls, label: str) -> QuoteFormat:
        """Match ``label`` exactly against the lower-case labels; ``md`` means markdown."""

        if label == "md":
            return cls.MARKDOWN
        for quote_format in cls:
            if quote_format.value == label:
                return quote_format
        allowed = ", ".join(quote_format.value for quote_format in cls)
        raise ValueError(f"invalid quote format {label!r}; expected one of: {allowed}")


@dataclass(frozen=True, slots=True)
class TextPosition:
    """Where a scanned annotation and the item it annotates sit in a source file."""

    anno_line: int = 0
    anno_column: int = 0
    item_line: int = 0
    item_column: int = 0
    path: str = ""

    def __post_init__(self) -> None:
        for name in ("anno_line", "anno_column", "item_line", "item_column"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"TextPosition.{name} must be an integer")
            if value < 0:
                raise ValueError(f"TextPosition.{name} must be >= 0")

    @property
    def is_placeholder(self) -> bool:
        return self == _PLACEHOLDER_POSITION


_PLACEHOLDER_POSITION = TextPosition()


@dataclass(frozen=True, slots=True)
class CitationDetails:
    level: AnnotationLevel = AnnotationLevel.AUTO
    format: QuoteFormat = QuoteFormat.AUTO  # noqa: A003


@dataclass(frozen=True, slots=True)
class ExceptionDetails:
    """Exceptions carry nothing beyond their reason, held in ``Annotation.comment``."""


@dataclass(frozen=True, slots=True)
class TodoDetails:
    feature: str = ""
    tracking_issue: str = ""
    tags: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", frozenset(self.tags))


AnnotationDetails: TypeAlias = CitationDetails | ExceptionDetails | TodoDetails


@dataclass(frozen=True, slots=True)
class Annotation:
    """
    One piece of evidence linking text to a specification excerpt.

    The kind is carried by ``details``; the flat accessors (``level``,
    ``feature``, ``tags`` ...) return fixed defaults for kinds they do not
    apply to.
    """

    target: str
    quote: str
    source: Path
    details: AnnotationDetails
    comment: str = ""
    manifest_dir: Path | None = None
    position: TextPosition = field(default_factory=TextPosition)

    def __post_init__(self) -> None:
        if not isinstance(self.target, str) or not self.target.strip():
            raise ValueError("Annotation.target must not be empty")
        if not isinstance(self.details, (CitationDetails, ExceptionDetails, TodoDetails)):
            raise ValueError(
                f"Annotation.details has unsupported type {type(self.details).__name__}"
            )
        quote = normalize_quote(self.quote)
        if not quote and not isinstance(self.details, TodoDetails):
            raise ValueError(f"{self.kind.value} annotations require a non-empty quote")
        source = Path(self.source)
        object.__setattr__(self, "quote", quote)
        object.__setattr__(self, "source", source)
        object.__setattr__(
            self,
            "manifest_dir",
            source if self.manifest_dir is None else Path(self.manifest_dir),
        )

    @property
    def kind(self) -> AnnotationKind:
        match self.details:
            case CitationDetails():
                return AnnotationKind.CITATION
            case ExceptionDetails():
                return AnnotationKind.EXCEPTION
            case TodoDetails():
                return AnnotationKind.TODO
            case _:
                assert_never(self.details)

    @property
    def level(self) -> AnnotationLevel:
        if isinstance(self.details, CitationDetails):
            return self.details.level
        return AnnotationLevel.AUTO

    @property
    def format(self) -> QuoteFormat:  # noqa: A003
        if isinstance(self.details, CitationDetails):
            return self.details.format
        return QuoteFormat.AUTO

    @property
    def feature(self) -> str:
        if isinstance(self.details, TodoDetails):
            return self.details.feature
        return ""

    @property
    def tracking_issue(self) -> str:
        if isinstance(self.details, TodoDetails):
            return self.details.tracking_issue
        return ""

    @property
    def tags(self) -> frozenset[str]:
        if isinstance(self.details, TodoDetails):
            return self.details.tags
        return frozenset()

    @property
    def anno_line(self) -> int:
        return self.position.anno_line

    @property
    def anno_column(self) -> int:
        return self.position.anno_column

    @property
    def item_line(self) -> int:
        return self.position.item_line

    @property
    def item_column(self) -> int:
        return self.position.item_column

    @property
    def path(self) -> str:
        return self.position.path

    def sort_key(self) -> tuple[object, ...]:
        return (
            self.target,
            self.kind.value,
            self.quote,
            self.source.as_posix(),
            self.anno_line,
            self.anno_column,
            self.item_line,
            self.item_column,
            self.path,
            self.comment,
            self.level.value,
            self.format.value,
            self.feature,
            self.tracking_issue,
            tuple(sorted(self.tags)),
            _manifest_dir(self).as_posix(),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "kind": self.kind.value,
            "target": self.target,
            "quote": self.quote,
            "comment": self.comment,
            "source": self.source.as_posix(),
            "manifest_dir": _manifest_dir(self).as_posix(),
            "anno_line": self.anno_line,
            "anno_column": self.anno_column,
            "item_line": self.item_line,
            "item_column": self.item_column,
            "path": self.path,
            "level": self.level.value,
            "format": self.format.value,
            "feature": self.feature,
            "tracking_issue": self.tracking_issue,
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Annotation:
        parsed = _expect_object(data, "Annotation", allowed=_ANNOTATION_FIELDS)
        kind = _as_enum(AnnotationKind, parsed.get("kind"), "Annotation.kind")
        _reject_foreign_fields(parsed, kind)
        details: AnnotationDetails
        if kind is AnnotationKind.CITATION:
            details = CitationDetails(
                level=_as_enum(
                    AnnotationLevel,
                    parsed.get("level", AnnotationLevel.AUTO.value),
                    "Annotation.level",
                ),
                format=_as_enum(
                    QuoteFormat, parsed.get("format", QuoteFormat.AUTO.value), "Annotation.format"
                ),
            )
        elif kind is AnnotationKind.EXCEPTION:
            details = ExceptionDetails()
        else:
            details = TodoDetails(
                feature=_as_str(parsed.get("feature", ""), "Annotation.feature"),
                tracking_issue=_as_str(
                    parsed.get("tracking_issue", ""), "Annotation.tracking_issue"
                ),
                tags=frozenset(_as_str_list(parsed.get("tags", []), "Annotation.tags")),
            )

        source = _as_str(parsed.get("source"), "Annotation.source")
        manifest_dir = parsed.get("manifest_dir")
        return cls(
            target=_as_str(parsed.get("target"), "Annotation.target"),
            quote=_as_str(parsed.get("quote", ""), "Annotation.quote"),
            comment=_as_str(parsed.get("comment", ""), "Annotation.comment"),
            source=Path(source),
            manifest_dir=(
                None
                if manifest_dir is None
                else Path(_as_str(manifest_dir, "Annotation.manifest_dir"))
            ),
            details=details,
            position=TextPosition(
                anno_line=_as_int(parsed.get("anno_line", 0), "Annotation.anno_line"),
                anno_column=_as_int(parsed.get("anno_column", 0), "Annotation.anno_column"),
                item_line=_as_int(parsed.get("item_line", 0), "Annotation.item_line"),
                item_column=_as_int(parsed.get("item_column", 0), "Annotation.item_column"),
                path=_as_str(parsed.get("path", ""), "Annotation.path"),
            ),
        )


class AnnotationSet:
    """Deduplicating collection of annotations with a stable iteration order."""

    __slots__ = ("_items",)

    def __init__(self, annotations: Iterable[Annotation] = ()) -> None:
        self._items: set[Annotation] = set()
        self.update(annotations)

    def add(self, annotation: Annotation) -> None:
        if not isinstance(annotation, Annotation):
            raise TypeError(f"expected Annotation, got {type(annotation).__name__}")
        self._items.add(annotation)

    def update(self, annotations: Iterable[Annotation]) -> None:
        for annotation in annotations:
            self.add(annotation)

    def union(self, *others: Iterable[Annotation]) -> AnnotationSet:
        merged = AnnotationSet(self._items)
        for other in others:
            merged.update(other)
        return merged

    @classmethod
    def merge(cls, sets: Iterable[Iterable[Annotation]]) -> AnnotationSet:
        merged = cls()
        for item in sets:
            merged.update(item)
        return merged

    def of_kind(self, kind: AnnotationKind) -> AnnotationSet:
        return AnnotationSet(annotation for annotation in self._items if annotation.kind is kind)

    def targets(self) -> tuple[str, ...]:
        return tuple(sorted({annotation.target for annotation in self._items}))

    def __or__(self, other: object) -> AnnotationSet:
        if not isinstance(other, AnnotationSet):
            return NotImplemented
        return self.union(other)

    def __iter__(self) -> Iterator[Annotation]:
        return iter(sorted(self._items, key=Annotation.sort_key))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnnotationSet):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"AnnotationSet(size={len(self._items)})"

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": ANNOTATION_SCHEMA_VERSION,
            "annotations": [annotation.to_dict() for annotation in self],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> AnnotationSet:
        parsed = _expect_object(data, "AnnotationSet", allowed={"schema_version", "annotations"})
        version = _as_int(parsed.get("schema_version"), "AnnotationSet.schema_version")
        if version != ANNOTATION_SCHEMA_VERSION:
            _fail(
                "AnnotationSet.schema_version",
                f"unsupported version {version}; expected {ANNOTATION_SCHEMA_VERSION}",
            )
        raw_items = parsed.get("annotations", [])
        if not isinstance(raw_items, list):
            _fail("AnnotationSet.annotations", f"expected array, got {type(raw_items).__name__}")
        annotations: list[Annotation] = []
        for index, item in enumerate(raw_items):
            if not isinstance(item, Mapping):
                _fail(f"AnnotationSet.annotations[{index}]", "expected object")
            annotations.append(Annotation.from_dict(item))
        return cls(annotations)

    @classmethod
    def from_json(cls, raw: str) -> AnnotationSet:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail("AnnotationSet", f"invalid JSON: {exc}")
        if not isinstance(parsed, Mapping):
            _fail("AnnotationSet", "JSON root must be an object")
        return cls.from_dict(parsed)


def _manifest_dir(annotation: Annotation) -> Path:
    # Set by __post_init__.
    assert annotation.manifest_dir is not None
    return annotation.manifest_dir


def _reject_foreign_fields(parsed: Mapping[str, object], kind: AnnotationKind) -> None:
    # Kind-specific fields may appear on other kinds only with their default value,
    # which is what to_dict emits for them.
    owned = _KIND_FIELDS.get(kind, frozenset())
    for name, default in _FOREIGN_DEFAULTS.items():
        if name in owned or name not in parsed:
            continue
        if parsed[name] != default:
            _fail(f"Annotation.{name}", f"not allowed on {kind.value} annotations")


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _expect_object(
    value: object, path: str, *, allowed: Iterable[str]
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item
    unknown = sorted(set(parsed) - set(allowed))
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")
    return parsed


def _as_str(value: object, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    return value


def _as_int(value: object, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    return value


def _as_str_list(value: object, path: str) -> list[str]:
    if not isinstance(value, (list, tuple)):
        _fail(path, f"expected array, got {type(value).__name__}")
    return [_as_str(item, f"{path}[{index}]") for index, item in enumerate(value)]


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


__all__ = [
    "Annotation",
    "AnnotationDetails",
    "AnnotationKind",
    "AnnotationLevel",
    "AnnotationSet",
    "CitationDetails",
    "ExceptionDetails",
    "JSONValue",
    "QuoteFormat",
    "TextPosition",
    "TodoDetails",
]
