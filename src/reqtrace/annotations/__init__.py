"""
reqtrace annotation ingestion.

Purpose
- Turns scanned source comments and TOML declaration files into one uniform
  ``Annotation`` record for requirement-coverage analysis.

Functional requirements
- Declaration files are parsed against a closed schema; unknown keys fail.
- Entries inherit the document-level ``target`` unless they set their own.
- Every failure carries the path of the file that caused it.

Non-functional requirements
- Extraction is stateless per unit, so units can be processed in parallel and
  merged by set union.
"""

from reqtrace.annotations.corpus import collect_annotations, collect_annotations_async
from reqtrace.annotations.declarations import (
    CitationEntry,
    DeclarationDocument,
    ExceptionEntry,
    TodoEntry,
    load_declaration_annotations,
    parse_declaration_document,
)
from reqtrace.annotations.errors import (
    AnnotationSourceError,
    DeclarationParseError,
    DeclarationValidationError,
    ExtractionError,
    MissingTargetError,
    SourceReadError,
)
from reqtrace.annotations.models import (
    Annotation,
    AnnotationKind,
    AnnotationLevel,
    AnnotationSet,
    CitationDetails,
    ExceptionDetails,
    QuoteFormat,
    TextPosition,
    TodoDetails,
)
from reqtrace.annotations.quote import normalize_quote
from reqtrace.annotations.source_unit import (
    CommentPattern,
    DeclarativeUnit,
    ScannedUnit,
    SourceUnit,
    extract_annotations,
    read_source_text,
)

__all__ = [
    "Annotation",
    "AnnotationKind",
    "AnnotationLevel",
    "AnnotationSet",
    "AnnotationSourceError",
    "CitationDetails",
    "CitationEntry",
    "CommentPattern",
    "DeclarationDocument",
    "DeclarationParseError",
    "DeclarationValidationError",
    "DeclarativeUnit",
    "ExceptionDetails",
    "ExceptionEntry",
    "ExtractionError",
    "MissingTargetError",
    "QuoteFormat",
    "ScannedUnit",
    "SourceReadError",
    "SourceUnit",
    "TextPosition",
    "TodoDetails",
    "TodoEntry",
    "collect_annotations",
    "collect_annotations_async",
    "extract_annotations",
    "load_declaration_annotations",
    "normalize_quote",
    "parse_declaration_document",
    "read_source_text",
]
