"""Unit tests for annotation records and annotation sets."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

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

SOURCE = Path("src/client.rs")


def _citation(quote: str = "The client MUST retry", **kwargs: object) -> Annotation:
    return Annotation(
        target=str(kwargs.pop("target", "rfc9000#4.1")),
        quote=quote,
        source=SOURCE,
        details=CitationDetails(level=AnnotationLevel.MUST),
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.mark.unit
def test_empty_target_is_rejected() -> None:
    with pytest.raises(ValueError, match="target must not be empty"):
        Annotation(target="  ", quote="x", source=SOURCE, details=ExceptionDetails())


@pytest.mark.unit
def test_quote_is_normalized_on_construction() -> None:
    annotation = _citation("  The client\n\n   MUST retry  ")
    assert annotation.quote == "The client MUST retry"


@pytest.mark.unit
@pytest.mark.parametrize("details", [CitationDetails(), ExceptionDetails()])
def test_empty_quote_rejected_for_citations_and_exceptions(
    details: CitationDetails | ExceptionDetails,
) -> None:
    with pytest.raises(ValueError, match="non-empty quote"):
        Annotation(target="t", quote=" \n ", source=SOURCE, details=details)


@pytest.mark.unit
def test_empty_quote_allowed_for_todo() -> None:
    annotation = Annotation(target="t", quote="", source=SOURCE, details=TodoDetails())
    assert annotation.quote == ""
    assert annotation.kind is AnnotationKind.TODO


@pytest.mark.unit
def test_kind_specific_accessors_fall_back_to_defaults() -> None:
    citation = Annotation(
        target="t",
        quote="q",
        source=SOURCE,
        details=CitationDetails(level=AnnotationLevel.SHOULD, format=QuoteFormat.IETF),
    )
    assert citation.kind is AnnotationKind.CITATION
    assert citation.level is AnnotationLevel.SHOULD
    assert citation.format is QuoteFormat.IETF
    assert citation.feature == ""
    assert citation.tracking_issue == ""
    assert citation.tags == frozenset()

    todo = Annotation(
        target="t",
        quote="q",
        source=SOURCE,
        details=TodoDetails(feature="flow", tracking_issue="#7", tags=frozenset({"a"})),
    )
    assert todo.level is AnnotationLevel.AUTO
    assert todo.format is QuoteFormat.AUTO
    assert todo.feature == "flow"
    assert todo.tracking_issue == "#7"
    assert todo.tags == frozenset({"a"})

    exception = Annotation(target="t", quote="q", source=SOURCE, details=ExceptionDetails())
    assert exception.kind is AnnotationKind.EXCEPTION
    assert exception.level is AnnotationLevel.AUTO
    assert exception.tags == frozenset()


@pytest.mark.unit
def test_manifest_dir_defaults_to_source_and_position_to_placeholder() -> None:
    annotation = _citation()
    assert annotation.manifest_dir == SOURCE
    assert annotation.position.is_placeholder
    assert (annotation.anno_line, annotation.anno_column, annotation.path) == (0, 0, "")


@pytest.mark.unit
def test_text_position_rejects_negative_values() -> None:
    with pytest.raises(ValueError, match="anno_line must be >= 0"):
        TextPosition(anno_line=-1)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("MUST", AnnotationLevel.MUST),
        ("SHOULD", AnnotationLevel.SHOULD),
        ("MAY", AnnotationLevel.MAY),
        ("AUTO", AnnotationLevel.AUTO),
    ],
)
def test_level_labels_parse(label: str, expected: AnnotationLevel) -> None:
    assert AnnotationLevel.parse(label) is expected


@pytest.mark.unit
@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("ietf", QuoteFormat.IETF),
        ("markdown", QuoteFormat.MARKDOWN),
        ("md", QuoteFormat.MARKDOWN),
        ("auto", QuoteFormat.AUTO),
    ],
)
def test_format_labels_parse(label: str, expected: QuoteFormat) -> None:
    assert QuoteFormat.parse(label) is expected


@pytest.mark.unit
@pytest.mark.parametrize("label", ["must", " MUST ", "Should", "MUST\n"])
def test_level_labels_must_be_exact(label: str) -> None:
    with pytest.raises(ValueError, match="invalid annotation level"):
        AnnotationLevel.parse(label)


@pytest.mark.unit
@pytest.mark.parametrize("label", ["IETF", " ietf", "Markdown", "MD"])
def test_format_labels_must_be_exact(label: str) -> None:
    with pytest.raises(ValueError, match="invalid quote format"):
        QuoteFormat.parse(label)


@pytest.mark.unit
def test_unknown_labels_name_the_allowed_values() -> None:
    with pytest.raises(ValueError, match="expected one of: AUTO, MAY, SHOULD, MUST"):
        AnnotationLevel.parse("MUSTN'T")
    with pytest.raises(ValueError, match="invalid quote format 'rst'"):
        QuoteFormat.parse("rst")


@pytest.mark.unit
def test_set_collapses_structural_duplicates_and_orders_deterministically() -> None:
    first = _citation("b quote", target="spec#B")
    second = _citation("a quote", target="spec#A")
    duplicate = _citation("b quote", target="spec#B")

    annotations = AnnotationSet([first, second, duplicate])
    assert len(annotations) == 2
    assert [item.target for item in annotations] == ["spec#A", "spec#B"]
    assert duplicate in annotations
    assert AnnotationSet([second, first]) == annotations


@pytest.mark.unit
def test_records_differing_in_any_field_are_distinct() -> None:
    base = _citation()
    moved = _citation(position=TextPosition(anno_line=3, anno_column=1, path="client.rs"))
    commented = _citation(comment="raw")
    assert len(AnnotationSet([base, moved, commented])) == 3


@pytest.mark.unit
def test_union_merge_and_kind_filter() -> None:
    citation = _citation()
    exception = Annotation(target="x", quote="q", source=SOURCE, details=ExceptionDetails())
    todo = Annotation(target="y", quote="", source=SOURCE, details=TodoDetails())

    left = AnnotationSet([citation])
    right = AnnotationSet([exception, citation])
    merged = left | right
    assert len(merged) == 2
    assert len(left) == 1

    everything = AnnotationSet.merge([left, right, [todo]])
    assert len(everything) == 3
    assert everything.targets() == ("rfc9000#4.1", "x", "y")
    assert [item.kind for item in everything.of_kind(AnnotationKind.TODO)] == [
        AnnotationKind.TODO
    ]


@pytest.mark.unit
def test_set_rejects_non_annotations() -> None:
    with pytest.raises(TypeError, match="expected Annotation"):
        AnnotationSet(["not an annotation"])  # type: ignore[list-item]


@pytest.mark.unit
def test_canonical_json_is_stable_and_restorable() -> None:
    annotations = AnnotationSet(
        [
            _citation(position=TextPosition(anno_line=10, anno_column=5, item_line=11)),
            Annotation(
                target="spec#todo",
                quote="later",
                source=Path("decl/todos.toml"),
                details=TodoDetails(tags=frozenset({"b", "a"}), feature="f"),
            ),
        ]
    )
    encoded = annotations.to_json()
    assert encoded == AnnotationSet(reversed(list(annotations))).to_json()

    payload = json.loads(encoded)
    assert payload["schema_version"] == 1
    assert payload["annotations"][1]["tags"] == ["a", "b"]
    assert payload["annotations"][1]["manifest_dir"] == "decl/todos.toml"

    assert AnnotationSet.from_json(encoded) == annotations


@pytest.mark.unit
def test_from_dict_rejects_unknown_fields() -> None:
    payload = _citation().to_dict()
    payload["severity"] = "high"
    with pytest.raises(ValueError, match=r"unexpected fields: \['severity'\]"):
        Annotation.from_dict(payload)


@pytest.mark.unit
def test_from_json_rejects_other_schema_versions() -> None:
    with pytest.raises(ValueError, match="unsupported version 2"):
        AnnotationSet.from_json('{"schema_version": 2, "annotations": []}')


@pytest.mark.unit
@pytest.mark.parametrize(
    ("kind", "foreign"),
    [
        ("citation", {"feature": "flow"}),
        ("citation", {"tracking_issue": "#1"}),
        ("citation", {"tags": ["x"]}),
        ("exception", {"level": "MUST"}),
        ("exception", {"tags": ["x"]}),
        ("todo", {"format": "ietf"}),
        ("todo", {"level": "SHOULD"}),
    ],
)
def test_from_dict_rejects_fields_of_another_kind(kind: str, foreign: dict[str, object]) -> None:
    payload: dict[str, object] = {
        "kind": kind,
        "target": "spec#A",
        "quote": "The client MUST retry",
        "source": "src/client.rs",
    }
    payload.update(foreign)
    (name,) = foreign
    with pytest.raises(ValueError, match=f"Annotation.{name}: not allowed on {kind} annotations"):
        Annotation.from_dict(payload)


@pytest.mark.unit
def test_from_dict_accepts_serialized_defaults_of_other_kinds() -> None:
    exception = Annotation(target="x", quote="q", source=SOURCE, details=ExceptionDetails())
    payload = exception.to_dict()
    assert payload["level"] == "AUTO"
    assert payload["tags"] == []
    assert Annotation.from_dict(payload) == exception
