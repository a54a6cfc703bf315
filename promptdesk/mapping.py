"""Declarative mapping rules and their interpreter.

A mapping rule is stored configuration describing how to project one
structured value into another. It is parsed into a small tagged-variant
AST and evaluated by a pure function: no side effects, no I/O, and no
executable code in stored documents.

Rule document syntax (JSON/YAML):

- ``{"$path": "choices.0.text"}`` -- extract a nested value; add
  ``"default": ...`` to make it optional
- ``{"$literal": value}`` -- inject ``value`` verbatim
- ``{"$template": "Bearer {{api_key}}"}`` -- render a template
- ``{"$rename": "parameters", "fields": {"max_tokens": "maxTokens"},
  "drop": ["stream"]}`` -- copy a dict with keys renamed or removed
- ``{"$merge": [rule, rule, ...]}`` -- shallow-merge dict results
- any other dict or list -- an object or sequence of rules
- a string containing ``{{`` -- shorthand for ``$template``
- any other scalar -- a literal
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple, Union

from promptdesk.errors import MappingError, SubstitutionError
from promptdesk.substitution import render

_OPERATORS = ("$path", "$literal", "$template", "$rename", "$merge")


@dataclass(frozen=True)
class LiteralNode:
    value: Any


@dataclass(frozen=True)
class PathNode:
    path: str
    default: Any = None
    has_default: bool = False


@dataclass(frozen=True)
class TemplateNode:
    template: Any


@dataclass(frozen=True)
class RenameNode:
    source_path: str
    fields: Dict[str, str] = field(default_factory=dict)
    drop: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MergeNode:
    parts: Tuple["Node", ...]


@dataclass(frozen=True)
class ObjectNode:
    fields: Tuple[Tuple[str, "Node"], ...]


@dataclass(frozen=True)
class SequenceNode:
    items: Tuple["Node", ...]


Node = Union[
    LiteralNode,
    PathNode,
    TemplateNode,
    RenameNode,
    MergeNode,
    ObjectNode,
    SequenceNode,
]


def parse_rule(document: Any) -> Node:
    """Parse a stored rule document into a mapping AST.

    Raises:
        MappingError: If the document uses an unknown operator or an
            operator has a malformed operand.
    """
    if isinstance(document, dict):
        operators = [key for key in document if key.startswith("$")]
        if not operators:
            return ObjectNode(
                tuple((key, parse_rule(value)) for key, value in document.items())
            )
        if len(operators) > 1 or operators[0] not in _OPERATORS:
            raise MappingError(
                "Invalid mapping operator(s): {}".format(", ".join(operators))
            )
        return _parse_operator(operators[0], document)

    if isinstance(document, list):
        return SequenceNode(tuple(parse_rule(item) for item in document))

    if isinstance(document, str) and "{{" in document:
        return TemplateNode(document)

    return LiteralNode(document)


def _parse_operator(operator: str, document: Dict[str, Any]) -> Node:
    operand = document[operator]

    if operator == "$literal":
        return LiteralNode(operand)

    if operator == "$template":
        return TemplateNode(operand)

    if operator == "$path":
        if not isinstance(operand, str) or not operand:
            raise MappingError("$path expects a non-empty dotted path string.")
        return PathNode(
            path=operand,
            default=document.get("default"),
            has_default="default" in document,
        )

    if operator == "$rename":
        fields = document.get("fields", {})
        drop = document.get("drop", [])
        if not isinstance(operand, str) or not isinstance(fields, dict):
            raise MappingError(
                "$rename expects a source path and a 'fields' mapping."
            )
        if not isinstance(drop, list):
            raise MappingError("$rename 'drop' must be a list of keys.")
        return RenameNode(source_path=operand, fields=dict(fields), drop=tuple(drop))

    # $merge
    if not isinstance(operand, list):
        raise MappingError("$merge expects a list of rules.")
    return MergeNode(tuple(parse_rule(part) for part in operand))


def evaluate(node: Node, source: Mapping[str, Any]) -> Any:
    """Evaluate a mapping AST against a source value.

    Args:
        node: A parsed rule.
        source: The structured value the rule projects from.

    Returns:
        The projected value.

    Raises:
        MappingError: If the rule references a field absent from ``source``
            or combines incompatible values.
    """
    if isinstance(node, LiteralNode):
        return node.value

    if isinstance(node, PathNode):
        try:
            return extract_path(source, node.path)
        except MappingError:
            if node.has_default:
                return node.default
            raise

    if isinstance(node, TemplateNode):
        try:
            return render(node.template, source)
        except SubstitutionError as exc:
            raise MappingError(
                "Invalid template: {}".format(exc.detail)
            ) from exc

    if isinstance(node, RenameNode):
        value = extract_path(source, node.source_path)
        if not isinstance(value, Mapping):
            raise MappingError(
                "Field '{}' is not an object and cannot be renamed.".format(
                    node.source_path
                )
            )
        return {
            node.fields.get(key, key): item
            for key, item in value.items()
            if key not in node.drop
        }

    if isinstance(node, MergeNode):
        merged: Dict[str, Any] = {}
        for part in node.parts:
            value = evaluate(part, source)
            if not isinstance(value, Mapping):
                raise MappingError("$merge parts must evaluate to objects.")
            merged.update(value)
        return merged

    if isinstance(node, ObjectNode):
        return {key: evaluate(child, source) for key, child in node.fields}

    if isinstance(node, SequenceNode):
        return [evaluate(item, source) for item in node.items]

    raise MappingError("Unsupported mapping node: {!r}".format(node))


def extract_path(source: Any, path: str) -> Any:
    """Follow a dotted path through dicts and lists.

    Integer segments index into lists (negative indices allowed).

    Raises:
        MappingError: If any segment is absent.
    """
    current = source
    walked: List[str] = []
    for segment in path.split("."):
        walked.append(segment)
        if isinstance(current, Mapping) and segment in current:
            current = current[segment]
            continue
        if isinstance(current, (list, tuple)) and _is_index(segment):
            index = int(segment)
            if -len(current) <= index < len(current):
                current = current[index]
                continue
        raise MappingError(
            "Field '{}' is absent from the source value.".format(".".join(walked))
        )
    return current


def _is_index(segment: str) -> bool:
    return segment.lstrip("-").isdigit()
