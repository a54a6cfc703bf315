"""Variable substitution for prompt templates.

Templates are strings containing ``{{name}}`` placeholders, or nested
dicts/lists whose string leaves contain them. Rendering is a pure lookup:
placeholder names are resolved against the supplied variables and nothing
in a template is ever evaluated.
"""

import json
import re
from typing import Any, List, Mapping

from promptdesk.errors import SubstitutionError

# Any {{...}} span is a placeholder; its contents must be a valid name.
_PLACEHOLDER = re.compile(r"\{\{([^{}]*)\}\}")
_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_.\-]*")

_MISSING = object()


def find_placeholders(template: Any) -> List[str]:
    """Return the placeholder names referenced by a template, in order.

    Args:
        template: A string, or a nested dict/list of strings.

    Returns:
        Unique placeholder names in order of first appearance.

    Raises:
        SubstitutionError: If a placeholder does not contain a valid name.
    """
    names: List[str] = []
    for text in _iter_strings(template):
        for match in _PLACEHOLDER.finditer(text):
            name = _placeholder_name(match)
            if name not in names:
                names.append(name)
    return names


def render(template: Any, variables: Mapping[str, Any]) -> Any:
    """Render a template against a variable set.

    A string made of exactly one placeholder yields the variable's value
    unchanged (so numbers and objects keep their type); otherwise values
    are interpolated as text.

    Args:
        template: A string, or a nested dict/list of strings.
        variables: Values available to placeholders. Dotted names are
            resolved through nested dicts and lists.

    Returns:
        The rendered value, with the same structure as ``template``.

    Raises:
        SubstitutionError: If a placeholder is malformed or has no
            matching variable.
    """
    if isinstance(template, str):
        return _render_string(template, variables)
    if isinstance(template, dict):
        return {key: render(value, variables) for key, value in template.items()}
    if isinstance(template, list):
        return [render(item, variables) for item in template]
    return template


def lookup(variables: Mapping[str, Any], name: str) -> Any:
    """Resolve a (possibly dotted) variable name.

    Raises:
        SubstitutionError: If the name cannot be resolved.
    """
    if name in variables:
        return variables[name]

    current: Any = variables
    for segment in name.split("."):
        current = _step(current, segment)
        if current is _MISSING:
            raise SubstitutionError(name)
    return current


def _render_string(template: str, variables: Mapping[str, Any]) -> Any:
    whole = _PLACEHOLDER.fullmatch(template)
    if whole:
        return lookup(variables, _placeholder_name(whole))

    return _PLACEHOLDER.sub(
        lambda match: _to_text(lookup(variables, _placeholder_name(match))), template
    )


def _placeholder_name(match: re.Match) -> str:
    name = match.group(1).strip()
    if not _NAME.fullmatch(name):
        raise SubstitutionError(
            name, "Malformed placeholder '{}'.".format(match.group(0))
        )
    return name


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(segment, _MISSING)
    if isinstance(current, (list, tuple)) and segment.lstrip("-").isdigit():
        index = int(segment)
        if -len(current) <= index < len(current):
            return current[index]
    return _MISSING


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def _iter_strings(template: Any):
    if isinstance(template, str):
        yield template
    elif isinstance(template, dict):
        for value in template.values():
            yield from _iter_strings(value)
    elif isinstance(template, list):
        for item in template:
            yield from _iter_strings(item)
