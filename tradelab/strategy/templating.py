"""
Parameter templating for strategy descriptions.

Strategy files reference their own parameter map with `{{ parameters.x }}`
or the short form `{{ x }}`:

    parameters:
      fast_period: 10
    indicators:
      - name: sma_fast
        type: SMA
        parameters: {period: "{{fast_period}}"}

A value that is exactly one template takes the parameter's value with its
type intact (10, not "10"). Templates embedded in longer text, such as
condition strings, are replaced by the parameter's text form.
"""

import re
from typing import Any, List, Mapping

TEMPLATE_RE = re.compile(r"\{\{\s*(?:parameters\.)?([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def template_names(value: Any) -> List[str]:
    """Parameter names referenced by templates anywhere inside `value`."""
    if isinstance(value, str):
        return TEMPLATE_RE.findall(value)
    if isinstance(value, Mapping):
        names = []
        for item in value.values():
            names.extend(template_names(item))
        return names
    if isinstance(value, (list, tuple)):
        names = []
        for item in value:
            names.extend(template_names(item))
        return names
    return []


def missing_parameters(value: Any, parameters: Mapping[str, Any]) -> List[str]:
    """Referenced names not present in `parameters`, in first-seen order."""
    missing = []
    for name in template_names(value):
        if name not in parameters and name not in missing:
            missing.append(name)
    return missing


def render(value: Any, parameters: Mapping[str, Any]) -> Any:
    """
    Substitute parameter templates in `value` (recursively for dicts/lists).

    Unknown names are left in place; the condition tokenizer reports any
    template that survives rendering.
    """
    if isinstance(value, str):
        whole = TEMPLATE_RE.fullmatch(value.strip())
        if whole and whole.group(1) in parameters:
            return parameters[whole.group(1)]

        def substitute(match):
            name = match.group(1)
            if name not in parameters:
                return match.group(0)
            return _as_text(parameters[name])

        return TEMPLATE_RE.sub(substitute, value)
    if isinstance(value, Mapping):
        return {key: render(item, parameters) for key, item in value.items()}
    if isinstance(value, list):
        return [render(item, parameters) for item in value]
    return value


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)
