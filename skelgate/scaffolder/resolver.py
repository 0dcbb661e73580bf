"""Variable resolution: from caller input to a frozen substitution table."""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Callable, Iterable, Iterator, Mapping, Optional

from jinja2 import TemplateError as JinjaTemplateError

from skelgate.errors import InvalidValue, MissingVariable

from .store import VariableSpec
from .templates import TemplateRenderer, contains_template_syntax

# ``prompt(spec, default) -> answer``
PromptFn = Callable[[VariableSpec, Optional[str]], str]


class SubstitutionTable(Mapping[str, str]):
    """Resolved placeholder values for one instantiation run. Read-only."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values = MappingProxyType(dict(values or {}))

    def __getitem__(self, name: str) -> str:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"SubstitutionTable({dict(self._values)!r})"

    def as_context(self) -> dict[str, str]:
        """Return a copy suitable for passing to a template."""
        return dict(self._values)


def resolve(required_names: Iterable[str], supplied: Mapping[str, object]) -> SubstitutionTable:
    """Validate *supplied* against *required_names* and freeze it.

    Every required name must be present; every value (required or not) must
    be a non-empty string free of template syntax.

    Raises:
        MissingVariable: Naming the first missing variable (alphabetically);
            ``missing`` lists all of them.
        InvalidValue: If a value is empty, not a string, or would itself be
            rendered as a template.
    """
    missing = sorted(name for name in set(required_names) if name not in supplied)
    if missing:
        raise MissingVariable(missing[0], missing)

    values: dict[str, str] = {}
    for name, value in supplied.items():
        if not isinstance(value, str):
            raise InvalidValue(name, f"expected a string, got {type(value).__name__}")
        if not value.strip():
            raise InvalidValue(name, "value is empty")
        if contains_template_syntax(value):
            raise InvalidValue(name, "value contains template syntax")
        values[name] = value
    return SubstitutionTable(values=values)


def collect(
    variables: Iterable[VariableSpec],
    supplied: Mapping[str, str],
    prompt: PromptFn | None = None,
    renderer: TemplateRenderer | None = None,
) -> dict[str, str]:
    """Gather a value for every declared variable, in declaration order.

    A supplied value wins. Otherwise the default is rendered against the
    values gathered so far and, when *prompt* is given, offered to the user.
    Supplied names the manifest does not declare are passed through.

    Raises:
        InvalidValue: If a value violates the variable's ``choices`` or
            ``pattern``, or its default cannot be rendered.
    """
    renderer = renderer or TemplateRenderer()
    collected: dict[str, str] = {}

    for spec in variables:
        if spec.name in supplied:
            value = supplied[spec.name]
        else:
            default = _render_default(spec, collected, renderer)
            if prompt is not None:
                value = prompt(spec, default)
            elif default is not None:
                value = default
            else:
                continue  # resolve() reports it as missing
        _validate(spec, value)
        collected[spec.name] = value

    for name, value in supplied.items():
        collected.setdefault(name, value)
    return collected


def parse_var_args(pairs: Iterable[str]) -> dict[str, str]:
    """Turn ``["name=value", ...]`` into a mapping.

    Raises:
        InvalidValue: For a pair without ``=`` or a name given twice.
    """
    result: dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        name = name.strip()
        if not sep or not name:
            raise InvalidValue(pair, "expected name=value")
        if name in result:
            raise InvalidValue(name, "supplied more than once")
        result[name] = value
    return result


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _render_default(
    spec: VariableSpec, collected: Mapping[str, str], renderer: TemplateRenderer
) -> str | None:
    if spec.default is None:
        return None
    try:
        return renderer.render_string(spec.default, collected)
    except JinjaTemplateError as exc:
        raise InvalidValue(spec.name, f"cannot render default: {exc}") from exc


def _validate(spec: VariableSpec, value: str) -> None:
    if spec.choices and value not in spec.choices:
        raise InvalidValue(spec.name, f"must be one of {', '.join(spec.choices)}")
    if spec.pattern and not re.fullmatch(spec.pattern, value):
        raise InvalidValue(spec.name, f"does not match pattern {spec.pattern!r}")
