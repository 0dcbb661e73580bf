"""Jinja2 template rendering for project skeletons.

Provides the TemplateRenderer class which renders path and content templates
held in memory with a strict substitution context, and discovers which
placeholders a template references before anything is rendered.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from jinja2 import Environment, StrictUndefined, meta

# Jinja2 delimiters; a resolved value containing any of them would be
# rendered a second time if substituted into another template.
_TEMPLATE_SYNTAX = re.compile(r"\{\{|\{%|\{#")


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 templates for project scaffolding.

    Undefined variables raise instead of rendering as empty strings, so a
    missing binding can never silently produce a truncated path or file.
    """

    def __init__(self) -> None:
        self.env = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Register custom filters
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["pascal_case"] = _pascal_case_filter
        self.env.filters["snake_case"] = _snake_case_filter
        self.env.filters["camel_case"] = _camel_case_filter

    def render_string(self, template_string: str, context: Mapping[str, Any]) -> str:
        """Render an inline template string with the provided context.

        Raises:
            jinja2.UndefinedError: If the template uses a name missing from
                *context*.
            jinja2.TemplateSyntaxError: If the template cannot be parsed.
        """
        template = self.env.from_string(template_string)
        return template.render(**context)

    def placeholders(self, template_string: str) -> set[str]:
        """Return the names *template_string* reads from its context.

        Names assigned inside the template (``{% set %}``, loop variables)
        are not reported.
        """
        ast = self.env.parse(template_string)
        return set(meta.find_undeclared_variables(ast))


def contains_template_syntax(value: str) -> bool:
    """True when *value* contains a Jinja2 opening delimiter."""
    return bool(_TEMPLATE_SYNTAX.search(value))


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def _slugify_filter(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", value)
    return "".join(word.capitalize() for word in parts if word)


def _snake_case_filter(value: str) -> str:
    """Convert ``SomeThing`` or ``some-thing`` to ``some_thing``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", value)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[-\s]+", "_", s2).lower()


def _camel_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = _pascal_case_filter(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""
