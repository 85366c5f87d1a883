"""
Template Resolver - `{{ expr }}` substitution over a layered context.

Resolution order for an expression (first match wins):
    env.<KEY>       process environment, empty when absent
    now.<field>     iso | date | timestamp | unix, read fresh per placeholder
    site.<path>     current site record
    workflow.<path> workflow document
    run.<path>      run state (id, output dirs, step index, timeout)
    outputs.<path>  outputs captured earlier in the same site
    vars.<path>     workflow constants
    <name>          workflow constant, then top-level context entry

Anything else renders as an empty string unless the resolver is strict.
"""

import json
import os
import re
from collections.abc import Mapping
from typing import Any, Optional

from .clock import SystemClock, now_fields
from .errors import UnresolvedTemplate


MISSING = object()

PLACEHOLDER = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")

SCOPED_PREFIXES = ("site", "workflow", "run", "outputs", "vars")


def lookup_path(data: Any, path: str) -> Any:
    """
    Look up `path` in `data`.

    An exact key match wins; otherwise the path is walked one
    dot-separated segment at a time through mappings and sequences
    (integer segments). Attributes of values are never exposed.
    """
    if data is None:
        return MISSING

    if isinstance(data, Mapping) and path in data:
        return data[path]

    current = data
    for part in path.split("."):
        if current is None:
            return MISSING

        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)):
            try:
                index = int(part)
            except ValueError:
                return MISSING
            if not 0 <= index < len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING

    return current


def stringify(value: Any) -> str:
    """Render a resolved value the way workflow authors expect to see it."""
    if value is None or value is MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


class TemplateResolver:
    """
    Resolves template placeholders against a context.

    The context is anything with a mapping-style `get()`: a RunContext
    or a plain dict. Environment and clock are injected so that runs can
    be made deterministic without touching process state.
    """

    def __init__(
        self,
        clock=None,
        environ: Optional[Mapping[str, str]] = None,
        strict: bool = False,
    ):
        """
        Initialize resolver.

        Args:
            clock: Object with `now() -> datetime` (default: system UTC clock)
            environ: Environment mapping (default: os.environ, read live)
            strict: Raise UnresolvedTemplate instead of rendering ""
        """
        self.clock = clock or SystemClock()
        self.environ = environ if environ is not None else os.environ
        self.strict = strict

    def resolve(self, expression: str, context: Any) -> Any:
        """
        Resolve a single expression to its raw value.

        Returns the raw value (not stringified). Unresolvable expressions
        return "" (or raise in strict mode).
        """
        expr = expression.strip()
        value = self._lookup(expr, context)

        if value is MISSING:
            if self.strict:
                raise UnresolvedTemplate(expr)
            return ""
        return value

    def render(self, value: Any, context: Any) -> Any:
        """
        Render every placeholder inside `value`.

        Strings are substituted, lists and mappings are rebuilt with the
        same shape and key order, every other leaf is returned unchanged.
        """
        if isinstance(value, str):
            if "{{" not in value:
                return value
            return PLACEHOLDER.sub(
                lambda match: stringify(self.resolve(match.group(1), context)),
                value,
            )

        if isinstance(value, (list, tuple)):
            return [self.render(entry, context) for entry in value]

        if isinstance(value, Mapping):
            return {key: self.render(entry, context) for key, entry in value.items()}

        return value

    def _lookup(self, expr: str, context: Any) -> Any:
        if expr.startswith("env."):
            return self.environ.get(expr[len("env."):], MISSING)

        if expr.startswith("now."):
            return now_fields(self.clock).get(expr[len("now."):], MISSING)

        for prefix in SCOPED_PREFIXES:
            if expr.startswith(prefix + "."):
                return lookup_path(_section(context, prefix), expr[len(prefix) + 1:])

        variables = _section(context, "vars") or {}
        if expr in variables:
            return variables[expr]

        return _section(context, expr, MISSING)


def _section(context: Any, name: str, default: Any = None) -> Any:
    if context is None:
        return default
    return context.get(name, default)


_default_resolver = TemplateResolver()


def render_template(value: Any, context: Any, resolver: Optional[TemplateResolver] = None) -> Any:
    """Render `value` with the given resolver (or a shared lenient one)."""
    return (resolver or _default_resolver).render(value, context)
