"""
Context Builder - layered data visible to template resolution.

A context is rebuilt, never mutated: every derived scope (site, step,
new outputs) gets a fresh RunContext whose section dicts are copies.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from .clock import SystemClock, now_fields


SECTIONS = ("workflow", "site", "vars", "run", "outputs", "now", "env")


@dataclass(frozen=True)
class RunContext:
    """Snapshot of {workflow, site, vars, run, outputs, now, env}."""
    workflow: dict = field(default_factory=dict)
    site: dict = field(default_factory=dict)
    vars: dict = field(default_factory=dict)
    run: dict = field(default_factory=dict)
    outputs: dict = field(default_factory=dict)
    now: dict = field(default_factory=dict)
    env: Mapping = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        """Mapping-style access to a top-level section."""
        if name in SECTIONS:
            return getattr(self, name)
        return default

    def __getitem__(self, name: str) -> Any:
        if name not in SECTIONS:
            raise KeyError(name)
        return getattr(self, name)

    def __contains__(self, name: object) -> bool:
        return name in SECTIONS

    def with_run(self, **fields: Any) -> "RunContext":
        """Derive a context whose `run` section has extra/overridden fields."""
        return replace(self, run={**self.run, **fields})

    def with_site(self, site: Mapping) -> "RunContext":
        """Derive a context scoped to a different site record."""
        return replace(self, site=dict(site))

    def with_outputs(self, outputs: Mapping) -> "RunContext":
        """Derive a context seeing a copy of the given outputs."""
        return replace(self, outputs=dict(outputs))

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in SECTIONS}


def build_context(
    workflow: Optional[Mapping] = None,
    site: Optional[Mapping] = None,
    run_id: Optional[str] = None,
    outputs: Optional[Mapping] = None,
    vars: Optional[Mapping] = None,
    clock=None,
    environ: Optional[Mapping[str, str]] = None,
) -> RunContext:
    """
    Build a base context.

    `now` and `env` are captured at build time; `run` starts as
    {id, startedAt} and is augmented by the engine per site and step.
    """
    clock = clock or SystemClock()
    now = now_fields(clock)
    return RunContext(
        workflow=dict(workflow or {}),
        site=dict(site or {}),
        vars=dict(vars or {}),
        run={"id": run_id, "startedAt": now["iso"]},
        outputs=dict(outputs or {}),
        now=now,
        env=dict(environ if environ is not None else os.environ),
    )


def clone_context(
    context: RunContext,
    patch: Optional[Mapping] = None,
    clock=None,
    environ: Optional[Mapping[str, str]] = None,
) -> RunContext:
    """
    Clone a context for a derived scope.

    `workflow`, `site` and `outputs` are shallow-merged with the patch
    (patch wins on collisions). `run.id` is preserved and `vars` is
    rebuilt from the merged workflow document.
    """
    patch = patch or {}
    workflow = {**context.workflow, **(patch.get("workflow") or {})}
    return build_context(
        workflow=workflow,
        site={**context.site, **(patch.get("site") or {})},
        run_id=context.run.get("id"),
        outputs={**context.outputs, **(patch.get("outputs") or {})},
        vars=workflow.get("vars") or {},
        clock=clock,
        environ=environ,
    )
