"""
Workflow Engine - runs every site of a workflow through the browser.

Per site: pending -> running -> success | failed. Steps within a site
run strictly in order; each step is rendered against a context that
already contains the outputs of the steps before it. Whether a failed
site stops the run is decided by the continuation policy alone.
"""

import asyncio
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Optional, Union

import structlog

from browser.actions import DEFAULT_TIMEOUT_MS, StepExecutor
from browser.manager import BrowserManager
from core.clock import SystemClock, now_fields
from core.config import LoadedWorkflow, SiteDefinition, WorkflowSettings, load_workflow
from core.context import RunContext, build_context
from core.errors import MissingAuthState
from core.template import TemplateResolver
from .report import (
    RunOutcome,
    RunReport,
    SiteResult,
    SiteStatus,
    error_record,
    sanitize_name,
    write_json,
)

logger = structlog.get_logger()

SITE_ARTIFACT = "outputs.json"
REPORT_ARTIFACT = "run-report.json"


class WorkflowEngine:
    """
    Orchestrates workflow runs.

    Features:
    - One browser process per run, one isolated context per site
    - Outputs accumulate per site and feed later steps
    - Continue-on-failure / stop-on-failure policy
    - Optional bounded parallelism across sites (report stays in source order)
    - Per-site outputs.json and an aggregate run-report.json
    """

    def __init__(
        self,
        browser_factory: Optional[Callable[..., BrowserManager]] = None,
        executor: Optional[StepExecutor] = None,
        clock=None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize engine.

        Args:
            browser_factory: Callable(headless, slow_mo, browser_type) returning
                a BrowserManager-compatible object (default: BrowserManager)
            executor: Step executor (default: StepExecutor sharing the clock)
            clock: Time source for run ids, timestamps and `now.*`
            environ: Environment for `env.*` (default: os.environ)
        """
        self.clock = clock or SystemClock()
        self.environ = environ
        self.browser_factory = browser_factory or BrowserManager
        self.executor = executor or StepExecutor(clock=self.clock)

    async def run_workflow(
        self,
        workflow_path: Union[str, Path],
        output_dir: Optional[Union[str, Path]] = None,
        headless: Optional[bool] = None,
        continue_on_failure: Optional[bool] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> RunOutcome:
        """
        Execute a workflow file end to end.

        Args:
            workflow_path: Path to the YAML workflow
            output_dir: Output root (relative paths resolve against the
                workflow's directory; default settings.outputDir)
            headless: Override settings.headless
            continue_on_failure: Override settings.continueOnFailure
            extra: Free-form data copied into the report

        Returns:
            RunOutcome with run id, run output directory, report path and report

        Raises:
            WorkflowLoadFailure: before any browser resource is allocated
        """
        loaded = load_workflow(workflow_path)
        workflow = loaded.workflow
        settings = workflow.settings

        run_id = self._new_run_id()
        run_dir = (loaded.dirname / (output_dir or settings.output_dir) / run_id).resolve()
        launch_headless = headless if isinstance(headless, bool) else settings.headless
        keep_going = self._continuation_policy(settings, continue_on_failure)

        resolver = TemplateResolver(
            clock=self.clock,
            environ=self.environ,
            strict=settings.strict_templates,
        )
        base_context = build_context(
            workflow=loaded.raw,
            site={},
            run_id=run_id,
            vars=workflow.vars,
            clock=self.clock,
            environ=self.environ,
        )

        report = RunReport(
            workflow=str(loaded.abs_path),
            run_id=run_id,
            started_at=base_context.run["startedAt"],
            settings={
                "headless": launch_headless,
                "continueOnFailure": keep_going,
                "concurrency": settings.concurrency,
                "timeoutMs": settings.timeout_ms,
                "browser": settings.browser,
            },
            extra=extra,
        )

        log = logger.bind(run_id=run_id)
        log.info(
            "run_started",
            workflow=str(loaded.abs_path),
            sites=len(workflow.sites),
            headless=launch_headless,
            continue_on_failure=keep_going,
        )

        run_dir.mkdir(parents=True, exist_ok=True)

        browser = self.browser_factory(
            headless=launch_headless,
            slow_mo=settings.slow_mo,
            browser_type=settings.browser,
        )

        try:
            await browser.launch()
            run = _SiteRun(self, loaded, base_context, browser, resolver, run_dir)

            if settings.concurrency > 1:
                results, aborted = await self._run_sites_concurrently(run, keep_going, settings.concurrency)
            else:
                results, aborted = await self._run_sites_sequentially(run, keep_going)
        finally:
            await browser.shutdown()

        report.results = results
        report.aborted = aborted
        report.finished_at = now_fields(self.clock)["iso"]

        report_path = write_json(run_dir / REPORT_ARTIFACT, report.to_dict())

        log.info(
            "run_completed",
            status=report.status,
            aborted=aborted,
            sites_run=len(results),
            report=str(report_path),
        )

        return RunOutcome(
            run_id=run_id,
            output_dir=run_dir,
            report_path=report_path,
            report=report,
        )

    async def _run_sites_sequentially(
        self,
        run: "_SiteRun",
        keep_going: bool,
    ) -> tuple[list[SiteResult], bool]:
        results: list[SiteResult] = []

        for index, site in enumerate(run.loaded.workflow.sites):
            result = await run.execute(index, site)
            results.append(result)

            if result.failed and not keep_going:
                logger.warning("run_aborted", run_id=run.run_id, site=result.name)
                return results, True

        return results, False

    async def _run_sites_concurrently(
        self,
        run: "_SiteRun",
        keep_going: bool,
        concurrency: int,
    ) -> tuple[list[SiteResult], bool]:
        """
        Run up to `concurrency` sites at once on the shared browser.

        Under stop-on-failure, a failure keeps sites that have not started
        yet from starting; sites already running finish normally.
        """
        semaphore = asyncio.Semaphore(concurrency)
        abort = asyncio.Event()
        lock = asyncio.Lock()
        collected: dict[int, SiteResult] = {}

        async def worker(index: int, site: SiteDefinition) -> None:
            async with semaphore:
                if abort.is_set():
                    return
                result = await run.execute(index, site)
                async with lock:
                    collected[index] = result
                    if result.failed and not keep_going and not abort.is_set():
                        logger.warning("run_aborted", run_id=run.run_id, site=result.name)
                        abort.set()

        # All workers join before an unexpected error is re-raised.
        finished = await asyncio.gather(
            *(worker(index, site) for index, site in enumerate(run.loaded.workflow.sites)),
            return_exceptions=True,
        )
        for outcome in finished:
            if isinstance(outcome, BaseException):
                raise outcome

        return [collected[index] for index in sorted(collected)], abort.is_set()

    def _continuation_policy(self, settings: WorkflowSettings, override: Optional[bool]) -> bool:
        """Invocation override, then workflow setting, then continue."""
        if override is not None:
            return override
        if settings.continue_on_failure is not None:
            return settings.continue_on_failure
        return True

    def _new_run_id(self) -> str:
        millis = now_fields(self.clock)["timestamp"]
        return f"run-{millis}-{uuid.uuid4().hex[:6]}"


class _SiteRun:
    """Everything a single site execution needs from its run."""

    def __init__(
        self,
        engine: WorkflowEngine,
        loaded: LoadedWorkflow,
        base_context: RunContext,
        browser: BrowserManager,
        resolver: TemplateResolver,
        run_dir: Path,
    ):
        self.engine = engine
        self.loaded = loaded
        self.base_context = base_context
        self.browser = browser
        self.resolver = resolver
        self.run_dir = run_dir
        self.run_id = base_context.run["id"]

    async def execute(self, index: int, site: SiteDefinition) -> SiteResult:
        """Run one site and persist its outputs.json; never raises for step errors."""
        settings = self.loaded.workflow.settings
        name = site.display_name(index)
        site_dir = self.run_dir / sanitize_name(name)
        site_dir.mkdir(parents=True, exist_ok=True)

        started_at = now_fields(self.engine.clock)["iso"]
        log = logger.bind(run_id=self.run_id, site=name)
        log.info("site_started", status=SiteStatus.RUNNING.value, index=index + 1)

        site_context = self.base_context.with_site(self._site_record(index, name)).with_run(
            siteOutputDir=str(site_dir),
            workflowOutputDir=str(self.run_dir),
            workflowDir=str(self.loaded.dirname),
            startedAt=started_at,
        )

        outputs: dict[str, Any] = {}
        errors: list[dict[str, Any]] = []
        status = SiteStatus.SUCCESS

        try:
            storage_state = self._auth_state(site, name)
            steps = [*self.loaded.workflow.defaults.steps, *site.steps]
            viewport = settings.viewport.model_dump() if settings.viewport else None

            async with self.browser.open_page(viewport=viewport, storage_state=storage_state) as page:
                for step_index, raw_step in enumerate(steps, start=1):
                    step_context = site_context.with_outputs(outputs).with_run(
                        currentStepIndex=step_index,
                        timeoutMs=settings.timeout_ms or DEFAULT_TIMEOUT_MS,
                    )
                    rendered = self.resolver.render(raw_step, step_context)
                    produced = await self.engine.executor.execute(page, rendered, step_context)

                    if produced:
                        outputs = {**outputs, **produced}

        except Exception as e:
            status = SiteStatus.FAILED
            errors.append(error_record(e))
            log.warning("site_failed", error=str(e), error_type=type(e).__name__)

        result = SiteResult(
            name=name,
            status=status,
            output_dir=site_dir,
            outputs=outputs,
            errors=errors,
            started_at=started_at,
            finished_at=now_fields(self.engine.clock)["iso"],
        )
        write_json(site_dir / SITE_ARTIFACT, result.artifact(self.run_id))

        log.info("site_completed", status=status.value, outputs=len(outputs))
        return result

    def _site_record(self, index: int, name: str) -> dict[str, Any]:
        """Site fields as written in the document, with the resolved name."""
        raw_sites = self.loaded.raw.get("sites") or []
        raw = raw_sites[index] if index < len(raw_sites) else {}
        return {**raw, "name": name}

    def _auth_state(self, site: SiteDefinition, name: str) -> Optional[Path]:
        """
        Resolve the site's persisted session.

        Raises:
            MissingAuthState: login required but the session file is absent
        """
        if not site.auth_state:
            if site.requires_login:
                raise MissingAuthState(name, None)
            return None

        path = (self.loaded.dirname / site.auth_state).resolve()
        if path.is_file():
            return path

        if site.requires_login:
            raise MissingAuthState(name, str(path))
        return None


async def run_workflow(
    workflow_path: Union[str, Path],
    output_dir: Optional[Union[str, Path]] = None,
    headless: Optional[bool] = None,
    continue_on_failure: Optional[bool] = None,
    extra: Optional[dict[str, Any]] = None,
) -> RunOutcome:
    """Run a workflow with a default engine."""
    return await WorkflowEngine().run_workflow(
        workflow_path,
        output_dir=output_dir,
        headless=headless,
        continue_on_failure=continue_on_failure,
        extra=extra,
    )
