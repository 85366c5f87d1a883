"""
Step Executor - performs one declarative step against a live page.

Steps arrive already template-rendered. Each handler performs exactly
one browser action and returns the outputs it produced (usually none).
Driver exceptions are wrapped in StepExecutionFailure.
"""

import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from core.clock import SystemClock
from core.context import RunContext
from core.errors import FrameworkError, StepExecutionFailure, UnsupportedAction
from core.steps import (
    StepBase,
    NavigateStep,
    ClickStep,
    FillStep,
    PressStep,
    CheckStep,
    SelectStep,
    WaitForSelectorStep,
    WaitStep,
    ScreenshotStep,
    CopyStep,
    UploadStep,
    EvalStep,
    PointerStep,
    parse_step,
)

logger = structlog.get_logger()

DEFAULT_TIMEOUT_MS = 30000

# Type alias for step handlers: (page, step, context, timeout_ms) -> outputs
StepHandler = Callable[[Any, Any, RunContext, int], Awaitable[dict[str, str]]]


class StepExecutor:
    """
    Dispatches steps to per-action handlers.

    Handlers are looked up by action name, so extra actions can be
    registered without subclassing.
    """

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()
        self._handlers: dict[str, StepHandler] = {
            "navigate": self.navigate,
            "open": self.navigate,
            "click": self.click,
            "fill": self.fill,
            "press": self.press,
            "check": self.check,
            "uncheck": self.check,
            "select": self.select,
            "waitForSelector": self.wait_for_selector,
            "wait": self.wait,
            "screenshot": self.screenshot,
            "copy": self.copy,
            "upload": self.upload,
            "eval": self.evaluate,
            "focus": self.pointer,
            "hover": self.pointer,
        }

    def register_handler(self, action: str, handler: StepHandler) -> None:
        """Register (or replace) the handler for an action."""
        self._handlers[action] = handler

    def get_handlers(self) -> dict[str, StepHandler]:
        return dict(self._handlers)

    async def execute(
        self,
        page: Any,
        step: Union[dict[str, Any], StepBase],
        context: RunContext,
    ) -> dict[str, str]:
        """
        Execute one step.

        Args:
            page: Live page handle
            step: Rendered step record (or an already-parsed step model)
            context: Step-scoped run context

        Returns:
            Mapping of newly produced output keys to string values

        Raises:
            UnsupportedAction: unknown action identifier
            StepExecutionFailure: the browser operation failed
        """
        step_index = context.run.get("currentStepIndex")
        parsed = step if isinstance(step, StepBase) else parse_step(step, step_index=step_index)

        handler = self._handlers.get(parsed.action)
        if handler is None:
            raise UnsupportedAction(parsed.action, context={"step_index": step_index})

        timeout = self._timeout(parsed, context)
        start_time = time.monotonic()

        try:
            output = await handler(page, parsed, context, timeout)
        except FrameworkError:
            raise
        except Exception as e:
            raise StepExecutionFailure(
                f"{parsed.action} failed: {e}",
                action=parsed.action,
                selector=getattr(parsed, "selector", None),
                url=getattr(page, "url", None),
                step_index=step_index,
            ) from e

        logger.debug(
            "step_executed",
            action=parsed.action,
            step_index=step_index,
            outputs=list(output),
            duration_ms=round((time.monotonic() - start_time) * 1000, 1),
        )
        return output

    def _timeout(self, step: StepBase, context: RunContext) -> int:
        """Step override, then run default, then 30s. Zero counts as unset."""
        if step.timeout_ms:
            return step.timeout_ms
        return int(context.run.get("timeoutMs") or DEFAULT_TIMEOUT_MS)

    async def navigate(self, page: Any, step: NavigateStep, context: RunContext, timeout: int) -> dict:
        """Load `url` and wait for `waitUntil` (default domcontentloaded)."""
        await page.goto(step.url, wait_until=step.wait_until, timeout=timeout)
        return {}

    async def click(self, page: Any, step: ClickStep, context: RunContext, timeout: int) -> dict:
        await page.locator(step.selector).click(timeout=timeout)
        return {}

    async def fill(self, page: Any, step: FillStep, context: RunContext, timeout: int) -> dict:
        await page.locator(step.selector).fill(step.value, timeout=timeout)
        return {}

    async def press(self, page: Any, step: PressStep, context: RunContext, timeout: int) -> dict:
        await page.locator(step.selector).press(step.key, timeout=timeout)
        return {}

    async def check(self, page: Any, step: CheckStep, context: RunContext, timeout: int) -> dict:
        locator = page.locator(step.selector)
        if step.action == "check":
            await locator.check(timeout=timeout)
        else:
            await locator.uncheck(timeout=timeout)
        return {}

    async def select(self, page: Any, step: SelectStep, context: RunContext, timeout: int) -> dict:
        await page.locator(step.selector).select_option(step.value, timeout=timeout)
        return {}

    async def wait_for_selector(
        self,
        page: Any,
        step: WaitForSelectorStep,
        context: RunContext,
        timeout: int,
    ) -> dict:
        await page.wait_for_selector(step.selector, state=step.state, timeout=timeout)
        return {}

    async def wait(self, page: Any, step: WaitStep, context: RunContext, timeout: int) -> dict:
        """Fixed pause; ignores page state and the step timeout."""
        await page.wait_for_timeout(step.ms)
        return {}

    async def screenshot(self, page: Any, step: ScreenshotStep, context: RunContext, timeout: int) -> dict:
        """
        Capture the page under the site's output directory.

        Absolute file names are re-rooted under the site directory;
        `..` segments that climb out of it fail the step.

        Output:
            <key> (default "screenshot"): absolute path of the image
        """
        site_dir = Path(context.run.get("siteOutputDir") or ".").resolve()
        requested = Path(step.file or f"screenshot-{int(self.clock.now().timestamp() * 1000)}.png")
        if requested.anchor:
            requested = requested.relative_to(requested.anchor)
        output_path = (site_dir / requested).resolve()

        if not output_path.is_relative_to(site_dir):
            raise StepExecutionFailure(
                f"Screenshot path escapes the site output directory: {step.file}",
                action=step.action,
                url=getattr(page, "url", None),
                step_index=context.run.get("currentStepIndex"),
                retryable=False,
            )

        output_path.parent.mkdir(parents=True, exist_ok=True)
        await page.screenshot(path=str(output_path), full_page=step.full_page, timeout=timeout)

        return {step.key: str(output_path)}

    async def copy(self, page: Any, step: CopyStep, context: RunContext, timeout: int) -> dict:
        """
        Read an attribute (or trimmed text) from the first match.

        No match, or a missing attribute, yields "".

        Output:
            <key> (default "copied_value"): trimmed string
        """
        locator = page.locator(step.selector).first
        value: Optional[str] = None

        if await locator.count() > 0:
            if step.attribute:
                value = await locator.get_attribute(step.attribute, timeout=timeout)
            else:
                value = await locator.text_content(timeout=timeout)

        return {step.key: str(value or "").strip()}

    async def upload(self, page: Any, step: UploadStep, context: RunContext, timeout: int) -> dict:
        """Attach local file(s); relative paths resolve against the workflow directory."""
        base_dir = Path(context.run.get("workflowDir") or ".")
        files = step.file if isinstance(step.file, list) else [step.file]
        resolved = [str(base_dir / path) for path in files]

        await page.locator(step.selector).set_input_files(
            resolved if isinstance(step.file, list) else resolved[0],
            timeout=timeout,
        )
        return {}

    async def evaluate(self, page: Any, step: EvalStep, context: RunContext, timeout: int) -> dict:
        await page.evaluate(step.script)
        return {}

    async def pointer(self, page: Any, step: PointerStep, context: RunContext, timeout: int) -> dict:
        locator = page.locator(step.selector)
        if step.action == "focus":
            await locator.focus(timeout=timeout)
        else:
            await locator.hover(timeout=timeout)
        return {}
