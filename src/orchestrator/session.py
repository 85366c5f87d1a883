"""
Session capture - the one human-in-the-loop operation.

Opens a visible browser on the login page, waits for the operator to
finish logging in, then persists the context's storage state so that
workflows can reuse it through a site's `authState`.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

import structlog

from browser.manager import BrowserManager
from core.clock import SystemClock, now_fields
from core.template import TemplateResolver
from .report import sanitize_name

logger = structlog.get_logger()

CONFIRM_MESSAGE = (
    "Login to the site, complete any 2FA, then press Enter to capture the session state: "
)


@dataclass(frozen=True)
class CapturedSession:
    """Where a captured session was written."""
    alias: str
    auth_state: str
    started_at: str

    def to_dict(self) -> dict:
        return {
            "alias": self.alias,
            "authState": self.auth_state,
            "startedAt": self.started_at,
        }


async def console_confirm(message: str) -> None:
    """Block (off the event loop) until the operator presses Enter."""
    await asyncio.to_thread(input, message)


async def capture_session(
    alias: str,
    url: str,
    output: Optional[str] = None,
    base_dir: Optional[Union[str, Path]] = None,
    auth_dir: str = "auth",
    confirm: Optional[Callable[[str], Awaitable[None]]] = None,
    browser_factory: Optional[Callable[..., BrowserManager]] = None,
    clock=None,
) -> CapturedSession:
    """
    Capture a logged-in browser session to disk.

    Args:
        alias: Short name of the site (used for the default file name)
        url: Login page; may contain `env.*`/`now.*` placeholders
        output: File name (or path) under `<base_dir>/<auth_dir>`
        base_dir: Root directory (default: current working directory)
        auth_dir: Sub-directory that holds session files
        confirm: Awaitable called with a prompt; returns once login is done
        browser_factory: BrowserManager factory (headless is forced off)

    Returns:
        CapturedSession with the absolute session file path
    """
    clock = clock or SystemClock()
    confirm = confirm or console_confirm
    factory = browser_factory or BrowserManager

    target_dir = Path(base_dir or Path.cwd()).resolve() / auth_dir
    target_dir.mkdir(parents=True, exist_ok=True)
    out_path = (target_dir / (output or f"{sanitize_name(alias)}-session.json")).resolve()

    start_url = TemplateResolver(clock=clock).render(url, {})
    started_at = now_fields(clock)["iso"]

    logger.info("session_capture_started", alias=alias, url=start_url, output=str(out_path))

    browser = factory(headless=False)
    try:
        await browser.launch()
        async with browser.open_context() as (context, page):
            await page.goto(start_url, wait_until="domcontentloaded")
            await confirm(CONFIRM_MESSAGE)
            await browser.save_storage_state(context, out_path)
    finally:
        await browser.shutdown()

    logger.info("session_capture_completed", alias=alias, auth_state=str(out_path))

    return CapturedSession(alias=alias, auth_state=str(out_path), started_at=started_at)
