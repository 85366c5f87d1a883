"""Shared fixtures: an in-memory stand-in for the Playwright driver."""

import asyncio
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browser.manager import BrowserManager
from core.clock import FixedClock


class FakeLocator:
    """Locator over the fake page's current DOM."""

    def __init__(self, page: "FakePage", selector: str):
        self.page = page
        self.selector = selector

    @property
    def first(self) -> "FakeLocator":
        return self

    def _element(self, timeout=None) -> dict:
        element = self.page.dom.get(self.selector)
        if element is None:
            raise PlaywrightTimeoutError(
                f"Timeout {timeout}ms exceeded waiting for locator('{self.selector}')"
            )
        return element

    async def _act(self, method: str, *args, timeout=None, **kwargs) -> None:
        self.page.calls.append((method, self.selector, args, {"timeout": timeout, **kwargs}))
        element = self._element(timeout)
        if method == "fill":
            element["value"] = args[0]
        elif method in ("check", "uncheck"):
            element["checked"] = method == "check"

    async def count(self) -> int:
        return 1 if self.selector in self.page.dom else 0

    async def click(self, timeout=None):
        await self._act("click", timeout=timeout)

    async def fill(self, value, timeout=None):
        await self._act("fill", value, timeout=timeout)

    async def press(self, key, timeout=None):
        await self._act("press", key, timeout=timeout)

    async def check(self, timeout=None):
        await self._act("check", timeout=timeout)

    async def uncheck(self, timeout=None):
        await self._act("uncheck", timeout=timeout)

    async def select_option(self, value, timeout=None):
        await self._act("select_option", value, timeout=timeout)

    async def focus(self, timeout=None):
        await self._act("focus", timeout=timeout)

    async def hover(self, timeout=None):
        await self._act("hover", timeout=timeout)

    async def set_input_files(self, files, timeout=None):
        await self._act("set_input_files", files, timeout=timeout)

    async def get_attribute(self, name, timeout=None):
        return self._element(timeout).get("attrs", {}).get(name)

    async def text_content(self, timeout=None):
        return self._element(timeout).get("text")


class FakePage:
    """Page whose DOM is looked up per URL from the fake browser."""

    def __init__(self, context: "FakeContext"):
        self.context = context
        self.url = "about:blank"
        self.dom: dict = {}
        self.calls: list = []
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.calls.append(("goto", url, (), {"wait_until": wait_until, "timeout": timeout}))
        await asyncio.sleep(0)
        pages = self.context.browser.pages
        if url not in pages:
            raise PlaywrightTimeoutError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self.url = url
        self.dom = {selector: dict(element) for selector, element in pages[url].items()}

    def locator(self, selector):
        return FakeLocator(self, selector)

    async def wait_for_selector(self, selector, state="visible", timeout=None):
        self.calls.append(("wait_for_selector", selector, (), {"state": state, "timeout": timeout}))
        if selector not in self.dom:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def wait_for_timeout(self, ms):
        self.calls.append(("wait_for_timeout", None, (ms,), {}))

    async def screenshot(self, path=None, full_page=False, timeout=None):
        self.calls.append(("screenshot", None, (), {"path": path, "full_page": full_page}))
        Path(path).write_bytes(b"\x89PNG fake")
        return b"\x89PNG fake"

    async def evaluate(self, script, arg=None):
        self.calls.append(("evaluate", None, (script,), {}))
        return None

    def is_closed(self):
        return self.closed

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: dict):
        self.browser = browser
        self.options = options
        self.pages: list = []
        self.closed = False

    async def new_page(self):
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def storage_state(self, path=None):
        state = {"cookies": [{"name": "session", "value": "abc"}], "origins": []}
        Path(path).write_text(json.dumps(state))
        return state

    async def close(self):
        self.closed = True


class FakeBrowser:
    """
    Browser process stand-in.

    `pages` maps URL -> {selector: {"text": ..., "attrs": {...}}}.
    """

    def __init__(self, pages=None):
        self.pages = pages or {}
        self.contexts: list = []
        self.launches: list = []
        self.close_count = 0
        self.open_contexts_at_close: list = []

    async def new_context(self, **options):
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.close_count += 1
        self.open_contexts_at_close.append(sum(not context.closed for context in self.contexts))


class FakeBrowserType:
    def __init__(self, browser: FakeBrowser):
        self.browser = browser

    async def launch(self, **kwargs):
        self.browser.launches.append(kwargs)
        return self.browser


class FakePlaywright:
    def __init__(self, browser: FakeBrowser):
        self.chromium = FakeBrowserType(browser)
        self.firefox = FakeBrowserType(browser)
        self.webkit = FakeBrowserType(browser)
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakeDriver:
    """Replacement for async_playwright: `driver().start()`."""

    def __init__(self, browser: FakeBrowser):
        self.browser = browser
        self.playwright = FakePlaywright(browser)

    def __call__(self):
        return self

    async def start(self):
        return self.playwright


EXAMPLE_PAGES = {
    "https://example.test": {
        "h1": {"text": "  Example Domain \n"},
        "#q": {},
        "#agree": {},
        "a.more": {"text": "More information...", "attrs": {"href": "https://example.test/more"}},
    },
    "https://other.test": {
        "h1": {"text": "Other Site"},
    },
}


@pytest.fixture
def fake_browser():
    """Fake browser serving EXAMPLE_PAGES."""
    return FakeBrowser(pages={url: dict(dom) for url, dom in EXAMPLE_PAGES.items()})


@pytest.fixture
def browser_factory(fake_browser):
    """BrowserManager factory wired to the fake driver."""
    managers = []

    def factory(**kwargs):
        manager = BrowserManager(driver=FakeDriver(fake_browser), **kwargs)
        managers.append(manager)
        return manager

    factory.managers = managers
    return factory


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 5, 17, 8, 30, 15, 250000, tzinfo=timezone.utc))


@pytest.fixture
def write_workflow(tmp_path):
    """Write a workflow document to tmp_path and return its path."""

    def write(document, name="workflow.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(document, sort_keys=False))
        return path

    return write


@pytest.fixture
def page(fake_browser):
    """Fake page already showing https://example.test."""
    page = FakePage(FakeContext(fake_browser, {}))
    page.url = "https://example.test"
    page.dom = {selector: dict(element) for selector, element in EXAMPLE_PAGES["https://example.test"].items()}
    return page
