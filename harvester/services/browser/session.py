from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from typing import Any

import httpx
from playwright.async_api import BrowserContext, Page, Playwright, async_playwright

from harvester.logging_utils import structured_log
from harvester.services.browser.page import PlaywrightPageHandle
from harvester.services.dom.driver import DomInteractionDriver
from harvester.services.interception.interceptor import ResponseInterceptor
from harvester.services.replay.source import HttpxReplaySource, ReplayPageSource, auth_token_from_cookies
from harvester.settings import Settings

logger = logging.getLogger(__name__)

HEAVY_RESOURCE_PATTERN = "**/*.{mp4,webm,ogg,mp3,wav,m4a,aac,m3u8,ts,woff,woff2}"
LAUNCH_ARGS = (
    "--mute-audio",
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
)
LOGIN_PATH = "/login"
FEED_PATH = "/feed"
SESSION_COOKIE = "li_at"


class BrowserManager:
    """Owns the persistent Chromium profile that carries the platform login."""

    def __init__(
        self,
        *,
        user_data_dir: str,
        headless: bool,
        navigation_timeout_seconds: float,
        block_heavy_resources: bool = True,
    ) -> None:
        self._user_data_dir = user_data_dir
        self._headless = headless
        self._navigation_timeout_ms = int(navigation_timeout_seconds * 1000)
        self._block_heavy_resources = block_heavy_resources
        self._playwright: Playwright | None = None
        self._context: BrowserContext | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, *, headless: bool | None = None) -> BrowserManager:
        return cls(
            user_data_dir=settings.browser_user_data_dir,
            headless=settings.browser_headless if headless is None else headless,
            navigation_timeout_seconds=settings.browser_navigation_timeout_seconds,
            block_heavy_resources=settings.browser_block_heavy_resources,
        )

    @property
    def navigation_timeout_ms(self) -> int:
        return self._navigation_timeout_ms

    async def context(self) -> BrowserContext:
        async with self._lock:
            if self._context is None:
                self._playwright = await async_playwright().start()
                self._context = await self._playwright.chromium.launch_persistent_context(
                    self._user_data_dir,
                    headless=self._headless,
                    handle_sigint=False,
                    args=list(LAUNCH_ARGS),
                    viewport={"width": 1440, "height": 1000},
                    locale="en-US",
                )
                structured_log(logger, "info", "browser.started", headless=self._headless)
            return self._context

    async def new_page(self) -> Page:
        context = await self.context()
        page = await context.new_page()
        if self._block_heavy_resources:
            await page.route(HEAVY_RESOURCE_PATTERN, lambda route: route.abort())
        return page

    async def cookies(self, url: str) -> dict[str, str]:
        context = await self.context()
        return {cookie["name"]: cookie["value"] for cookie in await context.cookies(url)}

    async def close(self) -> None:
        async with self._lock:
            if self._context is not None:
                await self._context.close()
                self._context = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    async def login(self, origin: str, *, timeout_seconds: float = 300.0, poll_seconds: float = 1.0) -> bool:
        """Open the login page and wait for the session cookie to appear."""
        page = await self.new_page()
        try:
            await page.goto(origin + LOGIN_PATH, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms)
            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout_seconds
            while loop.time() < deadline:
                if SESSION_COOKIE in await self.cookies(origin) and FEED_PATH in page.url:
                    structured_log(logger, "info", "browser.login_detected")
                    return True
                await asyncio.sleep(poll_seconds)
            structured_log(logger, "warning", "browser.login_timed_out", timeout_seconds=timeout_seconds)
            return False
        finally:
            await page.close()


class PlaywrightScanEnvironment:
    """The live page, its DOM driver and an HTTP client sharing its cookies."""

    def __init__(
        self,
        *,
        page: Page,
        driver: DomInteractionDriver,
        client: httpx.AsyncClient,
        interceptor: ResponseInterceptor,
        cookie_token: str | None,
        locale: str,
    ) -> None:
        self.page = page
        self.driver = driver
        self._client = client
        self._interceptor = interceptor
        self._cookie_token = cookie_token
        self._locale = locale

    def replay_source(self, token_provider: Callable[[], str | None]) -> ReplayPageSource:
        return HttpxReplaySource(
            client=self._client,
            token_provider=lambda: token_provider() or self._cookie_token,
            locale=self._locale,
        )

    async def aclose(self) -> None:
        self._interceptor.detach()
        await self._client.aclose()
        if not self.page.is_closed():
            await self.page.close()


class PlaywrightEnvironmentFactory:
    def __init__(self, *, browser: BrowserManager, settings: Settings) -> None:
        self._browser = browser
        self._settings = settings

    async def open(self, post_url: str, interceptor: ResponseInterceptor) -> PlaywrightScanEnvironment:
        page = await self._browser.new_page()
        interceptor.attach(page)
        try:
            await page.goto(post_url, wait_until="domcontentloaded", timeout=self._browser.navigation_timeout_ms)
            cookies = await self._browser.cookies(post_url)
            user_agent: Any = await page.evaluate("navigator.userAgent")
        except Exception:
            interceptor.detach()
            await page.close()
            raise

        client = httpx.AsyncClient(
            cookies=cookies,
            headers={"user-agent": str(user_agent)},
            timeout=httpx.Timeout(self._settings.replay_http_timeout_seconds),
            follow_redirects=False,
        )
        structured_log(logger, "info", "browser.page_opened", url=post_url.split("?")[0], cookies=len(cookies))
        return PlaywrightScanEnvironment(
            page=page,
            driver=DomInteractionDriver(
                PlaywrightPageHandle(page),
                sort_settle_seconds=self._settings.scan_sort_settle_seconds,
            ),
            client=client,
            interceptor=interceptor,
            cookie_token=auth_token_from_cookies(cookies),
            locale=self._settings.platform_locale,
        )
