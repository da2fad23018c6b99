# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Browser management for PermitPilot.

This module provides the BrowserManager class which owns the Playwright
lifecycle for one submission: launch, a context restored from the saved portal
session, a single page with the guidance overlay blocked, and cleanup.

One BrowserManager serves exactly one submission at a time.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from permitpilot.core.overlays import block_guidance_overlay
from permitpilot.exceptions import BrowserError
from permitpilot.utils.logger import logger


class BrowserManager:
    """
    Manages a Playwright browser for one portal session.

    Attributes:
        headless: Whether browser runs without a window
        browser_type: chromium, firefox or webkit
        storage_state: Saved portal session to restore (cookies, local storage)
        launch_options: Additional Playwright launch options

    Example:
        >>> async with BrowserManager(headless=True, storage_state=state) as manager:
        ...     await manager.page.goto("https://shapephx.phoenix.gov/s/")
    """

    DEFAULT_VIEWPORT = {"width": 1280, "height": 900}

    def __init__(
        self,
        headless: bool = True,
        browser_type: str = "chromium",
        storage_state: Optional[Dict[str, Any]] = None,
        block_overlay: bool = True,
        **launch_options: Any,
    ) -> None:
        self.headless = headless
        self.browser_type = browser_type
        self.storage_state = storage_state
        self.block_overlay = block_overlay
        self.launch_options = launch_options
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def start(self) -> None:
        """
        Launch the browser and open the working page.

        Raises:
            BrowserError: If the browser fails to start or the type is unsupported
        """
        try:
            logger.info(f"Starting {self.browser_type} browser (headless={self.headless})")
            self._playwright = await async_playwright().start()

            if self.browser_type == "chromium":
                browser_launcher = self._playwright.chromium
            elif self.browser_type == "firefox":
                browser_launcher = self._playwright.firefox
            elif self.browser_type == "webkit":
                browser_launcher = self._playwright.webkit
            else:
                raise BrowserError(f"Unsupported browser type: {self.browser_type}")

            self._browser = await browser_launcher.launch(headless=self.headless, **self.launch_options)

            context_options: Dict[str, Any] = {
                "viewport": self.DEFAULT_VIEWPORT,
                # The portal's certificate chain is rejected by bundled browsers
                "ignore_https_errors": True,
                "accept_downloads": True,
                "locale": "en-US",
                "timezone_id": "America/Phoenix",
            }
            if self.storage_state:
                context_options["storage_state"] = self.storage_state

            self._context = await self._browser.new_context(**context_options)
            self._page = await self._context.new_page()

            if self.block_overlay:
                await block_guidance_overlay(self._page)

            logger.info("Browser started successfully")
        except BrowserError:
            await self._close_quietly()
            raise
        except Exception as e:
            logger.error(f"Failed to start browser: {e}")
            await self._close_quietly()
            raise BrowserError(f"Failed to start browser: {e}") from e

    async def _close_quietly(self) -> None:
        try:
            await self.stop()
        except BrowserError as e:
            logger.debug(f"Cleanup after failed start: {e}")

    async def stop(self) -> None:
        """
        Close page, context, browser and Playwright.

        Raises:
            BrowserError: If cleanup fails
        """
        try:
            if self._page:
                await self._page.close()
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
            if self._playwright:
                await self._playwright.stop()
            logger.info("Browser stopped")
        except Exception as e:
            logger.error(f"Error stopping browser: {e}")
            raise BrowserError(f"Failed to stop browser: {e}") from e
        finally:
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None

    async def storage_snapshot(self) -> Dict[str, Any]:
        """Current session state, suitable for ``SessionStore.save``."""
        return await self.context.storage_state()

    @property
    def page(self) -> Page:
        if not self._page:
            raise BrowserError("No active page. Call start() first.")
        return self._page

    @property
    def context(self) -> BrowserContext:
        if not self._context:
            raise BrowserError("Browser context not initialized. Call start() first.")
        return self._context

    async def __aenter__(self) -> "BrowserManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
