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
Handling for the portal's third-party guidance overlay (Whatfix).

The overlay renders above wizard controls and intercepts clicks. It is
blocked at the network layer when a page is created and removed from the DOM
again before the address search, where it is most disruptive.
"""

from __future__ import annotations

from typing import List

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Route

from permitpilot.utils.logger import logger

GUIDANCE_OVERLAY_ROUTES: List[str] = [
    "**/*whatfix*",
    "**/*wfx*",
    "**/cdn.whatfix.com/**",
]

REMOVE_GUIDANCE_OVERLAY_JS = """
() => {
    const nodes = document.querySelectorAll(
        '[data-wfx-element], [class*="whatfix"], [class*="wfx"], .WFEMOFC'
    );
    nodes.forEach(el => el.remove());
    if (window.wfx && typeof window.wfx.disable === 'function') { window.wfx.disable(); }
    if (window.whatfix && typeof window.whatfix.disable === 'function') { window.whatfix.disable(); }
    return nodes.length;
}
"""


async def _abort(route: Route) -> None:
    await route.abort()


async def block_guidance_overlay(page: Page) -> None:
    """Abort every request for the overlay's scripts and assets."""
    for pattern in GUIDANCE_OVERLAY_ROUTES:
        await page.route(pattern, _abort)
    logger.debug("Guidance overlay requests blocked")


async def remove_guidance_overlay(page: Page) -> int:
    """
    Remove overlay nodes from the DOM and disable its globals.

    Returns:
        Number of nodes removed (0 if the page could not be scripted)
    """
    try:
        removed = await page.evaluate(REMOVE_GUIDANCE_OVERLAY_JS)
    except PlaywrightError as e:
        logger.debug(f"Overlay removal skipped: {str(e).splitlines()[0]}")
        return 0
    if removed:
        logger.debug(f"Removed {removed} guidance overlay node(s)")
    return int(removed or 0)
