"""Browser fingerprint hardening applied before any headless page load.

Pure configuration: pick a user agent and viewport, set a realistic header
set and patch the handful of navigator properties that give automation away.
No retries happen here.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .scrape_config import BROWSER_HEADERS, USER_AGENTS, VIEWPORTS

STEALTH_INIT_SCRIPT = """
(() => {
  Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
  Object.defineProperty(navigator, 'plugins', {
    get: () => [
      { name: 'Chrome PDF Plugin', length: 1 },
      { name: 'Chrome PDF Viewer', length: 1 },
      { name: 'Native Client', length: 1 },
    ],
  });
  Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
  if (window.navigator.permissions && window.navigator.permissions.query) {
    const originalQuery = window.navigator.permissions.query.bind(window.navigator.permissions);
    window.navigator.permissions.query = (parameters) => (
      parameters && parameters.name === 'notifications'
        ? Promise.resolve({ state: (window.Notification && Notification.permission) || 'default', onchange: null })
        : originalQuery(parameters)
    );
  }
})();
"""

# Set on a page once the layer has been applied.
_APPLIED_MARKER = "_spotfinder_stealth_applied"


@dataclass(frozen=True)
class StealthProfile:
    user_agent: str
    viewport: Dict[str, int]
    headers: Dict[str, str] = field(default_factory=lambda: dict(BROWSER_HEADERS))


def random_user_agent(rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(USER_AGENTS)


def choose_profile(rng: Optional[random.Random] = None) -> StealthProfile:
    """Pick a user agent and viewport at random from the fixed pools."""

    chooser = rng or random
    return StealthProfile(
        user_agent=chooser.choice(USER_AGENTS),
        viewport=dict(chooser.choice(VIEWPORTS)),
        headers=dict(BROWSER_HEADERS),
    )


async def apply_stealth(page: Any, profile: StealthProfile) -> bool:
    """Configure ``page`` to look like an ordinary browser session.

    Returns False when the page was already configured (second call is a
    no-op), True otherwise.
    """

    if getattr(page, _APPLIED_MARKER, False):
        return False
    await page.set_viewport_size(profile.viewport)
    await page.set_extra_http_headers(profile.headers)
    await page.add_init_script(STEALTH_INIT_SCRIPT)
    setattr(page, _APPLIED_MARKER, True)
    return True


__all__ = [
    "STEALTH_INIT_SCRIPT",
    "StealthProfile",
    "apply_stealth",
    "choose_profile",
    "random_user_agent",
]
