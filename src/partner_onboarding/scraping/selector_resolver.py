from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from loguru import logger
from playwright.sync_api import Error as PWError
from playwright.sync_api import TimeoutError as PWTimeoutError

from partner_onboarding.utils.errors import LocatorNotFoundError

# Floor for one candidate wait; a 0 timeout means "no timeout" to Playwright.
MIN_CANDIDATE_TIMEOUT_MS = 250


@dataclass(frozen=True)
class ResolvedLocator:
    selector: str
    locator: Any


class SelectorResolver:
    """
    What it does:
    - Finds the first visible element out of an ordered list of candidate selectors.

    Why it matters:
    - The portal's markup drifts between deployments and locales; the workflow
      keeps working as long as one historical variant still matches.

    Behavior:
    - A non-waiting pass returns the first candidate that is already visible.
    - Otherwise candidates are awaited in list order. Each gets an equal share of
      what is left of the budget (at least MIN_CANDIDATE_TIMEOUT_MS, at most
      `candidate_timeout_ms`), so every candidate is tried even when earlier
      ones burn their full wait.
    - resolve() raises LocatorNotFoundError, find() returns None.
    """

    def __init__(self, page, *, candidate_timeout_ms: int = 5_000, overall_timeout_ms: int = 15_000) -> None:
        self.page = page
        self.candidate_timeout_ms = candidate_timeout_ms
        self.overall_timeout_ms = overall_timeout_ms

    def resolve(self, candidates: list[str], *, timeout_ms: int | None = None) -> ResolvedLocator:
        budget = self.overall_timeout_ms if timeout_ms is None else timeout_ms
        if not candidates:
            raise LocatorNotFoundError([], budget)

        # Already rendered: take the first visible one without spending any wait.
        for i, selector in enumerate(candidates):
            loc = self.page.locator(selector).first
            try:
                if loc.is_visible():
                    return self._found(selector, loc, i, len(candidates))
            except PWError as e:
                logger.debug("Visibility check for {} failed: {}", selector, e)

        deadline = time.monotonic() + budget / 1000

        for i, selector in enumerate(candidates):
            remaining_ms = int((deadline - time.monotonic()) * 1000)
            share_ms = remaining_ms // (len(candidates) - i)
            sub_timeout = min(self.candidate_timeout_ms, max(share_ms, MIN_CANDIDATE_TIMEOUT_MS))

            loc = self.page.locator(selector).first
            try:
                loc.wait_for(state="visible", timeout=sub_timeout)
            except PWTimeoutError:
                logger.debug("Selector {} not visible after {}ms", selector, sub_timeout)
                continue

            return self._found(selector, loc, i, len(candidates))

        raise LocatorNotFoundError(candidates, budget)

    def _found(self, selector: str, loc, index: int, total: int) -> ResolvedLocator:
        if index > 0:
            logger.info("Resolved fallback selector {} (candidate {}/{})", selector, index + 1, total)
        return ResolvedLocator(selector=selector, locator=loc)

    def find(self, candidates: list[str], *, timeout_ms: int | None = None) -> ResolvedLocator | None:
        try:
            return self.resolve(candidates, timeout_ms=timeout_ms)
        except LocatorNotFoundError:
            return None
