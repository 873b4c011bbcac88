"""
partnerportal_playwright.py

What this module does
- Implements a Playwright-based portal automation client that satisfies the
  `OnboardingPortal` interface.
- Owns exactly one browser session (browser + context + page) for the
  lifetime of one request.

Why it matters
- Keeps web automation isolated from the HTTP layer and the onboarding service.
- The session is never shared: concurrent requests sharing a page interleave
  their form state.

Behavior summary
- `login(creds)`: launches Chromium on first use and authenticates.
- `create_carrier_group(request)`: runs the carrier-group workflow.
- `create_provider(request, group_id=...)`: runs the provider workflow; an
  explicit group id overrides the payload.
- `inspect_form(key)`: lists every input/select/textarea on a form (debugging aid).
- `close()`: releases everything; safe to call multiple times.
- On failures: captures screenshots to the artifacts directory.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger
from playwright.sync_api import Error as PWError
from playwright.sync_api import sync_playwright

from partner_onboarding.config.settings import PortalTimeouts
from partner_onboarding.scraping.field_populator import FieldPopulator
from partner_onboarding.scraping.form_catalog import DEFAULT_CATALOG, FormCatalog
from partner_onboarding.scraping.form_workflow import FormWorkflowExecutor
from partner_onboarding.scraping.outcome_classifier import OutcomeClassifier
from partner_onboarding.scraping.selector_resolver import SelectorResolver
from partner_onboarding.scraping.session_authenticator import SessionAuthenticator
from partner_onboarding.services.portal_client import (
    OnboardingPortal,
    OnboardingRequest,
    PortalCredentials,
    SubmissionResult,
)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36"
)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]

VIEWPORT = {"width": 1366, "height": 768}

# Slows every action down when a human is watching a headful run.
HEADFUL_SLOW_MO_MS = 50

FIELD_INVENTORY_JS = """() => Array.from(document.querySelectorAll('input, select, textarea')).map(el => ({
    tag: el.tagName.toLowerCase(),
    id: el.id || null,
    name: el.getAttribute('name'),
    type: el.getAttribute('type'),
    visible: !!(el.offsetWidth || el.offsetHeight || el.getClientRects().length),
}))"""


def accept_dialogs(page) -> None:
    """Accepts every confirm/alert the portal opens on `page`; register once per page."""
    page.on("dialog", lambda dialog: dialog.accept())


class PlaywrightPortalClient(OnboardingPortal):
    """
    Playwright implementation of OnboardingPortal.

    What it does:
    - Launches Chromium (optionally a system binary), authenticates and runs
      the carrier-group/provider workflows on a single page.

    Behavior:
    - Uses a pre-authenticated storage state when one is configured.
    - Captures screenshots in the artifacts directory on failure.
    - Usable as a context manager; close() always runs on exit.
    """

    def __init__(
        self,
        *,
        base_url: str,
        headless: bool = True,
        executable_path: str | None = None,
        storage_state: str | None = None,
        locale: str = "en",
        artifacts_dir: str | Path = "artifacts",
        timeouts: PortalTimeouts | None = None,
        catalog: FormCatalog | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.headless = headless
        self.executable_path = executable_path
        self.storage_state = storage_state
        self.locale = locale
        self.timeouts = timeouts or PortalTimeouts()
        self.catalog = catalog or DEFAULT_CATALOG

        self._artifacts_dir = Path(artifacts_dir)

        self._pw = None
        self._browser = None
        self._context = None
        self._page = None

    def __enter__(self) -> PlaywrightPortalClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -------------------- Lifecycle --------------------

    def _start(self, creds: PortalCredentials | None = None) -> None:
        """
        What it does:
        - Starts Playwright, launches Chromium and opens a fresh context + page.

        Behavior:
        - No-op when a page is already open.
        - If Chromium isn't installed and no executable path is set, Playwright
          raises; install via `playwright install chromium`.
        """
        if self._page is not None:
            return

        self._pw = sync_playwright().start()
        try:
            self._browser = self._pw.chromium.launch(
                headless=self.headless,
                executable_path=self.executable_path or None,
                args=LAUNCH_ARGS,
                slow_mo=0 if self.headless else HEADFUL_SLOW_MO_MS,
                timeout=self.timeouts.launch,
            )
        except Exception as e:
            self.close()
            raise RuntimeError(
                "Failed to launch Chromium.\n"
                "Set BROWSER_EXECUTABLE_PATH or run:\n\n"
                "  playwright install chromium\n"
            ) from e

        storage_state = (creds.storage_state if creds else None) or self.storage_state
        self._context = self._browser.new_context(
            user_agent=USER_AGENT,
            viewport=VIEWPORT,
            locale=self.locale,
            storage_state=storage_state,
        )
        self._page = self._context.new_page()
        self._page.set_default_timeout(self.timeouts.field)
        self._page.set_default_navigation_timeout(self.timeouts.navigation)
        accept_dialogs(self._page)

    def close(self) -> None:
        """
        What it does:
        - Closes page/context/browser and stops Playwright.

        Behavior:
        - Safe to call multiple times, and before _start().
        """
        try:
            if self._context:
                self._context.close()
        except PWError as e:
            logger.debug("Closing browser context failed: {}", e)
        finally:
            self._context = None

        try:
            if self._browser:
                self._browser.close()
        except PWError as e:
            logger.debug("Closing browser failed: {}", e)
        finally:
            self._browser = None

        try:
            if self._pw:
                self._pw.stop()
        finally:
            self._pw = None
            self._page = None

    # -------------------- OnboardingPortal interface --------------------

    def login(self, creds: PortalCredentials) -> None:
        self._start(creds)
        page = self._require_page()
        authenticator = SessionAuthenticator(
            page,
            base_url=self.base_url,
            login=self.catalog.login,
            resolver=self._resolver(page),
            timeouts=self.timeouts,
            on_failure=self._debug_dump,
        )
        authenticator.authenticate(creds)

    def create_carrier_group(self, request: OnboardingRequest) -> SubmissionResult:
        return self._run_form("carrier_group", request)

    def create_provider(self, request: OnboardingRequest, *, group_id: str | None = None) -> SubmissionResult:
        if group_id is not None:
            request = request.merged(group_id=str(group_id))
        return self._run_form("provider", request)

    def current_url(self) -> str | None:
        return self._page.url if self._page is not None else None

    def inspect_form(self, form_key: str) -> list[dict]:
        """
        What it does:
        - Opens a form and returns every input/select/textarea with its id, name and type.

        Why it matters:
        - The portal's field identifiers are not documented; operators use this
          to update the selector override file.
        """
        form = self.catalog.forms[form_key]
        executor = self._executor()
        executor.open_form(form)
        return self._require_page().evaluate(FIELD_INVENTORY_JS)

    # -------------------- Helpers --------------------

    def _run_form(self, form_key: str, request: OnboardingRequest) -> SubmissionResult:
        form = self.catalog.forms[form_key]
        try:
            result = self._executor().run(form, request)
        except Exception:
            self._debug_dump(f"{form_key}_error")
            raise

        if not result.ok:
            self._debug_dump(f"{form_key}_{result.status.value}")
        return result

    def _resolver(self, page) -> SelectorResolver:
        return SelectorResolver(
            page,
            candidate_timeout_ms=self.timeouts.selector,
            overall_timeout_ms=self.timeouts.field,
        )

    def _executor(self) -> FormWorkflowExecutor:
        page = self._require_page()
        resolver = self._resolver(page)
        return FormWorkflowExecutor(
            page,
            base_url=self.base_url,
            resolver=resolver,
            populator=FieldPopulator(resolver),
            classifier=OutcomeClassifier(page),
            timeouts=self.timeouts,
            login=self.catalog.login,
        )

    def _require_page(self):
        if self._page is None:
            raise RuntimeError("Playwright page not initialized. Call login() first.")
        return self._page

    def _debug_dump(self, tag: str) -> None:
        """
        What it does:
        - Captures a full-page screenshot for debugging.

        Behavior:
        - Writes <artifacts>/<tag>.png (best effort, never raises).
        """
        page = self._page
        if not page:
            return
        out = self._artifacts_dir / f"{tag}.png"
        try:
            self._artifacts_dir.mkdir(parents=True, exist_ok=True)
            page.screenshot(path=str(out), full_page=True)
            logger.info("Saved screenshot {} (url: {})", out, page.url)
        except (PWError, OSError) as e:
            logger.debug("Screenshot {} failed: {}", out, e)
