from __future__ import annotations

from enum import Enum
from urllib.parse import urljoin, urlparse

from loguru import logger
from playwright.sync_api import Error as PWError
from playwright.sync_api import TimeoutError as PWTimeoutError

from partner_onboarding.config.settings import PortalTimeouts
from partner_onboarding.scraping.form_catalog import LoginSpec
from partner_onboarding.scraping.selector_resolver import SelectorResolver
from partner_onboarding.services.portal_client import PortalCredentials
from partner_onboarding.utils.errors import AuthError, LocatorNotFoundError


class AuthState(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    NAVIGATED_TO_LOGIN = "navigated_to_login"
    CREDENTIALS_ENTERED = "credentials_entered"
    SUBMITTED_LOGIN = "submitted_login"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


def is_login_url(url: str, spec: LoginSpec) -> bool:
    path = urlparse(url).path
    return any(marker in path for marker in spec.failure_markers)


class SessionAuthenticator:
    """
    What it does:
    - Drives the portal login page (or validates a pre-authenticated storage state).

    Why it matters:
    - No form work may start without an authenticated session.

    Behavior:
    - NOT_AUTHENTICATED -> NAVIGATED_TO_LOGIN -> CREDENTIALS_ENTERED
      -> SUBMITTED_LOGIN -> AUTHENTICATED | FAILED.
    - Every failure moves to FAILED and raises AuthError.
    - With only a storage state, navigates to the portal root and accepts the
      session when it is not bounced back to the login page.
    """

    def __init__(
        self,
        page,
        *,
        base_url: str,
        login: LoginSpec,
        resolver: SelectorResolver,
        timeouts: PortalTimeouts,
        on_failure=None,
    ) -> None:
        self.page = page
        self.base_url = base_url
        self.login = login
        self.resolver = resolver
        self.timeouts = timeouts
        self._on_failure = on_failure
        self.state = AuthState.NOT_AUTHENTICATED

    def authenticate(self, creds: PortalCredentials) -> None:
        if creds.has_password:
            self._login_with_password(creds)
        elif creds.storage_state:
            self._verify_stored_session()
        else:
            self._fail("No portal credentials supplied")

    # -------------------- Password login --------------------

    def _login_with_password(self, creds: PortalCredentials) -> None:
        login_url = urljoin(self.base_url, self.login.path)
        logger.info("Navigating to login page {}", login_url)
        try:
            self.page.goto(login_url, wait_until="domcontentloaded", timeout=self.timeouts.navigation)
        except PWError as e:
            self._fail(f"Login page unreachable: {e}", cause=e)
        self.state = AuthState.NAVIGATED_TO_LOGIN

        try:
            email = self.resolver.resolve(self.login.email)
            password = self.resolver.resolve(self.login.password)
        except LocatorNotFoundError as e:
            self._fail(f"Login inputs not found on {self.page.url}", cause=e, tag="login_page")

        email.locator.fill(creds.email)
        password.locator.fill(creds.password)
        self.state = AuthState.CREDENTIALS_ENTERED

        try:
            submit = self.resolver.resolve(self.login.submit, timeout_ms=self.timeouts.selector)
        except LocatorNotFoundError as e:
            self._fail("Login submit button not found", cause=e, tag="login_page")

        try:
            with self.page.expect_navigation(wait_until="networkidle", timeout=self.timeouts.navigation):
                submit.locator.click()
        except PWTimeoutError as e:
            self._fail(f"Login did not complete within {self.timeouts.navigation}ms", cause=e, tag="login_failure")
        self.state = AuthState.SUBMITTED_LOGIN

        if is_login_url(self.page.url, self.login):
            self._fail(
                f"Login failed - check credentials. Landed on URL: {self.page.url}",
                tag="login_failure",
            )

        self.state = AuthState.AUTHENTICATED
        logger.info("Login successful")

    # -------------------- Stored session --------------------

    def _verify_stored_session(self) -> None:
        try:
            self.page.goto(self.base_url, wait_until="domcontentloaded", timeout=self.timeouts.navigation)
        except PWError as e:
            self._fail(f"Portal unreachable: {e}", cause=e)
        self.state = AuthState.SUBMITTED_LOGIN

        if is_login_url(self.page.url, self.login):
            self._fail(f"Stored portal session expired. Landed on URL: {self.page.url}", tag="login_failure")

        self.state = AuthState.AUTHENTICATED
        logger.info("Reusing stored portal session")

    def _fail(self, message: str, *, cause: Exception | None = None, tag: str | None = None):
        self.state = AuthState.FAILED
        if tag and self._on_failure:
            self._on_failure(tag)
        logger.error(message)
        raise AuthError(message) from cause
