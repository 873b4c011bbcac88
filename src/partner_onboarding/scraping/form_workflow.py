from __future__ import annotations

from collections import Counter
from urllib.parse import urlencode, urljoin

from loguru import logger
from playwright.sync_api import Error as PWError
from playwright.sync_api import TimeoutError as PWTimeoutError

from partner_onboarding.config.settings import PortalTimeouts
from partner_onboarding.scraping.field_populator import FieldPopulator, FillOutcome, normalize_value
from partner_onboarding.scraping.form_catalog import FormSection, FormSpec, LoginSpec
from partner_onboarding.scraping.outcome_classifier import OutcomeClassifier
from partner_onboarding.scraping.selector_resolver import SelectorResolver
from partner_onboarding.scraping.session_authenticator import is_login_url
from partner_onboarding.services.portal_client import OnboardingRequest, SubmissionResult
from partner_onboarding.utils.errors import AuthError, FormNotRenderedError, LocatorNotFoundError

# How long to look for an already-rendered repeating row before clicking "add row".
ROW_PROBE_TIMEOUT_MS = 1_000


class FormWorkflowExecutor:
    """
    What it does:
    - Runs one record-creation flow: open the form, populate every section,
      submit, classify the resulting page.

    Why it matters:
    - The carrier-group and provider forms differ only in their catalog entry;
      the sequence of browser actions is shared.

    Behavior:
    - Opening the form waits for network idle and the anchor field;
      either missing -> FormNotRenderedError.
    - Landing on the login page instead -> AuthError (session lost).
    - Sections run in declaration order; a section with a precondition waits
      for it and is skipped (optional) or fatal (has required fields).
    - A repeating row (one with an add-row control) is left untouched unless the
      caller sent a value for one of its fields that has no default.
    - Repeating rows that are not rendered get an "add row" click first.
    """

    def __init__(
        self,
        page,
        *,
        base_url: str,
        resolver: SelectorResolver,
        populator: FieldPopulator,
        classifier: OutcomeClassifier,
        timeouts: PortalTimeouts,
        login: LoginSpec | None = None,
    ) -> None:
        self.page = page
        self.base_url = base_url
        self.resolver = resolver
        self.populator = populator
        self.classifier = classifier
        self.timeouts = timeouts
        self.login = login

    def run(self, form: FormSpec, request: OnboardingRequest) -> SubmissionResult:
        self.open_form(form)

        outcomes: Counter[FillOutcome] = Counter()
        for section in form.sections:
            outcomes.update(self.populate_section(section, request))
        logger.info(
            "Populated {} form: {}",
            form.key,
            ", ".join(f"{k.value}={v}" for k, v in sorted(outcomes.items(), key=lambda kv: kv[0].value)),
        )

        self.submit(form)
        return self.classifier.classify(form)

    def form_url(self, form: FormSpec) -> str:
        url = urljoin(self.base_url, form.new_path)
        return f"{url}?{urlencode(form.query)}" if form.query else url

    # -------------------- Steps --------------------

    def open_form(self, form: FormSpec) -> None:
        url = self.form_url(form)
        logger.info("Opening {} form at {}", form.key, url)
        try:
            self.page.goto(url, wait_until="networkidle", timeout=self.timeouts.navigation)
        except PWTimeoutError as e:
            raise FormNotRenderedError(f"{form.key} form did not settle within {self.timeouts.navigation}ms") from e
        except PWError as e:
            raise FormNotRenderedError(f"Could not open {form.key} form: {e}") from e

        if self.login is not None and is_login_url(self.page.url, self.login):
            raise AuthError(f"Portal redirected to login while opening {form.key} form ({self.page.url})")

        try:
            self.resolver.resolve(form.anchor, timeout_ms=self.timeouts.navigation)
        except LocatorNotFoundError as e:
            raise FormNotRenderedError(
                f"{form.key} form did not render (anchor field missing at {self.page.url})"
            ) from e

    def populate_section(self, section: FormSection, request: OnboardingRequest) -> list[FillOutcome]:
        if section.add_row and not self.has_input(section, request):
            logger.debug("No values for {}, leaving row {} alone", section.name, section.row)
            return []

        if section.precondition:
            if self.resolver.find(section.precondition, timeout_ms=self.timeouts.field) is None:
                if section.has_required_fields:
                    raise FormNotRenderedError(f"Section '{section.name}' never appeared")
                logger.warning("Section {} not rendered, skipping", section.name)
                return []

        if section.row is not None and not self.ensure_row(section):
            return []

        return [
            self.populator.populate(spec, request.get(spec.name, spec.aliases))
            for spec in section.resolved_fields()
        ]

    @staticmethod
    def has_input(section: FormSection, request: OnboardingRequest) -> bool:
        return any(normalize_value(request.get(f.name, f.aliases)) is not None for f in section.input_fields)

    def ensure_row(self, section: FormSection) -> bool:
        """Makes sure row `section.row` exists, clicking the add-row control when needed."""
        probe = section.resolved_fields()[0].locators
        if self.resolver.find(probe, timeout_ms=ROW_PROBE_TIMEOUT_MS) is not None:
            return True

        add = self.resolver.find(section.add_row, timeout_ms=self.timeouts.selector) if section.add_row else None
        if add is None:
            if section.has_required_fields:
                raise FormNotRenderedError(f"Row {section.row} of '{section.name}' is missing and cannot be added")
            logger.warning("Row {} of {} not present and no add-row control, skipping", section.row, section.name)
            return False

        logger.debug("Adding row {} for {}", section.row, section.name)
        add.locator.click()

        if self.resolver.find(probe, timeout_ms=self.timeouts.field) is None:
            if section.has_required_fields:
                raise FormNotRenderedError(f"Row {section.row} of '{section.name}' did not appear after adding it")
            logger.warning("Row {} of {} did not appear after add-row click, skipping", section.row, section.name)
            return False
        return True

    def submit(self, form: FormSpec) -> None:
        try:
            button = self.resolver.resolve(form.submit, timeout_ms=self.timeouts.field)
        except LocatorNotFoundError as e:
            raise FormNotRenderedError(f"Submit control for {form.key} form not found") from e

        logger.info("Submitting {} form", form.key)
        try:
            with self.page.expect_navigation(wait_until="networkidle", timeout=self.timeouts.navigation):
                button.locator.click()
        except PWTimeoutError:
            # Client-side validation can block the POST; the classifier still inspects the page.
            logger.warning("No navigation after submitting {} form (still on {})", form.key, self.page.url)
