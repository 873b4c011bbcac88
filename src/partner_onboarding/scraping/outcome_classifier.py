from __future__ import annotations

import re
from urllib.parse import urlparse

from loguru import logger
from playwright.sync_api import Error as PWError

from partner_onboarding.scraping.form_catalog import FormSpec
from partner_onboarding.services.portal_client import SubmissionResult, SubmissionStatus

CARRIER_CODE_TOKEN = re.compile(r"^[A-Z0-9]{2,6}$")

# Carrier codes are read from a detail cell; give it a short, fixed wait.
CARRIER_CODE_TIMEOUT_MS = 2_000


def record_id_from_url(url: str, resource: str) -> str | None:
    path = urlparse(url).path.rstrip("/")
    m = re.search(rf"/{re.escape(resource)}/(\d+)(?:/[^/]*)?$", path)
    return m.group(1) if m else None


def dedupe_messages(texts: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for t in texts:
        msg = " ".join(t.split())
        if msg and msg not in seen:
            seen.add(msg)
            out.append(msg)
    return out


class OutcomeClassifier:
    """
    What it does:
    - Decides what a form submission did by looking at the final page.

    Why it matters:
    - All screen-scraping of success and failure lives here; when the portal
      changes, this is the one place to update.

    Behavior (rules evaluated in order):
    1) Still on the form's `new` (or collection) path -> VALIDATION_FAILED with
       the scraped error texts (placeholder when none are visible).
    2) Path ends in /<resource>/<digits> -> CREATED with that id and the URL.
    3) Anything else -> UNEXPECTED_ERROR carrying the raw URL.
    """

    def __init__(self, page) -> None:
        self.page = page

    def classify(self, form: FormSpec) -> SubmissionResult:
        url = self.page.url
        path = urlparse(url).path.rstrip("/")

        if path in {form.new_path.rstrip("/"), form.collection_path}:
            messages = self.scrape_errors(form)
            logger.warning("{} submission rejected: {}", form.key, messages or "<no messages>")
            return SubmissionResult.validation_failed(messages, final_url=url)

        record_id = record_id_from_url(url, form.resource)
        if record_id is not None:
            carrier_code = self.extract_carrier_code(form) if form.carrier_code_locators else None
            logger.info("{} created with id {}", form.key, record_id)
            return SubmissionResult.created(record_id, url, carrier_code=carrier_code)

        logger.error("{} submission ended on unrecognised URL {}", form.key, url)
        return SubmissionResult.failure(
            SubmissionStatus.UNEXPECTED_ERROR,
            f"Submission outcome could not be determined; landed on {url}",
            final_url=url,
        )

    def scrape_errors(self, form: FormSpec) -> list[str]:
        texts: list[str] = []
        for selector in form.error_selectors:
            try:
                texts.extend(self.page.locator(selector).all_inner_texts())
            except PWError as e:
                logger.debug("Error selector {} failed: {}", selector, e)
        return dedupe_messages(texts)

    def extract_carrier_code(self, form: FormSpec) -> str | None:
        """
        Best effort: the cell next to the carrier-code label, else a short
        uppercase token following the label in the page text. None when absent.
        """
        for selector in form.carrier_code_locators:
            loc = self.page.locator(selector).first
            try:
                if loc.count() == 0:
                    continue
                text = loc.inner_text(timeout=CARRIER_CODE_TIMEOUT_MS).strip()
            except PWError:
                continue
            if CARRIER_CODE_TOKEN.match(text):
                return text

        if not form.carrier_code_label:
            return None

        try:
            body = self.page.locator("body").inner_text(timeout=CARRIER_CODE_TIMEOUT_MS)
        except PWError:
            return None

        label = re.escape(form.carrier_code_label).replace(r"\ ", r"\s+")
        m = re.search(rf"{label}\s*[:\-]?\s*([A-Z0-9]{{2,6}})\b", body, flags=re.IGNORECASE)
        if m and CARRIER_CODE_TOKEN.match(m.group(1)):
            return m.group(1)
        return None
