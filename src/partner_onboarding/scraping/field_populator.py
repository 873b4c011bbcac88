from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from loguru import logger
from playwright.sync_api import Error as PWError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from partner_onboarding.scraping.form_catalog import FieldSpec, FillStrategy
from partner_onboarding.scraping.selector_resolver import SelectorResolver
from partner_onboarding.utils.errors import (
    FieldNotFoundError,
    FieldPopulationError,
    LocatorNotFoundError,
    OptionNotAvailableError,
)

# Strings some clients send for "no value" (JS serialisation leftovers).
EMPTY_MARKERS = {"", "null", "undefined"}

TRUTHY = {"1", "true", "yes", "y", "on", "checked"}
FALSY = {"0", "false", "no", "n", "off", "unchecked"}

OPTIONS_JS = "el => Array.from(el.options || [], o => ({ value: o.value, label: (o.textContent || '').trim() }))"


class FillOutcome(str, Enum):
    FILLED = "filled"
    SKIPPED = "skipped"  # no value supplied
    MISSING = "missing"  # optional field not on the page
    NO_MATCH = "no_match"  # dropdown has no matching option
    UNCHANGED = "unchanged"  # checkbox already in the desired state
    FAILED = "failed"  # optional field could not be written


def normalize_value(raw: Any) -> str | bool | None:
    """
    Converts a payload value to what the populator writes.

    - None, empty/blank strings, "null" and "undefined" -> None (not provided)
    - bool stays bool (checkbox strategy decides how to render it)
    - numbers -> text
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float, Decimal)):
        return format(raw, "f") if isinstance(raw, Decimal) else str(raw)
    text = str(raw).strip()
    if text.lower() in EMPTY_MARKERS:
        return None
    return text


def as_bool(value: str | bool) -> bool:
    if isinstance(value, bool):
        return value
    lowered = value.lower()
    if lowered in TRUTHY:
        return True
    if lowered in FALSY:
        return False
    raise ValueError(f"Cannot interpret {value!r} as a checkbox state")


class FieldPopulator:
    """
    What it does:
    - Writes one payload value into one form field using the field's strategy.

    Why it matters:
    - Centralises the "required vs optional" policy so the workflow never needs
      per-field try/except blocks.

    Behavior:
    - No value (after normalisation and default) -> SKIPPED, no DOM access.
    - Locator not found -> MISSING for optional fields, FieldNotFoundError for required ones.
    - Playwright write errors are retried up to `max_attempts`, then reported
      as FAILED (optional) or FieldPopulationError (required).
    """

    def __init__(self, resolver: SelectorResolver, *, max_attempts: int = 2) -> None:
        self.resolver = resolver
        self.max_attempts = max(1, max_attempts)

    def populate(self, spec: FieldSpec, raw_value: Any) -> FillOutcome:
        value = normalize_value(raw_value)
        if value is None and spec.default is not None:
            value = spec.default
        if value is None:
            return FillOutcome.SKIPPED

        try:
            resolved = self.resolver.resolve(spec.locators)
        except LocatorNotFoundError as e:
            if spec.required:
                raise FieldNotFoundError(spec.name, f"Required field '{spec.name}' not found: {e}") from e
            logger.warning("Optional field {} not found, skipping", spec.name)
            return FillOutcome.MISSING

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception_type(PWError),
            before_sleep=lambda state: logger.debug(
                "Writing {} failed (attempt {}/{}): {}",
                spec.name,
                state.attempt_number,
                self.max_attempts,
                state.outcome.exception(),
            ),
            reraise=True,
        )
        try:
            return retrying(self._write, spec, resolved.locator, value)
        except PWError as e:
            if spec.required:
                raise FieldPopulationError(spec.name, f"Could not write required field '{spec.name}': {e}") from e
            logger.warning("Optional field {} could not be written, skipping: {}", spec.name, e)
            return FillOutcome.FAILED

    # -------------------- Strategies --------------------

    def _write(self, spec: FieldSpec, loc, value: str | bool) -> FillOutcome:
        if spec.strategy is FillStrategy.TYPE_TEXT:
            return self._type_text(loc, value)
        if spec.strategy is FillStrategy.SELECT_EXACT:
            return self._select_exact(spec, loc, value)
        if spec.strategy is FillStrategy.SELECT_BY_TEXT_FRAGMENT:
            return self._select_by_text_fragment(spec, loc, value)
        if spec.strategy is FillStrategy.TOGGLE_CHECKBOX:
            return self._toggle_checkbox(spec, loc, value)
        raise ValueError(f"Unknown fill strategy: {spec.strategy}")

    def _type_text(self, loc, value: str | bool) -> FillOutcome:
        text = str(value).lower() if isinstance(value, bool) else value
        loc.fill(text)
        return FillOutcome.FILLED

    def _options(self, loc) -> list[dict]:
        return loc.evaluate(OPTIONS_JS) or []

    def _select_exact(self, spec: FieldSpec, loc, value: str | bool) -> FillOutcome:
        wanted = str(value)
        available = [o["value"] for o in self._options(loc)]
        if wanted not in available:
            if spec.required:
                raise OptionNotAvailableError(spec.name, wanted, available)
            logger.warning("Option {!r} not available for {}, skipping", wanted, spec.name)
            return FillOutcome.NO_MATCH

        loc.select_option(value=wanted)
        return FillOutcome.FILLED

    def _select_by_text_fragment(self, spec: FieldSpec, loc, fragment: str | bool) -> FillOutcome:
        needle = str(fragment).lower()
        match = next(
            (o for o in self._options(loc) if o.get("value") and needle in (o.get("label") or "").lower()),
            None,
        )
        if match is None:
            logger.warning("No option of {} contains {!r}, skipping", spec.name, fragment)
            return FillOutcome.NO_MATCH

        loc.select_option(value=match["value"])
        return FillOutcome.FILLED

    def _toggle_checkbox(self, spec: FieldSpec, loc, value: str | bool) -> FillOutcome:
        try:
            desired = as_bool(value)
        except ValueError:
            logger.warning("Ignoring non-boolean value {!r} for checkbox {}", value, spec.name)
            return FillOutcome.NO_MATCH

        if loc.is_checked() == desired:
            return FillOutcome.UNCHANGED
        loc.click()
        return FillOutcome.FILLED
