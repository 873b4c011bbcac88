from __future__ import annotations

from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass, field
from urllib.parse import urlparse

from playwright.sync_api import Error as PWError
from playwright.sync_api import TimeoutError as PWTimeoutError

from partner_onboarding.scraping.form_catalog import FillStrategy, FormSpec
from partner_onboarding.services.portal_client import (
    OnboardingRequest,
    PortalCredentials,
    SubmissionResult,
)


@dataclass
class FakeElement:
    """
    One DOM element as seen by FakeLocator.

    - `options` holds (value, label) pairs for <select> elements.
    - `fail_writes` makes the next N fill/select calls raise a Playwright Error.
    - `on_click(page)` lets a test model navigation or dynamic rendering.
    - `on_change(page)` runs after a successful fill or select.
    """

    value: str = ""
    visible: bool = True
    text: str = ""
    options: list[tuple[str, str]] = field(default_factory=list)
    checked: bool = False
    is_checkbox: bool = False
    fail_writes: int = 0
    on_click: Callable[[FakePage], None] | None = None
    on_change: Callable[[FakePage], None] | None = None

    fills: list[str] = field(default_factory=list)
    selections: list[str] = field(default_factory=list)
    clicks: int = 0

    @classmethod
    def select(cls, *options: tuple[str, str]) -> FakeElement:
        return cls(options=list(options))

    @classmethod
    def checkbox(cls, checked: bool = False) -> FakeElement:
        return cls(checked=checked, is_checkbox=True)

    @property
    def written(self) -> bool:
        return bool(self.fills or self.selections or self.clicks)

    def _before_write(self) -> None:
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise PWError("Element is not attached to the DOM")


class FakeLocator:
    """Implements the subset of playwright.sync_api.Locator the workflow uses."""

    def __init__(self, page: FakePage, selector: str, index: int | None = None) -> None:
        self.page = page
        self.selector = selector
        self.index = index

    def _matches(self) -> list[FakeElement]:
        els = self.page.elements.get(self.selector, [])
        if self.index is not None:
            return els[self.index : self.index + 1]
        return els

    def _one(self) -> FakeElement:
        matches = self._matches()
        if not matches:
            raise PWTimeoutError(f"Timeout exceeded waiting for locator('{self.selector}')")
        if len(matches) > 1:
            raise PWError(f"strict mode violation: locator('{self.selector}') resolved to {len(matches)} elements")
        return matches[0]

    @property
    def first(self) -> FakeLocator:
        return type(self)(self.page, self.selector, 0)

    def nth(self, index: int) -> FakeLocator:
        return type(self)(self.page, self.selector, index)

    def count(self) -> int:
        return len(self._matches())

    def is_visible(self, timeout: float | None = None) -> bool:
        matches = self._matches()
        return bool(matches) and matches[0].visible

    def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        self.page.waits.append((self.selector, timeout))
        matches = self._matches()
        if not matches or (state == "visible" and not matches[0].visible):
            raise PWTimeoutError(f"Timeout {timeout}ms exceeded waiting for locator('{self.selector}')")

    def fill(self, value: str, timeout: float | None = None) -> None:
        el = self._one()
        el._before_write()
        el.value = value
        el.fills.append(value)
        if el.on_change is not None:
            el.on_change(self.page)

    def click(self, timeout: float | None = None) -> None:
        el = self._one()
        el.clicks += 1
        if el.is_checkbox:
            el.checked = not el.checked
        if el.on_click is not None:
            el.on_click(self.page)

    def select_option(self, value: str | None = None, timeout: float | None = None) -> list[str]:
        el = self._one()
        el._before_write()
        if value not in [v for v, _ in el.options]:
            raise PWTimeoutError(f"Timeout exceeded: option {value!r} not found in locator('{self.selector}')")
        el.value = value
        el.selections.append(value)
        if el.on_change is not None:
            el.on_change(self.page)
        return [value]

    def evaluate(self, expression: str, arg=None):
        # Only the option-listing script is evaluated against elements.
        el = self._one()
        return [{"value": v, "label": label} for v, label in el.options]

    def is_checked(self, timeout: float | None = None) -> bool:
        return self._one().checked

    def inner_text(self, timeout: float | None = None) -> str:
        return self._one().text

    def all_inner_texts(self) -> list[str]:
        return [el.text for el in self._matches()]


class FakePage:
    """
    In-memory stand-in for playwright.sync_api.Page.

    `screens` maps a URL path to the elements rendered there; navigating
    (goto or a click handler calling navigate()) swaps the current elements.
    `redirects` maps a path requested via goto() to the URL actually served.
    """

    def __init__(
        self,
        url: str = "about:blank",
        *,
        screens: dict[str, dict[str, FakeElement | list[FakeElement]]] | None = None,
        elements: dict[str, FakeElement | list[FakeElement]] | None = None,
    ) -> None:
        self.url = url
        self.screens = screens or {}
        self.elements: dict[str, list[FakeElement]] = {}
        self.history: list[str] = []
        self.waits: list[tuple[str, float | None]] = []
        self.dialog_handlers: list[Callable] = []
        self.screenshots: list[str | None] = []
        self.navigations = 0
        self.goto_error: Exception | None = None
        self.redirects: dict[str, str] = {}
        self.evaluate_result: object = None

        self._load_screen(url)
        if elements:
            self.add(elements)

    # -------------------- test helpers --------------------

    def add(self, elements: dict[str, FakeElement | list[FakeElement]]) -> None:
        for selector, els in elements.items():
            self.elements[selector] = list(els) if isinstance(els, list) else [els]

    def remove(self, selector: str) -> None:
        self.elements.pop(selector, None)

    def navigate(self, url: str) -> None:
        self.url = url
        self.navigations += 1
        self.history.append(url)
        self._load_screen(url)

    def _load_screen(self, url: str) -> None:
        screen = self.screens.get(urlparse(url).path, {})
        self.elements = {}
        self.add(screen)

    # -------------------- Page API --------------------

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None):
        if self.goto_error is not None:
            raise self.goto_error
        self.navigate(self.redirects.get(urlparse(url).path, url))
        return None

    @contextmanager
    def expect_navigation(self, wait_until: str | None = None, timeout: float | None = None):
        before = self.navigations
        yield
        if self.navigations == before:
            raise PWTimeoutError(f"Timeout {timeout}ms exceeded waiting for navigation")

    def on(self, event: str, handler: Callable) -> None:
        if event == "dialog":
            self.dialog_handlers.append(handler)

    def screenshot(self, path: str | None = None, full_page: bool = False) -> bytes:
        self.screenshots.append(path)
        return b""

    def evaluate(self, expression: str, arg=None):
        return self.evaluate_result


def navigate_on_click(url: str) -> Callable[[FakePage], None]:
    return lambda page: page.navigate(url)


@dataclass
class FakePortalClient:
    """
    What it does:
    - Fake portal client used for service and HTTP tests (no web automation).

    Behavior:
    - login() records the credentials, raising `login_error` if set.
    - create_*() record their inputs and return the configured results,
      raising `create_error` if set.
    - close() records that the session was released.
    """

    group_result: SubmissionResult = field(
        default_factory=lambda: SubmissionResult.created("17", "https://portal.test/carrier_groups/17")
    )
    provider_result: SubmissionResult = field(
        default_factory=lambda: SubmissionResult.created(
            "301", "https://portal.test/providers/301", carrier_code="FLX"
        )
    )
    login_error: Exception | None = None
    create_error: Exception | None = None
    url: str | None = "https://portal.test/"

    login_called: bool = False
    closed: bool = False
    calls: list[tuple] = field(default_factory=list)

    def login(self, creds: PortalCredentials) -> None:
        self.login_called = True
        self.calls.append(("login", creds))
        if self.login_error is not None:
            raise self.login_error

    def create_carrier_group(self, request: OnboardingRequest) -> SubmissionResult:
        self.calls.append(("create_carrier_group", request))
        if self.create_error is not None:
            raise self.create_error
        return self.group_result

    def create_provider(self, request: OnboardingRequest, *, group_id: str | None = None) -> SubmissionResult:
        self.calls.append(("create_provider", request, group_id))
        if self.create_error is not None:
            raise self.create_error
        return self.provider_result

    def current_url(self) -> str | None:
        return self.url

    def close(self) -> None:
        self.closed = True
        self.calls.append(("close",))


def render_form(
    form: FormSpec,
    *,
    options: dict[str, list[tuple[str, str]]] | None = None,
    skip_sections: tuple[str, ...] = (),
    skip_rows: tuple[int, ...] = (),
) -> dict[str, FakeElement]:
    """
    Builds the elements a fully rendered form exposes, keyed by each field's
    first candidate locator (repeating rows already expanded).

    Dropdowns only offer a blank placeholder plus `options[field_name]`.
    """
    options = options or {}
    elements: dict[str, FakeElement] = {}

    for section in form.sections:
        if section.name in skip_sections:
            continue
        if section.precondition:
            elements[section.precondition[0]] = FakeElement()
        if section.row is not None and section.row in skip_rows:
            continue
        for spec in section.resolved_fields():
            if spec.strategy in (FillStrategy.SELECT_EXACT, FillStrategy.SELECT_BY_TEXT_FRAGMENT):
                el = FakeElement.select(("", "Please select"), *options.get(spec.name, []))
            elif spec.strategy is FillStrategy.TOGGLE_CHECKBOX:
                el = FakeElement.checkbox()
            else:
                el = FakeElement()
            elements[spec.locators[0]] = el

    elements[form.submit[0]] = FakeElement()
    return elements
