import pytest
from playwright.sync_api import TimeoutError as PWTimeoutError

from partner_onboarding.scraping.form_catalog import CARRIER_GROUP_FORM, PROVIDER_FORM
from partner_onboarding.scraping.partnerportal_playwright import accept_dialogs
from partner_onboarding.services.portal_client import (
    UNKNOWN_VALIDATION_ERROR,
    OnboardingRequest,
    SubmissionStatus,
)
from partner_onboarding.testing.fakes import FakeElement, FakePage, navigate_on_click, render_form
from partner_onboarding.utils.errors import (
    AuthError,
    FieldNotFoundError,
    FormNotRenderedError,
    OptionNotAvailableError,
)

pytestmark = pytest.mark.unit

GROUP_REQUEST = OnboardingRequest(
    {
        "carrier_group_name": "ACME Bus",
        "carrier_group_address": "Main St 1, Berlin",
        "carrier_group_country_code": "DE",
        "carrier_group_vat_no": "DE123456789",
        "carrier_group_iban": "DE89370400440532013000",
        "carrier_group_bic": "COBADEFFXXX",
        "carrier_group_currency_id": "euro",
        "carrier_group_invoicing_cadence": None,
    }
)

GROUP_OPTIONS = {
    "carrier_group_country_code": [("DE", "Germany"), ("FR", "France")],
    "carrier_group_currency_id": [("1", "US Dollar"), ("3", "Euro (EUR)")],
}


def _group_page(landing: str | None) -> tuple[FakePage, dict]:
    elements = render_form(CARRIER_GROUP_FORM, options=GROUP_OPTIONS)
    if landing:
        elements[CARRIER_GROUP_FORM.submit[0]].on_click = navigate_on_click(landing)
    return FakePage(screens={"/carrier_groups/new": elements}), elements


def _provider_page(*, groups=(("17", "ACME Bus"),), skip_rows=(), landing="https://portal.test/providers/301"):
    elements = render_form(
        PROVIDER_FORM,
        options={"group_id": list(groups), "currency": [("3", "Euro (EUR)")]},
        skip_rows=skip_rows,
    )
    elements[PROVIDER_FORM.submit[0]].on_click = navigate_on_click(landing)
    screens = {
        "/providers/new": elements,
        "/providers/301": {"[data-attribute='carrier_code']": FakeElement(text="FLX")},
    }
    return FakePage(screens=screens), elements


def test_carrier_group_happy_path_returns_created_id(make_executor):
    page, elements = _group_page("https://portal.test/carrier_groups/42")

    result = make_executor(page).run(CARRIER_GROUP_FORM, GROUP_REQUEST)

    assert result.status is SubmissionStatus.CREATED
    assert result.record_id == "42"
    assert result.record_url == "https://portal.test/carrier_groups/42"

    assert elements["#carrier_group_name"].fills == ["ACME Bus"]
    assert elements["#carrier_group_country_code"].value == "DE"
    assert elements["#carrier_group_currency_id"].value == "3"
    # no value supplied -> dropdown untouched
    assert not elements["#carrier_group_invoicing_cadence"].written
    assert page.history[0] == "https://portal.test/carrier_groups/new"


class RecordingDialog:
    def __init__(self) -> None:
        self.accepted = 0

    def accept(self) -> None:
        self.accepted += 1


def test_two_submits_on_one_page_accept_each_dialog_once(make_executor):
    """
    Behavior:
    - The page-level handler is the only dialog listener, however many forms
      are submitted on the page.
    """
    page, _ = _group_page("https://portal.test/carrier_groups/42")
    accept_dialogs(page)
    executor = make_executor(page)

    executor.run(CARRIER_GROUP_FORM, GROUP_REQUEST)
    executor.run(CARRIER_GROUP_FORM, GROUP_REQUEST)

    assert len(page.dialog_handlers) == 1
    dialog = RecordingDialog()
    for handler in page.dialog_handlers:
        handler(dialog)
    assert dialog.accepted == 1


def test_carrier_group_validation_failure_returns_portal_messages(make_executor):
    page, _ = _group_page("https://portal.test/carrier_groups")
    page.screens["/carrier_groups"] = {
        "#error_explanation li": [FakeElement(text="Name has already been taken"), FakeElement(text="Iban is invalid")],
    }

    result = make_executor(page).run(CARRIER_GROUP_FORM, GROUP_REQUEST)

    assert result.status is SubmissionStatus.VALIDATION_FAILED
    assert result.messages == ("Name has already been taken", "Iban is invalid")
    assert result.record_id is None


def test_submit_without_navigation_is_classified_on_current_page(make_executor):
    """
    Behavior:
    - A click that never navigates (client-side validation) is not an error
      by itself; the page is still on /new so the result is a validation failure.
    """
    page, _ = _group_page(landing=None)

    result = make_executor(page).run(CARRIER_GROUP_FORM, GROUP_REQUEST)

    assert result.status is SubmissionStatus.VALIDATION_FAILED
    assert result.messages == (UNKNOWN_VALIDATION_ERROR,)


def test_missing_anchor_means_form_not_rendered(make_executor):
    page = FakePage(screens={"/carrier_groups/new": {"h1": FakeElement(text="Something went wrong")}})

    with pytest.raises(FormNotRenderedError, match="did not render"):
        make_executor(page).run(CARRIER_GROUP_FORM, GROUP_REQUEST)


def test_navigation_timeout_means_form_not_rendered(make_executor):
    page = FakePage()
    page.goto_error = PWTimeoutError("Timeout 1000ms exceeded")

    with pytest.raises(FormNotRenderedError):
        make_executor(page).run(CARRIER_GROUP_FORM, GROUP_REQUEST)


def test_redirect_to_login_is_an_auth_failure(make_executor):
    page, _ = _group_page("https://portal.test/carrier_groups/42")
    page.redirects = {"/carrier_groups/new": "https://portal.test/session/new"}

    with pytest.raises(AuthError):
        make_executor(page).run(CARRIER_GROUP_FORM, GROUP_REQUEST)


def test_required_field_missing_from_page_aborts_before_submit(make_executor):
    page, elements = _provider_page()
    del elements["#provider_carrier_group_id"]

    with pytest.raises(FieldNotFoundError) as exc:
        make_executor(page).run(PROVIDER_FORM, OnboardingRequest({"group_id": "17", "provider_display_name": "FlixBus"}))

    assert exc.value.field_name == "group_id"
    assert elements[PROVIDER_FORM.submit[0]].clicks == 0


def test_provider_form_opens_with_english_locale(make_executor):
    page, _ = _provider_page()

    make_executor(page).run(PROVIDER_FORM, OnboardingRequest({"group_id": "17", "provider_display_name": "FlixBus"}))

    assert page.history[0] == "https://portal.test/providers/new?locale=en"


def test_provider_happy_path_selects_group_and_reads_carrier_code(make_executor):
    page, elements = _provider_page()
    request = OnboardingRequest({"groupId": 17, "provider_display_name": "FlixBus", "currency": "EUR"})

    result = make_executor(page).run(PROVIDER_FORM, request)

    assert result.status is SubmissionStatus.CREATED
    assert result.record_id == "301"
    assert result.carrier_code == "FLX"
    assert elements["#provider_carrier_group_id"].value == "17"
    assert elements["#provider_currency_id"].value == "3"


def test_provider_with_unknown_group_fails_before_touching_other_fields(make_executor):
    page, elements = _provider_page(groups=(("12", "Other Group"),))
    request = OnboardingRequest({"group_id": "17", "provider_display_name": "FlixBus"})

    with pytest.raises(OptionNotAvailableError) as exc:
        make_executor(page).run(PROVIDER_FORM, request)

    assert exc.value.field_name == "group_id"
    assert not elements["#provider_display_name"].written
    assert elements[PROVIDER_FORM.submit[0]].clicks == 0


def test_provider_money_fields_default_to_zero(make_executor):
    page, elements = _provider_page()
    request = OnboardingRequest({"group_id": "17", "provider_display_name": "FlixBus", "booking_fee": 1.5})

    make_executor(page).run(PROVIDER_FORM, request)

    assert elements["#provider_booking_fee"].fills == ["1.5"]
    for attr in ("commission_rate", "cancellation_fee", "refund_fee", "minimum_fee"):
        assert elements[f"#provider_{attr}"].fills == ["0"]


def test_provider_contract_defaults(make_executor):
    page, elements = _provider_page()

    make_executor(page).run(PROVIDER_FORM, OnboardingRequest({"group_id": "17", "provider_display_name": "FlixBus"}))

    assert elements["#provider_contracts_attributes_0_duration"].fills == ["12 months"]
    assert elements["#provider_contracts_attributes_0_termination_notice"].fills == ["3 months"]
    assert not elements["#provider_contracts_attributes_0_start_date"].written


def test_contacts_section_waits_for_grid_rendered_after_group_select(make_executor):
    """
    What it does:
    - Models the portal rendering the contacts grid only once a carrier
      group is chosen.

    Behavior:
    - The contacts section waits for its precondition and then fills row 0.
    """
    page, elements = _provider_page()
    grid = elements.pop("#provider_contacts")
    elements["#provider_carrier_group_id"].on_change = lambda p: p.add({"#provider_contacts": grid})
    request = OnboardingRequest(
        {"group_id": "17", "provider_display_name": "FlixBus", "business_contact_email": "ops@flix.test"}
    )

    result = make_executor(page).run(PROVIDER_FORM, request)

    assert result.ok
    assert elements["#provider_contacts_attributes_0_email"].fills == ["ops@flix.test"]


def test_contacts_section_is_skipped_when_grid_never_renders(make_executor):
    page, elements = _provider_page()
    del elements["#provider_contacts"]
    request = OnboardingRequest(
        {"group_id": "17", "provider_display_name": "FlixBus", "business_contact_email": "ops@flix.test"}
    )

    result = make_executor(page).run(PROVIDER_FORM, request)

    assert result.ok
    assert not elements["#provider_contacts_attributes_0_email"].written


def test_missing_contact_row_is_added_before_filling(make_executor):
    page, elements = _provider_page(skip_rows=(1,))
    full = render_form(PROVIDER_FORM)
    row_one = {sel: el for sel, el in full.items() if "_attributes_1_" in sel}
    elements["a.add_fields[data-association='contact']"] = FakeElement(on_click=lambda p: p.add(row_one))
    request = OnboardingRequest(
        {"group_id": "17", "provider_display_name": "FlixBus", "technical_contact_name": "Dev Ops"}
    )

    result = make_executor(page).run(PROVIDER_FORM, request)

    assert result.ok
    assert elements["a.add_fields[data-association='contact']"].clicks == 1
    assert row_one["#provider_contacts_attributes_1_name"].fills == ["Dev Ops"]


def test_missing_contact_row_without_add_control_is_skipped(make_executor):
    page, _ = _provider_page(skip_rows=(1,))
    request = OnboardingRequest(
        {"group_id": "17", "provider_display_name": "FlixBus", "technical_contact_name": "Dev Ops"}
    )

    assert make_executor(page).run(PROVIDER_FORM, request).ok


def test_contact_rows_without_caller_values_are_left_alone(make_executor):
    """
    Behavior:
    - contact_type has a default, but a default alone does not justify adding
      or writing a contact row.
    """
    page, elements = _provider_page(skip_rows=(1,))
    full = render_form(PROVIDER_FORM)
    row_one = {sel: el for sel, el in full.items() if "_attributes_1_" in sel}
    elements["a.add_fields[data-association='contact']"] = FakeElement(on_click=lambda p: p.add(row_one))

    result = make_executor(page).run(PROVIDER_FORM, OnboardingRequest({"group_id": "17", "provider_display_name": "F"}))

    assert result.ok
    assert elements["a.add_fields[data-association='contact']"].clicks == 0
    assert not elements["#provider_contacts_attributes_0_contact_type"].written
