"""
form_catalog.py

What this module does
- Describes the portal's login page and the two onboarding forms as data:
  candidate locators per field, fill strategy, required flag, defaults,
  sections with preconditions and repeating rows.
- Loads operator overrides from a JSON file so new fallback selectors can be
  added without touching the workflow.

Why it matters
- The portal markup is not a stable contract. Field identifiers drift across
  deployments and locales, so every locator is an ordered candidate list and
  the whole table can be replaced at runtime.

Override file format (PORTAL_SELECTORS_FILE)
    {
      "version": "2024-06-ops",
      "login": {"email": ["#new_email_id"]},
      "forms": {"provider": {"anchor": ["#display_name"]}},
      "locators": {"provider.provider_display_name": ["#display_name"]}
    }
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

ROW_PLACEHOLDER = "{index}"

CATALOG_VERSION = "2024-05"

DEFAULT_ERROR_SELECTORS = [
    "#error_explanation li",
    ".alert-danger",
    ".alert-error",
    ".flash-error",
    ".invalid-feedback",
    ".field_with_errors + .error",
    "span.error",
    ".help-block.error",
    ".form-errors li",
]


class FillStrategy(str, Enum):
    TYPE_TEXT = "type-text"
    SELECT_EXACT = "select-exact"
    SELECT_BY_TEXT_FRAGMENT = "select-by-text-fragment"
    TOGGLE_CHECKBOX = "toggle-checkbox"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class FieldSpec(_Frozen):
    name: str
    locators: list[str] = Field(min_length=1)
    strategy: FillStrategy = FillStrategy.TYPE_TEXT
    required: bool = False
    default: str | None = None
    aliases: list[str] = Field(default_factory=list)

    def for_row(self, index: int | None) -> FieldSpec:
        if index is None:
            return self
        locs = [loc.replace(ROW_PLACEHOLDER, str(index)) for loc in self.locators]
        return self.model_copy(update={"locators": locs})


class FormSection(_Frozen):
    name: str
    fields: list[FieldSpec]
    precondition: list[str] = Field(default_factory=list)
    row: int | None = None
    add_row: list[str] = Field(default_factory=list)

    @property
    def has_required_fields(self) -> bool:
        return any(f.required for f in self.fields)

    @property
    def input_fields(self) -> list[FieldSpec]:
        """Fields only the caller can fill (no default)."""
        return [f for f in self.fields if f.default is None]

    def resolved_fields(self) -> list[FieldSpec]:
        return [f.for_row(self.row) for f in self.fields]


class FormSpec(_Frozen):
    key: str
    resource: str
    new_path: str
    query: dict[str, str] = Field(default_factory=dict)
    anchor: list[str] = Field(min_length=1)
    submit: list[str] = Field(min_length=1)
    sections: list[FormSection]
    error_selectors: list[str] = Field(default_factory=lambda: list(DEFAULT_ERROR_SELECTORS))
    carrier_code_locators: list[str] = Field(default_factory=list)
    carrier_code_label: str | None = None

    @field_validator("new_path")
    @classmethod
    def leading_slash(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    @property
    def collection_path(self) -> str:
        return self.new_path.rstrip("/").removesuffix("/new")

    def field(self, name: str) -> FieldSpec:
        for section in self.sections:
            for f in section.fields:
                if f.name == name:
                    return f
        raise KeyError(f"{self.key} has no field {name!r}")

    def field_names(self) -> list[str]:
        return [f.name for s in self.sections for f in s.fields]


class LoginSpec(_Frozen):
    path: str = "/session/new"
    email: list[str]
    password: list[str]
    submit: list[str]
    failure_markers: list[str] = Field(default_factory=lambda: ["/session", "/sign_in"])


class FormCatalog(_Frozen):
    version: str = CATALOG_VERSION
    login: LoginSpec
    forms: dict[str, FormSpec]

    @property
    def carrier_group(self) -> FormSpec:
        return self.forms["carrier_group"]

    @property
    def provider(self) -> FormSpec:
        return self.forms["provider"]

    def with_overrides(self, overrides: dict) -> FormCatalog:
        """
        Returns a new catalog with candidate lists replaced.

        Keys not present in the override are kept; unknown forms or fields
        raise KeyError so typos in an override file are caught at startup.
        """
        data = self.model_dump(mode="json")

        if "version" in overrides:
            data["version"] = str(overrides["version"])

        for slot, candidates in (overrides.get("login") or {}).items():
            if slot not in data["login"]:
                raise KeyError(f"Unknown login slot {slot!r}")
            data["login"][slot] = candidates

        for form_key, slots in (overrides.get("forms") or {}).items():
            if form_key not in data["forms"]:
                raise KeyError(f"Unknown form {form_key!r}")
            for slot, candidates in slots.items():
                if slot not in data["forms"][form_key] or slot in {"key", "sections"}:
                    raise KeyError(f"Unknown form slot {form_key}.{slot}")
                data["forms"][form_key][slot] = candidates

        for dotted, candidates in (overrides.get("locators") or {}).items():
            form_key, _, field_name = dotted.partition(".")
            form = data["forms"].get(form_key)
            if form is None:
                raise KeyError(f"Unknown form {form_key!r} in locator override {dotted!r}")
            for section in form["sections"]:
                hit = next((f for f in section["fields"] if f["name"] == field_name), None)
                if hit is not None:
                    hit["locators"] = list(candidates)
                    break
            else:
                raise KeyError(f"Unknown field {dotted!r} in locator override")

        return FormCatalog.model_validate(data)


# -------------------- Default locator table --------------------


def _text(name: str, *locators: str, required: bool = False, default: str | None = None) -> FieldSpec:
    return FieldSpec(name=name, locators=list(locators), required=required, default=default)


def _exact(name: str, *locators: str, required: bool = False, aliases: list[str] | None = None) -> FieldSpec:
    return FieldSpec(
        name=name,
        locators=list(locators),
        strategy=FillStrategy.SELECT_EXACT,
        required=required,
        aliases=aliases or [],
    )


def _fragment(name: str, *locators: str, default: str | None = None) -> FieldSpec:
    return FieldSpec(
        name=name,
        locators=list(locators),
        strategy=FillStrategy.SELECT_BY_TEXT_FRAGMENT,
        default=default,
    )


def _checkbox(name: str, *locators: str) -> FieldSpec:
    return FieldSpec(name=name, locators=list(locators), strategy=FillStrategy.TOGGLE_CHECKBOX)


def _money(attr: str) -> FieldSpec:
    return _text(attr, f"#provider_{attr}", f"input[name='provider[{attr}]']", default="0")


def _rails(model: str, attr: str) -> tuple[str, str]:
    return f"#{model}_{attr}", f"[name='{model}[{attr}]']"


def _nested(association: str, attr: str) -> tuple[str, str]:
    return (
        f"#provider_{association}_attributes_{ROW_PLACEHOLDER}_{attr}",
        f"[name='provider[{association}_attributes][{ROW_PLACEHOLDER}][{attr}]']",
    )


DEFAULT_CONTRACT_DURATION = "12 months"
DEFAULT_TERMINATION_NOTICE = "3 months"

CONTACT_ADD_ROW = [
    "a.add_fields[data-association='contact']",
    "button[data-action='add-contact']",
    "#add_contact",
]


def _contact_section(name: str, prefix: str, row: int, contact_type: str) -> FormSection:
    return FormSection(
        name=name,
        precondition=["#provider_contacts", "[data-role='contacts-grid']", "table.contacts"],
        row=row,
        add_row=CONTACT_ADD_ROW,
        fields=[
            _fragment(f"{prefix}_contact_type", *_nested("contacts", "contact_type"), default=contact_type),
            _text(f"{prefix}_contact_name", *_nested("contacts", "name")),
            _text(f"{prefix}_contact_email", *_nested("contacts", "email")),
            _text(f"{prefix}_contact_phone", *_nested("contacts", "phone")),
        ],
    )


CARRIER_GROUP_FORM = FormSpec(
    key="carrier_group",
    resource="carrier_groups",
    new_path="/carrier_groups/new",
    anchor=["#carrier_group_name", "input[name='carrier_group[name]']"],
    submit=[
        "form#new_carrier_group button.btn-success",
        "form#new_carrier_group [type='submit']",
        "form[action$='/carrier_groups'] [type='submit']",
    ],
    sections=[
        FormSection(
            name="basic",
            fields=[
                _text("carrier_group_name", *_rails("carrier_group", "name"), required=True),
                _text("carrier_group_address", *_rails("carrier_group", "address")),
                _exact("carrier_group_country_code", *_rails("carrier_group", "country_code")),
            ],
        ),
        FormSection(
            name="legal",
            fields=[_text("carrier_group_vat_no", *_rails("carrier_group", "vat_no"))],
        ),
        FormSection(
            name="banking",
            fields=[
                _text("carrier_group_iban", *_rails("carrier_group", "iban")),
                _text("carrier_group_bic", *_rails("carrier_group", "bic")),
                _fragment("carrier_group_currency_id", *_rails("carrier_group", "currency_id")),
            ],
        ),
        FormSection(
            name="invoicing",
            fields=[
                _fragment("carrier_group_invoicing_entity", *_rails("carrier_group", "invoicing_entity_id")),
                _fragment("carrier_group_invoicing_cadence", *_rails("carrier_group", "invoicing_cadence")),
            ],
        ),
    ],
)

PROVIDER_FORM = FormSpec(
    key="provider",
    resource="providers",
    new_path="/providers/new",
    query={"locale": "en"},
    anchor=["#provider_display_name", "input[name='provider[display_name]']"],
    submit=[
        "form#new_provider button.btn-success",
        "form#new_provider [type='submit']",
        "form[action$='/providers'] [type='submit']",
    ],
    carrier_code_label="Carrier code",
    carrier_code_locators=[
        "xpath=//*[self::th or self::dt or self::td or self::label]"
        "[normalize-space()='Carrier code']/following-sibling::*[1]",
        "[data-attribute='carrier_code']",
    ],
    sections=[
        FormSection(
            name="basic",
            fields=[
                _exact(
                    "group_id",
                    *_rails("provider", "carrier_group_id"),
                    required=True,
                    aliases=["carrier_group_id", "groupId"],
                ),
                _text("provider_display_name", *_rails("provider", "display_name"), required=True),
                _text("provider_legal_name", *_rails("provider", "legal_name")),
                _text("provider_website", *_rails("provider", "website")),
                _fragment("provider_transport_type", *_rails("provider", "transport_type")),
                _checkbox("provider_marketplace_enabled", *_rails("provider", "marketplace_enabled")),
            ],
        ),
        FormSection(
            name="legal",
            fields=[
                _text("provider_legal_address", *_rails("provider", "legal_address")),
                _text("provider_legal_city", *_rails("provider", "legal_city")),
                _text("provider_legal_zip_code", *_rails("provider", "legal_zip_code")),
                _exact("provider_legal_country_code", *_rails("provider", "legal_country_code")),
                _text("provider_vat_no", *_rails("provider", "vat_no")),
                _text("provider_commercial_register_no", *_rails("provider", "commercial_register_no")),
                _text("provider_legal_representative", *_rails("provider", "legal_representative")),
            ],
        ),
        _contact_section("business_contact", "business", 0, "Business"),
        _contact_section("technical_contact", "technical", 1, "Technical"),
        FormSection(
            name="contract",
            row=0,
            fields=[
                _fragment("contract_type", *_nested("contracts", "contract_type")),
                _text("contract_start_date", *_nested("contracts", "start_date")),
                _text("contract_duration", *_nested("contracts", "duration"), default=DEFAULT_CONTRACT_DURATION),
                _text(
                    "contract_termination_notice",
                    *_nested("contracts", "termination_notice"),
                    default=DEFAULT_TERMINATION_NOTICE,
                ),
                _checkbox("contract_auto_renewal", *_nested("contracts", "auto_renewal")),
            ],
        ),
        FormSection(
            name="invoicing",
            fields=[
                _fragment("invoicing_entity", *_rails("provider", "invoicing_entity_id")),
                _fragment("invoicing_cadence", *_rails("provider", "invoicing_cadence")),
                _fragment("currency", *_rails("provider", "currency_id")),
                _text("iban", *_rails("provider", "iban")),
                _text("bic", *_rails("provider", "bic")),
                _text("invoice_email", *_rails("provider", "invoice_email")),
                _text("payment_terms_days", *_rails("provider", "payment_terms_days")),
            ],
        ),
        FormSection(
            name="commissions",
            fields=[
                _money("commission_rate"),
                _money("booking_fee"),
                _money("cancellation_fee"),
                _money("refund_fee"),
                _money("payment_fee_percentage"),
                _money("marketing_fee_percentage"),
                _money("minimum_fee"),
            ],
        ),
    ],
)

LOGIN = LoginSpec(
    path="/session/new",
    email=["#sign_in_email", "#user_email", "input[name='user[email]']", "input[type='email']"],
    password=[
        "#sign_in_password",
        "#user_password",
        "input[name='user[password]']",
        "input[type='password']",
    ],
    submit=["form button[type='submit']", "form input[type='submit']"],
)

DEFAULT_CATALOG = FormCatalog(
    login=LOGIN,
    forms={"carrier_group": CARRIER_GROUP_FORM, "provider": PROVIDER_FORM},
)


def load_catalog(path: str | Path | None = None) -> FormCatalog:
    """
    What it does:
    - Returns the default catalog, or the default with a JSON override file applied.

    Behavior:
    - Missing file -> FileNotFoundError (a configured but absent file is an operator error).
    - Malformed locators -> pydantic ValidationError.
    """
    if not path:
        return DEFAULT_CATALOG
    p = Path(path)
    overrides = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(overrides, dict):
        raise ValueError(f"Selector override file must hold a JSON object: {p}")
    return DEFAULT_CATALOG.with_overrides(overrides)
