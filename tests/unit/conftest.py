from __future__ import annotations

import pytest

from partner_onboarding.config.settings import PortalTimeouts, Settings
from partner_onboarding.scraping.field_populator import FieldPopulator
from partner_onboarding.scraping.form_catalog import DEFAULT_CATALOG
from partner_onboarding.scraping.form_workflow import FormWorkflowExecutor
from partner_onboarding.scraping.outcome_classifier import OutcomeClassifier
from partner_onboarding.scraping.selector_resolver import SelectorResolver

BASE_URL = "https://portal.test/"


@pytest.fixture()
def timeouts() -> PortalTimeouts:
    return PortalTimeouts(navigation=1_000, field=500, selector=100, launch=1_000)


@pytest.fixture()
def catalog():
    return DEFAULT_CATALOG


@pytest.fixture()
def make_executor(timeouts, catalog):
    def build(page) -> FormWorkflowExecutor:
        resolver = SelectorResolver(
            page,
            candidate_timeout_ms=timeouts.selector,
            overall_timeout_ms=timeouts.field,
        )
        return FormWorkflowExecutor(
            page,
            base_url=BASE_URL,
            resolver=resolver,
            populator=FieldPopulator(resolver),
            classifier=OutcomeClassifier(page),
            timeouts=timeouts,
            login=catalog.login,
        )

    return build


@pytest.fixture()
def portal_settings() -> Settings:
    return Settings(
        _env_file=None,
        PORTAL_URL="https://portal.test",
        PORTAL_EMAIL="ops@example.com",
        PORTAL_PASSWORD="secret",
    )


@pytest.fixture()
def empty_settings(monkeypatch) -> Settings:
    for name in ("PORTAL_EMAIL", "PORTAL_PASSWORD", "PORTAL_STORAGE_STATE"):
        monkeypatch.delenv(name, raising=False)
    return Settings(_env_file=None, PORTAL_URL="https://portal.test")
