from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from partner_onboarding.config.paths import env_file_path, resolve_runtime_path
from partner_onboarding.services.portal_client import PortalCredentials
from partner_onboarding.utils.errors import ConfigError

MISSING_CREDENTIALS = "Missing portal credentials"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(env_file_path()),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = "dev"
    log_level: str = "INFO"
    log_file: str | None = None

    host: str = "0.0.0.0"
    port: int = Field(default=3000, alias="PORT")

    portal_url: str = Field(default="https://partner.distribusion.com", alias="PORTAL_URL")
    portal_email: str | None = Field(default=None, alias="PORTAL_EMAIL")
    portal_password: str | None = Field(default=None, alias="PORTAL_PASSWORD")
    portal_storage_state: str | None = Field(default=None, alias="PORTAL_STORAGE_STATE")
    portal_headless: bool = Field(default=True, alias="PORTAL_HEADLESS")
    portal_locale: str = Field(default="en", alias="PORTAL_LOCALE")
    portal_selectors_file: str | None = Field(default=None, alias="PORTAL_SELECTORS_FILE")

    browser_executable_path: str | None = Field(default=None, alias="BROWSER_EXECUTABLE_PATH")

    navigation_timeout_ms: int = Field(default=30_000, alias="PORTAL_NAVIGATION_TIMEOUT_MS")
    field_timeout_ms: int = Field(default=15_000, alias="PORTAL_FIELD_TIMEOUT_MS")
    selector_timeout_ms: int = Field(default=5_000, alias="PORTAL_SELECTOR_TIMEOUT_MS")
    launch_timeout_ms: int = Field(default=60_000, alias="PORTAL_LAUNCH_TIMEOUT_MS")

    artifacts_dir: str = Field(default="artifacts", alias="ARTIFACTS_DIR")

    @property
    def artifacts_path(self) -> Path:
        return resolve_runtime_path(self.artifacts_dir)


@dataclass(frozen=True)
class PortalTimeouts:
    """
    Every wait the workflow performs is bounded by one of these (milliseconds).

    - navigation: page.goto / submit navigation / network idle
    - field: overall budget for resolving one field's candidate list
    - selector: sub-timeout for a single candidate inside that budget
    - launch: starting the browser process
    """

    navigation: int = 30_000
    field: int = 15_000
    selector: int = 5_000
    launch: int = 60_000

    @classmethod
    def from_settings(cls, s: Settings) -> PortalTimeouts:
        return cls(
            navigation=s.navigation_timeout_ms,
            field=s.field_timeout_ms,
            selector=s.selector_timeout_ms,
            launch=s.launch_timeout_ms,
        )


def has_portal_credentials(s: Settings) -> bool:
    return bool(s.portal_email and s.portal_password) or bool(s.portal_storage_state)


def require_portal_credentials(s: Settings | None = None) -> PortalCredentials:
    """
    Builds PortalCredentials from settings or raises ConfigError.

    Either an email/password pair or a storage-state file (a cookie jar saved
    from an authenticated browser) is accepted. This runs before any browser
    is launched.
    """
    s = settings if s is None else s

    if not has_portal_credentials(s):
        raise ConfigError(MISSING_CREDENTIALS)

    storage_state = None
    if s.portal_storage_state:
        path = resolve_runtime_path(s.portal_storage_state)
        if not path.exists():
            if not (s.portal_email and s.portal_password):
                raise ConfigError(f"{MISSING_CREDENTIALS}: storage state file not found: {path}")
        else:
            storage_state = str(path)

    return PortalCredentials(
        email=s.portal_email or "",
        password=s.portal_password or "",
        storage_state=storage_state,
    )


settings = Settings()
