class OnboardingError(Exception):
    """Base class for every failure the onboarding workflow reports."""


class ConfigError(OnboardingError):
    """Raised when required credentials or settings are missing. Fails before any browser launch."""


class AuthError(OnboardingError):
    """Raised when the login form cannot be driven or the portal keeps us on the login page."""


class FormNotRenderedError(OnboardingError):
    """Raised when a form's anchor field, required section or submit control never appears."""


class LocatorNotFoundError(OnboardingError):
    """Raised by the selector resolver when no candidate locator became visible in time."""

    def __init__(self, candidates: list[str] | tuple[str, ...], timeout_ms: int | None = None) -> None:
        self.candidates = tuple(candidates)
        self.timeout_ms = timeout_ms
        waited = f" within {timeout_ms}ms" if timeout_ms is not None else ""
        super().__init__(f"None of {list(self.candidates)} became visible{waited}")


class FieldPopulationError(OnboardingError):
    """Raised when a required field could not be written."""

    def __init__(self, field_name: str, message: str) -> None:
        self.field_name = field_name
        super().__init__(message)


class FieldNotFoundError(FieldPopulationError):
    """A field's locators never resolved. Only raised for required fields; optional ones are skipped."""


class OptionNotAvailableError(FieldPopulationError):
    """A required dropdown does not offer the requested option value."""

    def __init__(self, field_name: str, value: str, available: list[str]) -> None:
        self.value = value
        self.available = list(available)
        shown = ", ".join(self.available[:20]) or "<none>"
        super().__init__(
            field_name,
            f"Value {value!r} is not an option of '{field_name}' (available: {shown})",
        )


class UnexpectedStateError(OnboardingError):
    """The post-submit page matched neither success nor a known failure."""

    def __init__(self, message: str, url: str | None = None) -> None:
        self.url = url
        super().__init__(message)


class ValidationFailedError(OnboardingError):
    """The portal rejected a submission. Raised by SubmissionResult.raise_for_status, never by the workflow."""

    def __init__(self, messages: list[str] | tuple[str, ...], url: str | None = None) -> None:
        self.messages = list(messages)
        self.url = url
        super().__init__("; ".join(self.messages))
