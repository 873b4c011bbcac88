from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Protocol

from partner_onboarding.utils.errors import AuthError, UnexpectedStateError, ValidationFailedError

UNKNOWN_VALIDATION_ERROR = "Unknown validation error"


@dataclass(frozen=True)
class PortalCredentials:
    email: str
    password: str
    storage_state: str | None = None

    @property
    def has_password(self) -> bool:
        return bool(self.email and self.password)

    def __repr__(self) -> str:
        return (
            f"PortalCredentials(email={self.email!r}, password='***', "
            f"storage_state={self.storage_state!r})"
        )


@dataclass(frozen=True)
class OnboardingRequest:
    """
    Caller-supplied payload: a flat mapping of field names to values.

    Immutable once received. Carrier-group and provider fields share one
    namespace, so the same request can drive both forms.
    """

    values: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @classmethod
    def from_json(cls, body: Any) -> OnboardingRequest:
        if body is None:
            return cls({})
        if not isinstance(body, Mapping):
            raise ValueError("Request body must be a JSON object")
        return cls(body)

    def get(self, key: str, aliases: Iterable[str] = ()) -> Any:
        for k in (key, *aliases):
            if k in self.values:
                return self.values[k]
        return None

    def merged(self, **updates: Any) -> OnboardingRequest:
        return OnboardingRequest({**self.values, **updates})


class SubmissionStatus(str, Enum):
    CREATED = "created"
    VALIDATION_FAILED = "validation_failed"
    AUTH_FAILED = "auth_failed"
    NOT_FOUND = "not_found"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass(frozen=True)
class SubmissionResult:
    status: SubmissionStatus
    record_id: str | None = None
    record_url: str | None = None
    messages: tuple[str, ...] = ()
    final_url: str | None = None
    error: str | None = None
    carrier_code: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))

        if self.status is SubmissionStatus.CREATED and not (self.record_id or self.record_url):
            raise ValueError("A created submission must carry a record id or URL")

        if self.status is SubmissionStatus.VALIDATION_FAILED and not self.messages:
            object.__setattr__(self, "messages", (UNKNOWN_VALIDATION_ERROR,))

    @property
    def ok(self) -> bool:
        return self.status is SubmissionStatus.CREATED

    @classmethod
    def created(cls, record_id: str | None, record_url: str, carrier_code: str | None = None) -> SubmissionResult:
        return cls(
            status=SubmissionStatus.CREATED,
            record_id=record_id,
            record_url=record_url,
            final_url=record_url,
            carrier_code=carrier_code,
        )

    @classmethod
    def validation_failed(cls, messages: Iterable[str], final_url: str | None) -> SubmissionResult:
        return cls(status=SubmissionStatus.VALIDATION_FAILED, messages=tuple(messages), final_url=final_url)

    @classmethod
    def failure(cls, status: SubmissionStatus, error: str, final_url: str | None = None) -> SubmissionResult:
        return cls(status=status, error=error, final_url=final_url)

    def raise_for_status(self) -> SubmissionResult:
        """Turns a non-created result into the matching exception; returns self when created."""
        if self.status is SubmissionStatus.CREATED:
            return self
        if self.status is SubmissionStatus.VALIDATION_FAILED:
            raise ValidationFailedError(self.messages, url=self.final_url)
        if self.status is SubmissionStatus.AUTH_FAILED:
            raise AuthError(self.error or "Authentication failed")
        raise UnexpectedStateError(
            self.error or f"Submission ended in state {self.status.value}", url=self.final_url
        )


class OnboardingPortal(Protocol):
    """
    What it does:
    - The API the onboarding service expects from a portal automation client.

    Behavior:
    - login() establishes an authenticated session (fatal on failure).
    - create_carrier_group() / create_provider() run one form workflow each.
    - close() releases the browser; safe to call more than once.
    """

    def login(self, creds: PortalCredentials) -> None: ...

    def create_carrier_group(self, request: OnboardingRequest) -> SubmissionResult: ...

    def create_provider(self, request: OnboardingRequest, *, group_id: str | None = None) -> SubmissionResult: ...

    def current_url(self) -> str | None: ...

    def close(self) -> None: ...
