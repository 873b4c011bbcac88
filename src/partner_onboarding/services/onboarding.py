from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger
from playwright.sync_api import Error as PWError

from partner_onboarding.services.portal_client import (
    OnboardingPortal,
    OnboardingRequest,
    PortalCredentials,
    SubmissionResult,
    SubmissionStatus,
)
from partner_onboarding.utils.errors import (
    AuthError,
    FieldPopulationError,
    FormNotRenderedError,
    OptionNotAvailableError,
    UnexpectedStateError,
)

PortalFactory = Callable[[], OnboardingPortal]


@dataclass(frozen=True)
class OnboardingOutcome:
    carrier_group: SubmissionResult
    provider: SubmissionResult | None = None

    @property
    def ok(self) -> bool:
        return self.carrier_group.ok and self.provider is not None and self.provider.ok

    @property
    def failed_step(self) -> SubmissionResult | None:
        if not self.carrier_group.ok:
            return self.carrier_group
        if self.provider is not None and not self.provider.ok:
            return self.provider
        return None


class OnboardingService:
    """
    What it does:
    - Runs onboarding workflows, one fresh portal session per call.

    Why it matters:
    - This is the request boundary: every workflow failure becomes a
      SubmissionResult, and the browser is released on every exit path.

    Behavior:
    - AuthError -> AUTH_FAILED
    - OptionNotAvailableError (e.g. unknown group id) -> NOT_FOUND
    - Form/field/navigation failures -> UNEXPECTED_ERROR with the last URL
    - Anything else propagates after close().
    """

    def __init__(self, *, portal_factory: PortalFactory, creds: PortalCredentials) -> None:
        self.portal_factory = portal_factory
        self.creds = creds

    def create_carrier_group(self, request: OnboardingRequest) -> SubmissionResult:
        return self._in_session(lambda portal: portal.create_carrier_group(request))

    def create_provider(self, request: OnboardingRequest, *, group_id: str | None = None) -> SubmissionResult:
        return self._in_session(lambda portal: portal.create_provider(request, group_id=group_id))

    def onboard(self, request: OnboardingRequest) -> OnboardingOutcome:
        """Carrier group, then provider, in one session; the new group id feeds the provider form."""
        steps: dict[str, SubmissionResult] = {}

        def both(portal: OnboardingPortal) -> SubmissionResult:
            group = portal.create_carrier_group(request)
            steps["carrier_group"] = group
            if not group.ok:
                return group
            if not group.record_id:
                raise UnexpectedStateError(
                    "Carrier group was created but its id could not be read", url=group.record_url
                )
            return portal.create_provider(request, group_id=group.record_id)

        result = self._in_session(both)
        group = steps.get("carrier_group")
        if group is None or not group.ok:
            return OnboardingOutcome(carrier_group=group or result)
        return OnboardingOutcome(carrier_group=group, provider=result)

    def _in_session(self, action: Callable[[OnboardingPortal], SubmissionResult]) -> SubmissionResult:
        portal = self.portal_factory()
        try:
            portal.login(self.creds)
            return action(portal)
        except AuthError as e:
            return SubmissionResult.failure(SubmissionStatus.AUTH_FAILED, str(e), final_url=_url(portal))
        except OptionNotAvailableError as e:
            return SubmissionResult.failure(SubmissionStatus.NOT_FOUND, str(e), final_url=_url(portal))
        except UnexpectedStateError as e:
            return SubmissionResult.failure(
                SubmissionStatus.UNEXPECTED_ERROR, str(e), final_url=e.url or _url(portal)
            )
        except (FormNotRenderedError, FieldPopulationError) as e:
            logger.error("Workflow aborted: {}", e)
            return SubmissionResult.failure(SubmissionStatus.UNEXPECTED_ERROR, str(e), final_url=_url(portal))
        except PWError as e:
            logger.error("Browser error: {}", e)
            return SubmissionResult.failure(
                SubmissionStatus.UNEXPECTED_ERROR, f"Browser error: {e}", final_url=_url(portal)
            )
        finally:
            portal.close()


def _url(portal: OnboardingPortal) -> str | None:
    try:
        return portal.current_url()
    except PWError:
        return None
