from __future__ import annotations

import argparse
import json
from pathlib import Path

from loguru import logger

from partner_onboarding.config.settings import PortalTimeouts, require_portal_credentials, settings
from partner_onboarding.scraping.form_catalog import load_catalog
from partner_onboarding.scraping.partnerportal_playwright import PlaywrightPortalClient
from partner_onboarding.services.onboarding import OnboardingService
from partner_onboarding.services.portal_client import OnboardingRequest, SubmissionResult
from partner_onboarding.utils.errors import OnboardingError, ValidationFailedError
from partner_onboarding.utils.logging_setup import configure_logging


def _load_json_file(path: str | None) -> dict:
    if not path:
        return {}
    p = Path(path)
    if not p.exists():
        raise RuntimeError(f"JSON file not found: {path}")
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise RuntimeError(f"{path} must contain a JSON object of form fields")
    return data


def _report(label: str, result: SubmissionResult) -> bool:
    try:
        result.raise_for_status()
    except ValidationFailedError as e:
        print(f"REJECTED: {label}: {e}")
        return False
    except OnboardingError as e:
        print(f"FAILED: {label} [{result.status.value}] {e} (url: {result.final_url})")
        return False

    extra = f" carrier_code={result.carrier_code}" if result.carrier_code else ""
    print(f"OK: {label} id={result.record_id} url={result.record_url}{extra}")
    return True


def main() -> int:
    """
    What it does:
    - Runs the onboarding workflows from the command line:
        1) carrier-group: create a carrier group from a JSON payload
        2) provider: create a provider in an existing group
        3) onboard: carrier group then provider in one browser session
        4) dump-fields: list every input/select/textarea on a form

    Why it matters:
    - Lets you debug portal automation (headful, with screenshots) without the HTTP server.

    Behavior:
    - Exit code 0 when the portal created the record(s), 1 otherwise.
    """
    parser = argparse.ArgumentParser(prog="partner-onboarding")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_group = sub.add_parser("carrier-group", help="Create a carrier group.")
    p_group.add_argument("--payload-json", type=str, required=True, help="Path to carrier-group fields JSON.")

    p_provider = sub.add_parser("provider", help="Create a provider in an existing carrier group.")
    p_provider.add_argument("--payload-json", type=str, required=True, help="Path to provider fields JSON.")
    p_provider.add_argument("--group-id", type=str, default=None, help="Overrides group_id from the payload.")

    p_onboard = sub.add_parser("onboard", help="Create carrier group and provider in one session.")
    p_onboard.add_argument("--payload-json", type=str, required=True, help="Path to combined fields JSON.")

    p_dump = sub.add_parser("dump-fields", help="List the fields the portal currently renders on a form.")
    p_dump.add_argument("--form", choices=["carrier_group", "provider"], required=True)

    for p in (p_group, p_provider, p_onboard, p_dump):
        p.add_argument("--headful", action="store_true", help="Show the browser window for debugging.")

    args = parser.parse_args()
    configure_logging(settings.log_level, settings.log_file)

    creds = require_portal_credentials(settings)
    catalog = load_catalog(settings.portal_selectors_file)

    def build_portal() -> PlaywrightPortalClient:
        return PlaywrightPortalClient(
            base_url=settings.portal_url,
            headless=not args.headful,
            executable_path=settings.browser_executable_path,
            storage_state=creds.storage_state,
            locale=settings.portal_locale,
            artifacts_dir=settings.artifacts_path,
            timeouts=PortalTimeouts.from_settings(settings),
            catalog=catalog,
        )

    if args.cmd == "dump-fields":
        portal = build_portal()
        try:
            portal.login(creds)
            fields = portal.inspect_form(args.form)
        finally:
            portal.close()
        print(json.dumps(fields, indent=2))
        return 0

    service = OnboardingService(portal_factory=build_portal, creds=creds)
    request = OnboardingRequest(_load_json_file(args.payload_json))

    if args.cmd == "carrier-group":
        result = service.create_carrier_group(request)
        return 0 if _report("carrier group", result) else 1

    if args.cmd == "provider":
        result = service.create_provider(request, group_id=args.group_id)
        return 0 if _report("provider", result) else 1

    if args.cmd == "onboard":
        outcome = service.onboard(request)
        ok = _report("carrier group", outcome.carrier_group)
        if outcome.provider is not None:
            ok = _report("provider", outcome.provider) and ok
        return 0 if ok else 1

    logger.error("Unknown command {}", args.cmd)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
